"""Self-describing identity of an image.

Images may embed their own device type manifest as /device-type.json on
the boot partition. The boot partition is recognised by its label; when
it cannot be determined, partition 1 is assumed.
"""

import json
import logging

from pydantic import ValidationError

from device_init.image.filesystem import ImageFilesystem, ImageFilesystemError
from device_init.manifest.schema import DeviceDescriptor

logger = logging.getLogger(__name__)

DEVICE_TYPE_PATH = "/device-type.json"
DEFAULT_BOOT_PARTITION = 1
BOOT_PARTITION_LABELS = frozenset({"resin-boot", "balena-boot", "flash-boot"})


def find_boot_partition(fs: ImageFilesystem, image: str) -> int | None:
    """Find the boot partition of an image by its label.

    Args:
        fs: Filesystem accessor.
        image: Path of the image.

    Returns:
        Boot partition number, or None if it cannot be determined.
    """
    try:
        partitions = fs.partitions(image)
    except (ImageFilesystemError, OSError) as e:
        logger.debug("Could not list partitions of %s: %s", image, e)
        return None

    for info in partitions:
        if info.label in BOOT_PARTITION_LABELS:
            return info.number
    return None


def boot_partition_or_default(fs: ImageFilesystem, image: str) -> int:
    """Return the boot partition number, falling back to partition 1."""
    partition = find_boot_partition(fs, image)
    if partition is None:
        return DEFAULT_BOOT_PARTITION
    return partition


def read_image_manifest(fs: ImageFilesystem, image: str) -> DeviceDescriptor | None:
    """Read the device type manifest embedded in an image.

    Args:
        fs: Filesystem accessor.
        image: Path of the image.

    Returns:
        The embedded DeviceDescriptor, or None when the image has none or
        it cannot be read.
    """
    try:
        partition = boot_partition_or_default(fs, image)
        with fs.interact(image, partition) as handle:
            raw = handle.read_file(DEVICE_TYPE_PATH)
        return DeviceDescriptor.model_validate(json.loads(raw))
    except (ImageFilesystemError, OSError, ValueError, ValidationError) as e:
        logger.debug("No usable %s in %s: %s", DEVICE_TYPE_PATH, image, e)
        return None


__all__ = [
    "BOOT_PARTITION_LABELS",
    "DEFAULT_BOOT_PARTITION",
    "DEVICE_TYPE_PATH",
    "boot_partition_or_default",
    "find_boot_partition",
    "read_image_manifest",
]
