"""OS version detection for images.

The installed OS version decides which on-disk network layout an image
uses. It is read from the os-release file that sits next to config.json.
Detection is best-effort: any failure yields None, which callers treat as
"configure for both generations".
"""

import logging
import re

from device_init.image.filesystem import ImageFilesystem, ImageFilesystemError
from device_init.image.identity import boot_partition_or_default, read_image_manifest
from device_init.image.paths import ResolvedLocation, resolve_location, with_path
from device_init.manifest.schema import DeviceDescriptor, FileLocation
from device_init.types import OsGeneration

logger = logging.getLogger(__name__)

OS_RELEASE_PATH = "/os-release"

# Only these products ship a meaningful VERSION for our purposes
RECOGNIZED_OS_NAMES = frozenset({"Resin OS", "balenaOS"})

# Release images whose os-release location is known
DETECTABLE_IMAGE_NAME = "resin-image"
DETECTABLE_FSTYPES = frozenset({"resinos-img", "resin-sdcard"})

_VERSION_PATTERN = re.compile(r"(\d+)\.(\d+)\.(\d+)")
_QUOTES = ('"', "'")


def _strip_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] in _QUOTES and value[0] == value[-1]:
        return value[1:-1]
    return value


def parse_os_release(text: str) -> dict[str, str]:
    """Parse os-release content into a mapping.

    Each ``KEY=VALUE`` line is split at the first ``=``; lines without
    one are dropped. One layer of matching quotes around the value is
    removed. Later duplicates win.

    Args:
        text: Content of an os-release file.

    Returns:
        Mapping of keys to unquoted values.
    """
    release: dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if not sep:
            continue
        release[key] = _strip_quotes(value)
    return release


def _release_location(
    fs: ImageFilesystem, image: str, manifest: DeviceDescriptor | None
) -> ResolvedLocation:
    if manifest is not None and manifest.configuration is not None:
        location = with_path(manifest.configuration.config, OS_RELEASE_PATH)
    else:
        location = FileLocation(
            partition=boot_partition_or_default(fs, image), path=OS_RELEASE_PATH
        )
    return resolve_location(image, location)


def get_image_os_version(
    fs: ImageFilesystem,
    image: str,
    manifest: DeviceDescriptor | None = None,
) -> str | None:
    """Get the OS version installed in an image.

    When no manifest is given, the one embedded in the image is used;
    without any manifest the boot partition (or partition 1) is searched.

    Args:
        fs: Filesystem accessor.
        image: Path of the image.
        manifest: Device type manifest (optional).

    Returns:
        The OS version, or None if it could not be determined.
    """
    if manifest is None:
        manifest = read_image_manifest(fs, image)

    try:
        location = _release_location(fs, image, manifest)
        with fs.interact(location.image, location.partition) as handle:
            text = handle.read_file(location.path)
    except (ImageFilesystemError, OSError, ValueError) as e:
        logger.debug("Could not read %s from %s: %s", OS_RELEASE_PATH, image, e)
        return None

    release = parse_os_release(text)
    name = release.get("NAME")
    if name not in RECOGNIZED_OS_NAMES:
        logger.debug("Unrecognized OS name %r in %s", name, image)
        return None

    return release.get("VERSION") or None


def major_version(version: str | None) -> int | None:
    """Extract the major number from a version string.

    Args:
        version: Version string such as '2.98.33' or '2.0.0+rev1'.

    Returns:
        Major version, or None if the string holds no X.Y.Z version.
    """
    if not version:
        return None
    match = _VERSION_PATTERN.search(version)
    if match is None:
        return None
    return int(match.group(1))


def target_generations(version: str | None) -> tuple[OsGeneration, ...]:
    """Decide which network layouts to configure for an OS version.

    An unknown version configures both generations, generation 2 first.
    """
    major = major_version(version)
    if major is None or major < OsGeneration.OS1:
        return (OsGeneration.OS2, OsGeneration.OS1)
    if major == OsGeneration.OS1:
        return (OsGeneration.OS1,)
    return (OsGeneration.OS2,)


def should_detect_os_version(manifest: DeviceDescriptor) -> bool:
    """Check whether the os-release location is known for a device type."""
    yocto = manifest.yocto
    if yocto is None:
        return False
    return yocto.image == DETECTABLE_IMAGE_NAME and yocto.fstype in DETECTABLE_FSTYPES


__all__ = [
    "OS_RELEASE_PATH",
    "RECOGNIZED_OS_NAMES",
    "get_image_os_version",
    "major_version",
    "parse_os_release",
    "should_detect_os_version",
    "target_generations",
]
