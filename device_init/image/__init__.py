"""Image access and inspection.

This module handles:
- Resolving manifest file locations to (image, partition, path)
- Partition-aware file access through an ImageFilesystem
- Reading the manifest embedded in an image
- Detecting the installed OS version
"""

from device_init.image.filesystem import (
    DirectoryImageFilesystem,
    ImageFileNotFoundError,
    ImageFilesystem,
    ImageFilesystemError,
    ImageHandle,
    PartitionInfo,
)
from device_init.image.identity import find_boot_partition, read_image_manifest
from device_init.image.osrelease import (
    get_image_os_version,
    major_version,
    parse_os_release,
    target_generations,
)
from device_init.image.paths import (
    InvalidPartitionError,
    ResolvedLocation,
    resolve_image,
    resolve_location,
    resolve_partition,
    with_path,
)

__all__ = [
    # Paths
    "InvalidPartitionError",
    "ResolvedLocation",
    "resolve_image",
    "resolve_location",
    "resolve_partition",
    "with_path",
    # Filesystem
    "DirectoryImageFilesystem",
    "ImageFileNotFoundError",
    "ImageFilesystem",
    "ImageFilesystemError",
    "ImageHandle",
    "PartitionInfo",
    # Identity
    "find_boot_partition",
    "read_image_manifest",
    # OS release
    "get_image_os_version",
    "major_version",
    "parse_os_release",
    "target_generations",
]
