"""Burning images to drives.

This module handles:
- Drive validation (whole block devices only, not mounted, not the root drive)
- Streaming an image to a drive with progress and fsync
- Hash verification of the burned data
"""

from device_init.flash.device import (
    DriveInfo,
    DriveMountedError,
    DriveNotFoundError,
    DriveValidationError,
    NotADriveError,
    PartitionDriveError,
    SystemDriveError,
    validate_drive,
)
from device_init.flash.writer import (
    BurnProgress,
    HashMismatchError,
    SourceImageNotFoundError,
    WriteError,
    WriteResult,
    stream_image_to_drive,
)

__all__ = [
    # Device
    "DriveInfo",
    "DriveMountedError",
    "DriveNotFoundError",
    "DriveValidationError",
    "NotADriveError",
    "PartitionDriveError",
    "SystemDriveError",
    "validate_drive",
    # Writer
    "BurnProgress",
    "HashMismatchError",
    "SourceImageNotFoundError",
    "WriteError",
    "WriteResult",
    "stream_image_to_drive",
]
