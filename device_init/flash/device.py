"""Drive validation before burning an image.

A burn target must be given explicitly. It has to be an existing whole
block device (a regular file is accepted only when asked for, which is how
image-backed drives are tested), it must not be the drive holding the root
filesystem, and none of its partitions may be mounted.
"""

import logging
import os
import re
import stat
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)

PROC_MOUNTS = "/proc/mounts"

# sda1, vdb2, mmcblk0p1, nvme0n1p3, loop0p1
_PARTITION_PATTERN = re.compile(
    r"^/dev/(?:(?P<disk>[shv]d[a-z]+)\d+|(?P<pdisk>(?:mmcblk|loop)\d+|nvme\d+n\d+)p\d+)$"
)


@dataclass
class DriveInfo:
    """A validated burn target.

    Attributes:
        path: Absolute path of the drive.
        is_regular_file: Whether the drive is an image-backed regular file.
        size_bytes: Size of the drive, if known.
        mount_points: Mount points found for the drive (only when mounts
            were not checked strictly).
    """

    path: str
    is_regular_file: bool = False
    size_bytes: int | None = None
    mount_points: list[str] = field(default_factory=list)


class DriveValidationError(Exception):
    """Base exception for drive validation errors."""

    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class DriveNotFoundError(DriveValidationError):
    """The drive path does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Drive not found: {path}", code="drive_not_found")
        self.path = path


class NotADriveError(DriveValidationError):
    """The path exists but is not a block device."""

    def __init__(self, path: str) -> None:
        super().__init__(f"Not a block device: {path}", code="not_a_drive")
        self.path = path


class PartitionDriveError(DriveValidationError):
    """The path names a partition instead of a whole drive."""

    def __init__(self, path: str) -> None:
        super().__init__(
            f"{path} is a partition; burn to the whole drive instead",
            code="partition_not_allowed",
        )
        self.path = path


class SystemDriveError(DriveValidationError):
    """The drive holds the root filesystem."""

    def __init__(self, path: str) -> None:
        super().__init__(
            f"Refusing to burn {path}: it holds the root filesystem",
            code="system_drive",
        )
        self.path = path


class DriveMountedError(DriveValidationError):
    """Partitions of the drive are mounted."""

    def __init__(self, path: str, mount_points: list[str]) -> None:
        super().__init__(
            f"Drive {path} is mounted at {', '.join(mount_points)}; unmount it first",
            code="drive_mounted",
        )
        self.path = path
        self.mount_points = mount_points


def whole_drive(path: str) -> str:
    """Map a partition path to the drive it belongs to.

    Paths that do not look like partitions are returned unchanged.
    """
    match = _PARTITION_PATTERN.match(path)
    if match is None:
        return path
    return "/dev/" + (match.group("disk") or match.group("pdisk"))


def is_partition_path(path: str) -> bool:
    """Check whether a device path names a partition."""
    return _PARTITION_PATTERN.match(path) is not None


def read_mounts(mounts_file: str = PROC_MOUNTS) -> list[tuple[str, str]]:
    """Read (device, mount point) pairs from a mounts table.

    Returns an empty list when the table cannot be read.
    """
    try:
        with open(mounts_file) as f:
            lines = f.readlines()
    except OSError:
        logger.warning("Could not read %s, assuming nothing is mounted", mounts_file)
        return []

    mounts = []
    for line in lines:
        fields = line.split()
        if len(fields) >= 2:
            mounts.append((fields[0], fields[1]))
    return mounts


def mount_points_for(path: str, mounts: list[tuple[str, str]]) -> list[str]:
    """Mount points of a drive or any of its partitions."""
    return [point for device, point in mounts if whole_drive(device) == path]


def root_drive(mounts: list[tuple[str, str]]) -> str | None:
    """Drive holding the filesystem mounted at '/'."""
    for device, point in mounts:
        if point == "/":
            return whole_drive(device)
    return None


def drive_size(path: str) -> int | None:
    """Size of a drive in bytes, from sysfs or the file size."""
    if os.path.isfile(path):
        return os.path.getsize(path)

    size_file = Path("/sys/block") / Path(path).name / "size"
    try:
        # sysfs reports 512-byte sectors
        return int(size_file.read_text().strip()) * 512
    except (OSError, ValueError):
        logger.debug("Could not read size of %s", path)
        return None


def validate_drive(
    path: str,
    *,
    check_mount: bool = True,
    check_system_device: bool = True,
    allow_regular_file: bool = False,
) -> DriveInfo:
    """Validate a burn target.

    Args:
        path: Path of the drive.
        check_mount: Refuse drives with mounted partitions.
        check_system_device: Refuse the drive holding the root filesystem.
        allow_regular_file: Accept a regular file as the drive.

    Returns:
        DriveInfo for the validated drive.

    Raises:
        DriveNotFoundError: The path does not exist.
        NotADriveError: The path is neither a block device nor an
            accepted regular file.
        PartitionDriveError: The path is a partition.
        SystemDriveError: The drive holds the root filesystem.
        DriveMountedError: The drive is mounted.
    """
    path = os.path.abspath(path)
    logger.debug("Validating drive %s", path)

    try:
        mode = os.stat(path).st_mode
    except FileNotFoundError:
        raise DriveNotFoundError(path) from None

    if stat.S_ISREG(mode) and allow_regular_file:
        logger.info("Using regular file %s as drive", path)
        return DriveInfo(path=path, is_regular_file=True, size_bytes=drive_size(path))

    if not stat.S_ISBLK(mode):
        raise NotADriveError(path)

    if is_partition_path(path):
        raise PartitionDriveError(path)

    mounts = read_mounts()
    if check_system_device and root_drive(mounts) == path:
        raise SystemDriveError(path)

    mount_points = mount_points_for(path, mounts)
    if mount_points and check_mount:
        raise DriveMountedError(path, mount_points)
    if mount_points:
        logger.warning("Drive %s is mounted at %s", path, ", ".join(mount_points))

    info = DriveInfo(path=path, size_bytes=drive_size(path), mount_points=mount_points)
    logger.info("Drive validated: %s (size=%s)", path, info.size_bytes)
    return info


__all__ = [
    "DriveInfo",
    "DriveMountedError",
    "DriveNotFoundError",
    "DriveValidationError",
    "NotADriveError",
    "PartitionDriveError",
    "SystemDriveError",
    "drive_size",
    "is_partition_path",
    "mount_points_for",
    "read_mounts",
    "root_drive",
    "validate_drive",
    "whole_drive",
]
