"""Resolution of file locations inside images.

A manifest describes where a file lives with an optional sub-image, a
partition (number or primary/logical pair) and a path. This module turns
that into a concrete (image, partition number, path) triple that can be
handed to the filesystem accessor.

Partition numbering follows the Linux convention: logical partitions
inside the extended partition are numbered from 5, so a logical index is
offset by EXTENDED_PARTITION_BASE.
"""

import os
from dataclasses import dataclass

from device_init.manifest.schema import FileLocation, PartitionRef, PartitionSpec

EXTENDED_PARTITION_BASE = 4


class InvalidPartitionError(ValueError):
    """Partition reference has an unsupported shape."""

    def __init__(self, partition: object) -> None:
        super().__init__(f"Invalid partition reference: {partition!r}")
        self.partition = partition


@dataclass(frozen=True)
class ResolvedLocation:
    """A fully concrete file location.

    Attributes:
        image: Path of the image (or sub-image) to open.
        partition: Partition number, or None for the whole image.
        path: Absolute path of the file inside the filesystem.
    """

    image: str
    partition: int | None
    path: str


def resolve_partition(partition: PartitionSpec | None) -> int | None:
    """Convert a partition reference to a partition number.

    Args:
        partition: Partition number, structured reference, or None.

    Returns:
        ``logical + 4`` for logical references, ``primary`` for primary
        references; numbers and None are returned unchanged.

    Raises:
        InvalidPartitionError: If the reference has an unsupported shape.
    """
    if isinstance(partition, PartitionRef):
        if partition.logical is not None:
            return partition.logical + EXTENDED_PARTITION_BASE
        return partition.primary
    if partition is None:
        return None
    if isinstance(partition, bool) or not isinstance(partition, int) or partition < 0:
        raise InvalidPartitionError(partition)
    return partition


def resolve_image(base_image: str, location: FileLocation) -> FileLocation:
    """Anchor a location's sub-image path on a base image.

    Some device types ship a folder of images and the manifest names the
    one holding the file; the sub-image path is joined onto the base.

    Args:
        base_image: Path of the image supplied by the caller.
        location: Location from the manifest.

    Returns:
        A copy of ``location`` whose ``image`` is the image to open.
    """
    image = os.path.join(base_image, location.image) if location.image else base_image
    return location.model_copy(update={"image": image}, deep=True)


def resolve_location(base_image: str, location: FileLocation) -> ResolvedLocation:
    """Resolve a manifest location against a base image."""
    anchored = resolve_image(base_image, location)
    return ResolvedLocation(
        image=anchored.image or base_image,
        partition=resolve_partition(anchored.partition),
        path=anchored.path,
    )


def with_path(location: FileLocation, path: str) -> FileLocation:
    """Return a copy of a location pointing at another file.

    Files such as os-release or the connections directory always sit
    next to config.json, so only the path changes.
    """
    return location.model_copy(update={"path": path}, deep=True)


def normalize_location(location: FileLocation) -> FileLocation:
    """Return a copy of a location with its partition as a plain number."""
    return location.model_copy(
        update={"partition": resolve_partition(location.partition)}, deep=True
    )


__all__ = [
    "EXTENDED_PARTITION_BASE",
    "InvalidPartitionError",
    "ResolvedLocation",
    "normalize_location",
    "resolve_image",
    "resolve_location",
    "resolve_partition",
    "with_path",
]
