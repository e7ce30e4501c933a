"""Partition-aware filesystem access to images.

The configuration engine never parses disk images itself. It talks to an
``ImageFilesystem``: something that can open a partition (or the whole
image when no partition is given) and read, write and list files in it.

``DirectoryImageFilesystem`` is the bundled implementation. It works on
unpacked or mounted images laid out as a directory:

- the image directory itself is the filesystem when no partition is given;
- partition N lives in a sub-directory named ``N`` or ``N-<label>``
  (e.g. ``1-resin-boot``, ``5-resin-conf``).
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterator
from contextlib import AbstractContextManager, contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

_PARTITION_DIR_PATTERN = re.compile(r"^(\d+)(?:-(.+))?$")


class ImageFilesystemError(Exception):
    """Base exception for image filesystem errors."""

    def __init__(self, message: str, code: str = "image_fs_error") -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class ImageNotFoundError(ImageFilesystemError):
    """The image itself does not exist."""

    def __init__(self, image: str) -> None:
        super().__init__(f"Image not found: {image}", code="image_not_found")
        self.image = image


class PartitionNotFoundError(ImageFilesystemError):
    """The requested partition does not exist in the image."""

    def __init__(self, image: str, partition: int) -> None:
        super().__init__(
            f"Partition {partition} not found in image {image}",
            code="partition_not_found",
        )
        self.image = image
        self.partition = partition


class ImageFileNotFoundError(ImageFilesystemError):
    """A file or directory inside the image does not exist."""

    def __init__(self, path: str) -> None:
        super().__init__(f"No such file in image: {path}", code="file_not_found")
        self.path = path


class PathTraversalError(ImageFilesystemError):
    """A path escapes the filesystem root."""

    def __init__(self, path: str) -> None:
        super().__init__(
            f"Path traversal detected: {path} resolves outside the filesystem",
            code="path_traversal",
        )
        self.path = path


class ImageIOError(ImageFilesystemError):
    """Any other I/O error while accessing the image."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="image_io_error")


@dataclass(frozen=True)
class PartitionInfo:
    """A partition of an image.

    Attributes:
        number: Partition number.
        label: Filesystem label, if known.
    """

    number: int
    label: str | None = None


class ImageHandle(Protocol):
    """File operations on one opened filesystem."""

    def read_file(self, path: str, encoding: str = "utf-8") -> str: ...

    def write_file(self, path: str, text: str, encoding: str = "utf-8") -> None: ...

    def readdir(self, path: str) -> list[str]: ...


class ImageFilesystem(Protocol):
    """Partition-aware access to images."""

    def interact(
        self, image: str, partition: int | None
    ) -> AbstractContextManager[ImageHandle]: ...

    def partitions(self, image: str) -> list[PartitionInfo]: ...


class _DirectoryHandle:
    """ImageHandle over a directory."""

    def __init__(self, root: Path) -> None:
        self.root = root.resolve()

    def _resolve(self, path: str) -> Path:
        resolved = (self.root / path.lstrip("/")).resolve()
        try:
            resolved.relative_to(self.root)
        except ValueError:
            raise PathTraversalError(path) from None
        return resolved

    def read_file(self, path: str, encoding: str = "utf-8") -> str:
        target = self._resolve(path)
        try:
            # newline="" keeps the bytes intact (no newline translation)
            with open(target, encoding=encoding, newline="") as f:
                return f.read()
        except FileNotFoundError:
            raise ImageFileNotFoundError(path) from None
        except (OSError, UnicodeDecodeError) as e:
            raise ImageIOError(f"Error reading {path}: {e}") from e

    def write_file(self, path: str, text: str, encoding: str = "utf-8") -> None:
        target = self._resolve(path)
        if not target.parent.is_dir():
            raise ImageFileNotFoundError(os.path.dirname(path) or "/")
        try:
            with open(target, "w", encoding=encoding, newline="") as f:
                f.write(text)
        except OSError as e:
            raise ImageIOError(f"Error writing {path}: {e}") from e
        logger.debug("Wrote %d characters to %s", len(text), target)

    def readdir(self, path: str) -> list[str]:
        target = self._resolve(path)
        try:
            return sorted(os.listdir(target))
        except FileNotFoundError:
            raise ImageFileNotFoundError(path) from None
        except OSError as e:
            raise ImageIOError(f"Error listing {path}: {e}") from e


class DirectoryImageFilesystem:
    """ImageFilesystem over unpacked images laid out as directories."""

    def partitions(self, image: str) -> list[PartitionInfo]:
        """List the partitions of an image, ordered by number.

        Raises:
            ImageNotFoundError: If the image directory does not exist.
            ImageIOError: If the image directory cannot be listed.
        """
        root = self._image_root(image)

        found: list[PartitionInfo] = []
        try:
            for entry in root.iterdir():
                match = _PARTITION_DIR_PATTERN.match(entry.name)
                if match and entry.is_dir():
                    found.append(
                        PartitionInfo(number=int(match.group(1)), label=match.group(2))
                    )
        except OSError as e:
            raise ImageIOError(f"Error listing partitions of {image}: {e}") from e
        return sorted(found, key=lambda p: p.number)

    def _image_root(self, image: str) -> Path:
        root = Path(image)
        try:
            if not root.is_dir():
                raise ImageNotFoundError(image)
        except OSError as e:
            raise ImageIOError(f"Error accessing image {image}: {e}") from e
        return root

    def _partition_root(self, image: str, partition: int | None) -> Path:
        root = self._image_root(image)
        if partition is None:
            return root
        for info in self.partitions(image):
            if info.number == partition:
                name = str(info.number) if info.label is None else f"{info.number}-{info.label}"
                return root / name
        raise PartitionNotFoundError(image, partition)

    @contextmanager
    def interact(self, image: str, partition: int | None) -> Iterator[ImageHandle]:
        """Open a partition (or the whole image) of an image.

        Args:
            image: Path of the image directory.
            partition: Partition number, or None for the whole image.

        Yields:
            Handle for reading and writing files in the partition.

        Raises:
            ImageNotFoundError: The image does not exist.
            PartitionNotFoundError: The partition does not exist.
        """
        root = self._partition_root(image, partition)
        logger.debug("Opened %s partition %s at %s", image, partition, root)
        yield _DirectoryHandle(root)


__all__ = [
    "DirectoryImageFilesystem",
    "ImageFileNotFoundError",
    "ImageFilesystem",
    "ImageFilesystemError",
    "ImageHandle",
    "ImageIOError",
    "ImageNotFoundError",
    "PartitionInfo",
    "PartitionNotFoundError",
    "PathTraversalError",
]
