"""Burning images to drives.

``stream_image_to_drive`` is a generator: it copies the image block by
block, yielding a BurnProgress after each block, flushes and fsyncs the
drive, then optionally verifies what was written by comparing SHA-256
hashes. Its return value (``StopIteration.value``, or the result of
``yield from``) is a WriteResult.
"""

import hashlib
import logging
import os
import time
from collections.abc import Callable, Generator
from dataclasses import dataclass
from pathlib import Path

from device_init.types import VerificationMode, VerificationResult

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_SIZE = 1024 * 1024

VERIFICATION_PREFIX_BYTES = {
    VerificationMode.PREFIX_16M: 16 * 1024 * 1024,
    VerificationMode.PREFIX_64M: 64 * 1024 * 1024,
}


@dataclass(frozen=True)
class BurnProgress:
    """Progress of a burn.

    Attributes:
        percentage: Completion in percent (0-100).
        transferred: Bytes written so far.
        length: Total bytes to write.
        remaining: Bytes left to write.
        eta: Estimated seconds left, None while the speed is unknown.
        runtime: Seconds since the burn started.
        delta: Bytes written since the previous progress.
        speed: Average write speed in bytes per second.
    """

    percentage: float
    transferred: int
    length: int
    remaining: int
    eta: float | None
    runtime: float
    delta: int
    speed: float


@dataclass
class WriteResult:
    """Outcome of a burn.

    Attributes:
        bytes_written: Number of bytes written.
        source_hash: SHA-256 of the verified part of the image.
        drive_hash: SHA-256 read back from the drive.
        verification_mode: Verification mode used.
        verification_result: Result of the verification.
    """

    bytes_written: int
    source_hash: str | None
    drive_hash: str | None
    verification_mode: VerificationMode
    verification_result: VerificationResult


class WriteError(Exception):
    """Base exception for burn errors."""

    def __init__(self, message: str, code: str) -> None:
        super().__init__(message)
        self.message = message
        self.code = code


class SourceImageNotFoundError(WriteError):
    """The image to burn does not exist."""

    def __init__(self, image_path: str) -> None:
        super().__init__(f"Image file not found: {image_path}", code="image_not_found")
        self.image_path = image_path


class WritePermissionError(WriteError):
    """The drive cannot be opened for writing."""

    def __init__(self, drive: str) -> None:
        super().__init__(
            f"Permission denied writing to {drive}; elevated privileges may be needed",
            code="write_permission_denied",
        )
        self.drive = drive


class WriteIOError(WriteError):
    """I/O error while burning."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="write_io_error")


class HashMismatchError(WriteError):
    """What was read back from the drive differs from the image."""

    def __init__(self, drive: str, expected: str, actual: str, mode: VerificationMode) -> None:
        super().__init__(
            f"Verification of {drive} failed ({mode.value}): "
            f"expected {expected[:16]}..., got {actual[:16]}...",
            code="hash_mismatch",
        )
        self.drive = drive
        self.expected = expected
        self.actual = actual
        self.mode = mode


def hash_prefix(
    path: str | Path,
    num_bytes: int | None = None,
    block_size: int = DEFAULT_BLOCK_SIZE,
) -> str:
    """SHA-256 of the first ``num_bytes`` of a file or drive (all when None)."""
    hasher = hashlib.sha256()
    left = num_bytes
    with open(path, "rb") as f:
        while left is None or left > 0:
            size = block_size if left is None else min(block_size, left)
            chunk = f.read(size)
            if not chunk:
                break
            hasher.update(chunk)
            if left is not None:
                left -= len(chunk)
    return hasher.hexdigest()


def verification_length(mode: VerificationMode, image_size: int) -> int:
    """Number of bytes compared when verifying a burn."""
    if mode == VerificationMode.SKIP:
        return 0
    if mode in VERIFICATION_PREFIX_BYTES:
        return min(VERIFICATION_PREFIX_BYTES[mode], image_size)
    return image_size


def _progress(
    transferred: int, length: int, runtime: float, delta: int
) -> BurnProgress:
    remaining = max(length - transferred, 0)
    speed = transferred / runtime if runtime > 0 else 0.0
    if remaining == 0:
        eta: float | None = 0.0
    elif speed > 0:
        eta = remaining / speed
    else:
        eta = None
    percentage = transferred / length * 100 if length else 100.0
    return BurnProgress(
        percentage=min(percentage, 100.0),
        transferred=transferred,
        length=length,
        remaining=remaining,
        eta=eta,
        runtime=runtime,
        delta=delta,
        speed=speed,
    )


def stream_image_to_drive(
    image_path: str | Path,
    drive: str,
    *,
    verification_mode: VerificationMode = VerificationMode.FULL,
    block_size: int = DEFAULT_BLOCK_SIZE,
    clock: Callable[[], float] = time.monotonic,
) -> Generator[BurnProgress, None, WriteResult]:
    """Write an image to a drive, yielding progress.

    The last progress yielded always has ``percentage == 100`` and
    ``eta == 0``.

    Args:
        image_path: Path of the image file.
        drive: Path of the target drive.
        verification_mode: How to verify the burn.
        block_size: Block size for I/O.
        clock: Monotonic clock used for timing.

    Yields:
        BurnProgress after each block.

    Returns:
        WriteResult of the burn.

    Raises:
        SourceImageNotFoundError: The image does not exist.
        WritePermissionError: The drive cannot be written.
        WriteIOError: I/O error while writing.
        HashMismatchError: Verification failed.
    """
    image_path = Path(image_path)
    if not image_path.is_file():
        raise SourceImageNotFoundError(str(image_path))

    length = image_path.stat().st_size
    logger.info("Burning %s (%d bytes) to %s", image_path.name, length, drive)

    started = clock()
    transferred = 0
    last: BurnProgress | None = None
    try:
        with open(image_path, "rb") as src, open(drive, "r+b") as dst:
            while True:
                chunk = src.read(block_size)
                if not chunk:
                    break
                dst.write(chunk)
                transferred += len(chunk)
                last = _progress(transferred, length, clock() - started, len(chunk))
                yield last
            dst.flush()
            os.fsync(dst.fileno())
    except PermissionError as e:
        raise WritePermissionError(drive) from e
    except OSError as e:
        raise WriteIOError(f"Error writing to {drive}: {e}") from e

    if last is None or last.percentage < 100:
        yield _progress(length, length, clock() - started, 0)
    logger.info("Wrote %d bytes to %s", transferred, drive)

    verify_bytes = verification_length(verification_mode, length)
    if verification_mode == VerificationMode.SKIP:
        return WriteResult(
            bytes_written=transferred,
            source_hash=None,
            drive_hash=None,
            verification_mode=verification_mode,
            verification_result=VerificationResult.SKIPPED,
        )

    logger.info("Verifying %d bytes of %s (%s)", verify_bytes, drive, verification_mode.value)
    source_hash = hash_prefix(image_path, verify_bytes, block_size)
    drive_hash = hash_prefix(drive, verify_bytes, block_size)
    if source_hash != drive_hash:
        raise HashMismatchError(drive, source_hash, drive_hash, verification_mode)

    logger.info("Verification of %s passed", drive)
    return WriteResult(
        bytes_written=transferred,
        source_hash=source_hash,
        drive_hash=drive_hash,
        verification_mode=verification_mode,
        verification_result=VerificationResult.MATCH,
    )


__all__ = [
    "DEFAULT_BLOCK_SIZE",
    "BurnProgress",
    "HashMismatchError",
    "SourceImageNotFoundError",
    "WriteError",
    "WriteIOError",
    "WritePermissionError",
    "WriteResult",
    "hash_prefix",
    "stream_image_to_drive",
    "verification_length",
]
