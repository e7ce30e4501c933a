"""Tests for flash/writer.py - burning images and verifying them."""

import hashlib
import os
from unittest.mock import patch

import pytest

from device_init.flash.writer import (
    HashMismatchError,
    SourceImageNotFoundError,
    hash_prefix,
    stream_image_to_drive,
    verification_length,
)
from device_init.types import VerificationMode, VerificationResult


def drain(writer):
    """Collect the progress of a burn and its result."""
    progress = []
    while True:
        try:
            progress.append(next(writer))
        except StopIteration as stop:
            return progress, stop.value


@pytest.fixture
def image_file(tmp_path):
    """Image of 2.5 blocks of 1 KiB."""
    path = tmp_path / "image.img"
    path.write_bytes(os.urandom(2560))
    return path


@pytest.fixture
def drive(tmp_path):
    """Empty file standing in for a drive."""
    path = tmp_path / "drive.bin"
    path.write_bytes(b"")
    return str(path)


class TestHashPrefix:
    """Tests for hash_prefix function."""

    def test_whole_file(self, image_file):
        """Without a length the whole file is hashed."""
        expected = hashlib.sha256(image_file.read_bytes()).hexdigest()

        assert hash_prefix(image_file, block_size=1000) == expected

    def test_prefix(self, image_file):
        """Only the first bytes are hashed."""
        expected = hashlib.sha256(image_file.read_bytes()[:1500]).hexdigest()

        assert hash_prefix(image_file, 1500, block_size=1000) == expected


class TestVerificationLength:
    """Tests for verification_length function."""

    def test_modes(self):
        """Prefix modes are capped by the image size."""
        assert verification_length(VerificationMode.FULL, 100) == 100
        assert verification_length(VerificationMode.SKIP, 100) == 0
        assert verification_length(VerificationMode.PREFIX_16M, 100) == 100
        assert verification_length(VerificationMode.PREFIX_16M, 10**9) == 16 * 1024 * 1024


class TestStreamImageToDrive:
    """Tests for stream_image_to_drive function."""

    def test_writes_and_verifies(self, image_file, drive):
        """The image is copied and verified with a full hash."""
        progress, result = drain(stream_image_to_drive(image_file, drive, block_size=1024))

        with open(drive, "rb") as f:
            assert f.read() == image_file.read_bytes()
        assert result.bytes_written == 2560
        assert result.verification_result == VerificationResult.MATCH
        assert result.source_hash == result.drive_hash
        assert [p.transferred for p in progress] == [1024, 2048, 2560]

    def test_final_progress(self, image_file, drive):
        """The last progress is complete with no time left."""
        progress, _ = drain(stream_image_to_drive(image_file, drive, block_size=1024))

        last = progress[-1]
        assert last.percentage == 100
        assert last.eta == 0
        assert last.remaining == 0
        assert last.length == 2560

    def test_empty_image(self, tmp_path, drive):
        """An empty image still reports completion once."""
        empty = tmp_path / "empty.img"
        empty.write_bytes(b"")

        progress, result = drain(stream_image_to_drive(empty, drive))

        assert len(progress) == 1
        assert progress[0].percentage == 100
        assert progress[0].eta == 0
        assert result.bytes_written == 0

    def test_timing_from_clock(self, image_file, drive):
        """Runtime, speed and eta come from the injected clock."""
        ticks = iter([0.0, 1.0, 2.0, 3.0])

        progress, _ = drain(
            stream_image_to_drive(
                image_file,
                drive,
                block_size=1024,
                verification_mode=VerificationMode.SKIP,
                clock=lambda: next(ticks),
            )
        )

        first = progress[0]
        assert first.runtime == 1.0
        assert first.speed == 1024.0
        assert first.eta == pytest.approx(1536 / 1024)
        assert first.delta == 1024

    def test_skip_verification(self, image_file, drive):
        """Skipping verification leaves the hashes empty."""
        _, result = drain(
            stream_image_to_drive(image_file, drive, verification_mode=VerificationMode.SKIP)
        )

        assert result.verification_result == VerificationResult.SKIPPED
        assert result.source_hash is None
        assert result.drive_hash is None

    def test_missing_image(self, tmp_path, drive):
        """A missing image is reported before anything is written."""
        with pytest.raises(SourceImageNotFoundError):
            drain(stream_image_to_drive(tmp_path / "missing.img", drive))

    def test_hash_mismatch(self, image_file, drive):
        """Differing hashes fail the burn."""
        with patch(
            "device_init.flash.writer.hash_prefix", side_effect=["a" * 64, "b" * 64]
        ):
            with pytest.raises(HashMismatchError) as exc_info:
                drain(stream_image_to_drive(image_file, drive))

        assert exc_info.value.code == "hash_mismatch"
        assert exc_info.value.mode == VerificationMode.FULL
