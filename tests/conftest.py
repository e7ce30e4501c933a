"""Shared fixtures for tests.

Images are directories: partition N is a sub-directory named ``N`` or
``N-<label>``.
"""

import json
from collections.abc import Callable
from pathlib import Path

import pytest

from device_init.image.filesystem import DirectoryImageFilesystem
from device_init.manifest.schema import DeviceDescriptor

OS1_RELEASE = 'ID="resin-os"\nNAME="Resin OS"\nVERSION="1.26.0"\n'
OS2_RELEASE = 'ID="balena-os"\nNAME="balenaOS"\nVERSION="2.98.33"\n'

RPI_MANIFEST = {
    "slug": "raspberrypi3",
    "name": "Raspberry Pi 3",
    "arch": "armv7hf",
    "state": "released",
    "yocto": {
        "machine": "raspberrypi3",
        "image": "resin-image",
        "fstype": "resinos-img",
        "version": "yocto-kirkstone",
        "deployArtifact": "resin-image-raspberrypi3.resinos-img",
        "compressed": True,
    },
    "configuration": {
        "config": {"partition": {"primary": 1}, "path": "/config.json"},
    },
    "initialization": {
        "options": [{"name": "drive", "message": "Select a drive", "type": "drive"}],
        "operations": [{"command": "burn"}],
    },
}

EDISON_MANIFEST = {
    "slug": "intel-edison",
    "name": "Intel Edison",
    "arch": "i386",
    "yocto": {"machine": "edison", "image": "resin-image", "fstype": "zip"},
    "configuration": {
        "config": {"image": "resin-image-edison.hddimg", "path": "/config.json"},
    },
}


def write_tree(root: Path, files: dict[str, str | None]) -> None:
    """Create files under root; a None value creates a directory."""
    root.mkdir(parents=True, exist_ok=True)
    for relative, contents in files.items():
        target = root / relative
        if contents is None:
            target.mkdir(parents=True, exist_ok=True)
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(contents.encode("utf-8"))


@pytest.fixture
def fs() -> DirectoryImageFilesystem:
    """Directory-backed filesystem accessor."""
    return DirectoryImageFilesystem()


@pytest.fixture
def make_image(tmp_path: Path) -> Callable[..., str]:
    """Factory creating a directory image and returning its path."""

    def _make(name: str = "image", files: dict[str, str | None] | None = None) -> str:
        root = tmp_path / name
        write_tree(root, files or {})
        return str(root)

    return _make


@pytest.fixture
def rpi_manifest() -> DeviceDescriptor:
    """Raspberry Pi manifest with config.json on partition 1."""
    return DeviceDescriptor.model_validate(RPI_MANIFEST)


@pytest.fixture
def edison_manifest() -> DeviceDescriptor:
    """Manifest whose config.json lives in a sub-image without partitions."""
    return DeviceDescriptor.model_validate(EDISON_MANIFEST)


@pytest.fixture
def os1_image(make_image: Callable[..., str]) -> str:
    """Generation 1 image with an empty boot partition."""
    return make_image(
        "os1",
        {
            "1-resin-boot/os-release": OS1_RELEASE,
            "1-resin-boot/device-type.json": json.dumps(RPI_MANIFEST),
            "2-resin-rootA": None,
        },
    )


@pytest.fixture
def os2_image(make_image: Callable[..., str]) -> str:
    """Generation 2 image shipping the new-style wifi sample."""
    return make_image(
        "os2",
        {
            "1-resin-boot/os-release": OS2_RELEASE,
            "1-resin-boot/device-type.json": json.dumps(RPI_MANIFEST),
            "1-resin-boot/system-connections/resin-sample.ignore": (
                "[connection]\nid=resin-sample\ntype=wifi\n\n"
                "[wifi]\nmode=infrastructure\nssid=SAMPLE\n\n"
                "[wifi-security]\nkey-mgmt=wpa-psk\npsk=SAMPLE_PSK\n"
            ),
            "2-resin-rootA": None,
        },
    )


@pytest.fixture
def unknown_image(make_image: Callable[..., str]) -> str:
    """Image without os-release."""
    return make_image(
        "unknown",
        {"1-resin-boot/system-connections": None},
    )
