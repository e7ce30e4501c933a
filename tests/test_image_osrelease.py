"""Tests for image/osrelease.py - OS version detection."""

import json

import pytest
from conftest import OS2_RELEASE, RPI_MANIFEST

from device_init.image.osrelease import (
    get_image_os_version,
    major_version,
    parse_os_release,
    should_detect_os_version,
    target_generations,
)
from device_init.manifest.schema import DeviceDescriptor
from device_init.types import OsGeneration


class TestParseOsRelease:
    """Tests for parse_os_release function."""

    def test_quoted_and_bare_values(self):
        """One layer of quotes is removed."""
        release = parse_os_release('NAME="balenaOS"\nID=balena-os\nPRETTY=\'x y\'\n')

        assert release == {"NAME": "balenaOS", "ID": "balena-os", "PRETTY": "x y"}

    def test_split_at_first_equals(self):
        """Values may contain '='."""
        assert parse_os_release("OPTS=a=b")["OPTS"] == "a=b"

    def test_lines_without_equals_dropped(self):
        """Blank lines and junk are ignored."""
        assert parse_os_release("\n# comment\nNAME=x\n") == {"NAME": "x"}


class TestGetImageOsVersion:
    """Tests for get_image_os_version function."""

    def test_balena_os(self, fs, make_image, rpi_manifest):
        """balenaOS versions are reported."""
        image = make_image("img", {"1-resin-boot/os-release": OS2_RELEASE})

        assert get_image_os_version(fs, image, rpi_manifest) == "2.98.33"

    def test_resin_os(self, fs, make_image, rpi_manifest):
        """Resin OS versions are reported."""
        image = make_image(
            "img", {"1-resin-boot/os-release": 'NAME="Resin OS"\nVERSION="1.26.0"\n'}
        )

        assert get_image_os_version(fs, image, rpi_manifest) == "1.26.0"

    def test_unrecognized_os(self, fs, make_image, rpi_manifest):
        """Other operating systems yield None."""
        image = make_image(
            "img", {"1-resin-boot/os-release": 'NAME="Ubuntu"\nVERSION="22.04"\n'}
        )

        assert get_image_os_version(fs, image, rpi_manifest) is None

    def test_missing_file(self, fs, make_image, rpi_manifest):
        """A missing os-release yields None."""
        image = make_image("img", {"1-resin-boot": None})

        assert get_image_os_version(fs, image, rpi_manifest) is None

    def test_missing_image(self, fs, tmp_path, rpi_manifest):
        """A missing image yields None."""
        assert get_image_os_version(fs, str(tmp_path / "nope"), rpi_manifest) is None

    def test_uses_embedded_manifest(self, fs, make_image):
        """Without a manifest the embedded one locates os-release."""
        manifest = dict(RPI_MANIFEST)
        manifest["configuration"] = {"config": {"partition": 2, "path": "/config.json"}}
        image = make_image(
            "img",
            {
                "1-resin-boot/device-type.json": json.dumps(manifest),
                "2/os-release": OS2_RELEASE,
            },
        )

        assert get_image_os_version(fs, image) == "2.98.33"

    def test_boot_partition_without_manifest(self, fs, make_image):
        """Without any manifest the boot partition is searched."""
        image = make_image("img", {"1-resin-boot/os-release": OS2_RELEASE})

        assert get_image_os_version(fs, image) == "2.98.33"

    def test_sub_image(self, fs, make_image, edison_manifest):
        """Sub-images without partitions are supported."""
        image = make_image(
            "edison", {"resin-image-edison.hddimg/os-release": OS2_RELEASE}
        )

        assert get_image_os_version(fs, image, edison_manifest) == "2.98.33"


class TestMajorVersion:
    """Tests for major_version function."""

    @pytest.mark.parametrize(
        ("version", "major"),
        [
            ("2.98.33", 2),
            ("1.26.0", 1),
            ("2.0.0+rev1", 2),
            ("v3.1.4", 3),
            ("2.1", None),
            ("", None),
            (None, None),
        ],
    )
    def test_major(self, version, major):
        """The first X.Y.Z triple gives the major number."""
        assert major_version(version) == major


class TestTargetGenerations:
    """Tests for target_generations function."""

    def test_unknown_configures_both(self):
        """Unknown versions configure generation 2 then generation 1."""
        assert target_generations(None) == (OsGeneration.OS2, OsGeneration.OS1)
        assert target_generations("unknown") == (OsGeneration.OS2, OsGeneration.OS1)

    def test_major_one(self):
        """Generation 1 images only get generation 1 settings."""
        assert target_generations("1.26.0") == (OsGeneration.OS1,)

    def test_major_two_and_later(self):
        """Later majors share the generation 2 layout."""
        assert target_generations("2.98.33") == (OsGeneration.OS2,)
        assert target_generations("5.0.0") == (OsGeneration.OS2,)


class TestShouldDetectOsVersion:
    """Tests for should_detect_os_version function."""

    def test_release_image(self, rpi_manifest):
        """resin-image with a known fstype is detectable."""
        assert should_detect_os_version(rpi_manifest) is True

    def test_other_fstype(self, edison_manifest):
        """Other filesystem types are not."""
        assert should_detect_os_version(edison_manifest) is False

    def test_no_yocto(self):
        """Manifests without build hints are not."""
        assert should_detect_os_version(DeviceDescriptor(slug="x")) is False
