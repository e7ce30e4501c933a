"""Tests for manifest/io.py - loading manifests and config payloads."""

import json

import pytest
import yaml
from conftest import RPI_MANIFEST
from pydantic import ValidationError

from device_init.manifest.io import load_config_payload, load_manifest, load_mapping


class TestLoadManifest:
    """Tests for load_manifest function."""

    def test_json(self, tmp_path):
        """JSON manifests load."""
        path = tmp_path / "raspberrypi3.json"
        path.write_text(json.dumps(RPI_MANIFEST))

        assert load_manifest(path).slug == "raspberrypi3"

    def test_yaml(self, tmp_path):
        """YAML manifests load."""
        path = tmp_path / "raspberrypi3.yaml"
        path.write_text(yaml.safe_dump(RPI_MANIFEST))

        manifest = load_manifest(path)

        assert manifest.slug == "raspberrypi3"
        assert manifest.configuration.config.partition.primary == 1

    def test_invalid_manifest(self, tmp_path):
        """Invalid manifests raise ValidationError."""
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"configuration": {"config": {"path": "nope"}}}))

        with pytest.raises(ValidationError):
            load_manifest(path)

    def test_unsupported_extension(self, tmp_path):
        """Unknown extensions are rejected."""
        path = tmp_path / "manifest.toml"
        path.write_text("")

        with pytest.raises(ValueError, match="Unsupported file extension"):
            load_manifest(path)


class TestLoadMapping:
    """Tests for load_mapping and load_config_payload."""

    def test_empty_yaml(self, tmp_path):
        """An empty YAML file is an empty mapping."""
        path = tmp_path / "config.yml"
        path.write_text("")

        assert load_mapping(path) == {}

    def test_non_mapping_rejected(self, tmp_path):
        """Top-level lists are rejected."""
        path = tmp_path / "config.json"
        path.write_text("[1, 2]")

        with pytest.raises(ValueError, match="Expected a JSON object"):
            load_config_payload(path)

    def test_config_payload(self, tmp_path):
        """Config payloads are returned as-is."""
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"applicationId": 1, "isTestConfig": True}))

        assert load_config_payload(path) == {"applicationId": 1, "isTestConfig": True}
