"""Tests for manifest/schema.py - device descriptor models."""

import pytest
from pydantic import TypeAdapter, ValidationError

from device_init.manifest.schema import (
    BurnOperation,
    CopyOperation,
    DeviceDescriptor,
    FileLocation,
    MissingConfigurationError,
    MissingInitializationError,
    Operation,
    PartitionRef,
    ReplaceOperation,
    RunScriptOperation,
)

operation_adapter = TypeAdapter(Operation)


class TestPartitionRef:
    """Tests for PartitionRef model."""

    def test_primary_and_logical(self):
        """Both numbers may be given."""
        ref = PartitionRef(primary=4, logical=1)
        assert ref.primary == 4
        assert ref.logical == 1

    def test_empty_rejected(self):
        """At least one number is required."""
        with pytest.raises(ValidationError):
            PartitionRef()

    def test_negative_rejected(self):
        """Partition numbers are non-negative."""
        with pytest.raises(ValidationError):
            PartitionRef(primary=-1)

    @pytest.mark.parametrize("data", [{"primary": True}, {"logical": "1"}, {"primary": 1.0}])
    def test_non_integer_rejected(self, data):
        """Booleans, strings and floats are not partition numbers."""
        with pytest.raises(ValidationError):
            PartitionRef.model_validate(data)


class TestFileLocation:
    """Tests for FileLocation model."""

    def test_number_partition(self):
        """A bare number is kept as a number."""
        location = FileLocation.model_validate({"partition": 1, "path": "/config.json"})
        assert location.partition == 1

    def test_structured_partition(self):
        """A mapping becomes a PartitionRef."""
        location = FileLocation.model_validate(
            {"partition": {"primary": 4, "logical": 1}, "path": "/config.json"}
        )
        assert location.partition == PartitionRef(primary=4, logical=1)

    def test_relative_path_rejected(self):
        """Paths are absolute inside the filesystem."""
        with pytest.raises(ValidationError):
            FileLocation(path="config.json")

    def test_unknown_keys_rejected(self):
        """Typos in locations are errors."""
        with pytest.raises(ValidationError):
            FileLocation.model_validate({"path": "/config.json", "partiton": 1})

    @pytest.mark.parametrize("partition", [True, False, "1", 1.0])
    def test_non_integer_partition_rejected(self, partition):
        """Only real integers or structured references are partitions."""
        with pytest.raises(ValidationError):
            FileLocation.model_validate({"partition": partition, "path": "/config.json"})


class TestOperations:
    """Tests for the operation union."""

    def test_copy(self):
        """copy uses from/to."""
        operation = operation_adapter.validate_python(
            {
                "command": "copy",
                "from": {"partition": 1, "path": "/a"},
                "to": {"partition": 2, "path": "/b"},
            }
        )
        assert isinstance(operation, CopyOperation)
        assert operation.source.path == "/a"
        assert operation.destination.partition == 2

    def test_replace(self):
        """replace uses copy/replace for the search and replacement strings."""
        operation = operation_adapter.validate_python(
            {
                "command": "replace",
                "file": {"partition": 1, "path": "/cmdline.txt"},
                "copy": "console=tty1",
                "replace": "console=ttyS0",
            }
        )
        assert isinstance(operation, ReplaceOperation)
        assert operation.search == "console=tty1"
        assert operation.replacement == "console=ttyS0"

    def test_run_script(self):
        """run-script takes a script and arguments."""
        operation = operation_adapter.validate_python(
            {"command": "run-script", "script": "flash.sh", "arguments": ["--quiet"]}
        )
        assert isinstance(operation, RunScriptOperation)
        assert operation.arguments == ["--quiet"]

    def test_burn(self):
        """burn may name a sub-image."""
        operation = operation_adapter.validate_python({"command": "burn"})
        assert isinstance(operation, BurnOperation)
        assert operation.image is None

    def test_unknown_command(self):
        """Unknown commands are rejected."""
        with pytest.raises(ValidationError):
            operation_adapter.validate_python({"command": "format"})

    def test_when_conditions(self):
        """Operations apply only when every condition matches the options."""
        operation = operation_adapter.validate_python(
            {"command": "burn", "when": {"os": "linux", "network": "wifi"}}
        )

        assert operation.applies_to({"os": "linux", "network": "wifi", "x": 1})
        assert not operation.applies_to({"os": "linux"})
        assert not operation.applies_to({})

    def test_no_conditions(self):
        """Operations without conditions always apply."""
        operation = operation_adapter.validate_python({"command": "burn"})
        assert operation.applies_to({})


class TestDeviceDescriptor:
    """Tests for DeviceDescriptor model."""

    def test_full_manifest(self, rpi_manifest):
        """A catalog manifest parses into its blocks."""
        assert rpi_manifest.slug == "raspberrypi3"
        assert rpi_manifest.yocto.deploy_artifact == "resin-image-raspberrypi3.resinos-img"
        assert rpi_manifest.configuration.config.path == "/config.json"
        assert isinstance(rpi_manifest.initialization.operations[0], BurnOperation)

    def test_extra_keys_preserved(self):
        """Unmodelled keys are kept."""
        descriptor = DeviceDescriptor.model_validate({"slug": "x", "instructions": ["a"]})
        assert descriptor.model_extra == {"instructions": ["a"]}

    def test_require_configuration(self):
        """Missing configuration raises MissingConfigurationError."""
        with pytest.raises(MissingConfigurationError) as exc_info:
            DeviceDescriptor(slug="x").require_configuration()

        assert exc_info.value.error_code == "MISSING_CONFIGURATION"
        assert exc_info.value.slug == "x"

    def test_require_initialization(self):
        """Missing initialization raises MissingInitializationError."""
        with pytest.raises(MissingInitializationError):
            DeviceDescriptor(slug="x").require_initialization()
