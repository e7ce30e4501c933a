"""Pydantic models for device type manifests.

This module defines the models for validating device type manifests
(the device descriptor) as published by the device type catalog or
embedded in an image as /device-type.json.

Only the sections this package acts on are modelled in detail; every
other key is accepted and preserved as an extra field.
"""

from collections.abc import Mapping
from typing import Annotated, Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    field_validator,
    model_validator,
)


class ManifestError(Exception):
    """Base exception for device descriptor errors."""

    def __init__(self, message: str, error_code: str) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code


class MissingConfigurationError(ManifestError):
    """Descriptor has no configuration block."""

    def __init__(self, slug: str | None) -> None:
        super().__init__(
            f"Device type {slug or '(unknown)'} has no configuration block; "
            "cannot locate config.json",
            error_code="MISSING_CONFIGURATION",
        )
        self.slug = slug


class MissingInitializationError(ManifestError):
    """Descriptor has no initialization block."""

    def __init__(self, slug: str | None) -> None:
        super().__init__(
            f"Device type {slug or '(unknown)'} has no initialization block",
            error_code="MISSING_INITIALIZATION",
        )
        self.slug = slug


class PartitionRef(BaseModel):
    """Structured partition reference.

    Attributes:
        primary: Primary partition number.
        logical: Logical partition number inside the extended partition.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    primary: StrictInt | None = Field(default=None, ge=0)
    logical: StrictInt | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def validate_not_empty(self) -> "PartitionRef":
        """Require at least one of primary/logical."""
        if self.primary is None and self.logical is None:
            raise ValueError("partition reference needs 'primary' or 'logical'")
        return self


PartitionSpec = Annotated[StrictInt, Field(ge=0)] | PartitionRef


class FileLocation(BaseModel):
    """Location of a file inside an image.

    Attributes:
        image: Optional sub-image path, relative to the base image.
        partition: Partition number or structured reference; None means
            the whole image is a single filesystem.
        path: Absolute path of the file inside the filesystem.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    image: str | None = None
    partition: PartitionSpec | None = None
    path: str

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        """Validate path starts with /."""
        if not v.startswith("/"):
            raise ValueError("path must start with '/'")
        return v


class _OperationBase(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    when: dict[str, Any] | None = None

    def applies_to(self, options: Mapping[str, Any]) -> bool:
        """Check the operation's ``when`` conditions against caller options."""
        if not self.when:
            return True
        return all(options.get(key) == value for key, value in self.when.items())


class CopyOperation(_OperationBase):
    """Copy a file between two locations of an image."""

    command: Literal["copy"]
    source: FileLocation = Field(alias="from")
    destination: FileLocation = Field(alias="to")


class ReplaceOperation(_OperationBase):
    """Replace every occurrence of a string inside a file of an image."""

    command: Literal["replace"]
    file: FileLocation
    search: str = Field(alias="copy")
    replacement: str = Field(alias="replace")


class RunScriptOperation(_OperationBase):
    """Run a script shipped next to the image."""

    command: Literal["run-script"]
    script: str
    arguments: list[str] = Field(default_factory=list)


class BurnOperation(_OperationBase):
    """Write the image (or a sub-image) onto the target drive."""

    command: Literal["burn"]
    image: str | None = None


Operation = Annotated[
    CopyOperation | ReplaceOperation | RunScriptOperation | BurnOperation,
    Field(discriminator="command"),
]


class ConfigurationBlock(BaseModel):
    """Where config.json lives and what to run after writing it."""

    model_config = ConfigDict(extra="allow", frozen=True)

    config: FileLocation
    operations: list[Operation] = Field(default_factory=list)


class InitializationOption(BaseModel):
    """A question asked before initializing a device."""

    model_config = ConfigDict(extra="allow", frozen=True)

    name: str
    message: str | None = None
    type: str | None = None


class InitializationBlock(BaseModel):
    """Operations that initialize a device from its image."""

    model_config = ConfigDict(extra="allow", frozen=True)

    options: list[InitializationOption] | None = None
    operations: list[Operation] = Field(default_factory=list)


class YoctoInfo(BaseModel):
    """Build hints describing the release image of a device type."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    image: str | None = None
    fstype: str | None = None
    machine: str | None = None
    version: str | None = None
    deploy_artifact: str | None = Field(default=None, alias="deployArtifact")
    compressed: bool | None = None
    archive: bool | None = None


class DeviceDescriptor(BaseModel):
    """Device type manifest.

    Attributes:
        slug: Device type identifier (e.g., 'raspberrypi3').
        name: Human-readable name.
        aliases: Alternative slugs.
        arch: CPU architecture.
        state: Release state of the device type.
        yocto: Release image hints.
        configuration: Location of config.json and post-configure operations.
        initialization: Initialization operations.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    slug: str | None = None
    name: str | None = None
    aliases: list[str] = Field(default_factory=list)
    arch: str | None = None
    state: str | None = None
    yocto: YoctoInfo | None = None
    configuration: ConfigurationBlock | None = None
    initialization: InitializationBlock | None = None

    def require_configuration(self) -> ConfigurationBlock:
        """Return the configuration block.

        Raises:
            MissingConfigurationError: If the descriptor has none.
        """
        if self.configuration is None:
            raise MissingConfigurationError(self.slug)
        return self.configuration

    def require_initialization(self) -> InitializationBlock:
        """Return the initialization block.

        Raises:
            MissingInitializationError: If the descriptor has none.
        """
        if self.initialization is None:
            raise MissingInitializationError(self.slug)
        return self.initialization


__all__ = [
    "BurnOperation",
    "ConfigurationBlock",
    "CopyOperation",
    "DeviceDescriptor",
    "FileLocation",
    "InitializationBlock",
    "InitializationOption",
    "ManifestError",
    "MissingConfigurationError",
    "MissingInitializationError",
    "Operation",
    "PartitionRef",
    "PartitionSpec",
    "ReplaceOperation",
    "RunScriptOperation",
    "YoctoInfo",
]
