"""Models for network answers and declarative merge schemas.

A MergeSchema describes *what* to write and *where*, without doing any
I/O: ``files`` declares the documents involved (their encoding and
location, possibly nested inside another document or spanning a whole
directory) and ``mapper`` binds answer-derived templates to key paths in
those documents. ``device_init.network.merge`` interprets it.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from device_init.manifest.schema import FileLocation
from device_init.types import FileType, NetworkType


def _has_control_characters(value: str) -> bool:
    # Line breaks would split an INI profile line
    return any(ord(c) < 32 or ord(c) == 127 for c in value)


class NetworkAnswers(BaseModel):
    """Network choices supplied by the user.

    Attributes:
        network: Network type ('ethernet', 'wifi', ...); None when the
            user gave no network answers.
        wifi_ssid: Wifi network name (required for wifi).
        wifi_key: Wifi passphrase (required for wifi).
    """

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    network: str | None = None
    wifi_ssid: str | None = Field(default=None, alias="wifiSsid")
    wifi_key: str | None = Field(default=None, alias="wifiKey")

    @model_validator(mode="after")
    def validate_wifi_credentials(self) -> "NetworkAnswers":
        """Require non-empty credentials for wifi, free of control characters."""
        if self.is_wifi:
            if not self.wifi_ssid:
                raise ValueError("wifiSsid is required when network is 'wifi'")
            if not self.wifi_key:
                raise ValueError("wifiKey is required when network is 'wifi'")
        for alias, value in (("wifiSsid", self.wifi_ssid), ("wifiKey", self.wifi_key)):
            if value is not None and _has_control_characters(value):
                raise ValueError(f"{alias} must not contain control characters")
        return self

    @property
    def is_wifi(self) -> bool:
        """Whether wifi was chosen."""
        return self.network == NetworkType.WIFI.value

    def template_context(self) -> dict[str, Any]:
        """Values available to ``{{placeholder}}`` tokens in templates."""
        return self.model_dump(by_alias=True, exclude_none=True)


class NestedLocation(BaseModel):
    """Location of a document stored as a value inside another document.

    Attributes:
        parent: File id of the enclosing document.
        key_path: Keys leading to the value inside the parent.
    """

    model_config = ConfigDict(extra="forbid", populate_by_name=True, frozen=True)

    parent: str
    key_path: list[str] = Field(alias="property", min_length=1)


class FileSpec(BaseModel):
    """A document taking part in a merge.

    Attributes:
        type: Encoding of the document (or of every member of a fileset).
        location: Where the document lives.
        fileset: If True, the location is a directory and every file in
            it is a member document, addressed by file name.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    type: FileType
    location: FileLocation | NestedLocation
    fileset: bool = False

    @model_validator(mode="after")
    def validate_fileset_location(self) -> "FileSpec":
        """Filesets must be directories of an image."""
        if self.fileset and isinstance(self.location, NestedLocation):
            raise ValueError("a fileset cannot be nested inside another file")
        return self


class MapperRule(BaseModel):
    """Binds a template to key paths in declared documents.

    Each domain entry is ``[file_id, *key_path]``; the last key selects the
    template entry merged at that key path.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    domain: list[list[str]] = Field(min_length=1)
    template: dict[str, Any]

    @field_validator("domain")
    @classmethod
    def validate_domain(cls, v: list[list[str]]) -> list[list[str]]:
        """Each domain entry needs a file id and at least one key."""
        for entry in v:
            if len(entry) < 2:
                raise ValueError(f"domain entry {entry!r} needs a file id and a key")
        return v

    @model_validator(mode="after")
    def validate_template_keys(self) -> "MapperRule":
        """Every domain entry must have a template value."""
        for entry in self.domain:
            if entry[-1] not in self.template:
                raise ValueError(f"template has no value for domain entry {entry!r}")
        return self


class MergeSchema(BaseModel):
    """Declarative description of a configuration merge."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    mapper: list[MapperRule]
    files: dict[str, FileSpec]

    @model_validator(mode="after")
    def validate_references(self) -> "MergeSchema":
        """Check file ids referenced by rules and nested locations."""
        for rule in self.mapper:
            for entry in rule.domain:
                if entry[0] not in self.files:
                    raise ValueError(f"domain references unknown file {entry[0]!r}")

        for file_id in self.files:
            seen = {file_id}
            spec = self.files[file_id]
            while isinstance(spec.location, NestedLocation):
                parent = spec.location.parent
                if parent not in self.files:
                    raise ValueError(f"file {file_id!r} has unknown parent {parent!r}")
                if parent in seen:
                    raise ValueError(f"file {file_id!r} has a cyclic parent chain")
                seen.add(parent)
                spec = self.files[parent]
        return self


__all__ = [
    "FileSpec",
    "MapperRule",
    "MergeSchema",
    "NestedLocation",
    "NetworkAnswers",
]
