"""Shared type definitions for device_init.

This module contains enums and small value types shared across
subpackages to avoid circular imports.
"""

from enum import Enum, IntEnum


class OsGeneration(IntEnum):
    """On-disk layout generation of an installed OS.

    Generation 1 embeds network settings inside config.json, generation 2
    keeps one INI profile per network in a connections directory.
    """

    OS1 = 1
    OS2 = 2


class NetworkType(str, Enum):
    """Network types understood by the schema builder."""

    ETHERNET = "ethernet"
    WIFI = "wifi"


class FileType(str, Enum):
    """Encoding of a file declared in a merge schema."""

    JSON = "json"
    INI = "ini"


class BootstrapAction(str, Enum):
    """Outcome of preparing the wifi profile in a generation 2 image."""

    ALREADY_PRESENT = "already-present"
    COPIED_IGNORED_SAMPLE = "copied-ignored-sample"
    COPIED_SAMPLE = "copied-sample"
    WROTE_DEFAULT = "wrote-default"


class EventKind(str, Enum):
    """Kinds of events emitted on a progress stream."""

    STATE = "state"
    STDOUT = "stdout"
    STDERR = "stderr"
    BURN = "burn"
    ERROR = "error"
    END = "end"


class VerificationMode(str, Enum):
    """Mode for verifying burned images."""

    FULL = "full-hash"
    PREFIX_16M = "prefix-16MiB"
    PREFIX_64M = "prefix-64MiB"
    SKIP = "skipped"


class VerificationResult(str, Enum):
    """Result of burn verification."""

    MATCH = "match"
    MISMATCH = "mismatch"
    SKIPPED = "skipped"


__all__ = [
    "BootstrapAction",
    "EventKind",
    "FileType",
    "NetworkType",
    "OsGeneration",
    "VerificationMode",
    "VerificationResult",
]
