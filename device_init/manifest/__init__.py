"""Device type manifests.

This module handles:
- Manifest (device descriptor) models
- Loading manifests and config payloads from YAML/JSON files
- Fetching manifests from the remote device type catalog
"""

from device_init.manifest.catalog import (
    CatalogError,
    DeviceTypeNotFoundError,
    fetch_device_type,
)
from device_init.manifest.io import load_config_payload, load_manifest
from device_init.manifest.schema import (
    DeviceDescriptor,
    FileLocation,
    ManifestError,
    MissingConfigurationError,
    MissingInitializationError,
    Operation,
    PartitionRef,
)

__all__ = [
    # Models
    "DeviceDescriptor",
    "FileLocation",
    "Operation",
    "PartitionRef",
    # Errors
    "ManifestError",
    "MissingConfigurationError",
    "MissingInitializationError",
    # IO
    "load_config_payload",
    "load_manifest",
    # Catalog
    "CatalogError",
    "DeviceTypeNotFoundError",
    "fetch_device_type",
]
