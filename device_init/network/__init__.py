"""Network configuration of images.

This module handles:
- Network answers and declarative merge schemas
- Building per-generation network schemas
- Preparing images so schemas apply
- Applying schemas to image files
"""

from device_init.network.bootstrap import (
    DEFAULT_CONNECTION_FILE,
    prepare_os1_network_config,
    prepare_os2_wifi_config,
)
from device_init.network.builder import build_schema
from device_init.network.merge import MergeError, apply_schema
from device_init.network.models import (
    FileSpec,
    MapperRule,
    MergeSchema,
    NestedLocation,
    NetworkAnswers,
)
from device_init.network.service import configure_os1_network, configure_os2_network

__all__ = [
    # Models
    "FileSpec",
    "MapperRule",
    "MergeSchema",
    "NestedLocation",
    "NetworkAnswers",
    # Builder
    "build_schema",
    # Bootstrap
    "DEFAULT_CONNECTION_FILE",
    "prepare_os1_network_config",
    "prepare_os2_wifi_config",
    # Merge
    "MergeError",
    "apply_schema",
    # Flows
    "configure_os1_network",
    "configure_os2_network",
]
