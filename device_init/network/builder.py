"""Merge schemas for network configuration.

Generation 1 images keep connman service definitions as an INI document
embedded in config.json under ``files["network/network.config"]``; wifi
credentials are also stored as top-level config.json fields.

Generation 2 images keep NetworkManager profiles as independent INI files
in /system-connections, next to config.json. Only wifi needs a profile:
an unconfigured image already does DHCP over ethernet.

Every builder here is a pure function of its inputs.
"""

from device_init.image.paths import normalize_location, with_path
from device_init.manifest.schema import DeviceDescriptor, FileLocation
from device_init.network.models import (
    FileSpec,
    MapperRule,
    MergeSchema,
    NestedLocation,
    NetworkAnswers,
)
from device_init.types import FileType, OsGeneration

CONFIG_JSON_PATH = "/config.json"
CONNECTIONS_FOLDER = "/system-connections"
NETWORK_CONFIG_KEY = "network/network.config"
WIFI_PROFILE_NAME = "resin-wifi"
DEFAULT_NAMESERVERS = "8.8.8.8,8.8.4.4"

CONFIG_JSON_FILE_ID = "config_json"
NETWORK_CONFIG_FILE_ID = "network_config"
CONNECTIONS_FILE_ID = "system_connections"

_ETHERNET_SERVICE = {
    "Type": "ethernet",
    "Nameservers": DEFAULT_NAMESERVERS,
}


def config_location(manifest: DeviceDescriptor, path: str) -> FileLocation:
    """Location of a file co-located with the manifest's config.json.

    Args:
        manifest: Device type manifest.
        path: Path of the file inside the config.json filesystem.

    Returns:
        Location with a numeric partition and the given path.

    Raises:
        MissingConfigurationError: If the manifest has no configuration.
    """
    configuration = manifest.require_configuration()
    return normalize_location(with_path(configuration.config, path))


def _os1_files(manifest: DeviceDescriptor) -> dict[str, FileSpec]:
    return {
        CONFIG_JSON_FILE_ID: FileSpec(
            type=FileType.JSON,
            location=config_location(manifest, CONFIG_JSON_PATH),
        ),
        NETWORK_CONFIG_FILE_ID: FileSpec(
            type=FileType.INI,
            location=NestedLocation(
                parent=CONFIG_JSON_FILE_ID,
                key_path=["files", NETWORK_CONFIG_KEY],
            ),
        ),
    }


def build_os1_ethernet_schema(manifest: DeviceDescriptor) -> MergeSchema:
    """Schema writing the ethernet service into a generation 1 image."""
    return MergeSchema(
        mapper=[
            # Maps config.json itself; merging an empty files block is a no-op
            MapperRule(
                domain=[[CONFIG_JSON_FILE_ID, "files"]],
                template={"files": {}},
            ),
            MapperRule(
                domain=[[NETWORK_CONFIG_FILE_ID, "service_home_ethernet"]],
                template={"service_home_ethernet": dict(_ETHERNET_SERVICE)},
            ),
        ],
        files=_os1_files(manifest),
    )


def build_os1_wifi_schema(manifest: DeviceDescriptor) -> MergeSchema:
    """Schema writing wifi and ethernet services into a generation 1 image."""
    return MergeSchema(
        mapper=[
            MapperRule(
                domain=[
                    [CONFIG_JSON_FILE_ID, "wifiSsid"],
                    [CONFIG_JSON_FILE_ID, "wifiKey"],
                ],
                template={
                    "wifiSsid": "{{wifiSsid}}",
                    "wifiKey": "{{wifiKey}}",
                },
            ),
            MapperRule(
                domain=[
                    [NETWORK_CONFIG_FILE_ID, "service_home_ethernet"],
                    [NETWORK_CONFIG_FILE_ID, "service_home_wifi"],
                ],
                template={
                    "service_home_ethernet": dict(_ETHERNET_SERVICE),
                    "service_home_wifi": {
                        "Hidden": True,
                        "Type": "wifi",
                        "Name": "{{wifiSsid}}",
                        "Passphrase": "{{wifiKey}}",
                        "Nameservers": DEFAULT_NAMESERVERS,
                    },
                },
            ),
        ],
        files=_os1_files(manifest),
    )


def build_os2_wifi_schema(manifest: DeviceDescriptor) -> MergeSchema:
    """Schema writing wifi credentials into the generation 2 wifi profile."""
    return MergeSchema(
        mapper=[
            MapperRule(
                domain=[
                    [CONNECTIONS_FILE_ID, WIFI_PROFILE_NAME, "wifi"],
                    [CONNECTIONS_FILE_ID, WIFI_PROFILE_NAME, "wifi-security"],
                ],
                template={
                    "wifi": {"ssid": "{{wifiSsid}}"},
                    "wifi-security": {"psk": "{{wifiKey}}"},
                },
            ),
        ],
        files={
            CONNECTIONS_FILE_ID: FileSpec(
                type=FileType.INI,
                fileset=True,
                location=config_location(manifest, CONNECTIONS_FOLDER),
            ),
        },
    )


def build_schema(
    manifest: DeviceDescriptor,
    answers: NetworkAnswers,
    generation: OsGeneration,
) -> MergeSchema | None:
    """Build the network merge schema for one OS generation.

    Args:
        manifest: Device type manifest.
        answers: Network answers.
        generation: OS generation to build for.

    Returns:
        The merge schema, or None when the generation needs no network
        configuration for these answers (generation 2 without wifi).

    Raises:
        MissingConfigurationError: If the manifest has no configuration.
    """
    if generation == OsGeneration.OS1:
        if answers.is_wifi:
            return build_os1_wifi_schema(manifest)
        return build_os1_ethernet_schema(manifest)

    if not answers.is_wifi:
        return None
    return build_os2_wifi_schema(manifest)


__all__ = [
    "CONFIG_JSON_PATH",
    "CONNECTIONS_FOLDER",
    "DEFAULT_NAMESERVERS",
    "NETWORK_CONFIG_KEY",
    "WIFI_PROFILE_NAME",
    "build_os1_ethernet_schema",
    "build_os1_wifi_schema",
    "build_os2_wifi_schema",
    "build_schema",
    "config_location",
]
