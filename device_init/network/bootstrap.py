"""Preparing images so network schemas can be applied.

The merge executor edits existing documents; these helpers make sure the
documents it needs are there first.
"""

import json
import logging

from device_init.image.filesystem import ImageFileNotFoundError, ImageFilesystem
from device_init.image.paths import resolve_location
from device_init.manifest.schema import DeviceDescriptor
from device_init.network.builder import (
    CONNECTIONS_FOLDER,
    NETWORK_CONFIG_KEY,
    WIFI_PROFILE_NAME,
    config_location,
)
from device_init.types import BootstrapAction

logger = logging.getLogger(__name__)

IGNORED_SAMPLE_PROFILE_NAME = "resin-sample.ignore"
SAMPLE_PROFILE_NAME = "resin-sample"

# NetworkManager wifi profile with placeholder credentials
DEFAULT_CONNECTION_FILE = """\
[connection]
id=resin-wifi
type=wifi

[wifi]
hidden=true
mode=infrastructure
ssid=My_Wifi_Ssid

[wifi-security]
auth-alg=open
key-mgmt=wpa-psk
psk=super_secret_wifi_password

[ipv4]
method=auto

[ipv6]
addr-gen-mode=stable-privacy
method=auto"""


def prepare_os2_wifi_config(
    fs: ImageFilesystem, image: str, manifest: DeviceDescriptor
) -> BootstrapAction:
    """Ensure a generation 2 image has a wifi profile to configure.

    The connections directory is listed once and the first matching rule
    applies:

    - ``resin-wifi`` exists: nothing to do.
    - ``resin-sample.ignore`` exists: copied verbatim to ``resin-wifi``.
    - ``resin-sample`` exists: copied verbatim to ``resin-wifi``.
    - otherwise: ``resin-wifi`` is written from DEFAULT_CONNECTION_FILE.

    Args:
        fs: Filesystem accessor.
        image: Path of the target image.
        manifest: Device type manifest.

    Returns:
        The action taken.

    Raises:
        MissingConfigurationError: If the manifest has no configuration.
        ImageFilesystemError: If the connections directory cannot be
            listed or a profile cannot be copied.
    """
    folder = resolve_location(image, config_location(manifest, CONNECTIONS_FOLDER))
    target_path = f"{folder.path}/{WIFI_PROFILE_NAME}"

    with fs.interact(folder.image, folder.partition) as handle:
        files = set(handle.readdir(folder.path))

        if WIFI_PROFILE_NAME in files:
            logger.debug("%s already present in %s", WIFI_PROFILE_NAME, image)
            return BootstrapAction.ALREADY_PRESENT

        for source_name, action in (
            (IGNORED_SAMPLE_PROFILE_NAME, BootstrapAction.COPIED_IGNORED_SAMPLE),
            (SAMPLE_PROFILE_NAME, BootstrapAction.COPIED_SAMPLE),
        ):
            if source_name in files:
                contents = handle.read_file(f"{folder.path}/{source_name}")
                handle.write_file(target_path, contents)
                logger.info("Copied %s to %s in %s", source_name, WIFI_PROFILE_NAME, image)
                return action

        handle.write_file(target_path, DEFAULT_CONNECTION_FILE)
        logger.info("Wrote default %s profile to %s", WIFI_PROFILE_NAME, image)
        return BootstrapAction.WROTE_DEFAULT


def prepare_os1_network_config(
    fs: ImageFilesystem, image: str, manifest: DeviceDescriptor
) -> None:
    """Ensure config.json of a generation 1 image holds a network document.

    A missing config.json counts as ``{}``. Afterwards ``files`` is a
    mapping containing ``network/network.config`` (empty when it was
    absent), and config.json is written back.

    Raises:
        MissingConfigurationError: If the manifest has no configuration.
        ImageFilesystemError: If config.json cannot be written.
        ValueError: If config.json holds invalid JSON.
    """
    location = resolve_location(image, manifest.require_configuration().config)

    with fs.interact(location.image, location.partition) as handle:
        try:
            contents = json.loads(handle.read_file(location.path))
        except ImageFileNotFoundError:
            contents = {}

        files = contents.get("files")
        if not isinstance(files, dict):
            files = {}
            contents["files"] = files
        if files.get(NETWORK_CONFIG_KEY) is None:
            files[NETWORK_CONFIG_KEY] = ""

        handle.write_file(location.path, json.dumps(contents))
    logger.debug("Prepared %s in %s", location.path, image)


__all__ = [
    "DEFAULT_CONNECTION_FILE",
    "IGNORED_SAMPLE_PROFILE_NAME",
    "SAMPLE_PROFILE_NAME",
    "prepare_os1_network_config",
    "prepare_os2_wifi_config",
]
