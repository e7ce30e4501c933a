"""Network configuration flows for each OS generation."""

import logging

from device_init.image.filesystem import ImageFilesystem
from device_init.manifest.schema import DeviceDescriptor
from device_init.network.bootstrap import prepare_os1_network_config, prepare_os2_wifi_config
from device_init.network.builder import build_schema
from device_init.network.merge import apply_schema
from device_init.network.models import NetworkAnswers
from device_init.types import OsGeneration

logger = logging.getLogger(__name__)


def configure_os1_network(
    fs: ImageFilesystem,
    image: str,
    manifest: DeviceDescriptor,
    answers: NetworkAnswers,
) -> None:
    """Write network settings into config.json of a generation 1 image.

    The network document is always prepared. The schema is only applied
    when the answers name a network type.
    """
    prepare_os1_network_config(fs, image, manifest)
    if answers.network is None:
        logger.debug("No network answers for %s, skipping generation 1 schema", image)
        return

    schema = build_schema(manifest, answers, OsGeneration.OS1)
    if schema is None:
        return
    logger.info("Applying generation 1 %s configuration to %s", answers.network, image)
    apply_schema(schema, answers, image, fs=fs)


def configure_os2_network(
    fs: ImageFilesystem,
    image: str,
    manifest: DeviceDescriptor,
    answers: NetworkAnswers,
) -> None:
    """Write wifi settings into the generation 2 wifi profile.

    Does nothing unless wifi was chosen.
    """
    if not answers.is_wifi:
        logger.debug("No wifi answers for %s, skipping generation 2 network", image)
        return

    action = prepare_os2_wifi_config(fs, image, manifest)
    logger.debug("Wifi profile bootstrap for %s: %s", image, action.value)

    schema = build_schema(manifest, answers, OsGeneration.OS2)
    if schema is None:
        return
    logger.info("Applying generation 2 wifi configuration to %s", image)
    apply_schema(schema, answers, image, fs=fs)


NETWORK_FLOWS = {
    OsGeneration.OS1: configure_os1_network,
    OsGeneration.OS2: configure_os2_network,
}


__all__ = ["NETWORK_FLOWS", "configure_os1_network", "configure_os2_network"]
