"""Configuring and initializing device images.

This is the public entry point of device_init:

- ``configure`` writes config.json and network settings into an image,
  then runs the manifest's configuration operations;
- ``initialize`` runs the manifest's initialization operations, typically
  burning the image to a drive;
- ``get_image_manifest`` and ``get_image_os_version`` inspect an image.

``configure`` and ``initialize`` validate their inputs immediately and
return a ProgressStream; the image is only touched while the stream is
consumed.

Example:
    >>> stream = configure("rpi", manifest, {"applicationId": 1},
    ...                    {"network": "wifi", "wifiSsid": "s", "wifiKey": "k"})
    >>> stream.on("state", lambda e: print(e.percentage))
    >>> stream.wait()
"""

import json
import logging
from collections.abc import Iterator, Mapping
from typing import Any

from device_init.config import Settings, get_settings
from device_init.image import osrelease
from device_init.image.filesystem import DirectoryImageFilesystem, ImageFilesystem
from device_init.image.identity import read_image_manifest
from device_init.image.paths import resolve_location
from device_init.manifest.schema import DeviceDescriptor
from device_init.network.models import NetworkAnswers
from device_init.network.service import NETWORK_FLOWS
from device_init.operations.events import Event, ProgressStream
from device_init.operations.executor import execute, run_operations

logger = logging.getLogger(__name__)


def get_image_manifest(
    image: str, *, fs: ImageFilesystem | None = None
) -> DeviceDescriptor | None:
    """Read the device type manifest embedded in an image.

    Returns:
        The manifest, or None when the image carries none.
    """
    return read_image_manifest(fs or DirectoryImageFilesystem(), image)


def get_image_os_version(
    image: str,
    manifest: DeviceDescriptor | None = None,
    *,
    fs: ImageFilesystem | None = None,
) -> str | None:
    """Get the OS version installed in an image.

    Returns:
        The version string, or None when it cannot be determined.
    """
    return osrelease.get_image_os_version(fs or DirectoryImageFilesystem(), image, manifest)


def write_config_json(
    fs: ImageFilesystem,
    image: str,
    manifest: DeviceDescriptor,
    config: Mapping[str, Any],
) -> None:
    """Write config.json at the manifest's configuration location.

    Raises:
        MissingConfigurationError: If the manifest has no configuration.
        ImageFilesystemError: If the file cannot be written.
    """
    location = resolve_location(image, manifest.require_configuration().config)
    with fs.interact(location.image, location.partition) as handle:
        handle.write_file(location.path, json.dumps(dict(config)))
    logger.info("Wrote %s to %s partition %s", location.path, location.image, location.partition)


def _configure_events(
    image: str,
    manifest: DeviceDescriptor,
    config: Mapping[str, Any],
    options: Mapping[str, Any],
    answers: NetworkAnswers,
    fs: ImageFilesystem,
    settings: Settings,
) -> Iterator[Event]:
    version = None
    if osrelease.should_detect_os_version(manifest):
        version = osrelease.get_image_os_version(fs, image, manifest)
    generations = osrelease.target_generations(version)
    logger.info(
        "Configuring %s (OS version %s, network layouts %s)",
        image,
        version or "unknown",
        ", ".join(str(int(g)) for g in generations),
    )

    write_config_json(fs, image, manifest, config)
    for generation in generations:
        NETWORK_FLOWS[generation](fs, image, manifest, answers)

    yield from run_operations(
        image,
        manifest.require_configuration().operations,
        options,
        fs=fs,
        settings=settings,
    )


def configure(
    image: str,
    manifest: DeviceDescriptor,
    config: Mapping[str, Any],
    options: Mapping[str, Any] | None = None,
    *,
    fs: ImageFilesystem | None = None,
    settings: Settings | None = None,
) -> ProgressStream:
    """Configure an image.

    Writes config.json, then network settings for the OS generation(s)
    the image may run, then runs the manifest's configuration operations.
    When the OS version cannot be determined, both generations are
    configured.

    Args:
        image: Path of the image.
        manifest: Device type manifest.
        config: Contents of config.json.
        options: Network answers (``network``, ``wifiSsid``, ``wifiKey``)
            and options for the operations.
        fs: Filesystem accessor; directory images by default.
        settings: Settings; defaults are loaded when not provided.

    Returns:
        ProgressStream of the configuration.

    Raises:
        MissingConfigurationError: If the manifest has no configuration.
        pydantic.ValidationError: If the network answers are invalid.
    """
    options = dict(options or {})
    manifest.require_configuration()
    answers = NetworkAnswers.model_validate(options)
    return ProgressStream(
        _configure_events(
            image,
            manifest,
            config,
            options,
            answers,
            fs or DirectoryImageFilesystem(),
            settings or get_settings(),
        )
    )


def initialize(
    image: str,
    manifest: DeviceDescriptor,
    options: Mapping[str, Any] | None = None,
    *,
    fs: ImageFilesystem | None = None,
    settings: Settings | None = None,
) -> ProgressStream:
    """Initialize a device from an image.

    Runs the manifest's initialization operations. A burn operation writes
    to ``options["drive"]``.

    Raises:
        MissingInitializationError: If the manifest has no initialization.
    """
    initialization = manifest.require_initialization()
    logger.info("Initializing %s (%d operations)", image, len(initialization.operations))
    return execute(
        image,
        initialization.operations,
        options,
        fs=fs or DirectoryImageFilesystem(),
        settings=settings or get_settings(),
    )


__all__ = [
    "configure",
    "get_image_manifest",
    "get_image_os_version",
    "initialize",
    "write_config_json",
]
