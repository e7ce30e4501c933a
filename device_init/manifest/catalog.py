"""Device type catalog lookup.

This module fetches device type manifests from the remote catalog API
by slug, e.g. ``GET {api_url}/device-types/v1/raspberrypi3``.
"""

from __future__ import annotations

import logging

import httpx
from pydantic import ValidationError

from device_init.config import Settings, get_settings
from device_init.manifest.schema import DeviceDescriptor

logger = logging.getLogger(__name__)

DEVICE_TYPES_ENDPOINT = "/device-types/v1"


class CatalogError(Exception):
    """Raised when the device type catalog cannot be queried."""

    def __init__(self, message: str, code: str = "catalog_error") -> None:
        """Initialize CatalogError.

        Args:
            message: Error description.
            code: Error code for structured error handling.
        """
        super().__init__(message)
        self.message = message
        self.code = code


class DeviceTypeNotFoundError(CatalogError):
    """Raised when the catalog does not know a device type."""

    def __init__(self, slug: str) -> None:
        super().__init__(f"Device type not found: {slug}", code="device_type_not_found")
        self.slug = slug


def build_device_type_url(slug: str, api_url: str) -> str:
    """Build the catalog URL for a device type slug.

    Args:
        slug: Device type slug.
        api_url: Base URL of the catalog API.

    Returns:
        Absolute URL of the device type manifest.
    """
    if not slug or "/" in slug:
        raise ValueError(f"Invalid device type slug: {slug!r}")
    return f"{api_url.rstrip('/')}{DEVICE_TYPES_ENDPOINT}/{slug}"


def fetch_device_type(
    slug: str,
    *,
    settings: Settings | None = None,
    client: httpx.Client | None = None,
) -> DeviceDescriptor:
    """Fetch a device type manifest from the catalog.

    Args:
        slug: Device type slug.
        settings: Application settings (optional).
        client: HTTPX client to reuse (optional).

    Returns:
        Validated DeviceDescriptor.

    Raises:
        DeviceTypeNotFoundError: The catalog answered 404.
        CatalogError: Any other HTTP, transport or validation failure.
    """
    if settings is None:
        settings = get_settings()

    url = build_device_type_url(slug, settings.api_url)
    logger.info("Fetching device type manifest: %s", url)

    owns_client = client is None
    if client is None:
        client = httpx.Client()

    try:
        response = client.get(url, timeout=settings.request_timeout)
        if response.status_code == httpx.codes.NOT_FOUND:
            raise DeviceTypeNotFoundError(slug)
        response.raise_for_status()
        return DeviceDescriptor.model_validate(response.json())
    except httpx.HTTPStatusError as e:
        raise CatalogError(
            f"HTTP error fetching {url}: {e.response.status_code} {e.response.reason_phrase}",
            code="http_error",
        ) from e
    except httpx.TimeoutException as e:
        raise CatalogError(f"Timeout fetching {url}", code="timeout") from e
    except httpx.HTTPError as e:
        raise CatalogError(f"Error fetching {url}: {e}", code="transport_error") from e
    except (ValueError, ValidationError) as e:
        raise CatalogError(
            f"Invalid device type manifest from {url}: {e}", code="invalid_manifest"
        ) from e
    finally:
        if owns_client:
            client.close()


__all__ = [
    "CatalogError",
    "DeviceTypeNotFoundError",
    "build_device_type_url",
    "fetch_device_type",
]
