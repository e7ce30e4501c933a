"""Tests for manifest/catalog.py.

These tests use mocked HTTP responses.
"""

import httpx
import pytest
import respx
from conftest import RPI_MANIFEST

from device_init.config import Settings
from device_init.manifest.catalog import (
    CatalogError,
    DeviceTypeNotFoundError,
    build_device_type_url,
    fetch_device_type,
)

API_URL = "https://api.example.com"
RPI_URL = f"{API_URL}/device-types/v1/raspberrypi3"


@pytest.fixture
def settings() -> Settings:
    return Settings(api_url=API_URL, request_timeout=5)


class TestBuildDeviceTypeUrl:
    """Tests for build_device_type_url function."""

    def test_url(self):
        """Slugs are appended to the device types endpoint."""
        assert build_device_type_url("raspberrypi3", API_URL) == RPI_URL

    def test_trailing_slash(self):
        """Trailing slashes on the base URL are ignored."""
        assert build_device_type_url("raspberrypi3", API_URL + "/") == RPI_URL

    @pytest.mark.parametrize("slug", ["", "a/b"])
    def test_invalid_slug(self, slug):
        """Empty slugs and slugs with slashes are rejected."""
        with pytest.raises(ValueError):
            build_device_type_url(slug, API_URL)


class TestFetchDeviceType:
    """Tests for fetch_device_type function."""

    @respx.mock
    def test_success(self, settings):
        """A manifest is fetched and validated."""
        respx.get(RPI_URL).mock(return_value=httpx.Response(200, json=RPI_MANIFEST))

        manifest = fetch_device_type("raspberrypi3", settings=settings)

        assert manifest.slug == "raspberrypi3"
        assert manifest.configuration is not None

    @respx.mock
    def test_reuses_client(self, settings):
        """A caller-supplied client is used and left open."""
        respx.get(RPI_URL).mock(return_value=httpx.Response(200, json=RPI_MANIFEST))

        with httpx.Client() as client:
            fetch_device_type("raspberrypi3", settings=settings, client=client)
            assert not client.is_closed

    @respx.mock
    def test_not_found(self, settings):
        """404 raises DeviceTypeNotFoundError."""
        respx.get(RPI_URL).mock(return_value=httpx.Response(404))

        with pytest.raises(DeviceTypeNotFoundError) as exc_info:
            fetch_device_type("raspberrypi3", settings=settings)

        assert exc_info.value.code == "device_type_not_found"
        assert exc_info.value.slug == "raspberrypi3"

    @respx.mock
    def test_server_error(self, settings):
        """Other HTTP errors raise CatalogError."""
        respx.get(RPI_URL).mock(return_value=httpx.Response(503))

        with pytest.raises(CatalogError) as exc_info:
            fetch_device_type("raspberrypi3", settings=settings)

        assert exc_info.value.code == "http_error"

    @respx.mock
    def test_timeout(self, settings):
        """Timeouts raise CatalogError."""
        respx.get(RPI_URL).mock(side_effect=httpx.ConnectTimeout("timed out"))

        with pytest.raises(CatalogError) as exc_info:
            fetch_device_type("raspberrypi3", settings=settings)

        assert exc_info.value.code == "timeout"

    @respx.mock
    def test_transport_error(self, settings):
        """Connection failures raise CatalogError."""
        respx.get(RPI_URL).mock(side_effect=httpx.ConnectError("refused"))

        with pytest.raises(CatalogError) as exc_info:
            fetch_device_type("raspberrypi3", settings=settings)

        assert exc_info.value.code == "transport_error"

    @respx.mock
    def test_invalid_body(self, settings):
        """Bodies that are not manifests raise CatalogError."""
        respx.get(RPI_URL).mock(return_value=httpx.Response(200, text="<html>"))

        with pytest.raises(CatalogError) as exc_info:
            fetch_device_type("raspberrypi3", settings=settings)

        assert exc_info.value.code == "invalid_manifest"
