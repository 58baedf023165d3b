"""Tests for the Docker Hub registry tags provider and the shared HTTP helper."""

from __future__ import annotations

import httpx
import pytest

from image_updater.config import Settings
from image_updater.errors import (
    InvalidInputError,
    ParseError,
    SourceTimeoutError,
    SourceUnavailableError,
)
from image_updater.models import RegistryTagsConfig, VersionSourceKind
from image_updater.sources import RegistryTagsProvider, create_provider
from image_updater.sources.registry_tags import is_prerelease_tag

TAGS = {
    "results": [
        {"name": "latest", "last_updated": "2024-03-01T00:00:00Z", "digest": "sha256:aaa"},
        {"name": "1.21.0", "last_updated": "2024-01-01T00:00:00Z", "digest": "sha256:bbb"},
        {"name": "1.22.0", "last_updated": "2024-02-01T00:00:00Z", "digest": "sha256:ccc"},
        {"name": "1.22.0-rc1", "last_updated": "2024-01-15T00:00:00Z"},
    ]
}


def _provider(settings, **kwargs) -> RegistryTagsProvider:
    return RegistryTagsProvider(RegistryTagsConfig("library", "nginx", **kwargs), settings)


class TestSelectTag:
    """Tests for tag filtering and ordering."""

    def test_newest_tag_without_filter(self, settings):
        assert _provider(settings).select_tag(TAGS["results"])["name"] == "latest"

    def test_regex_filter(self, settings):
        provider = _provider(settings, tag_regex=r"^\d+\.\d+\.\d+$")
        assert provider.select_tag(TAGS["results"])["name"] == "1.22.0"

    def test_semver_regex_picks_newest_release(self, settings):
        tags = [
            {"name": "1.21.0", "last_updated": "2024-01-01T00:00:00Z"},
            {"name": "latest", "last_updated": "2024-01-02T00:00:00Z"},
            {"name": "1.22.0", "last_updated": "2024-01-03T00:00:00Z"},
        ]
        provider = _provider(settings, tag_regex=r"^\d+\.\d+\.\d+$")
        assert provider.select_tag(tags)["name"] == "1.22.0"

    def test_regex_searches_anywhere(self, settings):
        provider = _provider(settings, tag_regex=r"rc\d", include_prerelease=True)
        assert provider.select_tag(TAGS["results"])["name"] == "1.22.0-rc1"

    def test_prerelease_skipped_by_default(self, settings):
        provider = _provider(settings, tag_regex=r"^1\.22")
        assert provider.select_tag(TAGS["results"])["name"] == "1.22.0"

    def test_prerelease_only_match_yields_nothing(self, settings):
        assert _provider(settings, tag_regex=r"rc\d").select_tag(TAGS["results"]) is None

    def test_prerelease_included_when_allowed(self, settings):
        tags = [
            {"name": "1.22.0", "last_updated": "2024-02-01T00:00:00Z"},
            {"name": "1.23.0-beta.2", "last_updated": "2024-02-10T00:00:00Z"},
        ]
        assert _provider(settings).select_tag(tags)["name"] == "1.22.0"
        allowed = _provider(settings, include_prerelease=True)
        assert allowed.select_tag(tags)["name"] == "1.23.0-beta.2"

    @pytest.mark.parametrize(
        ("name", "expected"),
        [
            ("1.22.0-rc1", True),
            ("2.0.0.beta", True),
            ("3.1-dev", True),
            ("1.25-alpine", False),
            ("1.25-bookworm", False),
            ("latest", False),
        ],
    )
    def test_is_prerelease_tag(self, name, expected):
        assert is_prerelease_tag(name) is expected

    def test_no_match(self, settings):
        assert _provider(settings, tag_regex=r"^2\.").select_tag(TAGS["results"]) is None

    def test_invalid_regex(self, settings):
        with pytest.raises(InvalidInputError, match="Invalid tag regex"):
            _provider(settings, tag_regex="[unclosed").select_tag(TAGS["results"])


class TestFetchLatest:
    """Tests for RegistryTagsProvider.fetch_latest."""

    async def test_success(self, settings, mock_http, json_response):
        client = mock_http(json_response(TAGS))
        provider = _provider(settings, tag_regex=r"^\d+\.\d+\.\d+$")

        candidate = await provider.fetch_latest()

        assert candidate.source is VersionSourceKind.DOCKER_HUB
        assert candidate.version == "1.22.0"
        assert candidate.digest == "sha256:ccc"
        assert candidate.published_at == "2024-02-01T00:00:00Z"
        assert candidate.raw_reference == "library/nginx:1.22.0"

        method, url = client.request.call_args.args
        assert method == "GET"
        assert url == "https://hub.docker.com/v2/repositories/library/nginx/tags"
        assert client.request.call_args.kwargs["params"] == {"page_size": 100}
        assert client.client_cls.call_args.kwargs["timeout"] == 8.0

    async def test_custom_registry_base(self, mock_http, json_response):
        client = mock_http(json_response(TAGS))
        settings = Settings(_env_file=None, registry_api_base="https://registry.local/v2/")

        await _provider(settings).fetch_latest()

        assert client.request.call_args.args[1] == (
            "https://registry.local/v2/repositories/library/nginx/tags"
        )

    async def test_missing_results(self, settings, mock_http, json_response):
        mock_http(json_response({"count": 0}))
        with pytest.raises(ParseError, match="results"):
            await _provider(settings).fetch_latest()

    async def test_no_matching_tags(self, settings, mock_http, json_response):
        mock_http(json_response({"results": []}))
        with pytest.raises(ParseError, match="No matching tags found"):
            await _provider(settings).fetch_latest()

    async def test_http_error_status(self, settings, mock_http, json_response):
        mock_http(json_response({}, status_code=404))
        with pytest.raises(SourceUnavailableError, match="Docker Hub API returned status: 404"):
            await _provider(settings).fetch_latest()

    async def test_transport_timeout(self, settings, mock_http):
        mock_http(httpx.ConnectTimeout("timed out"))
        with pytest.raises(SourceTimeoutError, match="Docker Hub API timeout"):
            await _provider(settings).fetch_latest()

    async def test_transport_error(self, settings, mock_http):
        mock_http(httpx.ConnectError("connection refused"))
        with pytest.raises(SourceUnavailableError, match="connection refused"):
            await _provider(settings).fetch_latest()

    async def test_invalid_json(self, settings, mock_http, json_response):
        mock_http(json_response(ValueError("Expecting value")))
        with pytest.raises(ParseError):
            await _provider(settings).fetch_latest()


class TestCreateProvider:
    def test_factory_returns_registry_provider(self, settings):
        provider = create_provider(RegistryTagsConfig("library", "nginx"), settings)
        assert isinstance(provider, RegistryTagsProvider)
        assert provider.timeout_ms() == 8000

    async def test_factory_timeout_bounds_http_client(self, settings, mock_http, json_response):
        client = mock_http(json_response(TAGS))
        provider = create_provider(
            RegistryTagsConfig("library", "nginx"), settings, timeout_ms=20000
        )

        await provider.fetch_latest()

        assert provider.timeout_ms() == 20000
        assert client.client_cls.call_args.kwargs["timeout"] == 20.0
