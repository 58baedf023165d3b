"""Registry tag listing provider (Docker Hub v2 API)."""

from __future__ import annotations

import re
from typing import Any

from image_updater.config import Settings, get_settings
from image_updater.errors import InvalidInputError, ParseError
from image_updater.models import RegistryTagsConfig, VersionCandidate, VersionSourceKind
from image_updater.sources.base import VersionSourceProvider
from image_updater.sources.http_client import fetch_json

# Docker Hub caps page_size at 100
_PAGE_SIZE = 100

# "1.2.0-rc1", "2.0.0.beta", "3.1-dev"; "alpine" or "debian" suffixes do not count
_PRERELEASE_RE = re.compile(
    r"[-._+](alpha|beta|rc|pre|preview|dev|nightly|snapshot)\d*(?![a-z])", re.IGNORECASE
)


def is_prerelease_tag(name: str) -> bool:
    return _PRERELEASE_RE.search(name) is not None


class RegistryTagsProvider(VersionSourceProvider):
    """Pick the most recently pushed tag, optionally filtered by a regex.

    Pre-release tags are skipped unless ``include_prerelease`` is set.
    """

    def __init__(
        self,
        config: RegistryTagsConfig,
        settings: Settings | None = None,
        *,
        timeout_ms: int | None = None,
    ) -> None:
        super().__init__(timeout_ms)
        self._config = config
        self._settings = settings or get_settings()

    def source_kind(self) -> VersionSourceKind:
        return VersionSourceKind.DOCKER_HUB

    def build_api_url(self) -> str:
        base = self._settings.registry_api_base.rstrip("/")
        return f"{base}/repositories/{self._config.namespace}/{self._config.repository}/tags"

    def select_tag(self, tags: list[dict[str, Any]]) -> dict[str, Any] | None:
        """Filter tags by the configured regex and return the newest one.

        Pre-release tags are dropped first unless the config allows them.

        Tags are ordered by their ``last_updated`` string, newest first.
        ISO-8601 timestamps sort correctly as strings.
        """
        pattern = None
        if self._config.tag_regex:
            try:
                pattern = re.compile(self._config.tag_regex)
            except re.error as exc:
                raise InvalidInputError(
                    f"Invalid tag regex {self._config.tag_regex!r}: {exc}"
                ) from exc

        candidates = [
            tag
            for tag in tags
            if isinstance(tag.get("name"), str)
            and (self._config.include_prerelease or not is_prerelease_tag(tag["name"]))
            and (pattern is None or pattern.search(tag["name"]))
        ]
        candidates.sort(key=lambda tag: tag.get("last_updated") or "", reverse=True)
        return candidates[0] if candidates else None

    async def fetch_latest(self) -> VersionCandidate:
        url = self.build_api_url()
        data = await fetch_json(
            "GET",
            url,
            label="Docker Hub API",
            timeout_ms=self.timeout_ms(),
            headers={
                "Accept": "application/json",
                "User-Agent": self._settings.http_user_agent,
            },
            params={"page_size": _PAGE_SIZE},
        )
        if not isinstance(data, dict) or not isinstance(data.get("results"), list):
            raise ParseError("Failed to parse Docker Hub response: missing 'results'")

        tag = self.select_tag([t for t in data["results"] if isinstance(t, dict)])
        if tag is None:
            raise ParseError("No matching tags found")

        name = tag["name"]
        return VersionCandidate(
            source=VersionSourceKind.DOCKER_HUB,
            version=name,
            digest=tag.get("digest"),
            published_at=tag.get("last_updated"),
            raw_reference=f"{self._config.namespace}/{self._config.repository}:{name}",
        )
