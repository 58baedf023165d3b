"""GitHub release listing provider."""

from __future__ import annotations

from typing import Any

from image_updater.config import Settings, get_settings
from image_updater.errors import ParseError
from image_updater.models import GithubReleaseConfig, VersionCandidate, VersionSourceKind
from image_updater.sources.base import VersionSourceProvider
from image_updater.sources.http_client import fetch_json


class GithubReleaseProvider(VersionSourceProvider):
    """Report the newest published release of a GitHub repository."""

    def __init__(
        self,
        config: GithubReleaseConfig,
        settings: Settings | None = None,
        *,
        timeout_ms: int | None = None,
    ) -> None:
        super().__init__(timeout_ms)
        self._config = config
        self._settings = settings or get_settings()

    def source_kind(self) -> VersionSourceKind:
        return VersionSourceKind.GITHUB_RELEASE

    def build_api_url(self) -> str:
        base = self._settings.github_api_base.rstrip("/")
        return f"{base}/repos/{self._config.owner}/{self._config.repo}/releases"

    def build_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": self._settings.http_user_agent,
        }
        if self._config.token:
            headers["Authorization"] = f"Bearer {self._config.token}"
        return headers

    def select_release(self, releases: list[dict[str, Any]]) -> dict[str, Any] | None:
        """First non-draft release, skipping prereleases unless allowed.

        GitHub already lists releases newest first, so no sorting is done.
        """
        for release in releases:
            if release.get("draft"):
                continue
            if release.get("prerelease") and not self._config.include_prerelease:
                continue
            if not isinstance(release.get("tag_name"), str):
                continue
            return release
        return None

    async def fetch_latest(self) -> VersionCandidate:
        data = await fetch_json(
            "GET",
            self.build_api_url(),
            label="GitHub API",
            timeout_ms=self.timeout_ms(),
            headers=self.build_headers(),
        )
        if not isinstance(data, list):
            raise ParseError("Failed to parse GitHub response: expected a list of releases")

        release = self.select_release([r for r in data if isinstance(r, dict)])
        if release is None:
            raise ParseError("No matching releases found")

        tag = release["tag_name"]
        return VersionCandidate(
            source=VersionSourceKind.GITHUB_RELEASE,
            version=tag,
            release_notes=release.get("body"),
            published_at=release.get("published_at"),
            raw_reference=release.get("html_url")
            or f"https://github.com/{self._config.owner}/{self._config.repo}/releases/tag/{tag}",
        )
