"""Custom HTTP API provider."""

from __future__ import annotations

import re
from typing import Any
from urllib.parse import urlsplit

from image_updater.config import Settings, get_settings
from image_updater.errors import InvalidInputError, ParseError
from image_updater.models import CustomApiConfig, VersionCandidate, VersionSourceKind
from image_updater.sources.base import VersionSourceProvider
from image_updater.sources.http_client import fetch_json

ALLOWED_SCHEMES = frozenset({"http", "https"})
ALLOWED_METHODS = frozenset({"GET", "POST"})

_HEADER_KEY_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def extract_field(payload: Any, name: str) -> str | None:
    """Read a scalar field from the top level of a JSON object."""
    if not isinstance(payload, dict):
        return None
    value = payload.get(name)
    if isinstance(value, str):
        return value
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    return None


class CustomApiProvider(VersionSourceProvider):
    """Read the latest version from an arbitrary JSON endpoint."""

    def __init__(
        self,
        config: CustomApiConfig,
        settings: Settings | None = None,
        *,
        timeout_ms: int | None = None,
    ) -> None:
        super().__init__(timeout_ms)
        self._config = config
        self._settings = settings or get_settings()

    def source_kind(self) -> VersionSourceKind:
        return VersionSourceKind.CUSTOM_API

    def validate_url(self) -> None:
        parts = urlsplit(self._config.endpoint)
        if parts.scheme.lower() not in ALLOWED_SCHEMES or not parts.netloc:
            raise InvalidInputError(
                f"Invalid URL scheme: {self._config.endpoint}. "
                "Only http:// and https:// are allowed"
            )

    def validate_method(self) -> str:
        method = self._config.method.upper()
        if method not in ALLOWED_METHODS:
            raise InvalidInputError(
                f"Unsupported HTTP method: {self._config.method}. "
                "Only GET and POST are supported"
            )
        return method

    def build_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json", "User-Agent": self._settings.http_user_agent}
        for header in self._config.headers:
            if not _HEADER_KEY_RE.match(header.key):
                raise InvalidInputError(f"Invalid header key: {header.key}")
            if "\r" in header.value or "\n" in header.value:
                raise InvalidInputError(f"Invalid header value for {header.key}")
            headers[header.key] = header.value
        return headers

    async def fetch_latest(self) -> VersionCandidate:
        self.validate_url()
        method = self.validate_method()
        headers = self.build_headers()

        payload = await fetch_json(
            method,
            self._config.endpoint,
            label="Custom API",
            timeout_ms=self.timeout_ms(),
            headers=headers,
        )

        version = extract_field(payload, self._config.version_field)
        if version is None:
            raise ParseError(f"Version field '{self._config.version_field}' not found in response")

        notes = None
        if self._config.notes_field:
            notes = extract_field(payload, self._config.notes_field)
        published_at = None
        if self._config.published_at_field:
            published_at = extract_field(payload, self._config.published_at_field)

        return VersionCandidate(
            source=VersionSourceKind.CUSTOM_API,
            version=version,
            release_notes=notes,
            published_at=published_at,
            raw_reference=self._config.endpoint,
        )
