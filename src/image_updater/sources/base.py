"""Version source provider abstraction."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar

from image_updater.constants import DEFAULT_SOURCE_TIMEOUT_MS
from image_updater.models import VersionCandidate, VersionSourceKind


class VersionSourceProvider(ABC):
    """A pluggable component yielding the latest version from one source.

    Implementations raise ``VersionError`` subclasses on failure; the
    checker turns those into per-source results.  ``timeout_ms`` is the
    per-source deadline requested by the caller; it bounds both the
    checker's wait and the provider's own HTTP or git calls.
    """

    default_timeout_ms: ClassVar[int] = DEFAULT_SOURCE_TIMEOUT_MS

    def __init__(self, timeout_ms: int | None = None) -> None:
        self._timeout_ms = timeout_ms or None

    @abstractmethod
    def source_kind(self) -> VersionSourceKind:
        """The kind of source this provider polls."""

    @abstractmethod
    async def fetch_latest(self) -> VersionCandidate:
        """Fetch the latest version from this source."""

    def timeout_ms(self) -> int:
        return self._timeout_ms or self.default_timeout_ms
