"""Multi-source version checker.

Polls every configured source concurrently.  A failing or slow source only
produces a failed ``SourceCheckResult``; the check as a whole fails only
when the overall deadline passes or when no source succeeded.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable

from image_updater.config import Settings, get_settings
from image_updater.errors import (
    ErrorCode,
    InvalidInputError,
    NoValidSourceResultError,
    SourceTimeoutError,
    VersionError,
)
from image_updater.logging import get_logger
from image_updater.models import (
    CheckRequest,
    CheckResponse,
    SourceCheckResult,
    VersionCandidate,
    VersionSourceKind,
)
from image_updater.process import CommandRunner
from image_updater.sources import VersionSourceProvider, create_provider
from image_updater.state import RuntimeState

log = get_logger("image_updater.checker")

# Highest priority first
PRIORITY_ORDER: tuple[VersionSourceKind, ...] = (
    VersionSourceKind.LOCAL_GIT,
    VersionSourceKind.GITHUB_RELEASE,
    VersionSourceKind.DOCKER_HUB,
    VersionSourceKind.CUSTOM_API,
)

# Called as factory(config, settings, runner, timeout_ms=...)
ProviderFactory = Callable[..., VersionSourceProvider]


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


async def check_single_source(provider: VersionSourceProvider, timeout_ms: int) -> SourceCheckResult:
    """Poll one provider; never raises."""
    source = provider.source_kind()
    start = time.perf_counter()
    try:
        candidate = await asyncio.wait_for(provider.fetch_latest(), timeout=timeout_ms / 1000)
    except TimeoutError:
        log.warning("source_check_timeout", source=source.value, timeout_ms=timeout_ms)
        return SourceCheckResult.failure(
            source,
            ErrorCode.SOURCE_TIMEOUT.value,
            f"Source check timeout after {timeout_ms}ms",
            _elapsed_ms(start),
        )
    except VersionError as exc:
        log.warning("source_check_failed", source=source.value, code=exc.code.value, error=str(exc))
        return SourceCheckResult.failure(
            source, exc.code.value, exc.user_message, _elapsed_ms(start)
        )
    except Exception as exc:
        log.exception("source_check_crashed", source=source.value)
        return SourceCheckResult.failure(
            source,
            ErrorCode.SOURCE_UNAVAILABLE.value,
            f"{ErrorCode.SOURCE_UNAVAILABLE.user_message}: {exc}",
            _elapsed_ms(start),
        )

    elapsed = _elapsed_ms(start)
    log.debug("source_check_ok", source=source.value, version=candidate.version, elapsed_ms=elapsed)
    return SourceCheckResult.success(candidate, elapsed)


def select_recommended(results: list[SourceCheckResult]) -> VersionCandidate | None:
    """Pick the candidate of the highest-priority successful source."""
    for kind in PRIORITY_ORDER:
        for result in results:
            if result.ok and result.source == kind and result.latest is not None:
                return result.latest
    return None


async def check_image_version(
    request: CheckRequest,
    state: RuntimeState,
    *,
    settings: Settings | None = None,
    runner: CommandRunner | None = None,
    provider_factory: ProviderFactory = create_provider,
) -> CheckResponse:
    """Check an image against all configured sources.

    A cached response younger than the cache TTL is returned without
    touching any source.

    Raises:
        InvalidInputError: no sources were configured.
        SourceTimeoutError: the overall deadline passed.
        NoValidSourceResultError: every source failed.
    """
    settings = settings or get_settings()
    key = request.image.key

    cached = state.get_cached(key, settings.check_cache_ttl_seconds)
    if cached is not None:
        log.debug("check_cache_hit", image_key=key)
        return cached

    if not request.sources:
        raise InvalidInputError("At least one version source is required")

    overall_timeout_ms = request.overall_timeout_ms or settings.overall_timeout_ms
    providers = [
        provider_factory(config, settings, runner, timeout_ms=request.timeout_ms)
        for config in request.sources
    ]

    log.info("version_check_started", image_key=key, sources=len(providers))
    checks = [
        check_single_source(provider, request.timeout_ms or provider.timeout_ms())
        for provider in providers
    ]
    try:
        # On timeout gather cancels every pending source check before returning
        results = await asyncio.wait_for(asyncio.gather(*checks), timeout=overall_timeout_ms / 1000)
    except TimeoutError:
        log.warning("version_check_timeout", image_key=key, timeout_ms=overall_timeout_ms)
        raise SourceTimeoutError(
            f"Overall version check timeout after {overall_timeout_ms}ms"
        ) from None

    if not any(result.ok for result in results):
        log.warning("version_check_no_valid_result", image_key=key)
        raise NoValidSourceResultError()

    recommended = select_recommended(results)
    # Versions are opaque: any difference from the running tag counts as an update
    has_update = recommended is not None and recommended.version != request.image.tag

    response = CheckResponse(
        image_key=key,
        current_version=request.image.tag,
        has_update=has_update,
        recommended=recommended,
        results=tuple(results),
        checked_at_ms=int(time.time() * 1000),
    )
    state.put_cache(key, response)

    log.info(
        "version_check_complete",
        image_key=key,
        has_update=has_update,
        recommended=recommended.version if recommended else None,
        failed=sum(1 for r in results if not r.ok),
    )
    return response
