"""Application-facing commands.

Each command takes a wire-format payload, runs the operation and wraps
the outcome in a ``CommandResponse`` envelope.  Version errors become
failed envelopes; anything else propagates.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from image_updater.checker import check_image_version
from image_updater.config import Settings
from image_updater.errors import VersionError
from image_updater.logging import get_logger
from image_updater.models import CheckRequest, UpdateRequest
from image_updater.process import CommandRunner
from image_updater.state import RuntimeState
from image_updater.updater import run_update

log = get_logger("image_updater.commands")


@dataclass
class CommandResponse:
    """Envelope returned to the invoking application."""

    ok: bool
    data: dict[str, Any] | None = None
    error: str | None = None
    error_code: str | None = None
    elapsed_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "data": self.data,
            "error": self.error,
            "errorCode": self.error_code,
            "elapsedMs": self.elapsed_ms,
        }


def _failure(exc: VersionError, start: float) -> CommandResponse:
    return CommandResponse(
        ok=False,
        error=exc.user_message,
        error_code=exc.code.value,
        elapsed_ms=int((time.perf_counter() - start) * 1000),
    )


async def check_version(
    payload: Any,
    state: RuntimeState,
    *,
    settings: Settings | None = None,
    runner: CommandRunner | None = None,
) -> CommandResponse:
    """CheckVersion: poll the configured sources for an image."""
    start = time.perf_counter()
    try:
        request = CheckRequest.from_dict(payload)
        response = await check_image_version(request, state, settings=settings, runner=runner)
    except VersionError as exc:
        log.warning("check_version_failed", code=exc.code.value, error=str(exc))
        return _failure(exc, start)

    return CommandResponse(
        ok=True,
        data=response.to_dict(),
        elapsed_ms=int((time.perf_counter() - start) * 1000),
    )


async def update_and_restart(
    payload: Any,
    state: RuntimeState,
    *,
    settings: Settings | None = None,
    runner: CommandRunner | None = None,
) -> CommandResponse:
    """UpdateAndRestart: rebuild and replace a container under its update lock.

    A pipeline that ran but failed still yields ``ok=True``; the outcome is
    in ``data.success`` together with the step logs.
    """
    start = time.perf_counter()
    try:
        request = UpdateRequest.from_dict(payload)
        response = await run_update(request, state, runner=runner, settings=settings)
    except VersionError as exc:
        log.warning("update_and_restart_failed", code=exc.code.value, error=str(exc))
        return _failure(exc, start)

    return CommandResponse(
        ok=True,
        data=response.to_dict(),
        elapsed_ms=int((time.perf_counter() - start) * 1000),
    )
