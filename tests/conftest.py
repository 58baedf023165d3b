"""Shared fixtures: settings, fake clock, scripted command runner."""

from __future__ import annotations

from collections.abc import Callable, Iterator, Sequence
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from image_updater.config import Settings
from image_updater.process import ProcessCapture
from image_updater.state import RuntimeState


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


Handler = Callable[[tuple[str, ...]], Any]


class ScriptedRunner:
    """Stand-in for ``CommandRunner`` that answers from a handler.

    The handler receives the argv tuple and returns a ``ProcessCapture``,
    an ``(exit_code, output)`` pair, or an exception to raise.
    """

    def __init__(self, handler: Handler) -> None:
        self._handler = handler
        self.calls: list[tuple[str, ...]] = []
        self.timeouts: list[int | None] = []

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: str | None = None,
        timeout_ms: int | None = None,
    ) -> ProcessCapture:
        argv = tuple(args)
        self.calls.append(argv)
        self.timeouts.append(timeout_ms)
        result = self._handler(argv)
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, ProcessCapture):
            return result
        exit_code, output = result
        return ProcessCapture(
            args=argv,
            stdout=output if exit_code == 0 else "",
            stderr="" if exit_code == 0 else output,
            exit_code=exit_code,
        )

    async def run_async(
        self,
        args: Sequence[str],
        *,
        cwd: str | None = None,
        timeout_ms: int | None = None,
    ) -> ProcessCapture:
        return self.run(args, cwd=cwd, timeout_ms=timeout_ms)

    def issued(self, *prefix: str) -> list[tuple[str, ...]]:
        """Calls whose argv starts with ``prefix``."""
        return [call for call in self.calls if call[: len(prefix)] == prefix]


@pytest.fixture()
def settings() -> Settings:
    """Settings isolated from any .env file."""
    return Settings(_env_file=None)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def state(clock: FakeClock) -> RuntimeState:
    return RuntimeState(clock=clock)


@pytest.fixture()
def make_runner() -> Callable[[Handler], ScriptedRunner]:
    return ScriptedRunner


def _json_response(payload: Any, status_code: int = 200) -> MagicMock:
    """Fake ``httpx.Response`` returning ``payload`` from ``json()``."""
    resp = MagicMock()
    resp.status_code = status_code
    if isinstance(payload, Exception):
        resp.json.side_effect = payload
    else:
        resp.json.return_value = payload
    return resp


@pytest.fixture()
def mock_http() -> Iterator[Callable[[Any], AsyncMock]]:
    """Patch ``httpx.AsyncClient``; call with a response or an exception to raise."""
    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)

    def configure(result: Any) -> AsyncMock:
        if isinstance(result, Exception):
            mock_client.request = AsyncMock(side_effect=result)
        else:
            mock_client.request = AsyncMock(return_value=result)
        return mock_client

    with patch("httpx.AsyncClient", return_value=mock_client) as client_cls:
        mock_client.client_cls = client_cls
        yield configure


@pytest.fixture()
def json_response() -> Callable[..., MagicMock]:
    return _json_response
