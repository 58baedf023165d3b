"""HTTP helper shared by the network-backed providers."""

from __future__ import annotations

from typing import Any

import httpx

from image_updater.errors import ParseError, SourceTimeoutError, SourceUnavailableError
from image_updater.logging import get_logger

log = get_logger("image_updater.sources.http_client")


async def fetch_json(
    method: str,
    url: str,
    *,
    label: str,
    timeout_ms: int,
    headers: dict[str, str] | None = None,
    params: dict[str, Any] | None = None,
) -> Any:
    """Send a request and decode its JSON body.

    The client timeout matches the provider timeout so an abandoned
    request never keeps its connection open past the source deadline.

    Raises:
        SourceTimeoutError: the request timed out.
        SourceUnavailableError: transport failure or non-2xx response.
        ParseError: the body is not valid JSON.
    """
    try:
        async with httpx.AsyncClient(timeout=timeout_ms / 1000) as client:
            resp = await client.request(method, url, headers=headers, params=params)
    except httpx.TimeoutException as exc:
        raise SourceTimeoutError(f"{label} timeout: {url}") from exc
    except httpx.HTTPError as exc:
        raise SourceUnavailableError(f"{label} error: {exc}") from exc

    if not 200 <= resp.status_code < 300:
        log.warning("source_http_error", source=label, url=url, status=resp.status_code)
        raise SourceUnavailableError(f"{label} returned status: {resp.status_code}")

    try:
        return resp.json()
    except ValueError as exc:
        raise ParseError(f"Failed to parse {label} response: {exc}") from exc
