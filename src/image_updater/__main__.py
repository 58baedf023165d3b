"""Command-line entry point.

Usage::

    image-updater check request.json
    image-updater update request.json

The request file holds the wire-format payload (``-`` reads stdin); the
command envelope is printed as JSON on stdout.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any

from image_updater.commands import CommandResponse, check_version, update_and_restart
from image_updater.config import get_settings
from image_updater.logging import setup_logging
from image_updater.state import RuntimeState


def _load_payload(path: str) -> Any:
    if path == "-":
        return json.load(sys.stdin)
    with open(path, encoding="utf-8") as fh:
        return json.load(fh)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-updater",
        description="Check container images for new versions and update them in place.",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    check = sub.add_parser("check", help="check an image against its version sources")
    check.add_argument("request", help="path to the check request JSON ('-' for stdin)")
    update = sub.add_parser("update", help="rebuild and restart a container")
    update.add_argument("request", help="path to the update request JSON ('-' for stdin)")
    return parser


async def _dispatch(command: str, payload: Any) -> CommandResponse:
    settings = get_settings()
    state = RuntimeState(lock_timeout_seconds=settings.update_lock_timeout_seconds)
    if command == "check":
        return await check_version(payload, state, settings=settings)
    return await update_and_restart(payload, state, settings=settings)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI; returns the process exit code."""
    args = build_parser().parse_args(argv)
    setup_logging()

    try:
        payload = _load_payload(args.request)
    except (OSError, json.JSONDecodeError) as exc:
        print(f"image-updater: cannot read request: {exc}", file=sys.stderr)
        return 2

    response = asyncio.run(_dispatch(args.command, payload))
    print(json.dumps(response.to_dict(), indent=2))
    if not response.ok:
        return 1
    if args.command == "update" and not (response.data or {}).get("success"):
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
