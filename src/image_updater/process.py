"""Subprocess execution for git and docker commands.

All external commands in the package go through ``CommandRunner`` so they
can be swapped out in tests.  Commands are spawned without a shell and
every call is bounded: when a timeout expires (or the awaiting task is
cancelled) the child process is killed and reaped before control returns.
"""

from __future__ import annotations

import asyncio
import shlex
import subprocess  # nosec B404
from collections.abc import Sequence
from dataclasses import dataclass

from image_updater.logging import get_logger

log = get_logger("image_updater.process")

# Exit code reported for a process killed on timeout
TIMEOUT_EXIT_CODE = -1000


def _decode(data: bytes | str | None) -> str:
    if data is None:
        return ""
    if isinstance(data, str):
        return data
    return data.decode("utf-8", errors="replace")


@dataclass(frozen=True)
class ProcessCapture:
    """Captured result of one finished (or killed) process."""

    args: tuple[str, ...]
    stdout: str
    stderr: str
    exit_code: int
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.exit_code == 0 and not self.timed_out

    @property
    def command_line(self) -> str:
        return shlex.join(self.args)

    @property
    def combined_output(self) -> str:
        return f"{self.stdout}\n{self.stderr}"

    @property
    def error_detail(self) -> str:
        """Best single-line-ish description of why the command failed."""
        if self.timed_out:
            return f"command timed out: {self.command_line}"
        detail = self.stderr.strip() or self.stdout.strip()
        return f"exit code {self.exit_code}: {detail}" if detail else f"exit code {self.exit_code}"


class CommandRunner:
    """Spawn external commands with captured output and hard timeouts."""

    def run(
        self,
        args: Sequence[str],
        *,
        cwd: str | None = None,
        timeout_ms: int | None = None,
    ) -> ProcessCapture:
        """Run a command to completion, blocking the calling thread.

        Raises ``OSError`` if the executable cannot be spawned.
        """
        argv = tuple(args)
        timeout = timeout_ms / 1000 if timeout_ms else None
        try:
            # subprocess.run kills the child when the timeout expires
            completed = subprocess.run(  # nosec B603
                argv,
                cwd=cwd,
                capture_output=True,
                timeout=timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            log.warning("process_timeout", cmd=shlex.join(argv), timeout_ms=timeout_ms)
            return ProcessCapture(
                args=argv,
                stdout=_decode(exc.stdout),
                stderr=_decode(exc.stderr),
                exit_code=TIMEOUT_EXIT_CODE,
                timed_out=True,
            )

        capture = ProcessCapture(
            args=argv,
            stdout=_decode(completed.stdout),
            stderr=_decode(completed.stderr),
            exit_code=completed.returncode,
        )
        if not capture.ok:
            log.debug("process_failed", cmd=capture.command_line, rc=capture.exit_code)
        return capture

    async def run_async(
        self,
        args: Sequence[str],
        *,
        cwd: str | None = None,
        timeout_ms: int | None = None,
    ) -> ProcessCapture:
        """Run a command without blocking the event loop.

        The child is killed if the timeout expires or the calling task is
        cancelled.  Raises ``OSError`` if the executable cannot be spawned.
        """
        argv = tuple(args)
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
        )
        timeout = timeout_ms / 1000 if timeout_ms else None
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
        except TimeoutError:
            await _kill(proc)
            log.warning("process_timeout", cmd=shlex.join(argv), timeout_ms=timeout_ms)
            return ProcessCapture(
                args=argv,
                stdout="",
                stderr="",
                exit_code=TIMEOUT_EXIT_CODE,
                timed_out=True,
            )
        except asyncio.CancelledError:
            await _kill(proc)
            raise

        capture = ProcessCapture(
            args=argv,
            stdout=_decode(stdout),
            stderr=_decode(stderr),
            exit_code=proc.returncode if proc.returncode is not None else -1,
        )
        if not capture.ok:
            log.debug("process_failed", cmd=capture.command_line, rc=capture.exit_code)
        return capture


async def _kill(proc: asyncio.subprocess.Process) -> None:
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        return
    # Shield the reap so a second cancellation cannot leave a zombie behind
    await asyncio.shield(proc.wait())
