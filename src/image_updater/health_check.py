"""Post-start container health polling."""

from __future__ import annotations

import time
from collections.abc import Callable

from image_updater.config import Settings, get_settings
from image_updater.errors import StepFailedError
from image_updater.logging import get_logger
from image_updater.process import CommandRunner

log = get_logger("image_updater.health_check")

STEP_NAME = "health_check"

# Upper bound for a single inspect/exec call
PROBE_TIMEOUT_MS = 10_000


class HealthChecker:
    """Poll a container until it reports ``running`` or the wait expires.

    When ``command`` is given, a running container must also pass
    ``docker exec <container> <command...>`` before it counts as healthy.
    A failing probe keeps the poll going; a failing inspect ends it.
    """

    def __init__(
        self,
        container_name: str,
        max_wait_seconds: float,
        *,
        runner: CommandRunner | None = None,
        settings: Settings | None = None,
        command: list[str] | None = None,
        interval_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        settings = settings or get_settings()
        self._container = container_name
        self._max_wait = max_wait_seconds
        self._runner = runner or CommandRunner()
        self._docker = settings.docker_binary
        self._command = command
        self._interval = (
            interval_seconds
            if interval_seconds is not None
            else settings.health_check_interval_ms / 1000
        )
        self._clock = clock
        self._sleep = sleep

    @property
    def inspect_command(self) -> list[str]:
        return [self._docker, "inspect", "--format", "{{.State.Status}}", self._container]

    def wait_until_healthy(self) -> int:
        """Block until healthy; returns the number of polls it took.

        Raises:
            StepFailedError: the wait expired or the container could not
                be inspected.
        """
        if not self._container:
            raise StepFailedError(STEP_NAME, "No container name to check")

        start = self._clock()
        polls = 0
        while True:
            if self._clock() - start > self._max_wait:
                raise StepFailedError(
                    STEP_NAME,
                    f"Container {self._container} did not become healthy "
                    f"within {self._max_wait:g} seconds",
                )

            polls += 1
            if self.is_running() and self.probe():
                log.info("container_healthy", container=self._container, polls=polls)
                return polls

            self._sleep(self._interval)

    def is_running(self) -> bool:
        try:
            capture = self._runner.run(self.inspect_command, timeout_ms=PROBE_TIMEOUT_MS)
        except OSError as exc:
            raise StepFailedError(STEP_NAME, f"Failed to inspect container: {exc}") from exc
        if not capture.ok:
            raise StepFailedError(STEP_NAME, f"Container {self._container} not found")

        status = capture.stdout.strip()
        log.debug("container_status", container=self._container, status=status)
        return status == "running"

    def probe(self) -> bool:
        if not self._command:
            return True
        try:
            capture = self._runner.run(
                [self._docker, "exec", self._container, *self._command],
                timeout_ms=PROBE_TIMEOUT_MS,
            )
        except OSError as exc:
            raise StepFailedError(STEP_NAME, f"Failed to run health command: {exc}") from exc
        if not capture.ok:
            log.debug("health_probe_failed", container=self._container, detail=capture.error_detail)
        return capture.ok
