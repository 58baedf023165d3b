"""Update orchestrator: pull → build → backup → run → health check.

Steps run strictly in order and every attempted step leaves an
``UpdateStepLog``.  Failures before the running container is touched
(pull, build, backup) simply stop the pipeline.  Failures after it was
replaced (run, health check) trigger a rollback to the backup.

The pipeline is blocking; ``run_update`` moves it onto a worker thread
and holds the image's update lock for exactly as long as it runs.
"""

from __future__ import annotations

import asyncio
import dataclasses
import shlex
import time
from collections.abc import Callable, Sequence

from image_updater.config import Settings, get_settings
from image_updater.errors import StepFailedError
from image_updater.health_check import HealthChecker
from image_updater.logging import get_logger, operation_context
from image_updater.models import (
    RollbackPolicy,
    RollbackResult,
    UpdateRequest,
    UpdateResponse,
    UpdateStepLog,
    UpdateTimeouts,
    UpdateWorkflow,
)
from image_updater.process import CommandRunner
from image_updater.rollback import CLEANUP_STEP, RollbackManager
from image_updater.state import RuntimeState

log = get_logger("image_updater.updater")

HealthCheckerFactory = Callable[..., HealthChecker]


def extract_container_name(run_args: Sequence[str]) -> str:
    """Container name from ``--name <value>`` or ``--name=<value>``; "" if absent."""
    for i, arg in enumerate(run_args):
        if arg == "--name" and i + 1 < len(run_args):
            return run_args[i + 1]
        if arg.startswith("--name="):
            return arg.split("=", 1)[1]
    return ""


def new_operation_id() -> str:
    return f"op-{int(time.time())}"


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)


class UpdateOrchestrator:
    """Runs one update pipeline for one workflow."""

    def __init__(
        self,
        workflow: UpdateWorkflow,
        timeouts: UpdateTimeouts,
        operation_id: str,
        *,
        rollback_policy: RollbackPolicy | None = None,
        runner: CommandRunner | None = None,
        settings: Settings | None = None,
        health_checker_factory: HealthCheckerFactory = HealthChecker,
    ) -> None:
        self._workflow = workflow
        self._timeouts = timeouts
        self._operation_id = operation_id
        self._policy = rollback_policy or RollbackPolicy()
        self._runner = runner or CommandRunner()
        self._settings = settings or get_settings()
        self._health_checker_factory = health_checker_factory
        self.container_name = extract_container_name(workflow.run_args)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def execute(self) -> tuple[list[UpdateStepLog], RollbackResult]:
        """Run the pipeline; returns the step logs and the rollback outcome."""
        logs: list[UpdateStepLog] = []
        if not self.container_name:
            log.warning("container_name_missing", operation_id=self._operation_id)

        rollback_mgr = RollbackManager(
            self.container_name,
            self._operation_id,
            runner=self._runner,
            settings=self._settings,
            timeout_ms=self._timeouts.docker_stop_ms,
        )
        replaced = False

        try:
            for step in (self.git_pull, self.docker_build, rollback_mgr.backup):
                entry = self._record(logs, step())
                if not entry.ok:
                    return logs, RollbackResult()

            replaced = True
            entry = self._record(logs, self.docker_run())
            if not entry.ok:
                return logs, self._rollback(rollback_mgr)

            entry = self._record(logs, self.health_check())
            if not entry.ok:
                return logs, self._rollback(rollback_mgr)

            self._record(logs, self._finalize(rollback_mgr))
            return logs, RollbackResult()

        except Exception as exc:
            log.exception("update_unexpected_error", operation_id=self._operation_id)
            logs.append(UpdateStepLog(step="unexpected_error", error=f"Unexpected error: {exc}"))
            if replaced or rollback_mgr.has_backup:
                return logs, self._rollback(rollback_mgr)
            return logs, RollbackResult()

    def _record(self, logs: list[UpdateStepLog], entry: UpdateStepLog) -> UpdateStepLog:
        logs.append(entry)
        log.info(
            "update_step_finished",
            operation_id=self._operation_id,
            step=entry.step,
            ok=entry.ok,
            skipped=entry.skipped,
            elapsed_ms=entry.elapsed_ms,
        )
        return entry

    def _rollback(self, rollback_mgr: RollbackManager) -> RollbackResult:
        if not self._policy.enabled:
            log.warning("rollback_disabled", operation_id=self._operation_id)
            return RollbackResult()
        return rollback_mgr.rollback()

    def _finalize(self, rollback_mgr: RollbackManager) -> UpdateStepLog:
        """Drop the backup once the replacement is healthy."""
        if not rollback_mgr.has_backup:
            return UpdateStepLog(
                step=CLEANUP_STEP, ok=True, skipped=True, output="No backup container to remove"
            )

        command = shlex.join([self._settings.docker_binary, "rm", "-f", rollback_mgr.backup_name])
        if self._policy.keep_backup_minutes > 0:
            rollback_mgr.schedule_cleanup(self._policy.keep_backup_minutes * 60)
            return UpdateStepLog(
                step=CLEANUP_STEP,
                command=command,
                ok=True,
                skipped=True,
                output=(
                    f"Backup {rollback_mgr.backup_name} kept for "
                    f"{self._policy.keep_backup_minutes} minutes"
                ),
            )

        start = time.perf_counter()
        try:
            rollback_mgr.cleanup_backup()
        except StepFailedError as exc:
            # The replacement is healthy; a leftover backup does not fail the update
            log.warning("backup_cleanup_failed", backup=rollback_mgr.backup_name, error=exc.message)
            return UpdateStepLog(
                step=CLEANUP_STEP,
                command=command,
                ok=False,
                skipped=True,
                output=f"Backup {rollback_mgr.backup_name} left in place",
                error=exc.message,
                elapsed_ms=_elapsed_ms(start),
            )
        return UpdateStepLog(
            step=CLEANUP_STEP,
            command=command,
            ok=True,
            output=f"Removed backup container {rollback_mgr.backup_name}",
            elapsed_ms=_elapsed_ms(start),
        )

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def git_pull(self) -> UpdateStepLog:
        wf = self._workflow
        return self._run_step(
            "git_pull",
            [self._settings.git_binary, "-C", wf.pull_path, "pull", "--ff-only", "origin", wf.branch],
            self._timeouts.git_pull_ms,
        )

    def docker_build(self) -> UpdateStepLog:
        wf = self._workflow
        return self._run_step(
            "docker_build",
            [
                self._settings.docker_binary,
                "build",
                "-t",
                wf.new_image_tag,
                "-f",
                wf.dockerfile,
                wf.build_context,
            ],
            self._timeouts.docker_build_ms,
        )

    def docker_run(self) -> UpdateStepLog:
        wf = self._workflow
        return self._run_step(
            "docker_run",
            [self._settings.docker_binary, "run", *wf.run_args, wf.new_image_tag],
            self._timeouts.docker_run_ms,
        )

    def health_check(self) -> UpdateStepLog:
        checker = self._health_checker_factory(
            self.container_name,
            self._timeouts.health_check_ms / 1000,
            runner=self._runner,
            settings=self._settings,
            command=self._workflow.health_check_cmd,
        )
        command = shlex.join(checker.inspect_command)
        start = time.perf_counter()
        try:
            polls = checker.wait_until_healthy()
        except StepFailedError as exc:
            return UpdateStepLog(
                step="health_check",
                command=command,
                error=exc.message,
                elapsed_ms=_elapsed_ms(start),
            )
        return UpdateStepLog(
            step="health_check",
            command=command,
            ok=True,
            output=f"Container is healthy after {polls} check(s)",
            elapsed_ms=_elapsed_ms(start),
        )

    def _run_step(self, step: str, args: list[str], timeout_ms: int) -> UpdateStepLog:
        start = time.perf_counter()
        try:
            capture = self._runner.run(args, timeout_ms=timeout_ms)
        except OSError as exc:
            return UpdateStepLog(
                step=step,
                command=shlex.join(args),
                error=f"Failed to execute {step}: {exc}",
                elapsed_ms=_elapsed_ms(start),
            )

        if capture.ok:
            return UpdateStepLog(
                step=step,
                command=capture.command_line,
                ok=True,
                output=capture.combined_output,
                elapsed_ms=_elapsed_ms(start),
            )

        error = capture.combined_output
        if capture.timed_out:
            error = f"{step} timed out after {timeout_ms}ms\n{error}"
        return UpdateStepLog(
            step=step,
            command=capture.command_line,
            output=capture.combined_output,
            error=error,
            elapsed_ms=_elapsed_ms(start),
        )


# ------------------------------------------------------------------
# Entry points
# ------------------------------------------------------------------


def update_image_and_restart(
    request: UpdateRequest,
    *,
    runner: CommandRunner | None = None,
    settings: Settings | None = None,
    health_checker_factory: HealthCheckerFactory = HealthChecker,
) -> UpdateResponse:
    """Run the update pipeline (blocking).

    The caller is responsible for holding the image's update lock; see
    ``run_update`` for the locked variant.
    """
    operation_id = request.operation_id or new_operation_id()
    key = request.image.key

    with operation_context(operation_id=operation_id, image_key=key):
        log.info(
            "update_started",
            source=request.source.value,
            target_version=request.target_version,
        )
        orchestrator = UpdateOrchestrator(
            request.workflow,
            request.timeouts,
            operation_id,
            rollback_policy=request.rollback_policy,
            runner=runner,
            settings=settings,
            health_checker_factory=health_checker_factory,
        )
        logs, rollback = orchestrator.execute()
        success = all(entry.ok or entry.skipped for entry in logs)

        log.info(
            "update_finished",
            success=success,
            rollback_attempted=rollback.attempted,
            rollback_restored=rollback.restored,
        )
    return UpdateResponse(
        operation_id=operation_id,
        image_key=key,
        success=success,
        final_image_ref=request.workflow.new_image_tag if success else None,
        step_logs=logs,
        rollback=rollback,
    )


async def run_update(
    request: UpdateRequest,
    state: RuntimeState,
    *,
    runner: CommandRunner | None = None,
    settings: Settings | None = None,
    health_checker_factory: HealthCheckerFactory = HealthChecker,
) -> UpdateResponse:
    """Run the update on a worker thread while holding the image's lock.

    Raises:
        UpdateConflictError: another operation is updating the same image.
    """
    operation_id = request.operation_id or new_operation_id()
    request = dataclasses.replace(request, operation_id=operation_id)

    def _locked() -> UpdateResponse:
        # Lock lives on the worker thread so it outlasts a cancelled awaiter
        with state.update_lock(request.image.key, operation_id):
            return update_image_and_restart(
                request,
                runner=runner,
                settings=settings,
                health_checker_factory=health_checker_factory,
            )

    return await asyncio.to_thread(_locked)
