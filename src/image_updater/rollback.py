"""Container backup and restore around an in-place update.

The running container is renamed (not removed) before its replacement is
started, so a failed update can be undone by removing the replacement and
renaming the backup back.  Nothing is retried: a failed rollback needs an
operator.
"""

from __future__ import annotations

import shlex
import threading
import time

from image_updater.config import Settings, get_settings
from image_updater.errors import StepFailedError
from image_updater.logging import get_logger
from image_updater.models import RollbackResult, UpdateStepLog
from image_updater.process import CommandRunner, ProcessCapture

log = get_logger("image_updater.rollback")

BACKUP_STEP = "backup_container"
CLEANUP_STEP = "cleanup_backup"


def backup_name_for(container_name: str, operation_id: str) -> str:
    return f"{container_name}-backup-{operation_id}"


class RollbackManager:
    """Back up and restore one container for one update operation."""

    def __init__(
        self,
        container_name: str,
        operation_id: str,
        *,
        runner: CommandRunner | None = None,
        settings: Settings | None = None,
        timeout_ms: int | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.container_name = container_name
        self.backup_name = backup_name_for(container_name, operation_id)
        self._runner = runner or CommandRunner()
        self._docker = settings.docker_binary
        self._timeout_ms = timeout_ms
        self._has_backup = False

    @property
    def has_backup(self) -> bool:
        return self._has_backup

    def _docker_cmd(self, *args: str) -> ProcessCapture:
        return self._runner.run([self._docker, *args], timeout_ms=self._timeout_ms)

    # ------------------------------------------------------------------
    # Backup
    # ------------------------------------------------------------------

    def backup(self) -> UpdateStepLog:
        """Rename the running container out of the way.

        A missing container is not an error: there is nothing to protect,
        so the step is logged as skipped.
        """
        start = time.perf_counter()
        inspect_cmd = [self._docker, "inspect", self.container_name]

        if not self.container_name:
            return UpdateStepLog(
                step=BACKUP_STEP,
                ok=True,
                skipped=True,
                output="No container name in run arguments, skipping backup",
            )

        try:
            inspect = self._docker_cmd("inspect", self.container_name)
        except OSError as exc:
            return UpdateStepLog(
                step=BACKUP_STEP,
                command=shlex.join(inspect_cmd),
                error=f"Failed to check container: {exc}",
                elapsed_ms=_elapsed_ms(start),
            )

        if not inspect.ok:
            log.info("backup_skipped", container=self.container_name)
            return UpdateStepLog(
                step=BACKUP_STEP,
                command=inspect.command_line,
                ok=True,
                skipped=True,
                output="Container does not exist, skipping backup",
                elapsed_ms=_elapsed_ms(start),
            )

        rename_cmd = [self._docker, "rename", self.container_name, self.backup_name]
        try:
            rename = self._docker_cmd("rename", self.container_name, self.backup_name)
        except OSError as exc:
            return UpdateStepLog(
                step=BACKUP_STEP,
                command=shlex.join(rename_cmd),
                error=f"Failed to backup container: {exc}",
                elapsed_ms=_elapsed_ms(start),
            )

        if not rename.ok:
            log.warning("backup_failed", container=self.container_name, detail=rename.error_detail)
            return UpdateStepLog(
                step=BACKUP_STEP,
                command=rename.command_line,
                output=rename.combined_output,
                error=rename.combined_output,
                elapsed_ms=_elapsed_ms(start),
            )

        self._has_backup = True
        log.info("backup_created", container=self.container_name, backup=self.backup_name)
        return UpdateStepLog(
            step=BACKUP_STEP,
            command=rename.command_line,
            ok=True,
            output=rename.combined_output,
            elapsed_ms=_elapsed_ms(start),
        )

    # ------------------------------------------------------------------
    # Rollback
    # ------------------------------------------------------------------

    def rollback(self) -> RollbackResult:
        """Remove the failed replacement and restore the backup.

        Without a backup (the original container never existed) the failed
        replacement is still removed, but nothing is renamed or started.
        """
        log.info("rollback_started", container=self.container_name, backup=self.backup_name)
        errors: list[str] = []

        if self.container_name:
            self._try(["rm", "-f", self.container_name], "Failed to remove new container", errors)

        if not self._has_backup:
            log.warning("rollback_without_backup", container=self.container_name)
            return RollbackResult(
                attempted=True,
                restored=False,
                error=errors[0] if errors else "No backup container to restore",
            )

        restored = self._try(
            ["rename", self.backup_name, self.container_name],
            "Failed to restore backup container",
            errors,
        ) and self._try(
            ["start", self.container_name],
            "Failed to start restored container",
            errors,
        )

        if restored:
            self._has_backup = False
            log.info("rollback_complete", container=self.container_name)
            return RollbackResult(attempted=True, restored=True, backup_container=self.backup_name)

        log.error("rollback_failed", container=self.container_name, error=errors[0])
        return RollbackResult(
            attempted=True,
            restored=False,
            backup_container=self.backup_name,
            error=errors[0],
        )

    def _try(self, args: list[str], what: str, errors: list[str]) -> bool:
        try:
            capture = self._docker_cmd(*args)
        except OSError as exc:
            errors.append(f"{what}: {exc}")
            return False
        if not capture.ok:
            errors.append(f"{what}: {capture.combined_output.strip()}")
            return False
        return True

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def cleanup_backup(self) -> None:
        """Permanently remove the backup; no rollback is possible afterwards.

        Raises:
            StepFailedError: ``docker rm`` failed.
        """
        try:
            capture = self._docker_cmd("rm", "-f", self.backup_name)
        except OSError as exc:
            raise StepFailedError(CLEANUP_STEP, f"Failed to cleanup backup: {exc}") from exc
        if not capture.ok:
            raise StepFailedError(CLEANUP_STEP, capture.combined_output.strip())
        self._has_backup = False
        log.info("backup_removed", backup=self.backup_name)

    def schedule_cleanup(self, delay_seconds: float) -> threading.Timer:
        """Remove the backup after ``delay_seconds`` on a daemon timer."""
        timer = threading.Timer(delay_seconds, self._cleanup_quietly)
        timer.daemon = True
        timer.start()
        log.info("backup_cleanup_scheduled", backup=self.backup_name, delay_seconds=delay_seconds)
        return timer

    def _cleanup_quietly(self) -> None:
        try:
            self.cleanup_backup()
        except StepFailedError as exc:
            log.warning("backup_cleanup_failed", backup=self.backup_name, error=str(exc))


def _elapsed_ms(start: float) -> int:
    return int((time.perf_counter() - start) * 1000)
