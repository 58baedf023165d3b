"""Local git checkout provider.

Compares the local checkout with its remote tracking branch.  The
reported version comes from, in order: a configured version file, the
newest tag, or the short hash of the remote tip.
"""

from __future__ import annotations

from pathlib import Path

from image_updater.config import Settings, get_settings
from image_updater.constants import LOCAL_GIT_TIMEOUT_MS
from image_updater.errors import (
    InvalidInputError,
    ParseError,
    SourceTimeoutError,
    SourceUnavailableError,
    StepFailedError,
)
from image_updater.logging import get_logger
from image_updater.models import LocalGitConfig, VersionCandidate, VersionSourceKind
from image_updater.process import CommandRunner
from image_updater.sources.base import VersionSourceProvider

log = get_logger("image_updater.sources.local_git")

SHORT_HASH_LENGTH = 8


class LocalGitProvider(VersionSourceProvider):
    """Report what the remote branch of a local checkout has to offer."""

    # fetch + several rev-parse/rev-list calls run back to back
    default_timeout_ms = LOCAL_GIT_TIMEOUT_MS

    def __init__(
        self,
        config: LocalGitConfig,
        settings: Settings | None = None,
        runner: CommandRunner | None = None,
        *,
        timeout_ms: int | None = None,
    ) -> None:
        super().__init__(timeout_ms)
        self._config = config
        self._settings = settings or get_settings()
        self._runner = runner or CommandRunner()

    def source_kind(self) -> VersionSourceKind:
        return VersionSourceKind.LOCAL_GIT

    def validate_repo_path(self) -> None:
        path = Path(self._config.repo_path)
        if not path.exists():
            raise InvalidInputError(
                f"Git repository path does not exist: {self._config.repo_path}"
            )
        if not (path / ".git").exists():
            raise InvalidInputError(f"Not a Git repository: {self._config.repo_path}")

    async def _git(self, *args: str) -> str:
        try:
            capture = await self._runner.run_async(
                [self._settings.git_binary, *args],
                cwd=self._config.repo_path,
                timeout_ms=self.timeout_ms(),
            )
        except OSError as exc:
            raise SourceUnavailableError(f"Failed to run git: {exc}") from exc

        if capture.timed_out:
            raise SourceTimeoutError(f"git {' '.join(args)} timed out")
        if not capture.ok:
            raise StepFailedError(f"git {' '.join(args)}", capture.stderr.strip())
        return capture.stdout.strip()

    def read_version_file(self) -> str | None:
        if not self._config.version_file:
            return None
        file_path = Path(self._config.repo_path) / self._config.version_file
        if not file_path.is_file():
            return None
        try:
            content = file_path.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise SourceUnavailableError(f"Failed to read {file_path}: {exc}") from exc
        return content or None

    async def latest_tag(self) -> str | None:
        output = await self._git("tag", "--sort=-v:refname")
        for line in output.splitlines():
            if line.strip():
                return line.strip()
        return None

    async def commits_behind(self, local: str, remote: str) -> int:
        output = await self._git("rev-list", "--count", f"{local}..{remote}")
        try:
            return int(output)
        except ValueError as exc:
            raise ParseError(f"Failed to parse commit count: {output!r}") from exc

    async def commit_subject(self, commit: str) -> str | None:
        try:
            return await self._git("log", "-1", "--pretty=format:%s", commit)
        except StepFailedError:
            return None

    async def fetch_latest(self) -> VersionCandidate:
        self.validate_repo_path()

        await self._git("fetch", "--tags", "--prune", "origin")
        local_commit = await self._git("rev-parse", "HEAD")
        remote_commit = await self._git("rev-parse", f"origin/{self._config.branch}")
        short_commit = remote_commit[:SHORT_HASH_LENGTH]

        version = self.read_version_file() or await self.latest_tag() or short_commit

        behind = await self.commits_behind(local_commit, remote_commit)
        subject = await self.commit_subject(remote_commit)
        if behind > 0:
            release_notes = f"{behind} commits behind. Latest: {subject or '(no message)'}"
        else:
            release_notes = subject

        log.debug(
            "local_git_checked",
            repo=self._config.repo_path,
            branch=self._config.branch,
            version=version,
            behind=behind,
        )
        return VersionCandidate(
            source=VersionSourceKind.LOCAL_GIT,
            version=version,
            digest=remote_commit,
            release_notes=release_notes,
            raw_reference=f"{self._config.branch}@{short_commit}",
        )
