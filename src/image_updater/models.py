"""Data models for version checks and update operations.

All models are plain dataclasses.  Requests are parsed from the camelCase
wire format with ``from_dict`` and results are rendered back with
``to_dict``.  Check results are frozen so a cached response can be handed
to any number of callers without copying.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, ClassVar

from image_updater.errors import InvalidInputError

# ------------------------------------------------------------------
# Wire helpers
# ------------------------------------------------------------------


def _require_mapping(data: Any, what: str) -> dict[str, Any]:
    if not isinstance(data, dict):
        raise InvalidInputError(f"{what} must be an object")
    return data


def _require_str(data: dict[str, Any], key: str, *, allow_empty: bool = False) -> str:
    value = data.get(key)
    if not isinstance(value, str) or (not allow_empty and not value):
        raise InvalidInputError(f"'{key}' is required")
    return value


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidInputError(f"'{key}' must be a string")
    return value


def _optional_int(data: dict[str, Any], key: str) -> int | None:
    value = data.get(key)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidInputError(f"'{key}' must be a non-negative integer")
    return value


def _str_list(data: dict[str, Any], key: str) -> list[str]:
    value = data.get(key) or []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise InvalidInputError(f"'{key}' must be a list of strings")
    return list(value)


# ------------------------------------------------------------------
# Image identity
# ------------------------------------------------------------------


def image_key(repository: str, tag: str) -> str:
    """Canonical cache/lock key for an image."""
    return f"{repository}:{tag}"


@dataclass(frozen=True)
class ImageIdentity:
    """A deployable unit, identified by repository and tag."""

    repository: str
    tag: str

    @property
    def key(self) -> str:
        return image_key(self.repository, self.tag)

    def to_dict(self) -> dict[str, Any]:
        return {"repository": self.repository, "tag": self.tag}

    @classmethod
    def from_dict(cls, data: Any) -> ImageIdentity:
        data = _require_mapping(data, "image")
        return cls(repository=_require_str(data, "repository"), tag=_require_str(data, "tag"))


# ------------------------------------------------------------------
# Version sources
# ------------------------------------------------------------------


class VersionSourceKind(StrEnum):
    """Closed set of version source kinds."""

    DOCKER_HUB = "dockerHub"
    GITHUB_RELEASE = "githubRelease"
    LOCAL_GIT = "localGit"
    CUSTOM_API = "customApi"


@dataclass(frozen=True)
class RegistryTagsConfig:
    """Registry tag listing (Docker Hub v2 API)."""

    kind: ClassVar[VersionSourceKind] = VersionSourceKind.DOCKER_HUB

    namespace: str
    repository: str
    include_prerelease: bool = False
    tag_regex: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "namespace": self.namespace,
            "repository": self.repository,
            "includePrerelease": self.include_prerelease,
            "tagRegex": self.tag_regex,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RegistryTagsConfig:
        return cls(
            namespace=_require_str(data, "namespace"),
            repository=_require_str(data, "repository"),
            include_prerelease=bool(data.get("includePrerelease", False)),
            tag_regex=_optional_str(data, "tagRegex") or None,
        )


@dataclass(frozen=True)
class GithubReleaseConfig:
    """GitHub release listing for an owner/repository."""

    kind: ClassVar[VersionSourceKind] = VersionSourceKind.GITHUB_RELEASE

    owner: str
    repo: str
    include_prerelease: bool = False
    token: str | None = field(default=None, repr=False)

    def to_dict(self) -> dict[str, Any]:
        # The token is never echoed back
        return {
            "owner": self.owner,
            "repo": self.repo,
            "includePrerelease": self.include_prerelease,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GithubReleaseConfig:
        return cls(
            owner=_require_str(data, "owner"),
            repo=_require_str(data, "repo"),
            include_prerelease=bool(data.get("includePrerelease", False)),
            token=_optional_str(data, "token") or None,
        )


@dataclass(frozen=True)
class LocalGitConfig:
    """A local git checkout tracking a remote branch."""

    kind: ClassVar[VersionSourceKind] = VersionSourceKind.LOCAL_GIT

    repo_path: str
    branch: str
    version_file: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "repoPath": self.repo_path,
            "branch": self.branch,
            "versionFile": self.version_file,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LocalGitConfig:
        return cls(
            repo_path=_require_str(data, "repoPath"),
            branch=_require_str(data, "branch"),
            version_file=_optional_str(data, "versionFile") or None,
        )


@dataclass(frozen=True)
class HttpHeader:
    key: str
    value: str


@dataclass(frozen=True)
class CustomApiConfig:
    """An arbitrary JSON endpoint exposing the latest version."""

    kind: ClassVar[VersionSourceKind] = VersionSourceKind.CUSTOM_API

    endpoint: str
    method: str = "GET"
    headers: tuple[HttpHeader, ...] = ()
    version_field: str = "version"
    notes_field: str | None = None
    published_at_field: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "endpoint": self.endpoint,
            "method": self.method,
            "headers": [{"key": h.key} for h in self.headers],
            "versionField": self.version_field,
            "notesField": self.notes_field,
            "publishedAtField": self.published_at_field,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CustomApiConfig:
        raw_headers = data.get("headers") or []
        if not isinstance(raw_headers, list):
            raise InvalidInputError("'headers' must be a list")
        headers = []
        for item in raw_headers:
            item = _require_mapping(item, "header")
            headers.append(
                HttpHeader(
                    key=_require_str(item, "key"),
                    value=_require_str(item, "value", allow_empty=True),
                )
            )
        return cls(
            endpoint=_require_str(data, "endpoint"),
            method=_optional_str(data, "method") or "GET",
            headers=tuple(headers),
            version_field=_require_str(data, "versionField"),
            notes_field=_optional_str(data, "notesField") or None,
            published_at_field=_optional_str(data, "publishedAtField") or None,
        )


VersionSourceConfig = RegistryTagsConfig | GithubReleaseConfig | LocalGitConfig | CustomApiConfig

_SOURCE_CONFIG_TYPES: dict[VersionSourceKind, type[VersionSourceConfig]] = {
    VersionSourceKind.DOCKER_HUB: RegistryTagsConfig,
    VersionSourceKind.GITHUB_RELEASE: GithubReleaseConfig,
    VersionSourceKind.LOCAL_GIT: LocalGitConfig,
    VersionSourceKind.CUSTOM_API: CustomApiConfig,
}


def _parse_kind(value: Any) -> VersionSourceKind:
    try:
        return VersionSourceKind(value)
    except ValueError:
        raise InvalidInputError(f"unknown source kind: {value!r}") from None


def parse_source_config(data: Any) -> VersionSourceConfig:
    """Parse a ``{"kind": ..., "config": {...}}`` source entry."""
    data = _require_mapping(data, "source")
    kind = _parse_kind(data.get("kind"))
    config = _require_mapping(data.get("config"), f"{kind} config")
    return _SOURCE_CONFIG_TYPES[kind].from_dict(config)


def source_config_to_dict(config: VersionSourceConfig) -> dict[str, Any]:
    return {"kind": config.kind.value, "config": config.to_dict()}


# ------------------------------------------------------------------
# Check results
# ------------------------------------------------------------------


@dataclass(frozen=True)
class VersionCandidate:
    """A single version reported by one source."""

    source: VersionSourceKind
    version: str
    digest: str | None = None
    release_notes: str | None = None
    published_at: str | None = None
    raw_reference: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "version": self.version,
            "digest": self.digest,
            "releaseNotes": self.release_notes,
            "publishedAt": self.published_at,
            "rawReference": self.raw_reference,
        }


@dataclass(frozen=True)
class SourceCheckResult:
    """Outcome of polling one source; ``latest`` is set iff ``ok``."""

    source: VersionSourceKind
    ok: bool
    error_code: str | None = None
    error_message: str | None = None
    latest: VersionCandidate | None = None
    elapsed_ms: int = 0

    @classmethod
    def success(cls, candidate: VersionCandidate, elapsed_ms: int) -> SourceCheckResult:
        return cls(source=candidate.source, ok=True, latest=candidate, elapsed_ms=elapsed_ms)

    @classmethod
    def failure(
        cls,
        source: VersionSourceKind,
        error_code: str,
        error_message: str,
        elapsed_ms: int,
    ) -> SourceCheckResult:
        return cls(
            source=source,
            ok=False,
            error_code=error_code,
            error_message=error_message,
            elapsed_ms=elapsed_ms,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source.value,
            "ok": self.ok,
            "errorCode": self.error_code,
            "errorMessage": self.error_message,
            "latest": self.latest.to_dict() if self.latest else None,
            "elapsedMs": self.elapsed_ms,
        }


@dataclass(frozen=True)
class CheckRequest:
    """Input of a version check."""

    image: ImageIdentity
    sources: tuple[VersionSourceConfig, ...]
    timeout_ms: int | None = None
    overall_timeout_ms: int | None = None

    @classmethod
    def from_dict(cls, data: Any) -> CheckRequest:
        data = _require_mapping(data, "check request")
        raw_sources = data.get("sources") or []
        if not isinstance(raw_sources, list):
            raise InvalidInputError("'sources' must be a list")
        return cls(
            image=ImageIdentity.from_dict(data.get("image")),
            sources=tuple(parse_source_config(item) for item in raw_sources),
            timeout_ms=_optional_int(data, "timeoutMs"),
            overall_timeout_ms=_optional_int(data, "overallTimeoutMs"),
        )


@dataclass(frozen=True)
class CheckResponse:
    """Aggregate result of a version check."""

    image_key: str
    current_version: str | None
    has_update: bool
    recommended: VersionCandidate | None
    results: tuple[SourceCheckResult, ...]
    checked_at_ms: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "imageKey": self.image_key,
            "currentVersion": self.current_version,
            "hasUpdate": self.has_update,
            "recommended": self.recommended.to_dict() if self.recommended else None,
            "results": [r.to_dict() for r in self.results],
            "checkedAtMs": self.checked_at_ms,
        }


# ------------------------------------------------------------------
# Update requests
# ------------------------------------------------------------------


@dataclass
class UpdateWorkflow:
    """How to rebuild and restart the service."""

    pull_path: str
    branch: str
    build_context: str
    dockerfile: str
    new_image_tag: str
    run_args: list[str] = field(default_factory=list)
    health_check_cmd: list[str] | None = None

    @classmethod
    def from_dict(cls, data: Any) -> UpdateWorkflow:
        data = _require_mapping(data, "workflow")
        health_cmd = data.get("healthCheckCmd")
        return cls(
            pull_path=_require_str(data, "pullPath"),
            branch=_require_str(data, "branch"),
            build_context=_require_str(data, "buildContext"),
            dockerfile=_require_str(data, "dockerfile"),
            new_image_tag=_require_str(data, "newImageTag"),
            run_args=_str_list(data, "runArgs"),
            health_check_cmd=_str_list(data, "healthCheckCmd") if health_cmd else None,
        )


@dataclass
class UpdateTimeouts:
    """Per-step limits, in milliseconds."""

    git_pull_ms: int = 120_000
    docker_build_ms: int = 1_200_000
    docker_stop_ms: int = 60_000
    docker_run_ms: int = 180_000
    health_check_ms: int = 60_000

    @classmethod
    def from_dict(cls, data: Any) -> UpdateTimeouts:
        data = _require_mapping(data or {}, "timeouts")
        defaults = cls()
        return cls(
            git_pull_ms=_optional_int(data, "gitPullMs") or defaults.git_pull_ms,
            docker_build_ms=_optional_int(data, "dockerBuildMs") or defaults.docker_build_ms,
            docker_stop_ms=_optional_int(data, "dockerStopMs") or defaults.docker_stop_ms,
            docker_run_ms=_optional_int(data, "dockerRunMs") or defaults.docker_run_ms,
            health_check_ms=_optional_int(data, "healthCheckMs") or defaults.health_check_ms,
        )


@dataclass
class RollbackPolicy:
    enabled: bool = True
    keep_backup_minutes: int = 0

    @classmethod
    def from_dict(cls, data: Any) -> RollbackPolicy:
        data = _require_mapping(data or {}, "rollback policy")
        return cls(
            enabled=bool(data.get("enabled", True)),
            keep_backup_minutes=_optional_int(data, "keepBackupMinutes") or 0,
        )


@dataclass
class UpdateRequest:
    """Input of an update-and-restart operation."""

    image: ImageIdentity
    source: VersionSourceKind
    target_version: str
    workflow: UpdateWorkflow
    timeouts: UpdateTimeouts = field(default_factory=UpdateTimeouts)
    rollback_policy: RollbackPolicy = field(default_factory=RollbackPolicy)
    operation_id: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> UpdateRequest:
        data = _require_mapping(data, "update request")
        policy = data.get("rollbackPolicy", data.get("rollback"))
        return cls(
            operation_id=_optional_str(data, "operationId") or None,
            image=ImageIdentity.from_dict(data.get("image")),
            source=_parse_kind(data.get("source")),
            target_version=_require_str(data, "targetVersion"),
            workflow=UpdateWorkflow.from_dict(data.get("workflow")),
            timeouts=UpdateTimeouts.from_dict(data.get("timeouts")),
            rollback_policy=RollbackPolicy.from_dict(policy),
        )


# ------------------------------------------------------------------
# Update results
# ------------------------------------------------------------------


@dataclass
class UpdateStepLog:
    """Audit record of one pipeline step."""

    step: str
    command: str | None = None
    ok: bool = False
    skipped: bool = False
    output: str = ""
    error: str | None = None
    elapsed_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "step": self.step,
            "command": self.command,
            "ok": self.ok,
            "skipped": self.skipped,
            "output": self.output,
            "error": self.error,
            "elapsedMs": self.elapsed_ms,
        }


@dataclass
class RollbackResult:
    """Outcome of a rollback; the default value means none was attempted."""

    attempted: bool = False
    restored: bool = False
    backup_container: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "restored": self.restored,
            "backupContainer": self.backup_container,
            "error": self.error,
        }


@dataclass
class UpdateResponse:
    """Result of an update-and-restart operation."""

    operation_id: str
    image_key: str
    success: bool
    final_image_ref: str | None = None
    step_logs: list[UpdateStepLog] = field(default_factory=list)
    rollback: RollbackResult = field(default_factory=RollbackResult)

    def to_dict(self) -> dict[str, Any]:
        return {
            "operationId": self.operation_id,
            "imageKey": self.image_key,
            "success": self.success,
            "finalImageRef": self.final_image_ref,
            "stepLogs": [log.to_dict() for log in self.step_logs],
            "rollback": self.rollback.to_dict(),
        }
