"""Unit tests for request parsing and result serialisation."""

import pytest

from image_updater.errors import InvalidInputError
from image_updater.models import (
    CheckRequest,
    CheckResponse,
    CustomApiConfig,
    GithubReleaseConfig,
    ImageIdentity,
    LocalGitConfig,
    RegistryTagsConfig,
    RollbackPolicy,
    SourceCheckResult,
    UpdateRequest,
    UpdateResponse,
    UpdateStepLog,
    UpdateTimeouts,
    VersionCandidate,
    VersionSourceKind,
    image_key,
    parse_source_config,
    source_config_to_dict,
)


def _update_payload(**overrides) -> dict:
    payload = {
        "image": {"repository": "myapp", "tag": "1.0.0"},
        "source": "localGit",
        "targetVersion": "1.1.0",
        "workflow": {
            "pullPath": "/srv/myapp",
            "branch": "main",
            "buildContext": "/srv/myapp",
            "dockerfile": "/srv/myapp/Dockerfile",
            "newImageTag": "myapp:1.1.0",
            "runArgs": ["-d", "--name", "myapp"],
        },
    }
    payload.update(overrides)
    return payload


# ---------------------------------------------------------------------------
# Image identity
# ---------------------------------------------------------------------------


class TestImageIdentity:
    """Tests for ImageIdentity and image_key."""

    def test_key(self):
        assert ImageIdentity("nginx", "latest").key == "nginx:latest"
        assert image_key("ghcr.io/org/app", "1.2") == "ghcr.io/org/app:1.2"

    def test_from_dict(self):
        image = ImageIdentity.from_dict({"repository": "nginx", "tag": "1.25"})
        assert image == ImageIdentity("nginx", "1.25")

    @pytest.mark.parametrize(
        "data",
        [None, [], {"repository": "nginx"}, {"repository": "", "tag": "1"}],
    )
    def test_from_dict_invalid(self, data):
        with pytest.raises(InvalidInputError):
            ImageIdentity.from_dict(data)


# ---------------------------------------------------------------------------
# Source configs
# ---------------------------------------------------------------------------


class TestParseSourceConfig:
    """Tests for the tagged source config union."""

    def test_docker_hub(self):
        config = parse_source_config(
            {
                "kind": "dockerHub",
                "config": {"namespace": "library", "repository": "nginx", "tagRegex": r"^1\."},
            }
        )
        assert config == RegistryTagsConfig("library", "nginx", tag_regex=r"^1\.")
        assert config.kind is VersionSourceKind.DOCKER_HUB

    def test_github_release(self):
        config = parse_source_config(
            {
                "kind": "githubRelease",
                "config": {"owner": "nginx", "repo": "nginx", "token": "ghp_x"},
            }
        )
        assert isinstance(config, GithubReleaseConfig)
        assert config.token == "ghp_x"

    def test_local_git(self):
        config = parse_source_config(
            {"kind": "localGit", "config": {"repoPath": "/srv/app", "branch": "main"}}
        )
        assert config == LocalGitConfig("/srv/app", "main")

    def test_custom_api(self):
        config = parse_source_config(
            {
                "kind": "customApi",
                "config": {
                    "endpoint": "https://example.com/v",
                    "headers": [{"key": "X-Token", "value": "abc"}],
                    "versionField": "latest",
                },
            }
        )
        assert isinstance(config, CustomApiConfig)
        assert config.method == "GET"
        assert config.headers[0].key == "X-Token"
        assert config.version_field == "latest"

    def test_custom_api_requires_version_field(self):
        with pytest.raises(InvalidInputError, match="versionField"):
            parse_source_config(
                {"kind": "customApi", "config": {"endpoint": "https://example.com/v"}}
            )

    def test_unknown_kind(self):
        with pytest.raises(InvalidInputError, match="unknown source kind"):
            parse_source_config({"kind": "ftp", "config": {}})

    def test_missing_config(self):
        with pytest.raises(InvalidInputError):
            parse_source_config({"kind": "localGit"})

    def test_token_never_serialised(self):
        config = GithubReleaseConfig("nginx", "nginx", token="secret")
        rendered = source_config_to_dict(config)
        assert rendered["kind"] == "githubRelease"
        assert "token" not in rendered["config"]
        assert "secret" not in repr(config)


# ---------------------------------------------------------------------------
# Check request / response
# ---------------------------------------------------------------------------


class TestCheckRequest:
    """Tests for CheckRequest.from_dict."""

    def test_parses_sources_and_timeouts(self):
        request = CheckRequest.from_dict(
            {
                "image": {"repository": "nginx", "tag": "latest"},
                "sources": [
                    {"kind": "localGit", "config": {"repoPath": "/srv", "branch": "main"}},
                ],
                "timeoutMs": 2000,
                "overallTimeoutMs": 5000,
            }
        )
        assert request.image.key == "nginx:latest"
        assert len(request.sources) == 1
        assert request.timeout_ms == 2000
        assert request.overall_timeout_ms == 5000

    def test_sources_default_empty(self):
        request = CheckRequest.from_dict({"image": {"repository": "nginx", "tag": "latest"}})
        assert request.sources == ()
        assert request.timeout_ms is None

    def test_negative_timeout_rejected(self):
        with pytest.raises(InvalidInputError):
            CheckRequest.from_dict(
                {"image": {"repository": "nginx", "tag": "latest"}, "timeoutMs": -1}
            )


class TestCheckResponse:
    """Tests for CheckResponse.to_dict."""

    def test_wire_shape(self):
        candidate = VersionCandidate(VersionSourceKind.GITHUB_RELEASE, "v2.0.0")
        response = CheckResponse(
            image_key="nginx:latest",
            current_version="latest",
            has_update=True,
            recommended=candidate,
            results=(
                SourceCheckResult.success(candidate, 12),
                SourceCheckResult.failure(
                    VersionSourceKind.DOCKER_HUB, "VERSION_SOURCE_TIMEOUT", "slow", 8000
                ),
            ),
            checked_at_ms=1_700_000_000_000,
        )

        data = response.to_dict()

        assert data["imageKey"] == "nginx:latest"
        assert data["hasUpdate"] is True
        assert data["recommended"]["source"] == "githubRelease"
        assert data["results"][0]["latest"]["version"] == "v2.0.0"
        assert data["results"][1] == {
            "source": "dockerHub",
            "ok": False,
            "errorCode": "VERSION_SOURCE_TIMEOUT",
            "errorMessage": "slow",
            "latest": None,
            "elapsedMs": 8000,
        }


# ---------------------------------------------------------------------------
# Update request / response
# ---------------------------------------------------------------------------


class TestUpdateRequest:
    """Tests for UpdateRequest.from_dict."""

    def test_defaults(self):
        request = UpdateRequest.from_dict(_update_payload())

        assert request.operation_id is None
        assert request.source is VersionSourceKind.LOCAL_GIT
        assert request.workflow.run_args == ["-d", "--name", "myapp"]
        assert request.workflow.health_check_cmd is None
        assert request.timeouts == UpdateTimeouts()
        assert request.rollback_policy == RollbackPolicy(enabled=True, keep_backup_minutes=0)

    def test_zero_timeouts_fall_back_to_defaults(self):
        request = UpdateRequest.from_dict(
            _update_payload(timeouts={"gitPullMs": 0, "dockerBuildMs": 5000})
        )
        assert request.timeouts.git_pull_ms == 120_000
        assert request.timeouts.docker_build_ms == 5000
        assert request.timeouts.health_check_ms == 60_000

    def test_rollback_alias(self):
        request = UpdateRequest.from_dict(
            _update_payload(rollback={"enabled": False, "keepBackupMinutes": 5})
        )
        assert request.rollback_policy == RollbackPolicy(enabled=False, keep_backup_minutes=5)

    def test_operation_id_and_health_cmd(self):
        payload = _update_payload(operationId="op-42")
        payload["workflow"]["healthCheckCmd"] = ["curl", "-f", "http://localhost/health"]
        request = UpdateRequest.from_dict(payload)
        assert request.operation_id == "op-42"
        assert request.workflow.health_check_cmd == ["curl", "-f", "http://localhost/health"]

    def test_missing_workflow_field(self):
        payload = _update_payload()
        del payload["workflow"]["newImageTag"]
        with pytest.raises(InvalidInputError, match="newImageTag"):
            UpdateRequest.from_dict(payload)

    def test_run_args_must_be_strings(self):
        payload = _update_payload()
        payload["workflow"]["runArgs"] = ["-p", 8080]
        with pytest.raises(InvalidInputError):
            UpdateRequest.from_dict(payload)


class TestUpdateResponse:
    """Tests for UpdateResponse.to_dict."""

    def test_wire_shape(self):
        response = UpdateResponse(
            operation_id="op-1",
            image_key="myapp:1.0.0",
            success=True,
            final_image_ref="myapp:1.1.0",
            step_logs=[UpdateStepLog(step="git_pull", command="git pull", ok=True)],
        )

        data = response.to_dict()

        assert data["operationId"] == "op-1"
        assert data["finalImageRef"] == "myapp:1.1.0"
        assert data["stepLogs"][0]["step"] == "git_pull"
        assert data["stepLogs"][0]["skipped"] is False
        assert data["rollback"] == {
            "attempted": False,
            "restored": False,
            "backupContainer": None,
            "error": None,
        }
