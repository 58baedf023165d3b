"""Version source providers.

``create_provider`` maps each source config variant to its provider.
"""

from __future__ import annotations

from image_updater.config import Settings
from image_updater.models import VersionSourceConfig, VersionSourceKind
from image_updater.process import CommandRunner
from image_updater.sources.base import VersionSourceProvider
from image_updater.sources.custom_api import CustomApiProvider
from image_updater.sources.github_release import GithubReleaseProvider
from image_updater.sources.local_git import LocalGitProvider
from image_updater.sources.registry_tags import RegistryTagsProvider


def create_provider(
    config: VersionSourceConfig,
    settings: Settings | None = None,
    runner: CommandRunner | None = None,
    *,
    timeout_ms: int | None = None,
) -> VersionSourceProvider:
    """Build the provider for one source config.

    ``timeout_ms`` overrides the provider default for its own HTTP or git calls.
    """
    match config.kind:
        case VersionSourceKind.DOCKER_HUB:
            return RegistryTagsProvider(
                config, settings, timeout_ms=timeout_ms  # type: ignore[arg-type]
            )
        case VersionSourceKind.GITHUB_RELEASE:
            return GithubReleaseProvider(
                config, settings, timeout_ms=timeout_ms  # type: ignore[arg-type]
            )
        case VersionSourceKind.LOCAL_GIT:
            return LocalGitProvider(
                config, settings, runner, timeout_ms=timeout_ms  # type: ignore[arg-type]
            )
        case VersionSourceKind.CUSTOM_API:
            return CustomApiProvider(
                config, settings, timeout_ms=timeout_ms  # type: ignore[arg-type]
            )
    raise ValueError(f"unsupported source kind: {config.kind}")


__all__ = [
    "CustomApiProvider",
    "GithubReleaseProvider",
    "LocalGitProvider",
    "RegistryTagsProvider",
    "VersionSourceProvider",
    "create_provider",
]
