"""Unit tests for the configuration module."""

import pytest
from pydantic import ValidationError

from image_updater.config import Settings, get_settings


def _make_settings(**overrides) -> Settings:
    """Create a Settings instance isolated from any .env file."""
    overrides.setdefault("_env_file", None)
    return Settings(**overrides)


class TestDefaults:
    """Tests for default setting values."""

    def test_check_defaults(self):
        """Test the version check defaults."""
        settings = _make_settings()
        assert settings.overall_timeout_ms == 15000
        assert settings.check_cache_ttl_seconds == 30

    def test_update_defaults(self):
        """Test the update lock and health check defaults."""
        settings = _make_settings()
        assert settings.update_lock_timeout_seconds == 900
        assert settings.health_check_interval_ms == 1000

    def test_tool_and_api_defaults(self):
        """Test the external tool and API defaults."""
        settings = _make_settings()
        assert settings.docker_binary == "docker"
        assert settings.git_binary == "git"
        assert settings.registry_api_base == "https://hub.docker.com/v2"
        assert settings.github_api_base == "https://api.github.com"


class TestEnvironmentOverrides:
    """Tests for IMAGE_UPDATER_* environment variables."""

    def test_prefixed_env_var_is_read(self, monkeypatch):
        """Test that prefixed variables override defaults."""
        monkeypatch.setenv("IMAGE_UPDATER_DOCKER_BINARY", "/usr/local/bin/docker")
        monkeypatch.setenv("IMAGE_UPDATER_OVERALL_TIMEOUT_MS", "20000")
        settings = _make_settings()
        assert settings.docker_binary == "/usr/local/bin/docker"
        assert settings.overall_timeout_ms == 20000

    def test_unprefixed_env_var_is_ignored(self, monkeypatch):
        """Test that variables without the prefix are ignored."""
        monkeypatch.setenv("DOCKER_BINARY", "podman")
        settings = _make_settings()
        assert settings.docker_binary == "docker"


class TestValidation:
    """Tests for field constraints."""

    def test_zero_overall_timeout_rejected(self):
        """Test that a zero overall timeout is invalid."""
        with pytest.raises(ValidationError):
            _make_settings(overall_timeout_ms=0)

    def test_negative_cache_ttl_rejected(self):
        """Test that a negative cache TTL is invalid."""
        with pytest.raises(ValidationError):
            _make_settings(check_cache_ttl_seconds=-1)

    def test_zero_cache_ttl_allowed(self):
        """Test that caching can be effectively disabled."""
        assert _make_settings(check_cache_ttl_seconds=0).check_cache_ttl_seconds == 0


class TestIsDevelopment:
    """Tests for the is_development property."""

    @pytest.mark.parametrize("env", ["development", "Development", "DEVELOPMENT"])
    def test_development(self, env):
        assert _make_settings(environment=env).is_development is True

    def test_production(self):
        assert _make_settings(environment="production").is_development is False


class TestGetSettings:
    """Tests for the cached settings accessor."""

    def test_returns_same_instance(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
