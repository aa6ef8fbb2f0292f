"""
Tests for settings module.

Tests settings validation and environment variable loading.
"""
from __future__ import annotations

import pytest

from imagesync.settings import DEFAULT_REGISTRY, GOOGLE_REGISTRIES, Settings, create_settings_from_env


class TestSettings:
    """Test Settings dataclass validation."""

    def test_defaults(self):
        settings = Settings()
        assert settings.default_registry == DEFAULT_REGISTRY
        assert settings.insecure_registries == ()
        assert settings.google_registries == GOOGLE_REGISTRIES
        assert settings.http_timeout_s == 30.0
        assert settings.http_retry == 0

    def test_empty_default_registry_raises(self):
        with pytest.raises(ValueError, match="default_registry is required"):
            Settings(default_registry="")

    def test_invalid_host_raises(self):
        with pytest.raises(ValueError, match="Invalid registry host format"):
            Settings(insecure_registries=("http://localhost:5000",))

    def test_user_without_password_raises(self):
        with pytest.raises(ValueError, match="registry_pass is missing"):
            Settings(registry_user="bob")

    def test_password_without_user_raises(self):
        with pytest.raises(ValueError, match="registry_user is missing"):
            Settings(registry_pass="secret")

    def test_non_positive_timeout_raises(self):
        with pytest.raises(ValueError, match="http_timeout_s must be positive"):
            Settings(http_timeout_s=0)

    def test_negative_retry_raises(self):
        with pytest.raises(ValueError, match="http_retry must be non-negative"):
            Settings(http_retry=-1)

    def test_frozen(self):
        settings = Settings()
        with pytest.raises(AttributeError):
            settings.http_retry = 3  # type: ignore[misc]

    @pytest.mark.parametrize("host,expected", [
        ("localhost:5000", True),
        ("localhost", True),
        ("127.0.0.1:5000", True),
        ("registry.internal:5000", True),
        ("ghcr.io", False),
    ])
    def test_is_insecure(self, host, expected):
        settings = Settings(insecure_registries=("registry.internal:5000",))
        assert settings.is_insecure(host) is expected


class TestCreateSettingsFromEnv:
    """Test environment loading."""

    def test_empty_environment_gives_defaults(self, monkeypatch):
        monkeypatch.delenv("IMAGESYNC_DOCKER_CONFIG")
        assert create_settings_from_env() == Settings()

    def test_all_variables(self, monkeypatch):
        monkeypatch.setenv("IMAGESYNC_DEFAULT_REGISTRY", "registry.example.com")
        monkeypatch.setenv("IMAGESYNC_INSECURE_REGISTRIES", "a.local:5000, b.local")
        monkeypatch.setenv("IMAGESYNC_REGISTRY_USERNAME", "bob")
        monkeypatch.setenv("IMAGESYNC_REGISTRY_PASSWORD", "secret")
        monkeypatch.setenv("IMAGESYNC_REGISTRY_HOST", "registry.example.com")
        monkeypatch.setenv("IMAGESYNC_GOOGLE_REGISTRIES", "gcr.io,europe-docker.pkg.dev")
        monkeypatch.setenv("IMAGESYNC_HTTP_TIMEOUT", "12.5")
        monkeypatch.setenv("IMAGESYNC_HTTP_RETRY", "2")
        monkeypatch.setenv("IMAGESYNC_USER_AGENT", "mirror-bot/1.0")

        settings = create_settings_from_env()

        assert settings.default_registry == "registry.example.com"
        assert settings.insecure_registries == ("a.local:5000", "b.local")
        assert settings.registry_user == "bob"
        assert settings.registry_pass == "secret"
        assert settings.registry_host == "registry.example.com"
        assert settings.google_registries == ("gcr.io", "europe-docker.pkg.dev")
        assert settings.http_timeout_s == 12.5
        assert settings.http_retry == 2
        assert settings.user_agent == "mirror-bot/1.0"

    def test_invalid_environment_fails_fast(self, monkeypatch):
        monkeypatch.setenv("IMAGESYNC_HTTP_RETRY", "-1")
        with pytest.raises(ValueError):
            create_settings_from_env()

    def test_fresh_instance_each_call(self, monkeypatch):
        first = create_settings_from_env()
        monkeypatch.setenv("IMAGESYNC_HTTP_RETRY", "4")
        assert create_settings_from_env().http_retry == 4
        assert first.http_retry == 0
