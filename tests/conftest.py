"""Root pytest configuration for imagesync tests."""
import pytest

from imagesync.settings import Settings
from imagesync.storage.fakes import FakeRegistry


# Configure pytest markers
def pytest_configure(config):
    """Configure pytest with custom markers."""
    config.addinivalue_line(
        "markers",
        "integration: mark test as integration test (requires a live registry)"
    )
    config.addinivalue_line(
        "markers",
        "slow: mark test as slow (may take significant time)"
    )


# Keep tests independent of the developer's environment
@pytest.fixture(autouse=True)
def test_env(monkeypatch, tmp_path):
    """Automatically set up test environment variables."""
    for name in (
        "IMAGESYNC_DEFAULT_REGISTRY",
        "IMAGESYNC_INSECURE_REGISTRIES",
        "IMAGESYNC_REGISTRY_USERNAME",
        "IMAGESYNC_REGISTRY_PASSWORD",
        "IMAGESYNC_REGISTRY_HOST",
        "IMAGESYNC_GOOGLE_REGISTRIES",
        "IMAGESYNC_HTTP_TIMEOUT",
        "IMAGESYNC_HTTP_RETRY",
        "IMAGESYNC_USER_AGENT",
        "IMAGESYNC_GATEWAY_IMPL",
        "GOOGLE_APPLICATION_CREDENTIALS",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("IMAGESYNC_DOCKER_CONFIG", str(tmp_path / "docker-config.json"))


# Standardized test fixtures
@pytest.fixture
def settings():
    """Standard test settings."""
    return Settings(default_registry="localhost:5000")


@pytest.fixture
def registry():
    """Standard fake registry for testing."""
    return FakeRegistry()
