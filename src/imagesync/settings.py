"""
Settings and configuration for imagesync.

Centralizes configuration values and provides validation with fail-fast behavior.
Loads settings from environment variables at gateway construction time.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Optional, Tuple

__all__ = ["Settings", "create_settings_from_env", "DEFAULT_REGISTRY", "GOOGLE_REGISTRIES"]

DEFAULT_REGISTRY = "index.docker.io"

GOOGLE_REGISTRIES = ("gcr.io", "eu.gcr.io", "us.gcr.io", "asia.gcr.io")

# Hosts that are always reached over plain HTTP
_LOOPBACK_HOSTS = ("localhost", "127.0.0.1")

_HOST_PATTERN = re.compile(r"^[a-zA-Z0-9.-]+(?::[0-9]+)?$")


@dataclass(frozen=True)
class Settings:
    """
    Configuration settings for imagesync gateways.

    Registry Settings:
        default_registry: Registry host assumed for references without one
        insecure_registries: Hosts reached over HTTP without TLS verification
        registry_user: Username for registry authentication
        registry_pass: Password for registry authentication
        registry_host: Restrict registry_user/registry_pass to this host
        docker_config: Path to a Docker config.json (default ~/.docker/config.json)
        google_registries: Hosts authenticated with a Google service account key

    HTTP Settings:
        http_timeout_s: HTTP request timeout in seconds
        http_retry: Number of retries for timed out requests (0=no retry)
        user_agent: User-Agent header sent to registries
    """
    default_registry: str = DEFAULT_REGISTRY
    insecure_registries: Tuple[str, ...] = ()
    registry_user: Optional[str] = None
    registry_pass: Optional[str] = None
    registry_host: Optional[str] = None
    docker_config: Optional[str] = None
    google_registries: Tuple[str, ...] = GOOGLE_REGISTRIES
    http_timeout_s: float = 30.0
    http_retry: int = 0
    user_agent: str = "imagesync/0.1.0"

    def __post_init__(self):
        """Validate settings on construction."""
        if not self.default_registry:
            raise ValueError("default_registry is required")

        for host in (self.default_registry, *self.insecure_registries, *self.google_registries):
            if not _HOST_PATTERN.match(host):
                raise ValueError(f"Invalid registry host format: {host}")

        if self.registry_host is not None and not _HOST_PATTERN.match(self.registry_host):
            raise ValueError(f"Invalid registry host format: {self.registry_host}")

        # Credentials must be complete if given at all
        if self.registry_user and self.registry_pass is None:
            raise ValueError("registry_user specified but registry_pass is missing")
        if self.registry_pass and not self.registry_user:
            raise ValueError("registry_pass specified but registry_user is missing")

        if self.http_timeout_s <= 0:
            raise ValueError(f"http_timeout_s must be positive, got {self.http_timeout_s}")

        if self.http_retry < 0:
            raise ValueError(f"http_retry must be non-negative, got {self.http_retry}")

    def is_insecure(self, host: str) -> bool:
        """Whether ``host`` should be reached over plain HTTP."""
        bare = host.split(":", 1)[0]
        return host in self.insecure_registries or bare in _LOOPBACK_HOSTS


def create_settings_from_env() -> Settings:
    """
    Load settings from environment variables.

    Environment Variables:
        - IMAGESYNC_DEFAULT_REGISTRY (default: index.docker.io)
        - IMAGESYNC_INSECURE_REGISTRIES (comma separated, optional)
        - IMAGESYNC_REGISTRY_USERNAME (optional)
        - IMAGESYNC_REGISTRY_PASSWORD (optional)
        - IMAGESYNC_REGISTRY_HOST (optional)
        - IMAGESYNC_DOCKER_CONFIG (optional)
        - IMAGESYNC_GOOGLE_REGISTRIES (comma separated, default: gcr.io family)
        - IMAGESYNC_HTTP_TIMEOUT (default: 30.0)
        - IMAGESYNC_HTTP_RETRY (default: 0)
        - IMAGESYNC_USER_AGENT (optional)

    Returns:
        Settings object with validated configuration

    Raises:
        ValueError: If configuration is invalid

    Note:
        Creates a fresh Settings instance every time (no caching).
    """
    def get_float(key: str, default: float) -> float:
        value = os.getenv(key)
        return float(value) if value else default

    def get_int(key: str, default: int) -> int:
        value = os.getenv(key)
        return int(value) if value else default

    def get_list(key: str, default: Tuple[str, ...]) -> Tuple[str, ...]:
        value = os.getenv(key)
        if value is None:
            return default
        return tuple(item.strip() for item in value.split(",") if item.strip())

    return Settings(
        default_registry=os.getenv("IMAGESYNC_DEFAULT_REGISTRY") or DEFAULT_REGISTRY,
        insecure_registries=get_list("IMAGESYNC_INSECURE_REGISTRIES", ()),
        registry_user=os.getenv("IMAGESYNC_REGISTRY_USERNAME"),
        registry_pass=os.getenv("IMAGESYNC_REGISTRY_PASSWORD"),
        registry_host=os.getenv("IMAGESYNC_REGISTRY_HOST"),
        docker_config=os.getenv("IMAGESYNC_DOCKER_CONFIG"),
        google_registries=get_list("IMAGESYNC_GOOGLE_REGISTRIES", GOOGLE_REGISTRIES),
        http_timeout_s=get_float("IMAGESYNC_HTTP_TIMEOUT", 30.0),
        http_retry=get_int("IMAGESYNC_HTTP_RETRY", 0),
        user_agent=os.getenv("IMAGESYNC_USER_AGENT") or "imagesync/0.1.0",
    )
