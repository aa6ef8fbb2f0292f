"""
Registry credential lookup.

Maps a registry host to the credentials used when the registry challenges a
request. Rules are checked in order and the first matching rule wins; hosts
that match no rule are accessed anonymously. New registries are supported by
adding a rule, without touching the sync engine or the HTTP client.
"""
from __future__ import annotations

import base64
import binascii
import json
import logging
import os
from pathlib import Path
from typing import Callable, List, Optional, Protocol, Sequence, Tuple

from ..settings import Settings

logger = logging.getLogger(__name__)

Credentials = Tuple[str, str]
HostPredicate = Callable[[str], bool]

__all__ = [
    "Credentials",
    "CredentialProvider",
    "AnonymousCredentials",
    "StaticCredentials",
    "DockerConfigCredentials",
    "GoogleKeyCredentials",
    "CredentialResolver",
    "host_in",
    "any_host",
    "default_resolver",
]


class CredentialProvider(Protocol):
    """Source of username/password credentials for a registry host."""

    def get_credentials(self, registry: str) -> Optional[Credentials]:
        """Return (username, password) for ``registry`` or None for anonymous access."""
        ...


class AnonymousCredentials:
    """Never supplies credentials."""

    def get_credentials(self, registry: str) -> Optional[Credentials]:
        return None


class StaticCredentials:
    """Fixed username/password, typically from settings."""

    def __init__(self, username: str, password: str):
        self.username = username
        self.password = password

    def get_credentials(self, registry: str) -> Optional[Credentials]:
        return (self.username, self.password)


class DockerConfigCredentials:
    """Handle Docker Registry authentication from config files."""

    def __init__(self, config_path: Optional[Path] = None):
        self.config_path = config_path or Path.home() / ".docker" / "config.json"
        self._config_cache: Optional[dict] = None
        self._config_mtime: Optional[float] = None

    def get_credentials(self, registry: str) -> Optional[Credentials]:
        """
        Get credentials for registry from Docker config.

        Returns: (username, password) or None if not found
        """
        config = self._load_config()
        if not config:
            return None

        auths = config.get("auths", {})

        # Docker Hub credentials are stored under the legacy index URL
        candidates = [registry, f"https://{registry}", f"http://{registry}"]
        if registry in ("index.docker.io", "docker.io", "registry-1.docker.io"):
            candidates.append("https://index.docker.io/v1/")

        for key in candidates:
            if key in auths:
                return self._decode_entry(auths[key])
        return None

    def _decode_entry(self, auth_entry: dict) -> Optional[Credentials]:
        # Handle base64 encoded auth field
        if "auth" in auth_entry:
            try:
                decoded = base64.b64decode(auth_entry["auth"]).decode()
            except (binascii.Error, UnicodeDecodeError) as e:
                logger.debug(f"Ignoring undecodable auth entry in Docker config: {e}")
            else:
                if ":" in decoded:
                    username, password = decoded.split(":", 1)
                    return (username, password)

        if "username" in auth_entry and "password" in auth_entry:
            return (auth_entry["username"], auth_entry["password"])

        return None

    def _load_config(self) -> Optional[dict]:
        """Load Docker config with caching and mtime checking."""
        if not self.config_path.exists():
            return None

        try:
            current_mtime = self.config_path.stat().st_mtime

            # Use cached version if file hasn't changed
            if (self._config_cache is not None and
                    self._config_mtime is not None and
                    current_mtime == self._config_mtime):
                return self._config_cache

            with open(self.config_path, 'r') as f:
                config = json.load(f)

            self._config_cache = config
            self._config_mtime = current_mtime
            return config

        except (OSError, json.JSONDecodeError) as e:
            logger.debug(f"Failed to read Docker config {self.config_path}: {e}")
            return None


class GoogleKeyCredentials:
    """
    Google service account key for gcr.io and Artifact Registry.

    Reads the key file named by GOOGLE_APPLICATION_CREDENTIALS (or an explicit
    path) and presents it with the ``_json_key`` username these registries
    accept for basic and token authentication.
    """

    def __init__(self, key_path: Optional[str] = None):
        self.key_path = key_path

    def get_credentials(self, registry: str) -> Optional[Credentials]:
        path = self.key_path or os.getenv("GOOGLE_APPLICATION_CREDENTIALS")
        if not path:
            logger.debug(f"No Google credentials configured for {registry}, proceeding anonymous")
            return None
        try:
            key = Path(path).read_text()
        except OSError as e:
            logger.warning(f"Cannot read Google credentials {path}: {e}")
            return None
        return ("_json_key", key)


def host_in(*hosts: str) -> HostPredicate:
    """Predicate matching any of ``hosts`` exactly."""
    wanted = frozenset(hosts)
    return lambda registry: registry in wanted


def any_host(registry: str) -> bool:
    return True


class CredentialResolver:
    """
    Ordered (host predicate, provider) rules.

    The first rule whose predicate accepts the host supplies the credentials.
    A provider that returns None ends the lookup; later rules are not tried.
    """

    def __init__(self, rules: Optional[Sequence[Tuple[HostPredicate, CredentialProvider]]] = None):
        self._rules: List[Tuple[HostPredicate, CredentialProvider]] = list(rules or [])
        self._anonymous = AnonymousCredentials()

    def add_rule(self, predicate: HostPredicate, provider: CredentialProvider) -> None:
        self._rules.append((predicate, provider))

    def provider_for(self, registry: str) -> CredentialProvider:
        for predicate, provider in self._rules:
            if predicate(registry):
                return provider
        return self._anonymous

    def get_credentials(self, registry: str) -> Optional[Credentials]:
        return self.provider_for(registry).get_credentials(registry)


def default_resolver(settings: Settings) -> CredentialResolver:
    """
    Build the standard rule set from settings.

    Order: Google registries use the service account key; explicit settings
    credentials (scoped to ``registry_host`` when set); then Docker config for
    every other host.
    """
    resolver = CredentialResolver()
    resolver.add_rule(host_in(*settings.google_registries), GoogleKeyCredentials())

    if settings.registry_user:
        predicate = host_in(settings.registry_host) if settings.registry_host else any_host
        resolver.add_rule(predicate, StaticCredentials(settings.registry_user, settings.registry_pass or ""))

    config_path = Path(settings.docker_config) if settings.docker_config else None
    resolver.add_rule(any_host, DockerConfigCredentials(config_path))
    return resolver
