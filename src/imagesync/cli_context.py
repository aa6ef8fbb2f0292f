"""
CLI Context for managing application dependencies.

Holds settings, the registry gateway and output flags for one CLI invocation,
avoiding global state. Tests pass a prepared context as the Typer ``obj``.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .operations import Operations, OpsConfig
from .settings import Settings, create_settings_from_env
from .storage.base import RegistryGateway
from .storage.registry_factory import make_gateway


@dataclass
class CLIContext:
    """
    Shared context for CLI commands.

    The gateway is created on first access so commands that fail validation
    never open registry connections.
    """
    settings: Settings
    gateway_impl: Optional[str] = None
    verbose: bool = False
    json_output: bool = False
    _gateway: Optional[RegistryGateway] = None

    @classmethod
    def from_env(cls, gateway_impl: Optional[str] = None) -> CLIContext:
        """
        Create CLI context from environment variables.

        Args:
            gateway_impl: Gateway implementation override ("http" or "fake")
        """
        return cls(settings=create_settings_from_env(), gateway_impl=gateway_impl)

    @property
    def gateway(self) -> RegistryGateway:
        if self._gateway is None:
            self._gateway = make_gateway(self.settings, self.gateway_impl)
        return self._gateway

    def operations(self, strict_cleanup: bool = False) -> Operations:
        config = OpsConfig(strict_cleanup=strict_cleanup)
        return Operations(config=config, gateway=self.gateway, settings=self.settings)
