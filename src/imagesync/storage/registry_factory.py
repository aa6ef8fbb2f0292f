"""
Gateway factory with implementation switching.

Provides a single factory function that can create different registry gateway
implementations based on environment configuration. This allows running the
CLI against an in-memory registry without changing call sites.
"""
from __future__ import annotations

import os

from ..settings import Settings
from .base import RegistryGateway
from .fakes import FakeRegistry
from .gateway import HttpRegistryGateway


def make_gateway(settings: Settings, impl: str | None = None) -> RegistryGateway:
    """
    Create a registry gateway based on configuration.

    Args:
        settings: Registry configuration
        impl: Implementation override; defaults to IMAGESYNC_GATEWAY_IMPL

    Returns:
        Registry gateway implementation

    Environment Variables:
        IMAGESYNC_GATEWAY_IMPL: Implementation to use
            - "http" (default): HttpRegistryGateway (OCI Distribution API)
            - "fake": FakeRegistry (in-memory, for smoke tests and demos)

    Raises:
        ValueError: If the implementation name is unknown
    """
    impl_type = (impl or os.getenv("IMAGESYNC_GATEWAY_IMPL", "http")).lower()

    if impl_type == "http":
        return HttpRegistryGateway(settings)
    elif impl_type == "fake":
        return FakeRegistry()
    else:
        raise ValueError(
            f"Unknown IMAGESYNC_GATEWAY_IMPL: {impl_type}. "
            f"Supported values: http, fake"
        )


__all__ = ["make_gateway"]
