# Fake implementations for testing

from .fake_registry import FakeRegistry, make_manifest

__all__ = ["FakeRegistry", "make_manifest"]
