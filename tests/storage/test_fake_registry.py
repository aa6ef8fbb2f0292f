"""
Tests for the FakeRegistry test double.

The fake has to behave like a Distribution registry for the sync and garbage
collection tests to mean anything.
"""
from __future__ import annotations

import pytest

from imagesync.errors import NotFound, TransportError, Unsupported
from imagesync.reference import parse_reference
from imagesync.storage.base import RegistryGateway
from imagesync.storage.fakes import FakeRegistry, make_manifest

REPO = "localhost:5000/mirror/app"


class TestFakeRegistry:
    """Test FakeRegistry semantics."""

    def test_satisfies_protocol(self, registry):
        assert isinstance(registry, RegistryGateway)

    def test_make_manifest_deterministic(self):
        assert make_manifest("a") == make_manifest("a")
        assert make_manifest("a") != make_manifest("b")

    def test_write_then_get(self, registry):
        image = registry.seed("source.example.com/app:v1")
        registry.write(parse_reference(f"{REPO}:v1"), image)

        fetched = registry.get(parse_reference(f"{REPO}:v1"))

        assert fetched.digest == image.digest
        assert registry.get(parse_reference(f"{REPO}@{image.digest}")).digest == image.digest

    def test_get_missing(self, registry):
        with pytest.raises(NotFound):
            registry.get(parse_reference(f"{REPO}:v1"))

    def test_digest_of_tag(self, registry):
        image = registry.seed(f"{REPO}:v1")
        assert registry.digest(parse_reference(f"{REPO}:v1")) == image.digest
        assert registry.calls_for("digest") == [f"{REPO}:v1"]

    def test_digest_missing(self, registry):
        with pytest.raises(NotFound):
            registry.digest(parse_reference(f"{REPO}:v1"))

    def test_list_tags_sorted(self, registry):
        registry.seed(f"{REPO}:b")
        registry.seed(f"{REPO}:a")
        assert registry.list_tags(parse_reference(f"{REPO}:a")) == ["a", "b"]

    def test_list_tags_unknown_repository(self, registry):
        with pytest.raises(NotFound):
            registry.list_tags(parse_reference(f"{REPO}:a"))

    def test_list_tags_unsupported(self):
        registry = FakeRegistry(supports_tag_listing=False)
        registry.seed(f"{REPO}:a")
        with pytest.raises(Unsupported):
            registry.list_tags(parse_reference(f"{REPO}:a"))

    def test_delete_tag_keeps_manifest(self, registry):
        image = registry.seed(f"{REPO}:v1")
        registry.delete(parse_reference(f"{REPO}:v1"))
        assert not registry.has_tag(f"{REPO}:v1")
        assert registry.has_manifest(f"{REPO}@{image.digest}")

    def test_delete_digest_removes_its_tags(self, registry):
        image = registry.seed(f"{REPO}:v1", manifest=make_manifest("x"))
        registry.seed(f"{REPO}:latest", manifest=make_manifest("x"))

        registry.delete(parse_reference(f"{REPO}@{image.digest}"))

        assert not registry.has_tag(f"{REPO}:v1")
        assert not registry.has_tag(f"{REPO}:latest")

    def test_delete_missing(self, registry):
        with pytest.raises(NotFound):
            registry.delete(parse_reference(f"{REPO}:v1"))

    def test_fail_on(self, registry):
        registry.seed(f"{REPO}:v1")
        registry.fail_on("get", f"{REPO}:v1", TransportError("boom"))
        with pytest.raises(TransportError):
            registry.get(parse_reference(f"{REPO}:v1"))

    def test_calls_recorded_in_order(self, registry):
        registry.seed(f"{REPO}:v1")
        registry.get(parse_reference(f"{REPO}:v1"))
        registry.list_tags(parse_reference(f"{REPO}:v1"))
        assert registry.calls == [("get", f"{REPO}:v1"), ("list_tags", REPO)]

    def test_clear(self, registry):
        registry.seed(f"{REPO}:v1")
        registry.clear()
        assert not registry.has_tag(f"{REPO}:v1")
        assert registry.calls == []
