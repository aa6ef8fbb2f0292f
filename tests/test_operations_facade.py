"""
Test Operations facade wiring.

Validates that the facade maps lifecycle verbs onto the sync engine and the
garbage collector, and applies its cleanup policy.
"""
from __future__ import annotations

import threading
from unittest.mock import patch

import pytest
from pydantic import ValidationError

from imagesync.errors import DriftDetected, OperationCancelled, PartialCleanup, TransportError
from imagesync.gc import GcDecision
from imagesync.models import SyncRecord
from imagesync.operations import Operations, OpsConfig
from imagesync.storage.fakes import FakeRegistry, make_manifest

SRC = "source.example.com/team/app:v1"
DEST = "localhost:5000/mirror/app:v1"


@pytest.fixture
def ops(settings, registry):
    return Operations(config=OpsConfig(), gateway=registry, settings=settings)


class TestOperationsFacade:
    """Test Operations facade orchestration."""

    def test_facade_initialization(self, settings, registry):
        config = OpsConfig(strict_cleanup=True)
        ops = Operations(config=config, gateway=registry, settings=settings)
        assert ops.cfg is config
        assert ops.gateway is registry
        assert ops.settings is settings

    def test_gateway_created_from_settings(self, settings, monkeypatch):
        monkeypatch.setenv("IMAGESYNC_GATEWAY_IMPL", "fake")
        ops = Operations(config=OpsConfig(), settings=settings)
        assert isinstance(ops.gateway, FakeRegistry)

    def test_create_returns_record(self, ops, registry):
        image = registry.seed(SRC)

        record = ops.create(SRC, DEST)

        assert record.source == SRC
        assert record.destination == DEST
        assert record.source_digest == image.digest
        assert record.id == f"localhost:5000/mirror/app@{image.digest}"
        assert record.digest == image.digest

    def test_read_refreshes_identity(self, ops, registry):
        registry.seed(SRC)
        record = ops.create(SRC, DEST)
        new = registry.seed(DEST, manifest=make_manifest("retagged"))

        refreshed = ops.read(record)

        assert refreshed.id == f"localhost:5000/mirror/app@{new.digest}"
        assert refreshed.source_digest == record.source_digest

    def test_read_missing_destination(self, ops):
        record = SyncRecord(source=SRC, destination=DEST)
        assert ops.read(record) is None

    def test_update_same_content(self, ops, registry):
        image = registry.seed(SRC)
        registry.seed("source.example.com/team/app:stable", manifest=image.manifest)
        record = ops.create(SRC, DEST)

        updated = ops.update(record, "source.example.com/team/app:stable")

        assert updated.source == "source.example.com/team/app:stable"
        assert updated.id == record.id

    def test_update_drifted(self, ops, registry):
        registry.seed(SRC, manifest=make_manifest("old"))
        record = ops.create(SRC, DEST)
        registry.seed(SRC, manifest=make_manifest("new"))

        with pytest.raises(DriftDetected):
            ops.update(record, SRC)

    def test_replace_deletes_then_creates(self, ops, registry):
        old = registry.seed(SRC, manifest=make_manifest("old"))
        record = ops.create(SRC, DEST)
        new = registry.seed(SRC, manifest=make_manifest("new"))

        replaced = ops.replace(record, SRC)

        assert replaced.source_digest == new.digest
        assert not registry.has_manifest(f"localhost:5000/mirror/app@{old.digest}")
        assert registry.has_tag(DEST)
        mutations = [op for op, _ in registry.calls if op in ("delete", "write")]
        assert mutations == ["write", "delete", "delete", "write"]

    def test_delete_purges(self, ops, registry):
        registry.seed(SRC)
        record = ops.create(SRC, DEST)

        result = ops.delete(record)

        assert result.decision is GcDecision.PURGE
        assert result.manifest_deleted is True
        assert result.cleanup_complete is True

    def test_delete_partial_cleanup_downgraded(self, ops, registry):
        registry.seed(SRC)
        record = ops.create(SRC, DEST)
        registry.fail_on("list_tags", DEST, TransportError("503"))

        with patch("imagesync.operations.facade.logger") as mock_logger:
            result = ops.delete(record)

        assert result.cleanup_complete is False
        assert result.tag_deleted is True
        assert result.decision is GcDecision.INCOMPLETE
        mock_logger.warning.assert_called_once()
        assert registry.has_manifest(record.id)

    def test_delete_partial_cleanup_strict(self, settings, registry):
        ops = Operations(config=OpsConfig(strict_cleanup=True), gateway=registry, settings=settings)
        registry.seed(SRC)
        record = ops.create(SRC, DEST)
        registry.fail_on("list_tags", DEST, TransportError("503"))

        with pytest.raises(PartialCleanup):
            ops.delete(record)

    def test_delete_already_absent_strict(self, settings, registry):
        ops = Operations(config=OpsConfig(strict_cleanup=True), gateway=registry, settings=settings)
        registry.seed(SRC)
        record = ops.create(SRC, DEST)
        ops.delete(record)
        registry.fail_on("list_tags", DEST, TransportError("503"))

        result = ops.delete(record)

        assert result.tag_deleted is False
        assert result.decision is GcDecision.SKIP_ALREADY_DELETED
        assert result.cleanup_complete is True

    def test_delete_cancelled(self, ops, registry):
        registry.seed(SRC)
        record = ops.create(SRC, DEST)
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelled):
            ops.delete(record, cancel=cancel)

        assert registry.has_tag(DEST)

    def test_drift(self, ops, registry):
        image = registry.seed(SRC)
        assert ops.drift(SRC, image.digest).drifted is False

    def test_identity(self, ops, registry):
        image = registry.seed(DEST)
        assert ops.identity(DEST) == f"localhost:5000/mirror/app@{image.digest}"

    def test_default_registry_from_settings(self, ops, registry):
        image = registry.seed(DEST)
        assert ops.identity("mirror/app:v1") == f"localhost:5000/mirror/app@{image.digest}"


class TestSyncRecord:
    """Test SyncRecord validation."""

    def test_rejects_untagged_destination(self):
        with pytest.raises(ValidationError):
            SyncRecord(source=SRC, destination="localhost:5000/mirror/app")

    def test_rejects_digest_destination(self):
        with pytest.raises(ValidationError, match="tag-qualified"):
            SyncRecord(source=SRC, destination="localhost:5000/mirror/app:v1@sha256:" + "a" * 64)

    def test_rejects_malformed_source_digest(self):
        with pytest.raises(ValidationError):
            SyncRecord(source=SRC, destination=DEST, source_digest="abc")

    def test_digest_and_exists(self):
        record = SyncRecord(source=SRC, destination=DEST)
        assert record.exists is False
        assert record.digest == ""

    def test_json_round_trip(self):
        record = SyncRecord(source=SRC, destination=DEST,
                            source_digest="sha256:" + "a" * 64,
                            id="localhost:5000/mirror/app@sha256:" + "a" * 64)
        data = record.model_dump()
        assert data["digest"] == "sha256:" + "a" * 64
        data.pop("digest")
        assert SyncRecord.model_validate(data) == record
