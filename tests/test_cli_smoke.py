"""
CLI smoke tests with the fake registry.

Tests command wiring, output formats and exit codes without a real
registry. A prepared CLIContext is passed as the Typer ``obj`` so every
invocation of a test shares one FakeRegistry.
"""
from __future__ import annotations

import json

import pytest
from typer.testing import CliRunner

from imagesync.cli import app
from imagesync.cli_context import CLIContext
from imagesync.storage.fakes import FakeRegistry, make_manifest

SRC = "source.example.com/team/app:v1"
DEST = "localhost:5000/mirror/app:v1"


class TestCLISmokeTests:
    """Smoke tests for CLI commands against a seeded fake registry."""

    @pytest.fixture(autouse=True)
    def setup(self, settings):
        self.runner = CliRunner()
        self.registry = FakeRegistry()
        self.context = CLIContext(settings=settings, _gateway=self.registry)

    def invoke(self, *args):
        return self.runner.invoke(app, list(args), obj=self.context)

    def test_sync_command(self):
        image = self.registry.seed(SRC)

        result = self.invoke("sync", SRC, DEST)

        assert result.exit_code == 0
        assert f"localhost:5000/mirror/app@{image.digest}" in result.stdout
        assert self.registry.has_tag(DEST)

    def test_sync_json(self):
        image = self.registry.seed(SRC)

        result = self.invoke("--json", "sync", SRC, DEST)

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["id"] == f"localhost:5000/mirror/app@{image.digest}"
        assert data["source_digest"] == image.digest

    def test_sync_missing_source_exit_code(self):
        result = self.invoke("sync", SRC, DEST)
        assert result.exit_code == 1

    def test_sync_invalid_reference_exit_code(self):
        result = self.invoke("sync", "Not A Ref", DEST)
        assert result.exit_code == 2

    def test_read_command(self):
        image = self.registry.seed(DEST)

        result = self.invoke("read", DEST)

        assert result.exit_code == 0
        assert f"Identity: localhost:5000/mirror/app@{image.digest}" in result.stdout

    def test_read_missing_json(self):
        result = self.invoke("--json", "read", DEST)
        assert result.exit_code == 0
        assert result.stdout.strip() == "null"

    def test_drift_unchanged(self):
        image = self.registry.seed(SRC)

        result = self.invoke("drift", SRC, "--digest", image.digest)

        assert result.exit_code == 0
        assert "Unchanged" in result.stdout

    def test_drift_changed_fails_when_asked(self):
        old = self.registry.seed(SRC, manifest=make_manifest("old"))
        self.registry.seed(SRC, manifest=make_manifest("new"))

        result = self.invoke("drift", SRC, "--digest", old.digest, "--fail-on-drift")

        assert result.exit_code == 4
        assert "Drifted" in result.stdout

    def test_drift_json(self):
        old = self.registry.seed(SRC, manifest=make_manifest("old"))
        new = self.registry.seed(SRC, manifest=make_manifest("new"))

        result = self.invoke("--json", "drift", SRC, "--digest", old.digest)

        data = json.loads(result.stdout)
        assert data == {
            "source": SRC,
            "drifted": True,
            "new_digest": new.digest,
            "previous_digest": old.digest,
        }

    def test_update_drift_without_replace(self):
        old = self.registry.seed(SRC, manifest=make_manifest("old"))
        self.invoke("sync", SRC, DEST)
        self.registry.seed(SRC, manifest=make_manifest("new"))

        result = self.invoke("update", SRC, DEST, "--source-digest", old.digest)

        assert result.exit_code == 4
        assert self.registry.has_manifest(f"localhost:5000/mirror/app@{old.digest}")

    def test_update_drift_with_replace(self):
        old = self.registry.seed(SRC, manifest=make_manifest("old"))
        self.invoke("sync", SRC, DEST)
        new = self.registry.seed(SRC, manifest=make_manifest("new"))

        result = self.invoke(
            "update", SRC, DEST,
            "--source-digest", old.digest,
            "--id", f"localhost:5000/mirror/app@{old.digest}",
            "--replace",
        )

        assert result.exit_code == 0
        assert f"localhost:5000/mirror/app@{new.digest}" in result.stdout
        assert not self.registry.has_manifest(f"localhost:5000/mirror/app@{old.digest}")

    def test_delete_command(self):
        image = self.registry.seed(DEST)
        identity = f"localhost:5000/mirror/app@{image.digest}"

        result = self.invoke("delete", DEST, "--id", identity)

        assert result.exit_code == 0
        assert "deleted" in result.stdout
        assert not self.registry.has_manifest(identity)

    def test_delete_json_keeps_shared(self):
        image = self.registry.seed(DEST, manifest=make_manifest("app"))
        self.registry.seed("localhost:5000/mirror/app:latest", manifest=make_manifest("app"))
        identity = f"localhost:5000/mirror/app@{image.digest}"

        result = self.invoke("--json", "delete", DEST, "--id", identity)

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["decision"] == "keep_shared"
        assert data["shared_with"] == "latest"
        assert data["cleanup_complete"] is True

    def test_delete_strict_partial_cleanup_exit_code(self):
        from imagesync.errors import TransportError

        image = self.registry.seed(DEST)
        self.registry.fail_on("list_tags", DEST, TransportError("503"))

        result = self.invoke("delete", DEST, "--id", f"localhost:5000/mirror/app@{image.digest}", "--strict")

        assert result.exit_code == 5

    def test_identity_command(self):
        image = self.registry.seed(DEST)

        result = self.invoke("identity", DEST)

        assert result.exit_code == 0
        assert result.stdout.strip() == f"localhost:5000/mirror/app@{image.digest}"


class TestCLIHelp:
    """Test CLI help output."""

    def test_main_help(self):
        result = CliRunner().invoke(app, ["--help"])
        assert result.exit_code == 0
        for command in ("sync", "read", "drift", "update", "delete", "identity"):
            assert command in result.stdout

    def test_gateway_option_hidden(self):
        result = CliRunner().invoke(app, ["--help"])
        assert "--gateway" not in result.stdout

    def test_fake_gateway_from_option(self):
        """A fresh fake registry is empty, so reads find nothing."""
        result = CliRunner().invoke(app, ["--gateway", "fake", "--json", "read", DEST])
        assert result.exit_code == 0
        assert result.stdout.strip() == "null"
