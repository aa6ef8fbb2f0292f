"""
Human-readable and JSON output formatting.

Centralizes all CLI output so commands stay thin. Human output goes through
rich; JSON output is plain text on stdout for scripting.
"""
from __future__ import annotations

import json
from dataclasses import asdict
from typing import Optional

import typer
from rich.console import Console
from rich.table import Table

from ..drift import DriftResult
from ..gc import DeleteResult, GcDecision
from ..models import SyncRecord

# soft_wrap keeps references on one line regardless of terminal width
_console = Console(soft_wrap=True, emoji=False)

_DECISION_TEXT = {
    GcDecision.PURGE: "no other tag references it",
    GcDecision.KEEP_SHARED: "still tagged",
    GcDecision.SKIP_UNSUPPORTED: "registry cannot list tags, manifest left in place",
    GcDecision.SKIP_NO_IDENTITY: "no identity recorded, manifest not checked",
    GcDecision.SKIP_OTHER_REPOSITORY: "identity is in another repository, manifest not checked",
    GcDecision.SKIP_ALREADY_DELETED: "tag was already absent and the check did not finish, manifest left in place",
    GcDecision.INCOMPLETE:"tag scan failed, manual cleanup may be required",
}


def _echo_json(payload: dict) -> None:
    typer.echo(json.dumps(payload, indent=2, sort_keys=True))


def print_record(record: Optional[SyncRecord], json_output: bool = False,
                 verbose: bool = False) -> None:
    """
    Print a sync record.

    Args:
        record: Record to display; None means the destination is gone
        json_output: Print JSON instead of formatted text
        verbose: Also show the source side of the record
    """
    if json_output:
        typer.echo("null" if record is None else record.model_dump_json(indent=2))
        return

    if record is None:
        _console.print("[yellow]Destination does not exist[/]")
        return

    _console.print(f"[bold]Destination:[/] {record.destination}")
    if record.exists:
        _console.print(f"[bold]Identity:[/] {record.id}")
    else:
        _console.print("[bold]Identity:[/] [yellow]<gone>[/]")
    if verbose:
        _console.print(f"[bold]Source:[/] {record.source}")
        _console.print(f"[bold]Source digest:[/] [dim]{record.source_digest or '<unknown>'}[/]")


def print_identity(identity: str, json_output: bool = False) -> None:
    if json_output:
        _echo_json({"identity": identity})
        return
    _console.print(identity, highlight=False)


def print_drift(source: str, result: DriftResult, json_output: bool = False) -> None:
    """Print the outcome of a drift check."""
    if json_output:
        _echo_json({"source": source, **asdict(result)})
        return

    if result.drifted:
        _console.print(f"[bold yellow]Drifted:[/] {source}")
        _console.print(f"  previous: [dim]{result.previous_digest or '<none>'}[/]")
        _console.print(f"  current:  {result.new_digest}")
    else:
        _console.print(f"[bold green]Unchanged:[/] {source} ({result.new_digest})")


def print_delete_result(result: DeleteResult, json_output: bool = False,
                        verbose: bool = False) -> None:
    """
    Print what a delete removed and why.

    Args:
        result: Outcome of the garbage-collected delete
        json_output: Print JSON instead of formatted text
        verbose: Show the full decision table
    """
    if json_output:
        payload = asdict(result)
        payload["decision"] = result.decision.value
        payload["skipped_tags"] = list(result.skipped_tags)
        _echo_json(payload)
        return

    tag_state = "deleted" if result.tag_deleted else "already absent"
    _console.print(f"[bold]Tag:[/] {result.destination} {tag_state}")

    reason = _DECISION_TEXT[result.decision]
    if result.decision is GcDecision.KEEP_SHARED:
        reason = f"{reason} as '{result.shared_with}'"
    if result.manifest_deleted:
        _console.print(f"[bold]Manifest:[/] {result.identity} deleted ({reason})")
    elif result.decision is GcDecision.PURGE:
        _console.print(f"[bold]Manifest:[/] {result.identity} already absent")
    else:
        _console.print(f"[bold]Manifest:[/] kept ({reason})")

    if not result.cleanup_complete:
        _console.print("[bold red]Cleanup incomplete:[/] manual cleanup may be required")

    if verbose:
        table = Table(title="Garbage collection")
        table.add_column("Field", style="cyan")
        table.add_column("Value", style="yellow")
        table.add_row("decision", result.decision.value)
        table.add_row("identity", result.identity or "<none>")
        table.add_row("skipped tags", ", ".join(result.skipped_tags) or "-")
        _console.print(table)
