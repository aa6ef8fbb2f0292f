"""
imagesync CLI

Lifecycle verbs on top of the Operations facade:
- sync: Mirror a source image to a destination tag
- read: Show the current identity of a destination
- drift: Check whether a source changed since the last sync
- update: Accept a new source reference without copying
- delete: Delete a destination tag and garbage-collect its manifest
- identity: Print the canonical identity of a reference
"""
from __future__ import annotations

import logging
import signal
import threading
from contextlib import contextmanager
from typing import Iterator, Optional

import typer

from .cli_context import CLIContext
from .errors import DriftDetected
from .models import SyncRecord
from .operations import run_and_exit
from .operations.printers import print_delete_result, print_drift, print_identity, print_record

app = typer.Typer(name="imagesync", help="Mirror OCI images between registries")


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


@contextmanager
def _cancel_on_interrupt() -> Iterator[threading.Event]:
    """Turn the first Ctrl-C into a cancellation request instead of an abort."""
    cancel = threading.Event()
    if threading.current_thread() is not threading.main_thread():
        yield cancel
        return

    def _handler(signum, frame):
        cancel.set()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield cancel
    finally:
        signal.signal(signal.SIGINT, previous)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show detailed output and debug logs"),
    json_output: bool = typer.Option(False, "--json", help="Print machine-readable JSON"),
    gateway: Optional[str] = typer.Option(None, "--gateway", envvar="IMAGESYNC_GATEWAY_IMPL", hidden=True, help="Gateway override for testing"),
) -> None:
    """Mirror OCI images between registries."""
    _configure_logging(verbose)

    def _init() -> None:
        if ctx.obj is None:
            ctx.obj = CLIContext.from_env(gateway_impl=gateway)
        ctx.obj.verbose = verbose
        ctx.obj.json_output = json_output

    run_and_exit(_init)


@app.command()
def sync(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="Tag- or digest-qualified source image"),
    destination: str = typer.Argument(..., help="Tag-qualified destination"),
) -> None:
    """Copy SOURCE to DESTINATION and print the resulting identity."""
    context: CLIContext = ctx.obj

    def _sync() -> None:
        record = context.operations().create(source, destination)
        print_record(record, json_output=context.json_output, verbose=context.verbose)

    run_and_exit(_sync)


@app.command()
def read(
    ctx: typer.Context,
    destination: str = typer.Argument(..., help="Destination to inspect"),
    source: Optional[str] = typer.Option(None, "--source", help="Source recorded for the destination"),
    source_digest: str = typer.Option("", "--source-digest", help="Source digest recorded at the last sync"),
) -> None:
    """Show the current identity of DESTINATION."""
    context: CLIContext = ctx.obj

    def _read() -> None:
        record = SyncRecord(source=source or destination, destination=destination,
                            source_digest=source_digest)
        print_record(context.operations().read(record),
                     json_output=context.json_output, verbose=context.verbose)

    run_and_exit(_read)


@app.command()
def drift(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="Source image to check"),
    digest: str = typer.Option(..., "--digest", help="Digest or identity recorded at the last sync"),
    fail_on_drift: bool = typer.Option(False, "--fail-on-drift", help="Exit with code 4 when the source drifted"),
) -> None:
    """Check whether SOURCE still resolves to DIGEST."""
    context: CLIContext = ctx.obj

    def _drift() -> None:
        result = context.operations().drift(source, digest)
        print_drift(source, result, json_output=context.json_output)
        if result.drifted and fail_on_drift:
            raise DriftDetected(source, result.previous_digest, result.new_digest)

    run_and_exit(_drift)


@app.command()
def update(
    ctx: typer.Context,
    source: str = typer.Argument(..., help="New source reference"),
    destination: str = typer.Argument(..., help="Destination that was synced"),
    identity: str = typer.Option("", "--id", help="Identity recorded for the destination"),
    source_digest: str = typer.Option(..., "--source-digest", help="Source digest recorded at the last sync"),
    replace: bool = typer.Option(False, "--replace", help="Delete and resync the destination if the source drifted"),
) -> None:
    """
    Accept a new SOURCE reference for DESTINATION.

    Without --replace a changed source exits with code 4 and nothing is
    touched.
    """
    context: CLIContext = ctx.obj

    def _update() -> None:
        ops = context.operations()
        record = SyncRecord(source=source, destination=destination,
                            source_digest=source_digest, id=identity)
        try:
            result = ops.update(record, source)
        except DriftDetected:
            if not replace:
                raise
            with _cancel_on_interrupt() as cancel:
                result = ops.replace(record, source, cancel=cancel)
        print_record(result, json_output=context.json_output, verbose=context.verbose)

    run_and_exit(_update)


@app.command()
def delete(
    ctx: typer.Context,
    destination: str = typer.Argument(..., help="Destination tag to delete"),
    identity: str = typer.Option("", "--id", help="Identity recorded for the destination"),
    strict: bool = typer.Option(False, "--strict", help="Exit with code 5 if manifest cleanup is incomplete"),
) -> None:
    """Delete DESTINATION and its manifest if no other tag references it."""
    context: CLIContext = ctx.obj

    def _delete() -> None:
        record = SyncRecord(source=destination, destination=destination, id=identity)
        with _cancel_on_interrupt() as cancel:
            result = context.operations(strict_cleanup=strict).delete(record, cancel=cancel)
        print_delete_result(result, json_output=context.json_output, verbose=context.verbose)

    run_and_exit(_delete)


@app.command("identity")
def identity_cmd(
    ctx: typer.Context,
    reference: str = typer.Argument(..., help="Image reference"),
) -> None:
    """Print the canonical identity REFERENCE resolves to."""
    context: CLIContext = ctx.obj

    def _identity() -> None:
        print_identity(context.operations().identity(reference), json_output=context.json_output)

    run_and_exit(_identity)


if __name__ == "__main__":
    app()
