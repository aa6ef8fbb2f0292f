"""
Error mapping and CLI utilities.

Provides centralized exception-to-exit-code mapping and a CLI command wrapper
so every Typer command handles errors the same way.
"""
from __future__ import annotations

import logging
from typing import Callable, TypeVar

import typer

T = TypeVar('T')

logger = logging.getLogger(__name__)

# Keyed by class name so pydantic's ValidationError maps without importing it
EXIT_CODES = {
    "SourceNotFound": 1,
    "NotFound": 1,
    "InvalidReference": 2,
    "ValidationError": 2,
    "ValueError": 2,
    "TransportError": 3,
    "AuthError": 3,
    "RateLimited": 3,
    "DigestMismatch": 3,
    "Unsupported": 3,
    "DriftDetected": 4,
    "PartialCleanup": 5,
    "OperationCancelled": 6,
}


def exit_code_for(exc: BaseException) -> int:
    """
    Map exception to standardized exit code.

    Returns:
    - 0: Success
    - 1: Source or destination not found
    - 2: Invalid reference or input
    - 3: Registry/transport error, or unknown error
    - 4: Source drifted; the destination has to be replaced
    - 5: Tag deleted but manifest cleanup incomplete
    - 6: Operation cancelled

    Args:
        exc: Exception to map

    Returns:
        Exit code (1-6, with 3 as fallback for unknown exceptions)
    """
    return EXIT_CODES.get(type(exc).__name__, 3)


def run_and_exit(func: Callable[[], T]) -> T:
    """
    Unified error wrapper for CLI commands.

    Executes the given function and maps any exception to an exit code using
    typer.Exit. The error message goes to stderr.

    Args:
        func: Function to execute

    Returns:
        Function result if successful

    Raises:
        typer.Exit: With appropriate exit code if function raises exception
    """
    try:
        return func()
    except typer.Exit:
        raise
    except Exception as e:
        logger.debug("Command failed", exc_info=True)
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=exit_code_for(e)) from e
