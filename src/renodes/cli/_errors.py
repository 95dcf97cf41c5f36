"""Map engine errors to CLI messages and exit codes."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import typer

from renodes.cli import _exitcodes as ec
from renodes.cli._output import print_error
from renodes.errors import (
    BrokenChainError,
    ModelConflictError,
    ModelNotFoundError,
    ModelStateUnknownError,
    NotFoundError,
    PartialFailureError,
    RenodesError,
    StorageBackendError,
    WriteConflictError,
)


def exit_code_for(err: Exception) -> int:
    if isinstance(err, (ModelNotFoundError, NotFoundError)):
        return ec.NOT_FOUND
    if isinstance(err, (ModelStateUnknownError, PartialFailureError)):
        return ec.STATE_UNKNOWN
    if isinstance(err, (ModelConflictError, WriteConflictError)):
        return ec.WRITE_CONFLICT
    if isinstance(err, BrokenChainError):
        return ec.CHAIN_BROKEN
    if isinstance(err, StorageBackendError):
        return ec.DATABASE_ERROR
    if isinstance(err, ValueError):
        return ec.USAGE_ERROR
    if isinstance(err, RenodesError):
        return ec.EXECUTION_FAILURE
    return ec.GENERAL_ERROR


@contextmanager
def exit_on_error() -> Iterator[None]:
    """Report an engine error on stderr and exit with its code."""
    try:
        yield
    except typer.Exit:
        raise
    except (RenodesError, ValueError) as e:
        print_error(str(e))
        raise typer.Exit(exit_code_for(e))
