"""Shared helpers for CLI commands."""

from __future__ import annotations

from typing import NoReturn

import typer

from monorel.core.errors import ErrorCode
from monorel.output.console import ConsoleProtocol
from monorel.services.release.errors import ReleaseError, exit_code_for


def exit_release_error(
    error: ReleaseError,
    console: ConsoleProtocol,
    *,
    code: ErrorCode | None = None,
) -> NoReturn:
    """Print a release error with its hint and exit with the mapped code."""
    console.error(error.message)
    if error.hint:
        console.hint(error.hint)
    raise typer.Exit(code=int(code if code is not None else exit_code_for(error)))


def exit_with_code(code: ErrorCode) -> NoReturn:
    raise typer.Exit(code=int(code))
