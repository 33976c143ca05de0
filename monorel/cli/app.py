from __future__ import annotations

import os
from pathlib import Path

import typer

from monorel import __version__
from monorel.cli.commands.check import check
from monorel.cli.commands.release_cmd import release
from monorel.cli.commands.sync import configs, sync, verify_versions
from monorel.core.context import ROOT_ENV_VAR
from monorel.core.errors import ErrorCode


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# Commands
app.command()(release)
app.command()(check)
app.command()(sync)
app.command("verify-versions")(verify_versions)
app.command()(configs)


def _print_version(value: bool) -> None:
    if value:
        typer.echo(__version__)
        raise typer.Exit(code=0)


@app.callback()
def _main(  # pyright: ignore[reportUnusedFunction]
    version: bool = typer.Option(
        False,
        "--version",
        help="Show version and exit.",
        callback=_print_version,
        is_eager=True,
    ),
    root: Path | None = typer.Option(
        None,
        "--root",
        help="Monorepo root (overrides auto detection)",
    ),
) -> None:
    del version
    if root is not None:
        try:
            resolved = root.expanduser().resolve()
        except OSError as e:
            typer.echo(f"error: invalid --root: {e}", err=True)
            raise typer.Exit(code=int(ErrorCode.USER_ERROR))

        if not resolved.is_dir():
            typer.echo(f"error: --root '{resolved}' is not a directory", err=True)
            raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

        os.environ[ROOT_ENV_VAR] = str(resolved)


def main() -> None:
    app()
