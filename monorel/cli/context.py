from __future__ import annotations

import os
from dataclasses import dataclass, replace
from pathlib import Path

import typer

from monorel.core.config import SubmoduleConfig, load_config
from monorel.core.context import RuntimeContext, detect_project_root
from monorel.core.errors import ErrorCode
from monorel.core.result import Err
from monorel.output.console import ConsoleProtocol, RichConsole, Style
from monorel.output.release_log import LoggingRunner, ReleaseLog

# Env values masked in release logs.
SECRET_ENV_VARS = ("VSCE_PAT", "VSCODE_MARKETPLACE_TOKEN", "GITHUB_TOKEN", "GH_TOKEN", "NPM_TOKEN")


@dataclass(frozen=True, slots=True)
class CLIContext:
    runtime: RuntimeContext
    console: ConsoleProtocol

    @property
    def root(self) -> Path:
        return self.runtime.project_root

    def with_log(self, log: ReleaseLog) -> CLIContext:
        """Same context, with every command also recorded in ``log``."""
        runner = LoggingRunner(self.runtime.runner, log)
        return replace(self, runtime=replace(self.runtime, runner=runner))

    def secrets(self) -> list[str]:
        return [v for name in SECRET_ENV_VARS if (v := self.runtime.env.get(name))]


def build_context() -> CLIContext:
    root_result = detect_project_root(explicit=None, env=os.environ, cwd=Path.cwd())
    if isinstance(root_result, Err):
        typer.echo(f"error: {root_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))

    return CLIContext(
        runtime=RuntimeContext.from_environment(root_result.value),
        console=RichConsole(),
    )


def load_package_config(ctx: CLIContext, package: str) -> SubmoduleConfig:
    result = load_config(package, config_dir=ctx.runtime.config_dir, env=ctx.runtime.env)
    if isinstance(result, Err):
        error = result.error
        ctx.console.error(error.message)
        for problem in error.problems:
            ctx.console.print(f"  - {problem}", Style.DIM)
        if error.path is not None:
            ctx.console.hint(f"edit {error.path}")
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))
    return result.value
