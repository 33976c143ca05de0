from __future__ import annotations

import typer

from monorel.cli.commands._helpers import exit_release_error, exit_with_code
from monorel.cli.commands.release_cmd import resolve_version
from monorel.cli.context import build_context, load_package_config
from monorel.core.config import list_available_configs
from monorel.core.errors import ErrorCode
from monorel.core.result import Err
from monorel.output.console import Style
from monorel.services.release.version_sync import VersionSyncEngine


def sync(
    package: str = typer.Argument(..., help="Package name."),
    version: str = typer.Argument(..., help="Target version (semver, or patch/minor/major)."),
) -> None:
    """Write a version into every configured file, without releasing."""
    ctx = build_context()
    config = load_package_config(ctx, package)
    target = resolve_version(ctx, config, version)

    engine = VersionSyncEngine(ctx.root)
    result = engine.sync(config, target)
    if isinstance(result, Err):
        exit_release_error(result.error, ctx.console)

    report = result.value
    for path in report.files_updated:
        ctx.console.success(f"updated {path}")
    for problem in report.errors:
        ctx.console.error(problem)

    if report.errors:
        exit_with_code(ErrorCode.USER_ERROR)
    if not report.files_updated:
        ctx.console.print(f"all files already at {target}", Style.DIM)

    if not engine.verify(config, target):
        ctx.console.error(f"{target} missing from at least one file after sync")
        exit_with_code(ErrorCode.USER_ERROR)


def verify_versions(
    package: str = typer.Argument(..., help="Package name."),
    version: str = typer.Argument(..., help="Version every file must contain."),
) -> None:
    """Check that every configured file contains a version."""
    ctx = build_context()
    config = load_package_config(ctx, package)

    engine = VersionSyncEngine(ctx.root)
    if engine.verify(config, version):
        ctx.console.success(f"{len(config.version_sync)} file(s) at {version}")
        return

    ctx.console.error(f"version {version} not found in every file")
    for entry in config.version_sync:
        ctx.console.print(f"  - {entry.path}", Style.DIM)
    exit_with_code(ErrorCode.USER_ERROR)


def configs() -> None:
    """List packages that have a release config."""
    ctx = build_context()
    names = list_available_configs(ctx.runtime.config_dir)
    if not names:
        ctx.console.warning(f"no release configs in {ctx.runtime.config_dir}")
        return
    for name in names:
        ctx.console.print(name)
