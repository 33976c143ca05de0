from __future__ import annotations

from pathlib import Path

import typer

from monorel.cli.commands._helpers import exit_release_error, exit_with_code
from monorel.cli.context import CLIContext, build_context, load_package_config
from monorel.core.config import SubmoduleConfig
from monorel.core.errors import ErrorCode
from monorel.core.result import Err
from monorel.output.console import Style
from monorel.output.release_log import ReleaseLog, default_log_path
from monorel.services.release.errors import exit_code_for
from monorel.services.release.model import ReleaseOptions, Stage
from monorel.services.release.orchestrator import ReleaseOrchestrator, ReleaseOutcome
from monorel.services.release.semver import resolve_target_version


def resolve_version(ctx: CLIContext, config: SubmoduleConfig, requested: str) -> str:
    """Concrete version for ``requested`` (a semver or ``patch``/``minor``/``major``)."""
    package_json = ctx.root / config.path / "package.json"
    resolved = resolve_target_version(requested.strip(), package_json=package_json)
    if isinstance(resolved, Err):
        exit_release_error(resolved.error, ctx.console)
    if resolved.value != requested:
        ctx.console.print(f"{requested} -> {resolved.value}", Style.DIM)
    return resolved.value


def release(
    package: str = typer.Argument(..., help="Package name (config: scripts/release-config/<package>.json)."),
    version: str = typer.Argument(..., help="Version to release (semver, or patch/minor/major)."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Build and package locally; publish nothing."),
    skip_tests: bool = typer.Option(False, "--skip-tests", help="Skip the test preflight check."),
    skip_build: bool = typer.Option(False, "--skip-build", help="Skip the build preflight check."),
    docker: bool = typer.Option(False, "--docker", help="Also build and publish the Docker image."),
    non_interactive: bool = typer.Option(False, "--non-interactive", help="Do not ask for confirmation."),
    skip_verify: bool = typer.Option(False, "--skip-verify", help="Skip post-publish verification."),
    log_file: Path | None = typer.Option(None, "--log-file", help="Release transcript path."),
) -> None:
    """Release a package: preflight, sync, build, publish, tag, GitHub release."""
    ctx = build_context()
    config = load_package_config(ctx, package)
    target = resolve_version(ctx, config, version)

    options = ReleaseOptions(
        dry_run=dry_run,
        skip_tests=skip_tests,
        skip_build=skip_build,
        include_docker=docker,
        skip_verify=skip_verify,
        non_interactive=non_interactive,
    )

    if not dry_run and not non_interactive:
        if not typer.confirm(f"Release {config.display_name} v{target}?", default=False):
            ctx.console.print("aborted", Style.DIM)
            exit_with_code(ErrorCode.USER_ERROR)

    log_path = log_file or default_log_path(ctx.runtime.releases_dir, config.name, target)
    log = ReleaseLog(log_path, secrets=ctx.secrets())
    run_ctx = ctx.with_log(log)

    orchestrator = ReleaseOrchestrator(
        run_ctx.runtime,
        config,
        options,
        console=run_ctx.console,
        log=log,
    )
    outcome = orchestrator.run(target)
    ctx.console.print(f"log: {log_path}", Style.DIM)
    _exit_for(ctx, outcome)


def _exit_for(ctx: CLIContext, outcome: ReleaseOutcome) -> None:
    if outcome.ok:
        return

    state = outcome.state
    if state.rollback_failures:
        ctx.console.newline()
        ctx.console.warning("rollback incomplete; undo these by hand:")
        for failure in state.rollback_failures:
            ctx.console.print(f"  - {failure}", Style.WARNING)
        exit_with_code(ErrorCode.ROLLBACK_INCOMPLETE)

    if state.stage is Stage.ROLLED_BACK:
        ctx.console.print("rolled back; safe to re-run once the problem is fixed", Style.DIM)

    error = outcome.error
    exit_with_code(exit_code_for(error) if error is not None else ErrorCode.USER_ERROR)
