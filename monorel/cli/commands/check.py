from __future__ import annotations

import typer

from monorel.cli.context import CLIContext, build_context, load_package_config
from monorel.core.errors import ErrorCode
from monorel.output.console import Style
from monorel.services.release.model import PreflightReport, ReleaseOptions
from monorel.services.release.preflight import PreflightValidator


def check(
    package: str = typer.Argument(..., help="Package name."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Skip credential checks."),
    skip_tests: bool = typer.Option(False, "--skip-tests", help="Skip running tests."),
    skip_build: bool = typer.Option(False, "--skip-build", help="Skip running the build."),
    docker: bool = typer.Option(False, "--docker", help="Include the Docker credential check."),
) -> None:
    """Run the release preflight checks only."""
    ctx = build_context()
    config = load_package_config(ctx, package)
    options = ReleaseOptions(
        dry_run=dry_run,
        skip_tests=skip_tests,
        skip_build=skip_build,
        include_docker=docker,
    )

    report = PreflightValidator(ctx.runtime).run_checks(config, options)
    ctx.console.print(f"root: {ctx.root}", Style.DIM)
    _print_report(ctx, config.display_name, report)

    if not report.passed:
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))


def _print_report(ctx: CLIContext, title: str, report: PreflightReport) -> None:
    console = ctx.console
    console.header(f"Preflight: {title}")
    for r in report.checks:
        style = Style.SUCCESS if r.passed else Style.ERROR
        console.print(f"{r.name}: {r.message}", style)
        if r.hint and not r.passed:
            console.print(f"hint: {r.hint}", Style.DIM)

    failed = len(report.failures)
    if failed:
        console.error(f"{failed} of {len(report.checks)} checks failed")
    else:
        console.success(f"all {len(report.checks)} checks passed")
