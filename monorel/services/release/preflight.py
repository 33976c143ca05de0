"""Pre-release checks.

Validates that a release can start:
- working tree is clean, apart from the tool's own release output
- current branch is a release branch
- local branch matches its upstream
- tests pass (skippable)
- build succeeds (skippable)
- registry and host credentials are present (skipped in dry-run)
- docker credentials (only when docker publishing is requested)

Every included check runs even after an earlier one fails, so one run
reports every problem at once.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from dataclasses import dataclass

from monorel.core.config import SubmoduleConfig
from monorel.core.context import RuntimeContext
from monorel.core.result import Err, Ok
from monorel.core.structured import as_str_dict
from monorel.git.repository import Repository, StatusEntry
from monorel.platform.process import run, split_command
from monorel.services.release.model import (
    PreflightReport,
    ReleaseOptions,
    StageResult,
    docker_enabled,
)

__all__ = ["CHECK_NAMES", "PreflightValidator"]

CHECK_NAMES = (
    "git-status",
    "branch",
    "remote-sync",
    "tests",
    "build",
    "npm-auth",
    "vscode-token",
    "github-token",
    "docker-auth",
)

VSCODE_TOKEN_VARS = ("VSCE_PAT", "VSCODE_MARKETPLACE_TOKEN")
GITHUB_TOKEN_VARS = ("GITHUB_TOKEN", "GH_TOKEN")


def _tail(text: str, limit: int = 3) -> str:
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    return " | ".join(lines[-limit:])


@dataclass(frozen=True, slots=True)
class PreflightValidator:
    """Run the preflight checks of one package.

    Attributes:
        ctx: Runtime context (project root, env snapshot, runner)
    """

    ctx: RuntimeContext

    def run_checks(self, config: SubmoduleConfig, options: ReleaseOptions) -> PreflightReport:
        checks = [check() for check in self.included_checks(config, options)]
        return PreflightReport(passed=all(c.passed for c in checks), checks=tuple(checks))

    def included_checks(
        self, config: SubmoduleConfig, options: ReleaseOptions
    ) -> list[Callable[[], StageResult]]:
        """Checks selected by ``options``, in report order."""
        repo = Repository(self.ctx.project_root, self.ctx.runner)

        checks: list[Callable[[], StageResult]] = [
            lambda: self.check_git_status(repo, config),
            lambda: self.check_branch(repo, config),
            lambda: self.check_remote_sync(repo),
        ]
        if not options.skip_tests:
            checks.append(lambda: self.check_command("tests", config.build.test_command))
        if not options.skip_build:
            checks.append(lambda: self.check_command("build", config.build.command))

        if options.dry_run:
            return checks

        if config.artifacts.npm:
            checks.append(self.check_npm_auth)
        if config.artifacts.vscode:
            checks.append(self.check_vscode_token)
        checks.append(self.check_github_token)
        if docker_enabled(config, options):
            checks.append(self.check_docker_auth)
        return checks

    def check_git_status(self, repo: Repository, config: SubmoduleConfig) -> StageResult:
        match repo.status():
            case Err(e):
                return StageResult.failed("git-status", f"cannot read status: {e.message}")
            case Ok(status):
                entries = [e for e in status.entries if not self._is_release_output(e, config)]
                if not entries:
                    return StageResult.ok("git-status", "working tree clean")
                files = ", ".join(f"{e.pretty_xy()} {e.path}" for e in entries[:5])
                more = f" (+{len(entries) - 5} more)" if len(entries) > 5 else ""
                return StageResult.failed(
                    "git-status",
                    f"uncommitted changes: {files}{more}",
                    hint="commit or stash your changes",
                )

    def _is_release_output(self, entry: StatusEntry, config: SubmoduleConfig) -> bool:
        """Manifests, logs, binaries and ``npm pack`` tarballs written by earlier runs."""
        path = entry.path.rstrip("/")
        root = self.ctx.project_root
        for out_dir in (self.ctx.releases_dir, self.ctx.binaries_dir):
            prefix = out_dir.relative_to(root).as_posix()
            if path == prefix or path.startswith(f"{prefix}/"):
                return True
        return entry.is_untracked and path.startswith(f"{config.path}/") and path.endswith(".tgz")

    def check_branch(self, repo: Repository, config: SubmoduleConfig) -> StageResult:
        branch = repo.current_branch()
        allowed = ", ".join(config.release_branches)
        if branch is None:
            return StageResult.failed(
                "branch", "detached HEAD", hint=f"check out one of: {allowed}"
            )
        if branch in config.release_branches:
            return StageResult.ok("branch", f"on {branch}")
        return StageResult.failed(
            "branch",
            f"on {branch}, releases are made from: {allowed}",
            hint=f"git checkout {config.release_branches[0]}",
        )

    def check_remote_sync(self, repo: Repository) -> StageResult:
        fetched = repo.fetch()
        if isinstance(fetched, Err):
            return StageResult.failed(
                "remote-sync",
                f"git fetch failed: {fetched.error.message}",
                hint="check network access and remote configuration",
            )

        match repo.status():
            case Err(e):
                return StageResult.failed("remote-sync", f"cannot read status: {e.message}")
            case Ok(status):
                if status.upstream is None:
                    return StageResult.failed(
                        "remote-sync",
                        f"{status.branch or 'branch'} has no upstream",
                        hint=f"git push -u origin {status.branch or 'main'}",
                    )
                if status.ahead or status.behind:
                    return StageResult.failed(
                        "remote-sync",
                        f"ahead {status.ahead}, behind {status.behind} of {status.upstream}",
                        hint="pull and push until the branch matches its upstream",
                    )
                return StageResult.ok("remote-sync", f"up to date with {status.upstream}")

    def check_command(self, name: str, command: str) -> StageResult:
        argv = split_command(command)
        if not argv:
            return StageResult.failed(name, "no command configured")

        match run(self.ctx.runner, argv, cwd=self.ctx.project_root):
            case Ok(_):
                return StageResult.ok(name, f"`{command}` passed")
            case Err(e):
                detail = _tail(e.output)
                return StageResult.failed(
                    name,
                    f"`{command}` failed (exit {e.returncode})" + (f": {detail}" if detail else ""),
                    hint="see the release log for full output",
                )

    def check_npm_auth(self) -> StageResult:
        match run(self.ctx.runner, ["npm", "whoami"], cwd=self.ctx.project_root):
            case Ok(stdout):
                user = stdout.strip()
                return StageResult.ok("npm-auth", f"logged in as {user}" if user else "logged in")
            case Err(_):
                return StageResult.failed("npm-auth", "not logged in to npm", hint="npm login")

    def check_vscode_token(self) -> StageResult:
        if self.ctx.getenv(*VSCODE_TOKEN_VARS):
            return StageResult.ok("vscode-token", "marketplace token set")
        return StageResult.failed(
            "vscode-token",
            "marketplace token missing",
            hint=f"set {' or '.join(VSCODE_TOKEN_VARS)}",
        )

    def check_github_token(self) -> StageResult:
        if self.ctx.getenv(*GITHUB_TOKEN_VARS):
            return StageResult.ok("github-token", "token set")
        status = run(self.ctx.runner, ["gh", "auth", "status"], cwd=self.ctx.project_root)
        if isinstance(status, Ok):
            return StageResult.ok("github-token", "gh authenticated")
        return StageResult.failed(
            "github-token",
            "no GitHub credentials",
            hint=f"set {' or '.join(GITHUB_TOKEN_VARS)} or run `gh auth login`",
        )

    def check_docker_auth(self) -> StageResult:
        info = run(self.ctx.runner, ["docker", "info"], cwd=self.ctx.project_root)
        if isinstance(info, Err):
            return StageResult.failed(
                "docker-auth", "docker daemon not reachable", hint="start Docker and retry"
            )

        home = self.ctx.home()
        config_path = home / ".docker" / "config.json" if home else None
        if config_path is None or not config_path.is_file():
            return StageResult.failed("docker-auth", "not logged in to Docker", hint="docker login")

        try:
            data = as_str_dict(json.loads(config_path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError):
            data = None
        if data is None or not (data.get("auths") or data.get("credsStore") or data.get("credHelpers")):
            return StageResult.failed("docker-auth", "no Docker credentials configured", hint="docker login")
        return StageResult.ok("docker-auth", "docker credentials configured")
