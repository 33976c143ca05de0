"""GitHub host releases through the ``gh`` CLI."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from pathlib import Path
from time import sleep

from monorel.core.config import RepositoryInfo
from monorel.core.context import RuntimeContext
from monorel.core.result import Err, Ok, Result
from monorel.platform.files import atomic_write_text
from monorel.platform.process import ProcessError
from monorel.platform.process import run as run_process
from monorel.services.release.errors import ReleaseError, publish_error

GH_READ_RETRY_ATTEMPTS = 3
GH_READ_RETRY_DELAY_SECONDS = 1.0

_RELEASE_URL_RE = re.compile(r"https://github\.com/\S+/releases/tag/\S+")


def _is_transient_gh_error(error: ProcessError) -> bool:
    text = error.output.lower()
    markers = (
        "timed out",
        "timeout",
        "connection reset",
        "connection refused",
        "temporarily unavailable",
        "service unavailable",
        "bad gateway",
        "gateway timeout",
        "network is unreachable",
        "http 429",
        "http 500",
        "http 502",
        "http 503",
        "http 504",
    )
    return any(marker in text for marker in markers)


def _is_not_found(error: ProcessError) -> bool:
    text = error.output.lower()
    return "release not found" in text or "not found" in text or "http 404" in text


def run_gh_read(
    ctx: RuntimeContext,
    cmd: list[str],
    *,
    retry_attempts: int = GH_READ_RETRY_ATTEMPTS,
    delay: Callable[[float], None] = sleep,
) -> Result[str, ProcessError]:
    """Run a read-only gh command, retrying transient network failures."""
    attempts = max(1, retry_attempts)
    result = run_process(ctx.runner, cmd, cwd=ctx.project_root)
    for attempt in range(1, attempts):
        if isinstance(result, Ok) or not _is_transient_gh_error(result.error):
            break
        delay(GH_READ_RETRY_DELAY_SECONDS * attempt)
        result = run_process(ctx.runner, cmd, cwd=ctx.project_root)
    return result


def release_url(repo: RepositoryInfo, tag: str) -> str:
    return f"{repo.url}/releases/tag/{tag}"


def release_exists(
    ctx: RuntimeContext,
    repo: RepositoryInfo,
    tag: str,
    *,
    delay: Callable[[float], None] = sleep,
) -> bool:
    cmd = ["gh", "release", "view", tag, "--repo", repo.slug, "--json", "url"]
    return isinstance(run_gh_read(ctx, cmd, delay=delay), Ok)


def create_release(
    ctx: RuntimeContext,
    repo: RepositoryInfo,
    tag: str,
    *,
    title: str,
    notes: str,
    draft: bool = False,
    prerelease: bool = False,
) -> Result[str, ReleaseError]:
    """Create a GitHub release for an existing pushed tag. Returns its URL."""
    notes_path = ctx.releases_dir / f".notes-{tag}.md"
    atomic_write_text(notes_path, notes)

    cmd = [
        "gh",
        "release",
        "create",
        tag,
        "--repo",
        repo.slug,
        "--title",
        title,
        "--notes-file",
        str(notes_path),
    ]
    if draft:
        cmd.append("--draft")
    if prerelease:
        cmd.append("--prerelease")

    try:
        result = run_process(ctx.runner, cmd, cwd=ctx.project_root)
    finally:
        notes_path.unlink(missing_ok=True)

    if isinstance(result, Err):
        return Err(publish_error("github", "release create", result.error.output))

    match = _RELEASE_URL_RE.search(result.value)
    return Ok(match.group(0) if match else release_url(repo, tag))


def attach_assets(
    ctx: RuntimeContext,
    repo: RepositoryInfo,
    tag: str,
    assets: Sequence[Path],
) -> Result[None, ReleaseError]:
    if not assets:
        return Ok(None)

    missing = [str(a) for a in assets if not a.is_file()]
    if missing:
        return Err(
            ReleaseError(
                kind="publish",
                message=f"release assets not found: {', '.join(missing)}",
            )
        )

    cmd = ["gh", "release", "upload", tag, *(str(a) for a in assets), "--repo", repo.slug]
    result = run_process(ctx.runner, cmd, cwd=ctx.project_root)
    if isinstance(result, Err):
        return Err(publish_error("github", "asset upload", result.error.output))
    return Ok(None)


def delete_release(ctx: RuntimeContext, repo: RepositoryInfo, tag: str) -> Result[None, ReleaseError]:
    """Delete a GitHub release. A release that does not exist counts as deleted."""
    cmd = ["gh", "release", "delete", tag, "--repo", repo.slug, "--yes"]
    result = run_process(ctx.runner, cmd, cwd=ctx.project_root)
    if isinstance(result, Err) and not _is_not_found(result.error):
        return Err(publish_error("github", "release delete", result.error.output))
    return Ok(None)
