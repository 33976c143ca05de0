"""Git repository abstraction.

This module provides the Repository class for the local git operations a
release needs. All operations return Result types for proper error handling.

Usage:
    repo = Repository(Path("/path/to/repo"), runner)

    match repo.status():
        case Ok(status):
            print(f"Branch: {status.branch}")
            if status.is_clean:
                print("Working tree clean")
        case Err(e):
            print(f"Error: {e.message}")

    match repo.create_tag("debugger-v1.2.3", message="Release debugger v1.2.3"):
        case Ok(_):
            print("tagged")
        case Err(e):
            print(f"Tag failed: {e.message}")
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path

from monorel.core.result import Err, Ok, Result
from monorel.platform.process import CommandRunner, ProcessError
from monorel.platform.process import run as run_process

__all__ = [
    "GitError",
    "GitStatus",
    "LogEntry",
    "Repository",
    "StatusEntry",
    "format_tag",
]

_LOG_SEPARATOR = "\x1f"


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git command that failed
        message: Error message
        returncode: Process return code
    """

    command: str
    message: str
    returncode: int = 1


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """A single entry in git status.

    Attributes:
        xy: Two-character status code (e.g., "M ", " M", "??")
        path: File path
    """

    xy: str
    path: str

    @property
    def is_untracked(self) -> bool:
        return self.xy == "??"

    def pretty_xy(self) -> str:
        """Format XY with dots for spaces (". M" instead of " M")."""
        return self.xy.replace(" ", ".")


@dataclass(frozen=True, slots=True)
class GitStatus:
    """Parsed git status.

    Attributes:
        branch: Current branch name
        upstream: Upstream branch (e.g., "origin/main"), None if not set
        ahead: Number of commits ahead of upstream
        behind: Number of commits behind upstream
        entries: All status entries (staged, unstaged, untracked)
    """

    branch: str
    upstream: str | None = None
    ahead: int = 0
    behind: int = 0
    entries: tuple[StatusEntry, ...] = field(default_factory=tuple)

    @property
    def is_clean(self) -> bool:
        return len(self.entries) == 0

    @property
    def has_divergence(self) -> bool:
        """True if branch has diverged from upstream or has no upstream."""
        return bool(self.ahead or self.behind or self.upstream is None)


@dataclass(frozen=True, slots=True)
class LogEntry:
    """One commit from ``git log``."""

    sha: str
    author: str
    date: str
    subject: str


class Repository:
    """Local git operations on one repository.

    Attributes:
        path: Path to the repository root
    """

    def __init__(self, path: Path, runner: CommandRunner) -> None:
        self.path = path
        self._runner = runner

    def status(self) -> Result[GitStatus, GitError]:
        """Run ``git status --porcelain=v1 -b`` and parse the output."""
        result = self._run(["status", "--porcelain=v1", "-b"])
        match result:
            case Err(e):
                return Err(_git_error("status", e, "git status failed"))
            case Ok(stdout):
                return Ok(self._parse_status(stdout))

    def current_branch(self) -> str | None:
        """Current branch name; None if detached HEAD or error."""
        result = self._run(["rev-parse", "--abbrev-ref", "HEAD"])
        match result:
            case Ok(stdout):
                branch = stdout.strip()
                return None if branch == "HEAD" else branch
            case Err(_):
                return None

    def fetch(self) -> Result[str, GitError]:
        result = self._run(["fetch"])
        match result:
            case Err(e):
                return Err(_git_error("fetch", e, "fetch failed"))
            case Ok(stdout):
                return Ok(stdout.strip())

    def head_sha(self) -> Result[str, GitError]:
        result = self._run(["rev-parse", "HEAD"])
        match result:
            case Err(e):
                return Err(_git_error("rev-parse HEAD", e, "cannot resolve HEAD"))
            case Ok(stdout):
                return Ok(stdout.strip())

    def commit_paths(self, message: str, paths: Sequence[str]) -> Result[str, GitError]:
        """Stage ``paths`` and commit them. Returns the new commit sha."""
        added = self._run(["add", "--", *paths])
        if isinstance(added, Err):
            return Err(_git_error("add", added.error, "git add failed"))

        committed = self._run(["commit", "-m", message])
        if isinstance(committed, Err):
            return Err(_git_error("commit", committed.error, "git commit failed"))

        return self.head_sha()

    def is_pushed(self, sha: str) -> bool:
        """True when a remote-tracking branch contains ``sha``."""
        result = self._run(["branch", "-r", "--contains", sha])
        match result:
            case Ok(stdout):
                return stdout.strip() != ""
            case Err(_):
                return False

    def revert_commit(self, sha: str) -> Result[bool, GitError]:
        """Undo ``sha``.

        An unpushed HEAD commit is dropped. Anything else gets a revert commit.
        Returns True when a revert commit was created (it still needs a push).
        """
        head = self.head_sha()
        if isinstance(head, Ok) and head.value == sha and not self.is_pushed(sha):
            result = self._run(["reset", "--hard", "HEAD~1"])
            if isinstance(result, Err):
                return Err(_git_error("reset --hard HEAD~1", result.error, "reset failed"))
            return Ok(False)

        result = self._run(["revert", "--no-edit", sha])
        if isinstance(result, Err):
            return Err(_git_error(f"revert {sha}", result.error, "revert failed"))
        return Ok(True)

    def tag_exists(self, tag: str) -> bool:
        result = self._run(["tag", "-l", tag])
        match result:
            case Ok(stdout):
                return stdout.strip() == tag
            case Err(_):
                return False

    def create_tag(self, tag: str, *, message: str | None = None) -> Result[None, GitError]:
        """Create a tag at HEAD. Fails when the tag already exists locally."""
        if self.tag_exists(tag):
            return Err(GitError(command=f"tag {tag}", message=f"Tag {tag} already exists"))

        args = ["tag", "-a", tag, "-m", message] if message else ["tag", tag]
        result = self._run(args)
        if isinstance(result, Err):
            return Err(_git_error(f"tag {tag}", result.error, "tag failed"))
        return Ok(None)

    def delete_tag(self, tag: str, *, remote: str = "origin") -> Result[None, GitError]:
        """Delete a tag locally and on ``remote``. Absent tags count as deleted."""
        if self.tag_exists(tag):
            local = self._run(["tag", "-d", tag])
            if isinstance(local, Err):
                return Err(_git_error(f"tag -d {tag}", local.error, "tag delete failed"))

        pushed = self._run(["push", remote, f":refs/tags/{tag}"])
        if isinstance(pushed, Err) and not _is_missing_remote_ref(pushed.error.output):
            return Err(_git_error(f"push {remote} :refs/tags/{tag}", pushed.error, "remote tag delete failed"))
        return Ok(None)

    def push(self, branch: str, *, remote: str = "origin", tag: str | None = None) -> Result[None, GitError]:
        """Push ``branch`` then, when given, the single ``tag``."""
        result = self._run(["push", remote, branch])
        if isinstance(result, Err):
            return Err(_git_error(f"push {remote} {branch}", result.error, "push failed"))

        if tag is not None:
            ref = f"refs/tags/{tag}"
            tag_result = self._run(["push", remote, ref])
            if isinstance(tag_result, Err):
                return Err(_git_error(f"push {remote} {ref}", tag_result.error, "tag push failed"))
        return Ok(None)

    def restore_paths(self, paths: Sequence[str]) -> Result[None, GitError]:
        """Reset ``paths`` to HEAD in both the index and the working tree."""
        if not paths:
            return Ok(None)
        result = self._run(["checkout", "HEAD", "--", *paths])
        if isinstance(result, Err):
            return Err(_git_error("checkout HEAD --", result.error, "restore failed"))
        return Ok(None)

    def forget_paths(self, paths: Sequence[str]) -> Result[None, GitError]:
        """Drop ``paths`` from the index; files that were never added are ignored."""
        if not paths:
            return Ok(None)
        result = self._run(["rm", "--cached", "--quiet", "--ignore-unmatch", "--", *paths])
        if isinstance(result, Err):
            return Err(_git_error("rm --cached", result.error, "unstage failed"))
        return Ok(None)

    def latest_tag(self, pattern: str) -> str | None:
        """Most recent tag reachable from HEAD matching a glob, or None."""
        result = self._run(["describe", "--tags", "--abbrev=0", "--match", pattern])
        match result:
            case Ok(stdout):
                return stdout.strip() or None
            case Err(_):
                return None

    def log(self, from_ref: str | None = None, to_ref: str = "HEAD") -> Result[list[LogEntry], GitError]:
        """Commits in ``from_ref..to_ref`` (or all of ``to_ref``), newest first."""
        rev = f"{from_ref}..{to_ref}" if from_ref else to_ref
        fmt = _LOG_SEPARATOR.join(["%H", "%an", "%aI", "%s"])
        result = self._run(["log", rev, f"--pretty=format:{fmt}"])
        if isinstance(result, Err):
            return Err(_git_error(f"log {rev}", result.error, "git log failed"))

        entries: list[LogEntry] = []
        for line in result.value.splitlines():
            parts = line.split(_LOG_SEPARATOR)
            if len(parts) != 4:
                continue
            sha, author, date, subject = parts
            entries.append(LogEntry(sha=sha, author=author, date=date, subject=subject))
        return Ok(entries)

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        return run_process(self._runner, ["git", *args], cwd=self.path)

    def _parse_status(self, output: str) -> GitStatus:
        """Parse git status --porcelain=v1 -b output."""
        lines = [ln for ln in output.splitlines() if ln.strip()]

        if not lines:
            return GitStatus(branch="")

        # First line is branch info: ## branch...upstream [ahead N, behind M]
        branch_line = lines[0]
        branch, upstream = self._parse_branch_line(branch_line)
        ahead, behind = self._parse_ahead_behind(branch_line)

        entries: list[StatusEntry] = []
        for line in lines[1:]:
            entry = self._parse_entry(line)
            if entry:
                entries.append(entry)

        return GitStatus(
            branch=branch,
            upstream=upstream,
            ahead=ahead,
            behind=behind,
            entries=tuple(entries),
        )

    def _parse_branch_line(self, line: str) -> tuple[str, str | None]:
        s = line.strip()
        if s.startswith("##"):
            s = s[2:].lstrip()

        s = s.split(" [", 1)[0].strip()

        if "..." in s:
            left, right = s.split("...", 1)
            return (left.strip(), right.strip())

        return (s, None)

    def _parse_ahead_behind(self, line: str) -> tuple[int, int]:
        match = re.search(r"\[([^\]]+)\]", line)
        if not match:
            return (0, 0)

        inside = match.group(1)
        ahead_match = re.search(r"ahead\s+(\d+)", inside)
        behind_match = re.search(r"behind\s+(\d+)", inside)

        ahead = int(ahead_match.group(1)) if ahead_match else 0
        behind = int(behind_match.group(1)) if behind_match else 0
        return (ahead, behind)

    def _parse_entry(self, line: str) -> StatusEntry | None:
        if len(line) < 4:
            return None
        if line.startswith("?? "):
            return StatusEntry(xy="??", path=line[3:])
        return StatusEntry(xy=line[:2], path=line[3:])


def _git_error(command: str, error: ProcessError, fallback: str) -> GitError:
    return GitError(
        command=command,
        message=error.stderr.strip() or error.stdout.strip() or fallback,
        returncode=error.returncode,
    )


def _is_missing_remote_ref(output: str) -> bool:
    text = output.lower()
    return "remote ref does not exist" in text or "unable to delete" in text


def format_tag(package: str, version: str) -> str:
    """Release tag of ``package`` at ``version``: ``<package>-v<version>``.

    Known limitation: a package name containing ``-v<version>`` can collide
    with another package's prerelease tag (``foo-v1.0.0`` at ``2.0.0`` and
    ``foo`` at ``1.0.0-v2.0.0`` both give ``foo-v1.0.0-v2.0.0``).
    """
    return f"{package}-v{version}"
