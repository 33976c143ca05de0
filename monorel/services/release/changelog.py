"""Release notes from git history.

Commits since the previous ``<pkg>-v*`` tag are sorted into breaking changes,
features, fixes and everything else, then rendered as markdown with links to
each commit.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

from monorel.core.config import RepositoryInfo, SubmoduleConfig
from monorel.core.result import Err, Ok, Result
from monorel.git.repository import LogEntry, Repository
from monorel.platform.files import atomic_write_text
from monorel.services.release.errors import ReleaseError

CHANGELOG_FILE = "CHANGELOG.md"
CHANGELOG_HEADER = "# Changelog\n\nAll notable changes to this project will be documented in this file.\n\n"
DEFAULT_NOTES_TEMPLATE = "## {package} v{version}\n\n{changelog}"

_BANG_RE = re.compile(r"^[a-z]+(\([^)]*\))?!:")
_PR_RE = re.compile(r"#(\d+)")


def _empty_entries() -> list[LogEntry]:
    return []


@dataclass
class Changelog:
    breaking: list[LogEntry] = field(default_factory=_empty_entries)
    features: list[LogEntry] = field(default_factory=_empty_entries)
    fixes: list[LogEntry] = field(default_factory=_empty_entries)
    other: list[LogEntry] = field(default_factory=_empty_entries)

    @property
    def is_empty(self) -> bool:
        return not (self.breaking or self.features or self.fixes or self.other)


def categorize(entries: list[LogEntry]) -> Changelog:
    out = Changelog()
    for entry in entries:
        subject = entry.subject.lower()
        if "breaking change" in subject or "breaking:" in subject or _BANG_RE.match(subject):
            out.breaking.append(entry)
        elif (
            subject.startswith(("feat:", "feat(", "feature:"))
            or "add " in subject
            or "implement " in subject
        ):
            out.features.append(entry)
        elif (
            subject.startswith(("fix:", "fix(", "bugfix:"))
            or "fix " in subject
            or "resolve " in subject
        ):
            out.fixes.append(entry)
        else:
            out.other.append(entry)
    return out


def _format_entry(entry: LogEntry, repo: RepositoryInfo) -> str:
    line = f"- {entry.subject} ([{entry.sha[:7]}]({repo.url}/commit/{entry.sha}))"
    pr = _PR_RE.search(entry.subject)
    if pr is not None:
        line += f" ([#{pr.group(1)}]({repo.url}/pull/{pr.group(1)}))"
    return line


def render_changelog(changelog: Changelog, repo: RepositoryInfo, *, version: str, day: date) -> str:
    lines = [f"## [{version}] - {day.isoformat()}", ""]

    if changelog.is_empty:
        lines.append("No changes since the previous release.")
        return "\n".join(lines) + "\n"

    sections = (
        ("Breaking Changes", changelog.breaking),
        ("Features", changelog.features),
        ("Bug Fixes", changelog.fixes),
        ("Other Changes", changelog.other),
    )
    for title, entries in sections:
        if not entries:
            continue
        lines.append(f"### {title}")
        lines.append("")
        lines.extend(_format_entry(e, repo) for e in entries)
        lines.append("")

    return "\n".join(lines)


def generate_changelog(
    repo: Repository,
    config: SubmoduleConfig,
    version: str,
    *,
    day: date,
) -> Result[str, ReleaseError]:
    """Changelog for ``version``: commits since the last tag of this package."""
    previous = repo.latest_tag(f"{config.name}-v*")
    log = repo.log(previous)
    if isinstance(log, Err):
        return Err(ReleaseError(kind="git", message=f"git log failed: {log.error.message}"))
    return Ok(render_changelog(categorize(log.value), config.repository, version=version, day=day))


def insert_section(existing: str | None, section: str, version: str) -> str:
    """Place ``section`` above the newest entry of a ``CHANGELOG.md`` body.

    A missing file gets the standard header. Text that already carries a
    ``## [version]`` heading is returned unchanged.
    """
    block = section.strip("\n") + "\n"
    if existing is None:
        return CHANGELOG_HEADER + block
    if f"## [{version}]" in existing:
        return existing

    lines = existing.splitlines(keepends=True)
    for index, line in enumerate(lines):
        if not line.startswith("# Changelog"):
            continue
        end = index + 1
        while end < len(lines) and not lines[end].startswith("##"):
            end += 1
        head = "".join(lines[:end]).rstrip("\n") + "\n\n"
        rest = "".join(lines[end:])
        return head + block + ("\n" + rest if rest else "")
    return "# Changelog\n\n" + block + "\n" + existing


def update_changelog_file(path: Path, version: str, section: str) -> bool:
    """Write ``section`` into ``path``; False when the version is already listed."""
    existing = path.read_text(encoding="utf-8") if path.exists() else None
    updated = insert_section(existing, section, version)
    if updated == existing:
        return False
    atomic_write_text(path, updated)
    return True


def render_release_notes(config: SubmoduleConfig, version: str, changelog: str) -> str:
    """Fill ``githubReleaseTemplate`` (``{version}``, ``{package}``, ``{changelog}``)."""
    template = config.github_release_template or DEFAULT_NOTES_TEMPLATE
    values = {"version": version, "package": config.display_name, "changelog": changelog}
    # str.format would choke on other braces in free-form templates.
    return re.sub(
        r"\{(version|package|changelog)\}",
        lambda m: values[m.group(1)],
        template,
    )


def excerpt(changelog: str, *, max_lines: int = 20) -> str:
    lines = changelog.strip().splitlines()
    if len(lines) <= max_lines:
        return "\n".join(lines)
    return "\n".join([*lines[:max_lines], "..."])
