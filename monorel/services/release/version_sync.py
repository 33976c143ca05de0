"""Propagate one version string into every configured file.

Each ``VersionSyncFile`` is a regex plus a replacement template. Templates
use ``$VERSION`` for the target version and the usual JavaScript-style group
references (``$1``, ``$<name>``, ``$&``, ``$$``), because release configs are
shared with the npm side of the monorepo. Patterns may be plain regex source
or a ``/source/flags`` literal (flags ``g``, ``i``, ``m``, ``s``).

Usage:
    engine = VersionSyncEngine(project_root)
    match engine.sync(config, "1.2.3"):
        case Ok(report):
            print(report.files_updated, report.errors)
        case Err(error):
            print(error.pretty())
"""

from __future__ import annotations

import re
from pathlib import Path

from monorel.core.config import SubmoduleConfig, VersionSyncFile
from monorel.core.result import Err, Ok, Result
from monorel.platform.files import atomic_write_text
from monorel.services.release.errors import ReleaseError
from monorel.services.release.model import SyncReport
from monorel.services.release.semver import is_valid_semver, validate_version

__all__ = [
    "VersionSyncEngine",
    "compile_pattern",
    "render_replacement",
]

_LITERAL_RE = re.compile(r"^/(.+)/([a-z]*)$", re.DOTALL)
_NAMED_GROUP_RE = re.compile(r"\(\?<([A-Za-z_]\w*)>")
_TOKEN_RE = re.compile(r"\$(VERSION|\$|&|<([A-Za-z_]\w*)>|(\d{1,2}))")

_FLAG_MAP = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
}


def compile_pattern(entry: VersionSyncFile) -> tuple[re.Pattern[str], bool]:
    """Compile an entry's pattern. Returns ``(regex, replace_all)``.

    Raises:
        re.error: The pattern is not a valid regular expression.
    """
    pattern = entry.pattern
    if isinstance(pattern, re.Pattern):
        return (pattern, entry.replace_all)

    source = pattern
    flags = 0
    replace_all = entry.replace_all

    literal = _LITERAL_RE.match(pattern)
    if literal is not None and set(literal.group(2)) <= {"g", "i", "m", "s"}:
        source = literal.group(1)
        for flag in literal.group(2):
            if flag == "g":
                replace_all = True
            else:
                flags |= _FLAG_MAP[flag]

    # JavaScript named groups: (?<name>...) -> (?P<name>...)
    source = _NAMED_GROUP_RE.sub(r"(?P<\1>", source)
    return (re.compile(source, flags), replace_all)


def render_replacement(template: str, version: str, match: re.Match[str]) -> str:
    """Expand ``$VERSION`` and group references for one match."""
    group_count = match.re.groups

    def expand(token: re.Match[str]) -> str:
        body = token.group(1)
        if body == "VERSION":
            return version
        if body == "$":
            return "$"
        if body == "&":
            return match.group(0)
        name = token.group(2)
        if name is not None:
            if name in match.re.groupindex:
                return match.group(name) or ""
            return token.group(0)

        digits = token.group(3)
        if 1 <= int(digits) <= group_count:
            return match.group(int(digits)) or ""
        # "$12" with a single group means group 1 followed by a literal "2".
        if len(digits) == 2 and 1 <= int(digits[0]) <= group_count:
            return (match.group(int(digits[0])) or "") + digits[1]
        return token.group(0)

    return _TOKEN_RE.sub(expand, template)


class VersionSyncEngine:
    """Rewrite version strings in files below ``project_root``."""

    def __init__(self, project_root: Path) -> None:
        self.project_root = project_root

    def sync(self, config: SubmoduleConfig, version: str) -> Result[SyncReport, ReleaseError]:
        """Apply every entry in order. Fails before touching files on a bad version.

        Per-file problems (missing file, bad pattern, I/O error) are collected
        into ``SyncReport.errors`` and never stop the remaining entries.
        """
        valid = validate_version(version)
        if isinstance(valid, Err):
            return valid

        updated: list[str] = []
        errors: list[str] = []

        for entry in config.version_sync:
            path = self.project_root / entry.path
            if not path.is_file():
                if not entry.optional:
                    errors.append(f"{entry.path}: File not found: {path}")
                continue

            try:
                regex, replace_all = compile_pattern(entry)
            except re.error as e:
                errors.append(f"{entry.path}: Invalid pattern: {e}")
                continue

            try:
                content = _read_text(path)
                new_content = regex.sub(
                    lambda m: render_replacement(entry.replacement, version, m),
                    content,
                    count=0 if replace_all else 1,
                )
                if new_content == content:
                    continue
                atomic_write_text(path, new_content)
            except (OSError, UnicodeDecodeError) as e:
                errors.append(f"{entry.path}: {e}")
                continue

            if entry.path not in updated:
                updated.append(entry.path)

        return Ok(SyncReport(files_updated=tuple(updated), errors=tuple(errors)))

    def verify(self, config: SubmoduleConfig, version: str) -> bool:
        """True when every configured file exists and contains ``version``."""
        if not is_valid_semver(version):
            return False

        for entry in config.version_sync:
            path = self.project_root / entry.path
            if not path.is_file():
                if entry.optional:
                    continue
                return False
            try:
                content = _read_text(path)
            except (OSError, UnicodeDecodeError):
                return False
            if version not in content:
                return False

        return True

    def missing_files(self, config: SubmoduleConfig) -> list[str]:
        """Required entries whose file is absent."""
        return [
            entry.path
            for entry in config.version_sync
            if not entry.optional and not (self.project_root / entry.path).is_file()
        ]


def _read_text(path: Path) -> str:
    # newline="" keeps CRLF files byte-identical when nothing matches.
    with path.open(encoding="utf-8", newline="") as handle:
        return handle.read()
