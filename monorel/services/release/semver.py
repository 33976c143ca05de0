from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal, cast

from monorel.core.result import Err, Ok, Result
from monorel.core.structured import as_str_dict, get_str
from monorel.services.release.errors import ReleaseError

ReleaseBump = Literal["major", "minor", "patch"]

BUMP_KINDS: tuple[ReleaseBump, ...] = ("major", "minor", "patch")

_IDENT = r"(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)"
_SEMVER_RE = re.compile(
    r"(0|[1-9]\d*)\.(0|[1-9]\d*)\.(0|[1-9]\d*)"
    rf"(?:-({_IDENT}(?:\.{_IDENT})*))?"
    r"(?:\+([0-9a-zA-Z-]+(?:\.[0-9a-zA-Z-]+)*))?"
)


@dataclass(frozen=True, slots=True)
class SemVer:
    major: int
    minor: int
    patch: int
    prerelease: str | None = None
    build: str | None = None

    def __str__(self) -> str:
        out = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            out += f"-{self.prerelease}"
        if self.build:
            out += f"+{self.build}"
        return out

    @property
    def is_prerelease(self) -> bool:
        return self.prerelease is not None

    def bump(self, kind: ReleaseBump) -> SemVer:
        match kind:
            case "major":
                return SemVer(self.major + 1, 0, 0)
            case "minor":
                return SemVer(self.major, self.minor + 1, 0)
            case "patch":
                return SemVer(self.major, self.minor, self.patch + 1)
            case _:
                raise AssertionError(f"unexpected bump kind: {kind}")


def parse_version(raw: str) -> SemVer | None:
    """Strict semver 2.0.0 parse; no leading ``v``, no surrounding whitespace."""
    m = _SEMVER_RE.fullmatch(raw)
    if m is None:
        return None
    return SemVer(
        major=int(m.group(1)),
        minor=int(m.group(2)),
        patch=int(m.group(3)),
        prerelease=m.group(4),
        build=m.group(5),
    )


def is_valid_semver(raw: str) -> bool:
    return parse_version(raw) is not None


def validate_version(raw: str) -> Result[SemVer, ReleaseError]:
    parsed = parse_version(raw)
    if parsed is None:
        return Err(
            ReleaseError(
                kind="validation",
                message=f"Invalid version format: {raw!r}",
                hint="expected MAJOR.MINOR.PATCH[-prerelease][+build], e.g. 1.2.3",
            )
        )
    return Ok(parsed)


def read_package_version(package_json: Path) -> Result[SemVer, ReleaseError]:
    """Current version from a package.json file."""
    try:
        obj: object = json.loads(package_json.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return Err(ReleaseError(kind="configuration", message=f"File not found: {package_json}"))
    except (OSError, json.JSONDecodeError) as e:
        return Err(ReleaseError(kind="configuration", message=f"Cannot read {package_json}: {e}"))

    data = as_str_dict(obj)
    raw = get_str(data, "version") if data is not None else None
    if raw is None:
        return Err(ReleaseError(kind="configuration", message=f"No version field in {package_json}"))
    return validate_version(raw)


def resolve_target_version(requested: str, *, package_json: Path) -> Result[str, ReleaseError]:
    """Turn ``patch``/``minor``/``major`` into a concrete version; validate anything else."""
    if requested in BUMP_KINDS:
        current = read_package_version(package_json)
        if isinstance(current, Err):
            return current
        return Ok(str(current.value.bump(cast(ReleaseBump, requested))))

    parsed = validate_version(requested)
    if isinstance(parsed, Err):
        return parsed
    return Ok(requested)
