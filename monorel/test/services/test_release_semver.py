from __future__ import annotations

import json
from pathlib import Path

import pytest

from monorel.core.result import Err, Ok
from monorel.services.release.semver import (
    SemVer,
    is_valid_semver,
    parse_version,
    resolve_target_version,
    validate_version,
)


@pytest.mark.parametrize(
    "raw",
    ["1.0.0", "0.0.1", "10.20.30", "1.0.0-beta.1", "1.0.0-alpha-a.b-c", "1.0.0+build.5", "1.0.0-rc.1+sha.abc"],
)
def test_valid_versions(raw: str) -> None:
    assert is_valid_semver(raw)


@pytest.mark.parametrize(
    "raw",
    ["v1.0", "v1.0.0", "1.0", "1.0.0.0", "01.0.0", "1.0.0-01", "1.0.0-", " 1.0.0", "1.0.0 ", "1.2.3\n", ""],
)
def test_invalid_versions(raw: str) -> None:
    assert not is_valid_semver(raw)


def test_parse_version_parts() -> None:
    assert parse_version("1.2.3-beta.4+b7") == SemVer(1, 2, 3, "beta.4", "b7")
    assert str(SemVer(1, 2, 3, "beta.4", "b7")) == "1.2.3-beta.4+b7"


def test_bump() -> None:
    base = SemVer(1, 2, 3, "rc.1")
    assert base.bump("patch") == SemVer(1, 2, 4)
    assert base.bump("minor") == SemVer(1, 3, 0)
    assert base.bump("major") == SemVer(2, 0, 0)


def test_validate_version_error() -> None:
    result = validate_version("v1.0")
    assert isinstance(result, Err)
    assert result.error.kind == "validation"
    assert "v1.0" in result.error.message


def test_resolve_bump_reads_package_json(tmp_path: Path) -> None:
    pkg = tmp_path / "package.json"
    pkg.write_text(json.dumps({"name": "x", "version": "1.4.9"}), encoding="utf-8")

    assert resolve_target_version("patch", package_json=pkg) == Ok("1.4.10")
    assert resolve_target_version("minor", package_json=pkg) == Ok("1.5.0")
    assert resolve_target_version("2.0.0", package_json=pkg) == Ok("2.0.0")


def test_resolve_bump_without_package_json(tmp_path: Path) -> None:
    result = resolve_target_version("patch", package_json=tmp_path / "package.json")
    assert isinstance(result, Err)
    assert result.error.kind == "configuration"
