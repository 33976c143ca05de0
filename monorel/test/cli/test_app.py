from __future__ import annotations

import os
from pathlib import Path

import pytest
from typer.testing import CliRunner

from monorel import __version__
from monorel.cli.app import app
from monorel.core.context import ROOT_ENV_VAR
from monorel.core.errors import ErrorCode


def test_version_flag() -> None:
    result = CliRunner().invoke(app, ["--version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_root_option_sets_project_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv(ROOT_ENV_VAR, str(tmp_path / "elsewhere"))
    config_dir = tmp_path / "scripts" / "release-config"
    config_dir.mkdir(parents=True)
    (config_dir / "debugger.json").write_text("{}", encoding="utf-8")

    result = CliRunner().invoke(app, ["--root", str(tmp_path), "configs"])

    assert result.exit_code == 0
    assert "debugger" in result.stdout
    assert os.environ[ROOT_ENV_VAR] == str(tmp_path.resolve())


def test_root_option_rejects_missing_dir(tmp_path: Path) -> None:
    result = CliRunner().invoke(app, ["--root", str(tmp_path / "nope"), "configs"])

    assert result.exit_code == int(ErrorCode.ENV_ERROR)


def test_commands_are_registered() -> None:
    result = CliRunner().invoke(app, ["--help"])

    assert result.exit_code == 0
    for name in ("release", "check", "sync", "verify-versions", "configs"):
        assert name in result.stdout
