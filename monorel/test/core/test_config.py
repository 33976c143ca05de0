"""Tests for monorel.core.config module."""

from __future__ import annotations

import json
from pathlib import Path

from monorel.core.config import (
    apply_env_overrides,
    default_raw_config,
    list_available_configs,
    load_config,
    validate_raw_config,
)
from monorel.core.result import Err, Ok


def _write(config_dir: Path, name: str, data: object) -> Path:
    config_dir.mkdir(parents=True, exist_ok=True)
    path = config_dir / f"{name}.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def _full_config() -> dict[str, object]:
    return {
        "packageName": "Debugger",
        "packageDir": "packages/mcp-debugger",
        "npmPackageName": "@scope/mcp-debugger",
        "vscodeExtensionName": "acme.ts-debugger",
        "vscodeExtensionDir": "packages/vscode-debugger",
        "dockerImageName": "acme/mcp-debugger",
        "buildBinaries": True,
        "binaryPlatforms": ["linux", "macos", "windows"],
        "testCommand": "nx test mcp-debugger",
        "buildCommand": "nx build mcp-debugger",
        "githubReleaseTemplate": None,
        "repository": {"owner": "acme", "name": "mcp-debugger"},
        "filesToSync": [
            {
                "path": "packages/mcp-debugger/package.json",
                "pattern": '"version":\\s*"[^"]+"',
                "replacement": '"version": "$VERSION"',
            },
            {
                "path": "README.md",
                "pattern": "v\\d+\\.\\d+\\.\\d+",
                "replacement": "v$VERSION",
                "global": True,
                "optional": True,
            },
        ],
    }


class TestLoadConfig:
    def test_full_config(self, tmp_path: Path) -> None:
        _write(tmp_path, "debugger", _full_config())

        result = load_config("debugger", config_dir=tmp_path, env={})

        assert isinstance(result, Ok)
        cfg = result.value
        assert cfg.name == "debugger"
        assert cfg.display_name == "Debugger"
        assert cfg.path == "packages/mcp-debugger"
        assert cfg.artifacts.npm and cfg.artifacts.vscode and cfg.artifacts.docker
        assert cfg.artifacts.binaries
        assert cfg.binary_platforms == ("linux", "macos", "windows")
        assert cfg.repository.slug == "acme/mcp-debugger"
        assert cfg.repository.url == "https://github.com/acme/mcp-debugger"
        assert cfg.build.command == "nx build mcp-debugger"
        assert len(cfg.version_sync) == 2
        readme = cfg.version_sync[1]
        assert readme.replace_all is True
        assert readme.optional is True

    def test_missing_file_uses_conventional_defaults(self, tmp_path: Path) -> None:
        result = load_config("screenshot", config_dir=tmp_path, env={})

        assert isinstance(result, Ok)
        cfg = result.value
        assert cfg.path == "packages/mcp-screenshot"
        assert cfg.publish.npm_package_name == "@ai-capabilities-suite/mcp-screenshot"
        assert cfg.artifacts.npm is True
        assert cfg.artifacts.vscode is False
        assert cfg.artifacts.binaries is False
        assert cfg.build.test_command == "nx test mcp-screenshot"
        assert cfg.version_sync[0].path == "packages/mcp-screenshot/package.json"

    def test_invalid_json(self, tmp_path: Path) -> None:
        tmp_path.mkdir(exist_ok=True)
        (tmp_path / "broken.json").write_text("{nope", encoding="utf-8")

        result = load_config("broken", config_dir=tmp_path, env={})

        assert isinstance(result, Err)
        assert "Invalid JSON" in result.error.message
        assert result.error.path == tmp_path / "broken.json"

    def test_non_object_root(self, tmp_path: Path) -> None:
        _write(tmp_path, "list", [1, 2])
        result = load_config("list", config_dir=tmp_path, env={})
        assert isinstance(result, Err)
        assert "JSON object" in result.error.message

    def test_invalid_name(self, tmp_path: Path) -> None:
        result = load_config("../etc", config_dir=tmp_path, env={})
        assert isinstance(result, Err)

    def test_collects_every_problem(self, tmp_path: Path) -> None:
        _write(
            tmp_path,
            "bad",
            {
                "packageName": "Bad",
                "packageDir": "",
                "buildBinaries": True,
                "filesToSync": [{"path": "a.json"}],
            },
        )

        result = load_config("bad", config_dir=tmp_path, env={})

        assert isinstance(result, Err)
        problems = result.error.problems
        assert "packageDir is required" in problems
        assert "binaryPlatforms is required when buildBinaries is true" in problems
        assert "filesToSync[0].pattern is required" in problems
        assert "filesToSync[0].replacement is required" in problems
        assert "  - packageDir is required" in result.error.pretty()
        assert "testCommand is required" in problems
        assert "githubReleaseTemplate is required" in problems

    def test_file_must_name_every_required_key(self, tmp_path: Path) -> None:
        path = _write(tmp_path, "debugger", {"packageName": "Debugger", "packageDir": "packages/mcp-debugger"})

        result = load_config("debugger", config_dir=tmp_path, env={})

        assert isinstance(result, Err)
        assert result.error.path == path
        assert set(result.error.problems) == {
            "npmPackageName is required",
            "vscodeExtensionName is required",
            "dockerImageName is required",
            "vscodeExtensionDir is required",
            "buildBinaries is required",
            "testCommand is required",
            "buildCommand is required",
            "filesToSync is required",
            "githubReleaseTemplate is required",
        }

    def test_null_artifact_names_disable_targets(self, tmp_path: Path) -> None:
        data = {
            **_full_config(),
            "vscodeExtensionName": None,
            "vscodeExtensionDir": None,
            "dockerImageName": None,
            "buildBinaries": False,
        }
        _write(tmp_path, "debugger", data)

        result = load_config("debugger", config_dir=tmp_path, env={})

        assert isinstance(result, Ok)
        assert result.value.artifacts.npm is True
        assert not (result.value.artifacts.vscode or result.value.artifacts.docker)

    def test_missing_files_to_sync_is_reported(self, tmp_path: Path) -> None:
        data = _full_config()
        del data["filesToSync"]
        _write(tmp_path, "debugger", data)

        result = load_config("debugger", config_dir=tmp_path, env={})

        assert isinstance(result, Err)
        assert result.error.problems == ("filesToSync is required",)

    def test_env_override_applies_before_validation(self, tmp_path: Path) -> None:
        _write(tmp_path, "x", {**_full_config(), "packageDir": ""})

        result = load_config(
            "x",
            config_dir=tmp_path,
            env={"RELEASE_CONFIG_X_PACKAGE_DIR": "packages/x"},
        )

        assert isinstance(result, Ok)
        assert result.value.path == "packages/x"


class TestEnvOverrides:
    def test_scoped_beats_global(self) -> None:
        raw = default_raw_config("debugger")
        env = {
            "RELEASE_CONFIG_BUILD_COMMAND": "global build",
            "RELEASE_CONFIG_DEBUGGER_BUILD_COMMAND": "scoped build",
            "RELEASE_CONFIG_TEST_COMMAND": "global test",
        }

        out = apply_env_overrides(raw, "debugger", env)

        assert out["buildCommand"] == "scoped build"
        assert out["testCommand"] == "global test"
        assert raw["buildCommand"] == "nx build mcp-debugger"

    def test_package_name_is_normalized_for_scope(self) -> None:
        out = apply_env_overrides({}, "ts-debugger", {"RELEASE_CONFIG_TS_DEBUGGER_PACKAGE_DIR": "p"})
        assert out["packageDir"] == "p"

    def test_build_binaries_is_parsed_as_bool(self) -> None:
        assert apply_env_overrides({}, "a", {"RELEASE_CONFIG_BUILD_BINARIES": "true"})["buildBinaries"] is True
        assert apply_env_overrides({}, "a", {"RELEASE_CONFIG_BUILD_BINARIES": "1"})["buildBinaries"] is True
        assert apply_env_overrides({}, "a", {"RELEASE_CONFIG_BUILD_BINARIES": "no"})["buildBinaries"] is False

    def test_unknown_fields_are_ignored(self) -> None:
        out = apply_env_overrides({}, "a", {"RELEASE_CONFIG_REPOSITORY": "evil/repo"})
        assert out == {}


class TestValidateRawConfig:
    def test_default_config_is_valid(self) -> None:
        assert validate_raw_config(default_raw_config("debugger")) == []

    def test_vscode_needs_extension_dir(self) -> None:
        raw = default_raw_config("a")
        raw["vscodeExtensionName"] = "acme.a"
        assert "vscodeExtensionDir is required when vscodeExtensionName is set" in validate_raw_config(raw)

    def test_release_branches_must_be_strings(self) -> None:
        raw = default_raw_config("a")
        raw["releaseBranches"] = []
        assert "releaseBranches must be a non-empty list of strings" in validate_raw_config(raw)


def test_list_available_configs(tmp_path: Path) -> None:
    _write(tmp_path, "b", {})
    _write(tmp_path, "a", {})
    (tmp_path / "notes.txt").write_text("", encoding="utf-8")

    assert list_available_configs(tmp_path) == ["a", "b"]
    assert list_available_configs(tmp_path / "missing") == []
