"""Tests for monorel.platform.process module."""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

from monorel.core.result import Err, Ok
from monorel.platform.process import (
    CommandOutput,
    ProcessError,
    ScriptedRunner,
    SubprocessRunner,
    run,
    split_command,
)


class TestProcessError:
    """Test ProcessError dataclass."""

    def test_str_short_command(self) -> None:
        error = ProcessError(
            command=("git", "status"),
            returncode=1,
            stdout="",
            stderr="fatal: not a git repository",
        )
        assert str(error) == "git status failed (exit 1)"

    def test_str_long_command_truncated(self) -> None:
        error = ProcessError(
            command=("npm", "publish", "--access", "public"),
            returncode=1,
            stdout="",
            stderr="error",
        )
        assert str(error) == "npm publish --access ... failed (exit 1)"

    def test_output_joins_streams(self) -> None:
        error = ProcessError(("x",), 1, " out \n", "err\n")
        assert error.output == "out\nerr"

    def test_frozen(self) -> None:
        error = ProcessError(("cmd",), 1, "", "")
        with pytest.raises(AttributeError):
            error.returncode = 2  # type: ignore[misc]


class TestSubprocessRunner:
    def test_success(self, tmp_path: Path) -> None:
        runner = SubprocessRunner(timeout=60.0)
        result = run(runner, [sys.executable, "-c", "print('hello')"], cwd=tmp_path)

        assert isinstance(result, Ok)
        assert "hello" in result.value

    def test_failure_keeps_exit_code(self, tmp_path: Path) -> None:
        runner = SubprocessRunner(timeout=60.0)
        result = run(runner, [sys.executable, "-c", "import sys; sys.exit(42)"], cwd=tmp_path)

        assert isinstance(result, Err)
        assert result.error.returncode == 42

    def test_command_not_found(self, tmp_path: Path) -> None:
        out = SubprocessRunner()(["nonexistent_command_12345"], tmp_path)

        assert out.exit_code == -1
        assert not out.ok

    def test_timeout(self, tmp_path: Path) -> None:
        runner = SubprocessRunner(timeout=0.5)
        out = runner([sys.executable, "-c", "import time; time.sleep(5)"], tmp_path)

        assert out.exit_code == -1
        assert "timed out" in out.stderr


class TestScriptedRunner:
    def test_unmatched_commands_succeed(self, tmp_path: Path) -> None:
        runner = ScriptedRunner()
        out = runner(["git", "fetch"], tmp_path)

        assert out == CommandOutput(command=("git", "fetch"), exit_code=0, stdout="")
        assert runner.commands == ["git fetch"]

    def test_longest_prefix_wins(self, tmp_path: Path) -> None:
        runner = ScriptedRunner()
        runner.on("npm", stdout="generic")
        runner.on("npm", "whoami", stdout="alice")

        assert runner(["npm", "whoami"], tmp_path).stdout == "alice"
        assert runner(["npm", "view", "x"], tmp_path).stdout == "generic"

    def test_times_budget_is_consumed_in_order(self, tmp_path: Path) -> None:
        runner = ScriptedRunner()
        runner.on("gh", "release", "view", exit_code=1, stderr="HTTP 503", times=1)
        runner.on("gh", "release", "view", stdout="{}")

        first = runner(["gh", "release", "view", "t"], tmp_path)
        second = runner(["gh", "release", "view", "t"], tmp_path)

        assert first.exit_code == 1
        assert second.ok
        assert runner.count("gh", "release", "view") == 2

    def test_effect_runs_on_match(self, tmp_path: Path) -> None:
        seen: list[tuple[str, ...]] = []
        runner = ScriptedRunner().on("npm", "pack", effect=lambda cmd, cwd: seen.append(cmd))

        runner(["npm", "pack"], tmp_path)

        assert seen == [("npm", "pack")]
        assert runner.ran("npm", "pack")
        assert not runner.ran("npm", "publish")


def test_command_output_text() -> None:
    out = CommandOutput(command=("x",), exit_code=1, stdout="", stderr=" E401 \n")
    assert out.text == "E401"
    assert not out.ok


def test_split_command() -> None:
    assert split_command("nx build mcp-debugger") == ["nx", "build", "mcp-debugger"]
    assert split_command("") == []
