from __future__ import annotations

from pathlib import Path

from monorel.core.config import RepositoryInfo
from monorel.core.context import RuntimeContext
from monorel.core.result import Err, Ok
from monorel.platform.process import ScriptedRunner
from monorel.services.release import gh as gh_mod

REPO = RepositoryInfo(owner="acme", name="mcp-debugger")


def _no_sleep(seconds: float) -> None:
    del seconds


def _ctx(tmp_path: Path, runner: ScriptedRunner) -> RuntimeContext:
    return RuntimeContext.create(tmp_path, runner=runner)


def test_gh_read_retries_transient_error(tmp_path: Path) -> None:
    runner = ScriptedRunner()
    runner.on("gh", "release", "view", exit_code=1, stderr="HTTP 503 Service Unavailable", times=1)
    runner.on("gh", "release", "view", stdout='{"url": "u"}')

    result = gh_mod.run_gh_read(_ctx(tmp_path, runner), ["gh", "release", "view", "t"], delay=_no_sleep)

    assert isinstance(result, Ok)
    assert runner.count("gh", "release", "view") == 2


def test_gh_read_does_not_retry_on_non_transient(tmp_path: Path) -> None:
    runner = ScriptedRunner().on("gh", "release", "view", exit_code=1, stderr="release not found")

    result = gh_mod.run_gh_read(_ctx(tmp_path, runner), ["gh", "release", "view", "t"], delay=_no_sleep)

    assert isinstance(result, Err)
    assert runner.count("gh", "release", "view") == 1


def test_gh_read_gives_up_after_attempts(tmp_path: Path) -> None:
    runner = ScriptedRunner().on("gh", exit_code=1, stderr="connection reset by peer")
    delays: list[float] = []

    result = gh_mod.run_gh_read(_ctx(tmp_path, runner), ["gh", "api", "x"], retry_attempts=3, delay=delays.append)

    assert isinstance(result, Err)
    assert runner.count("gh") == 3
    assert delays == [1.0, 2.0]


def test_create_release(tmp_path: Path) -> None:
    notes_seen: list[str] = []

    def capture_notes(cmd: tuple[str, ...], cwd: Path) -> None:
        del cwd
        notes_file = Path(cmd[cmd.index("--notes-file") + 1])
        notes_seen.append(notes_file.read_text(encoding="utf-8"))

    runner = ScriptedRunner().on(
        "gh",
        "release",
        "create",
        stdout="https://github.com/acme/mcp-debugger/releases/tag/debugger-v1.0.0\n",
        effect=capture_notes,
    )

    result = gh_mod.create_release(
        _ctx(tmp_path, runner),
        REPO,
        "debugger-v1.0.0",
        title="Debugger v1.0.0",
        notes="## notes",
        prerelease=True,
    )

    assert result == Ok("https://github.com/acme/mcp-debugger/releases/tag/debugger-v1.0.0")
    assert notes_seen == ["## notes"]
    cmd = runner.calls[0][0]
    assert cmd[:4] == ("gh", "release", "create", "debugger-v1.0.0")
    assert "--prerelease" in cmd
    assert ("--repo", "acme/mcp-debugger") == cmd[4:6]
    # Notes file is removed afterwards.
    assert list((tmp_path / "releases").glob(".notes-*")) == []


def test_create_release_auth_failure(tmp_path: Path) -> None:
    runner = ScriptedRunner().on("gh", "release", "create", exit_code=1, stderr="HTTP 401: Bad credentials")

    result = gh_mod.create_release(_ctx(tmp_path, runner), REPO, "t", title="x", notes="")

    assert isinstance(result, Err)
    assert result.error.kind == "publish_auth"
    assert result.error.hint is not None and "gh auth login" in result.error.hint


def test_attach_assets(tmp_path: Path) -> None:
    asset = tmp_path / "binaries" / "x.tar.gz"
    asset.parent.mkdir()
    asset.write_bytes(b"x")
    runner = ScriptedRunner()

    assert gh_mod.attach_assets(_ctx(tmp_path, runner), REPO, "t", [asset]) == Ok(None)
    assert runner.calls[0][0] == ("gh", "release", "upload", "t", str(asset), "--repo", "acme/mcp-debugger")


def test_attach_missing_asset(tmp_path: Path) -> None:
    runner = ScriptedRunner()
    result = gh_mod.attach_assets(_ctx(tmp_path, runner), REPO, "t", [tmp_path / "nope.zip"])

    assert isinstance(result, Err)
    assert not runner.calls


def test_delete_release_tolerates_not_found(tmp_path: Path) -> None:
    runner = ScriptedRunner().on("gh", "release", "delete", exit_code=1, stderr="release not found")
    assert gh_mod.delete_release(_ctx(tmp_path, runner), REPO, "t") == Ok(None)


def test_release_exists(tmp_path: Path) -> None:
    runner = ScriptedRunner().on("gh", "release", "view", "missing", exit_code=1, stderr="release not found")
    ctx = _ctx(tmp_path, runner)

    assert gh_mod.release_exists(ctx, REPO, "present", delay=_no_sleep)
    assert not gh_mod.release_exists(ctx, REPO, "missing", delay=_no_sleep)
