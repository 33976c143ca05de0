"""Process execution behind a single narrow seam.

Every external tool (git, gh, npm, docker, vsce, pkg) is invoked through a
``CommandRunner``: a callable taking ``(command, cwd)`` and returning a
``CommandOutput``. Production code uses ``SubprocessRunner``; tests pass a
``ScriptedRunner``, so no release logic ever needs a real toolchain.

Usage:
    runner = SubprocessRunner(timeout=60.0)
    result = run(runner, ["git", "status", "--porcelain"], cwd=repo_root)
    match result:
        case Ok(stdout):
            print(stdout)
        case Err(error):
            print(f"Failed: {error.output}")
"""

from __future__ import annotations

import os
import shlex
import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from monorel.core.result import Err, Ok, Result

__all__ = [
    "CommandOutput",
    "CommandRunner",
    "ProcessError",
    "ScriptedRunner",
    "SubprocessRunner",
    "run",
    "split_command",
]


@dataclass(frozen=True, slots=True)
class CommandOutput:
    """Raw outcome of one command.

    Attributes:
        command: The command that was executed.
        exit_code: Process exit code (-1 when the process could not run).
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    command: tuple[str, ...]
    exit_code: int
    stdout: str
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    @property
    def text(self) -> str:
        """stdout and stderr joined, for logs and error classification."""
        return "\n".join(p for p in (self.stdout.strip(), self.stderr.strip()) if p)


class CommandRunner(Protocol):
    """Run ``command`` in ``cwd`` and report what happened. Never raises."""

    def __call__(self, command: Sequence[str], cwd: Path) -> CommandOutput: ...


class SubprocessRunner:
    """CommandRunner backed by ``subprocess.run``.

    The timeout applies to every command; a hung tool otherwise blocks the
    release indefinitely.
    """

    def __init__(
        self,
        *,
        timeout: float | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._timeout = timeout
        self._env = dict(env) if env is not None else None

    def __call__(self, command: Sequence[str], cwd: Path) -> CommandOutput:
        cmd = tuple(command)
        try:
            proc = subprocess.run(
                list(cmd),
                cwd=str(cwd),
                env=self._env,
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as e:
            stdout = e.stdout if isinstance(e.stdout, str) else ""
            return CommandOutput(
                command=cmd,
                exit_code=-1,
                stdout=stdout,
                stderr=f"Command timed out after {self._timeout}s",
            )
        except OSError as e:
            return CommandOutput(command=cmd, exit_code=-1, stdout="", stderr=str(e))

        return CommandOutput(
            command=cmd,
            exit_code=proc.returncode,
            stdout=proc.stdout or "",
            stderr=proc.stderr or "",
        )


@dataclass(frozen=True, slots=True)
class ProcessError:
    """Error from a failed command.

    Attributes:
        command: The command that was executed.
        returncode: The exit code of the process.
        stdout: Standard output (may be empty).
        stderr: Standard error (contains error details).
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def output(self) -> str:
        return "\n".join(p for p in (self.stdout.strip(), self.stderr.strip()) if p)

    def __str__(self) -> str:
        cmd_str = " ".join(self.command[:3])
        if len(self.command) > 3:
            cmd_str += " ..."
        return f"{cmd_str} failed (exit {self.returncode})"


def run(runner: CommandRunner, cmd: Sequence[str], cwd: Path) -> Result[str, ProcessError]:
    """Execute a command and return stdout or error."""
    out = runner(cmd, cwd)
    if out.ok:
        return Ok(out.stdout)
    return Err(
        ProcessError(
            command=out.command,
            returncode=out.exit_code,
            stdout=out.stdout,
            stderr=out.stderr,
        )
    )


def split_command(command: str) -> list[str]:
    """Split a configured command line (e.g. ``nx build mcp-x``) into argv."""
    return shlex.split(command, posix=os.name != "nt")


@dataclass(frozen=True, slots=True)
class _Rule:
    prefix: tuple[str, ...]
    output: CommandOutput
    effect: Callable[[tuple[str, ...], Path], None] | None
    times: int | None


class ScriptedRunner:
    """CommandRunner that answers from a script and records every call.

    The longest matching command prefix wins. Among equal prefixes, rules
    with a remaining ``times`` budget are used first, in the order they were
    added; otherwise the most recently added rule wins, so a test can
    override a default. Unmatched commands succeed with empty output.

    Usage:
        runner = ScriptedRunner()
        runner.on("npm", "whoami", stdout="alice")
        runner.on("npm", "publish", exit_code=1, stderr="E401 Unauthorized")
    """

    def __init__(self) -> None:
        self.calls: list[tuple[tuple[str, ...], Path]] = []
        self._rules: list[_Rule] = []
        self._used: dict[int, int] = {}

    def on(
        self,
        *prefix: str,
        stdout: str = "",
        stderr: str = "",
        exit_code: int = 0,
        times: int | None = None,
        effect: Callable[[tuple[str, ...], Path], None] | None = None,
    ) -> ScriptedRunner:
        out = CommandOutput(command=tuple(prefix), exit_code=exit_code, stdout=stdout, stderr=stderr)
        self._rules.append(_Rule(prefix=tuple(prefix), output=out, effect=effect, times=times))
        return self

    def __call__(self, command: Sequence[str], cwd: Path) -> CommandOutput:
        cmd = tuple(command)
        self.calls.append((cmd, cwd))

        best: tuple[int, _Rule] | None = None
        for index, rule in enumerate(self._rules):
            if cmd[: len(rule.prefix)] != rule.prefix:
                continue
            if rule.times is not None and self._used.get(index, 0) >= rule.times:
                continue
            if best is None or self._outranks(rule, best[1]):
                best = (index, rule)

        if best is None:
            return CommandOutput(command=cmd, exit_code=0, stdout="")

        index, rule = best
        self._used[index] = self._used.get(index, 0) + 1
        if rule.effect is not None:
            rule.effect(cmd, cwd)
        return CommandOutput(
            command=cmd,
            exit_code=rule.output.exit_code,
            stdout=rule.output.stdout,
            stderr=rule.output.stderr,
        )

    @staticmethod
    def _outranks(rule: _Rule, current: _Rule) -> bool:
        if len(rule.prefix) != len(current.prefix):
            return len(rule.prefix) > len(current.prefix)
        return current.times is None

    @property
    def commands(self) -> list[str]:
        return [" ".join(cmd) for cmd, _ in self.calls]

    def ran(self, *prefix: str) -> bool:
        return any(cmd[: len(prefix)] == prefix for cmd, _ in self.calls)

    def count(self, *prefix: str) -> int:
        return sum(1 for cmd, _ in self.calls if cmd[: len(prefix)] == prefix)
