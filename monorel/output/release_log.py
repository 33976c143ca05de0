"""Append-only release transcript.

Every stage transition and every external command run during a release is
appended to a log file with a UTC timestamp. Lines are written immediately,
so the transcript survives a crash or an interrupt mid-pipeline.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import UTC, datetime
from pathlib import Path

from monorel.platform.files import append_line
from monorel.platform.process import CommandOutput, CommandRunner

__all__ = ["LoggingRunner", "ReleaseLog", "default_log_path"]


def default_log_path(releases_dir: Path, package: str, version: str) -> Path:
    return releases_dir / "logs" / f"{package}-v{version}.log"


def _utc_now() -> datetime:
    return datetime.now(UTC)


class ReleaseLog:
    """Timestamped transcript file.

    Pass ``path=None`` to keep the transcript in memory only (``lines``).
    Values in ``secrets`` (registry tokens) are masked before anything is
    recorded.
    """

    def __init__(
        self,
        path: Path | None,
        *,
        secrets: Sequence[str] = (),
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self.path = path
        self._clock = clock
        self._secrets = tuple(s for s in secrets if s)
        self.lines: list[str] = []

    def write(self, message: str) -> None:
        stamp = self._clock().isoformat(timespec="seconds")
        for secret in self._secrets:
            message = message.replace(secret, "***")
        for raw in message.splitlines() or [""]:
            line = f"[{stamp}] {raw}"
            self.lines.append(line)
            if self.path is not None:
                append_line(self.path, line)

    def stage(self, name: str, status: str) -> None:
        self.write(f"stage {name}: {status}")

    def command(self, output: CommandOutput, cwd: Path) -> None:
        self.write(f"$ {' '.join(output.command)}  (cwd={cwd}, exit={output.exit_code})")
        if output.text:
            self.write(output.text)


class LoggingRunner:
    """CommandRunner wrapper recording every command into a ReleaseLog."""

    def __init__(self, inner: CommandRunner, log: ReleaseLog) -> None:
        self._inner = inner
        self._log = log

    def __call__(self, command: Sequence[str], cwd: Path) -> CommandOutput:
        out = self._inner(command, cwd)
        self._log.command(out, cwd)
        return out
