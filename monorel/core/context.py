"""Runtime context threaded through every release component.

Components never read ``os.environ`` or ``Path.cwd()`` themselves. The CLI
builds one ``RuntimeContext`` (project root, frozen environment snapshot,
command runner) and passes it down, so tests can construct one directly.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType

from monorel.core.result import Err, Ok, Result
from monorel.platform.process import CommandRunner, SubprocessRunner

__all__ = [
    "ROOT_ENV_VAR",
    "RootError",
    "RuntimeContext",
    "detect_project_root",
]

ROOT_ENV_VAR = "MONOREL_ROOT"

# Per-command ceiling for the production runner (builds and pushes can be slow).
DEFAULT_COMMAND_TIMEOUT_SECONDS = 30 * 60.0


def _empty_env() -> Mapping[str, str]:
    return MappingProxyType({})


@dataclass(frozen=True, slots=True)
class RootError:
    """Error when the project root cannot be determined."""

    message: str
    searched_from: Path | None = None


@dataclass(frozen=True, slots=True)
class RuntimeContext:
    """Immutable view of the environment a release runs in.

    Attributes:
        project_root: Monorepo root; config paths and sync files are relative to it.
        env: Snapshot of environment variables taken once at startup.
        runner: The process-execution seam.
    """

    project_root: Path
    runner: CommandRunner
    env: Mapping[str, str] = field(default_factory=_empty_env)

    @classmethod
    def create(
        cls,
        project_root: Path,
        *,
        runner: CommandRunner,
        env: Mapping[str, str] | None = None,
    ) -> RuntimeContext:
        return cls(
            project_root=project_root,
            runner=runner,
            env=MappingProxyType(dict(env or {})),
        )

    @classmethod
    def from_environment(
        cls,
        project_root: Path,
        *,
        timeout: float | None = DEFAULT_COMMAND_TIMEOUT_SECONDS,
    ) -> RuntimeContext:
        env = dict(os.environ)
        return cls.create(
            project_root,
            runner=SubprocessRunner(timeout=timeout, env=env),
            env=env,
        )

    @property
    def config_dir(self) -> Path:
        """Directory holding per-package release configs."""
        return self.project_root / "scripts" / "release-config"

    @property
    def releases_dir(self) -> Path:
        """Directory for manifests and release logs."""
        return self.project_root / "releases"

    @property
    def binaries_dir(self) -> Path:
        return self.project_root / "binaries"

    def getenv(self, *names: str) -> str | None:
        """First non-empty value among ``names``."""
        for name in names:
            value = self.env.get(name)
            if value:
                return value
        return None

    def home(self) -> Path | None:
        home = self.getenv("HOME", "USERPROFILE")
        return Path(home) if home else None


def detect_project_root(
    *,
    explicit: Path | None,
    env: Mapping[str, str],
    cwd: Path,
) -> Result[Path, RootError]:
    """Resolve the monorepo root.

    Order: explicit ``--root``, ``MONOREL_ROOT``, then the nearest ancestor of
    ``cwd`` that contains ``.git``.
    """
    if explicit is not None:
        root = explicit.expanduser().resolve()
        if not root.is_dir():
            return Err(RootError(f"--root is not a directory: {root}"))
        return Ok(root)

    env_root = env.get(ROOT_ENV_VAR)
    if env_root:
        root = Path(env_root).expanduser().resolve()
        if not root.is_dir():
            return Err(RootError(f"{ROOT_ENV_VAR} is not a directory: {root}"))
        return Ok(root)

    start = cwd.resolve()
    for parent in (start, *start.parents):
        if (parent / ".git").exists():
            return Ok(parent)

    return Err(
        RootError(
            "could not find the project root (no .git found)",
            searched_from=start,
        )
    )
