"""Typed release configuration loading.

Each releasable package has an optional JSON file at
``scripts/release-config/<name>.json``. Loading goes:

1. read the file, or derive conventional defaults when it is absent
2. apply whitelisted environment overrides
3. validate, collecting every problem
4. build the immutable ``SubmoduleConfig``
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .result import Err, Ok, Result
from .structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_list,
    get_str,
    get_str_list,
    get_table,
)

__all__ = [
    "ArtifactFlags",
    "BuildCommands",
    "ConfigError",
    "PublishNames",
    "RepositoryInfo",
    "SubmoduleConfig",
    "VersionSyncFile",
    "apply_env_overrides",
    "default_raw_config",
    "list_available_configs",
    "load_config",
    "validate_raw_config",
]

ENV_PREFIX = "RELEASE_CONFIG_"
DEFAULT_REPO_OWNER = "digital-defiance"
DEFAULT_NPM_SCOPE = "@ai-capabilities-suite"
DEFAULT_RELEASE_BRANCHES = ("main", "master")
VERSION_PLACEHOLDER = "$VERSION"

# Env suffix -> raw config key. Only these fields may be overridden.
ENV_OVERRIDES: dict[str, str] = {
    "BUILD_COMMAND": "buildCommand",
    "TEST_COMMAND": "testCommand",
    "PACKAGE_DIR": "packageDir",
    "NPM_PACKAGE_NAME": "npmPackageName",
    "DOCKER_IMAGE_NAME": "dockerImageName",
    "BUILD_BINARIES": "buildBinaries",
}

# Every config file must name these keys. Artifact names may be null.
REQUIRED_KEYS = (
    "packageName",
    "npmPackageName",
    "vscodeExtensionName",
    "dockerImageName",
    "packageDir",
    "vscodeExtensionDir",
    "buildBinaries",
    "testCommand",
    "buildCommand",
    "filesToSync",
    "githubReleaseTemplate",
)

_STRING_KEYS = ("packageName", "packageDir", "testCommand", "buildCommand")
_NULLABLE_KEYS = (
    "npmPackageName",
    "vscodeExtensionName",
    "dockerImageName",
    "vscodeExtensionDir",
    "githubReleaseTemplate",
)

_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")


@dataclass(frozen=True, slots=True)
class ConfigError:
    """Error when a release config cannot be loaded or is invalid."""

    message: str
    path: Path | None = None
    problems: tuple[str, ...] = ()

    def pretty(self) -> str:
        if not self.problems:
            return self.message
        lines = [self.message, *(f"  - {p}" for p in self.problems)]
        return "\n".join(lines)


@dataclass(frozen=True, slots=True)
class VersionSyncFile:
    """One version substitution.

    Attributes:
        path: File path relative to the project root.
        pattern: Regex source, ``/source/flags`` literal, or compiled pattern.
        replacement: Template with ``$VERSION`` and optional ``$1``/``$<name>``/``$&``.
        replace_all: Replace every match instead of the first one.
        optional: Skip silently when the file does not exist.
    """

    path: str
    pattern: str | re.Pattern[str]
    replacement: str
    replace_all: bool = False
    optional: bool = False


@dataclass(frozen=True, slots=True)
class RepositoryInfo:
    owner: str
    name: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"

    @property
    def url(self) -> str:
        return f"https://github.com/{self.owner}/{self.name}"


@dataclass(frozen=True, slots=True)
class ArtifactFlags:
    npm: bool = False
    docker: bool = False
    vscode: bool = False
    binaries: bool = False


@dataclass(frozen=True, slots=True)
class BuildCommands:
    command: str
    test_command: str


@dataclass(frozen=True, slots=True)
class PublishNames:
    npm_package_name: str | None = None
    docker_image_name: str | None = None
    vscode_extension_id: str | None = None


@dataclass(frozen=True, slots=True)
class SubmoduleConfig:
    """Release configuration of one package. Immutable once loaded."""

    name: str
    display_name: str
    path: str
    repository: RepositoryInfo
    artifacts: ArtifactFlags
    build: BuildCommands
    publish: PublishNames
    version_sync: tuple[VersionSyncFile, ...] = ()
    vscode_extension_dir: str | None = None
    binary_platforms: tuple[str, ...] = ()
    github_release_template: str | None = None
    release_branches: tuple[str, ...] = field(default=DEFAULT_RELEASE_BRANCHES)


def default_raw_config(name: str) -> StrDict:
    """Conventional config for a package without a config file (npm only)."""
    return {
        "packageName": name,
        "npmPackageName": f"{DEFAULT_NPM_SCOPE}/mcp-{name}",
        "vscodeExtensionName": None,
        "dockerImageName": None,
        "packageDir": f"packages/mcp-{name}",
        "vscodeExtensionDir": None,
        "buildBinaries": False,
        "testCommand": f"nx test mcp-{name}",
        "buildCommand": f"nx build mcp-{name}",
        "filesToSync": [
            {
                "path": f"packages/mcp-{name}/package.json",
                "pattern": '"version":\\s*"[^"]+"',
                "replacement": f'"version": "{VERSION_PLACEHOLDER}"',
            }
        ],
        "githubReleaseTemplate": None,
    }


def _env_scope(name: str) -> str:
    return re.sub(r"[^A-Za-z0-9]", "_", name).upper()


def apply_env_overrides(raw: Mapping[str, object], name: str, env: Mapping[str, str]) -> StrDict:
    """Apply ``RELEASE_CONFIG_<FIELD>`` then ``RELEASE_CONFIG_<PKG>_<FIELD>``.

    The package-scoped form wins over the global one. Returns a new dict.
    """
    out: StrDict = dict(raw)
    scoped_prefix = f"{ENV_PREFIX}{_env_scope(name)}_"

    for suffix, key in ENV_OVERRIDES.items():
        value = env.get(f"{scoped_prefix}{suffix}")
        if value is None:
            value = env.get(f"{ENV_PREFIX}{suffix}")
        if value is None or (value == "" and key != "buildBinaries"):
            continue

        if key == "buildBinaries":
            out[key] = value.strip().lower() in {"1", "true", "yes"}
        else:
            out[key] = value

    return out


def validate_raw_config(raw: Mapping[str, object]) -> list[str]:
    """Return every problem found; an empty list means valid."""
    problems: list[str] = []

    for key in REQUIRED_KEYS:
        if key not in raw and key not in _STRING_KEYS:
            problems.append(f"{key} is required")

    for key in _STRING_KEYS:
        if get_str(raw, key) is None:
            problems.append(f"{key} is required")

    for key in _NULLABLE_KEYS:
        value = raw.get(key)
        if value is not None and not isinstance(value, str):
            problems.append(f"{key} must be a string")

    build_binaries = raw.get("buildBinaries", False)
    if not isinstance(build_binaries, bool):
        problems.append("buildBinaries must be a boolean")
        build_binaries = False

    if build_binaries:
        platforms = get_str_list(raw, "binaryPlatforms")
        if not platforms:
            problems.append("binaryPlatforms is required when buildBinaries is true")

    if raw.get("releaseBranches") is not None and not get_str_list(raw, "releaseBranches"):
        problems.append("releaseBranches must be a non-empty list of strings")

    if raw.get("vscodeExtensionName") and not get_str(raw, "vscodeExtensionDir"):
        problems.append("vscodeExtensionDir is required when vscodeExtensionName is set")

    if "filesToSync" in raw:
        items = get_list(raw, "filesToSync")
        if items is None:
            problems.append("filesToSync must be an array")
        else:
            for index, item in enumerate(items):
                entry = as_str_dict(item)
                if entry is None:
                    problems.append(f"filesToSync[{index}] must be an object")
                    continue
                for key in ("path", "pattern", "replacement"):
                    if get_str(entry, key) is None:
                        problems.append(f"filesToSync[{index}].{key} is required")

    return problems


def _sync_files(raw: Mapping[str, object]) -> tuple[VersionSyncFile, ...]:
    out: list[VersionSyncFile] = []
    for item in get_list(raw, "filesToSync") or []:
        entry = as_str_dict(item)
        if entry is None:
            continue
        out.append(
            VersionSyncFile(
                path=get_str(entry, "path") or "",
                pattern=get_str(entry, "pattern") or "",
                # Leading/trailing spaces can be significant in a template.
                replacement=str(entry.get("replacement", "")),
                replace_all=get_bool(entry, "global") or False,
                optional=get_bool(entry, "optional") or False,
            )
        )
    return tuple(out)


def _repository(raw: Mapping[str, object], name: str) -> RepositoryInfo:
    repo = get_table(raw, "repository") or {}
    return RepositoryInfo(
        owner=get_str(repo, "owner") or DEFAULT_REPO_OWNER,
        name=get_str(repo, "name") or f"mcp-{name}",
    )


def config_from_raw(raw: Mapping[str, object], name: str) -> SubmoduleConfig:
    """Build a SubmoduleConfig from an already validated raw mapping."""
    npm_name = get_str(raw, "npmPackageName")
    docker_image = get_str(raw, "dockerImageName")
    vscode_id = get_str(raw, "vscodeExtensionName")
    build_binaries = get_bool(raw, "buildBinaries") or False

    return SubmoduleConfig(
        name=name,
        display_name=get_str(raw, "packageName") or name,
        path=get_str(raw, "packageDir") or "",
        repository=_repository(raw, name),
        artifacts=ArtifactFlags(
            npm=npm_name is not None,
            docker=docker_image is not None,
            vscode=vscode_id is not None,
            binaries=build_binaries,
        ),
        build=BuildCommands(
            command=get_str(raw, "buildCommand") or "",
            test_command=get_str(raw, "testCommand") or "",
        ),
        publish=PublishNames(
            npm_package_name=npm_name,
            docker_image_name=docker_image,
            vscode_extension_id=vscode_id,
        ),
        version_sync=_sync_files(raw),
        vscode_extension_dir=get_str(raw, "vscodeExtensionDir"),
        binary_platforms=tuple(get_str_list(raw, "binaryPlatforms") or ()),
        github_release_template=get_str(raw, "githubReleaseTemplate"),
        release_branches=tuple(get_str_list(raw, "releaseBranches") or DEFAULT_RELEASE_BRANCHES),
    )


def _read_raw(path: Path) -> Result[StrDict | None, ConfigError]:
    """Read a config file; Ok(None) when it does not exist."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Ok(None)
    except OSError as e:
        return Err(ConfigError(f"Error reading config: {e}", path=path))

    try:
        obj: object = json.loads(text)
    except json.JSONDecodeError as e:
        return Err(ConfigError(f"Invalid JSON in {path.name}: {e}", path=path))

    data = as_str_dict(obj)
    if data is None:
        return Err(ConfigError("Config root must be a JSON object", path=path))
    return Ok(data)


def load_config(
    name: str,
    *,
    config_dir: Path,
    env: Mapping[str, str],
) -> Result[SubmoduleConfig, ConfigError]:
    """Load, override and validate the release config of one package.

    Args:
        name: Package short name (e.g. ``debugger``).
        config_dir: Directory containing ``<name>.json`` files.
        env: Environment snapshot used for overrides.

    Returns:
        Ok(SubmoduleConfig) on success, Err(ConfigError) listing every problem.
    """
    if not _NAME_RE.match(name):
        return Err(ConfigError(f"Invalid package name: {name!r}"))

    path = config_dir / f"{name}.json"
    loaded = _read_raw(path)
    if isinstance(loaded, Err):
        return loaded

    file_raw = loaded.value if loaded.value is not None else default_raw_config(name)
    raw = apply_env_overrides(file_raw, name, env)

    problems = validate_raw_config(raw)
    if problems:
        return Err(
            ConfigError(
                f"Invalid configuration for {name}:",
                path=path if loaded.value is not None else None,
                problems=tuple(problems),
            )
        )

    return Ok(config_from_raw(raw, name))


def list_available_configs(config_dir: Path) -> list[str]:
    """Names of packages that have a config file, sorted."""
    if not config_dir.is_dir():
        return []
    return sorted(p.stem for p in config_dir.glob("*.json") if p.is_file())
