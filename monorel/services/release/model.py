from __future__ import annotations

from typing import TypeAlias

from dataclasses import dataclass, field
from enum import Enum

from monorel.core.config import SubmoduleConfig
from monorel.services.release.errors import ReleaseError


class Stage(Enum):
    INIT = "init"
    PREFLIGHT = "preflight"
    VERSION_SYNC = "version_sync"
    BUILD = "build"
    PUBLISH = "publish"
    TAG = "tag"
    HOST_RELEASE = "host_release"
    VERIFY = "verify"
    DONE = "done"
    FAILED = "failed"
    ROLLED_BACK = "rolled_back"

    @property
    def is_terminal(self) -> bool:
        return self in {Stage.DONE, Stage.FAILED, Stage.ROLLED_BACK}


# Linear happy path; each stage is entered only from its predecessor.
PIPELINE: tuple[Stage, ...] = (
    Stage.PREFLIGHT,
    Stage.VERSION_SYNC,
    Stage.BUILD,
    Stage.PUBLISH,
    Stage.TAG,
    Stage.HOST_RELEASE,
    Stage.VERIFY,
)


@dataclass(frozen=True, slots=True)
class StageResult:
    """Uniform outcome of one preflight check or one pipeline stage."""

    name: str
    passed: bool
    message: str
    hint: str | None = None
    error: ReleaseError | None = None

    @classmethod
    def ok(cls, name: str, message: str) -> StageResult:
        return cls(name=name, passed=True, message=message)

    @classmethod
    def failed(cls, name: str, message: str, *, hint: str | None = None) -> StageResult:
        return cls(name=name, passed=False, message=message, hint=hint)

    @classmethod
    def from_error(cls, name: str, error: ReleaseError) -> StageResult:
        return cls(name=name, passed=False, message=error.message, hint=error.hint, error=error)


@dataclass(frozen=True, slots=True)
class ReleaseOptions:
    dry_run: bool = False
    skip_tests: bool = False
    skip_build: bool = False
    include_docker: bool = False
    skip_verify: bool = False
    non_interactive: bool = False


@dataclass(frozen=True, slots=True)
class SyncReport:
    files_updated: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors


@dataclass(frozen=True, slots=True)
class PreflightReport:
    passed: bool
    checks: tuple[StageResult, ...]

    @property
    def failures(self) -> list[StageResult]:
        return [c for c in self.checks if not c.passed]


@dataclass(frozen=True, slots=True)
class PublishOutcome:
    """Raw result of one external publish-like operation."""

    success: bool
    url: str | None = None
    output: str = ""
    error: str | None = None


# Rollback actions: pushed only after the side effect is confirmed.


@dataclass(frozen=True, slots=True)
class CommitMade:
    sha: str


@dataclass(frozen=True, slots=True)
class TagCreated:
    tag: str


@dataclass(frozen=True, slots=True)
class ReleaseCreated:
    tag: str


@dataclass(frozen=True, slots=True)
class RegistryPublished:
    target: str
    version: str


RollbackAction: TypeAlias = CommitMade | TagCreated | ReleaseCreated | RegistryPublished


def describe_action(action: RollbackAction) -> str:
    match action:
        case CommitMade(sha=sha):
            return f"commit {sha[:8]}"
        case TagCreated(tag=tag):
            return f"tag {tag}"
        case ReleaseCreated(tag=tag):
            return f"GitHub release {tag}"
        case RegistryPublished(target=target, version=version):
            return f"{target} {version}"


@dataclass(frozen=True, slots=True)
class BuildArtifacts:
    """Files produced by the BUILD stage that later stages consume."""

    vsix: str | None = None
    binaries: tuple[str, ...] = ()
    archives: tuple[str, ...] = ()
    checksums: dict[str, str] = field(default_factory=dict)
    docker_image: str | None = None
    checksum_file: str | None = None

    @property
    def release_assets(self) -> tuple[str, ...]:
        assets = list(self.archives)
        if self.checksum_file:
            assets.append(self.checksum_file)
        if self.vsix:
            assets.append(self.vsix)
        return tuple(assets)


def _empty_results() -> list[StageResult]:
    return []


def _empty_actions() -> list[RollbackAction]:
    return []


def _empty_str_map() -> dict[str, str]:
    return {}


def _empty_bool_map() -> dict[str, bool]:
    return {}


@dataclass
class ReleaseState:
    """Mutable per-run state owned by the orchestrator."""

    package: str
    version: str
    stage: Stage = Stage.INIT
    results: list[StageResult] = field(default_factory=_empty_results)
    rollback: list[RollbackAction] = field(default_factory=_empty_actions)
    published_urls: dict[str, str] = field(default_factory=_empty_str_map)
    checksums: dict[str, str] = field(default_factory=_empty_str_map)
    verification: dict[str, bool] = field(default_factory=_empty_bool_map)
    changelog: str = ""
    synced_files: tuple[str, ...] = ()
    created_files: tuple[str, ...] = ()
    artifacts: BuildArtifacts = field(default_factory=BuildArtifacts)
    tag: str | None = None
    error: ReleaseError | None = None
    rollback_failures: list[str] = field(default_factory=list)


def docker_enabled(config: SubmoduleConfig, options: ReleaseOptions) -> bool:
    """Docker is opt-in: requested with ``--docker`` and an image name is configured."""
    return options.include_docker and config.publish.docker_image_name is not None
