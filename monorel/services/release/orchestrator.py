"""Release pipeline state machine.

    INIT -> PREFLIGHT -> VERSION_SYNC -> BUILD -> PUBLISH -> TAG
         -> HOST_RELEASE -> VERIFY -> DONE

Each stage starts only after the previous one succeeded. Any stage error
aborts into rollback: confirmed actions are undone newest first, then
version-synced files that were never committed are restored with
``git checkout HEAD``. The final state is ``ROLLED_BACK``, or ``FAILED`` when
there was nothing to undo.

Dry-run still syncs and builds, but publishes to local equivalents, skips
TAG and HOST_RELEASE, and restores the synced files at the end.
"""

from __future__ import annotations

from typing import TypeAlias

from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from time import sleep

from monorel.core.config import SubmoduleConfig
from monorel.core.context import RuntimeContext
from monorel.core.result import Err, Ok, Result
from monorel.git.repository import Repository, format_tag
from monorel.output.console import ConsoleProtocol
from monorel.output.release_log import ReleaseLog
from monorel.services.release import gh
from monorel.services.release.build import BuildCoordinator
from monorel.services.release.changelog import (
    CHANGELOG_FILE,
    generate_changelog,
    render_release_notes,
    update_changelog_file,
)
from monorel.services.release.errors import ReleaseError
from monorel.services.release.manifest import write_manifest
from monorel.services.release.model import (
    PIPELINE,
    CommitMade,
    RegistryPublished,
    ReleaseCreated,
    ReleaseOptions,
    ReleaseState,
    Stage,
    StageResult,
    TagCreated,
    describe_action,
)
from monorel.services.release.preflight import PreflightValidator
from monorel.services.release.publishers import Publisher, publishers_for, to_result
from monorel.services.release.rollback import ReleaseUndo, RollbackStack
from monorel.services.release.semver import validate_version
from monorel.services.release.verification import verify_targets
from monorel.services.release.version_sync import VersionSyncEngine

__all__ = ["ReleaseOrchestrator", "ReleaseOutcome"]

StageHandler: TypeAlias = Callable[[ReleaseState], Result[str, ReleaseError]]

STAGE_TITLES: dict[Stage, str] = {
    Stage.PREFLIGHT: "Preflight checks",
    Stage.VERSION_SYNC: "Version sync",
    Stage.BUILD: "Build",
    Stage.PUBLISH: "Publish",
    Stage.TAG: "Commit, tag and push",
    Stage.HOST_RELEASE: "GitHub release",
    Stage.VERIFY: "Verify",
}


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True, slots=True)
class ReleaseOutcome:
    state: ReleaseState
    manifest: Path | None = None

    @property
    def ok(self) -> bool:
        return self.state.stage is Stage.DONE

    @property
    def error(self) -> ReleaseError | None:
        return self.state.error


class ReleaseOrchestrator:
    """Drive one release of one package.

    Every external effect goes through ``ctx.runner``, so a scripted runner
    is enough to exercise the whole pipeline.
    """

    def __init__(
        self,
        ctx: RuntimeContext,
        config: SubmoduleConfig,
        options: ReleaseOptions,
        *,
        console: ConsoleProtocol,
        log: ReleaseLog,
        clock: Callable[[], datetime] = _utc_now,
        delay: Callable[[float], None] = sleep,
    ) -> None:
        self.ctx = ctx
        self.config = config
        self.options = options
        self.console = console
        self.log = log
        self._clock = clock
        self._delay = delay

        self.repo = Repository(ctx.project_root, ctx.runner)
        self.version_sync = VersionSyncEngine(ctx.project_root)
        self.preflight = PreflightValidator(ctx)
        self.builder = BuildCoordinator(ctx, console)
        self._publishers: list[Publisher] = []

    def run(self, version: str) -> ReleaseOutcome:
        state = ReleaseState(package=self.config.name, version=version)
        mode = " (dry-run)" if self.options.dry_run else ""
        self.log.stage(Stage.INIT.value, f"{self.config.name} {version}{mode}")

        init = self._init(state)
        if isinstance(init, Err):
            return self._abort(state, Stage.INIT, init.error)

        handlers: dict[Stage, StageHandler] = {
            Stage.PREFLIGHT: self._preflight,
            Stage.VERSION_SYNC: self._version_sync,
            Stage.BUILD: self._build,
            Stage.PUBLISH: self._publish,
            Stage.TAG: self._tag,
            Stage.HOST_RELEASE: self._host_release,
            Stage.VERIFY: self._verify,
        }

        for index, stage in enumerate(PIPELINE, start=1):
            state.stage = stage
            self.console.header(f"[{index}/{len(PIPELINE)}] {STAGE_TITLES[stage]}")

            skipped = self._skip_reason(stage)
            if skipped is not None:
                self.console.print(f"skipped ({skipped})")
                self.log.stage(stage.value, f"skipped ({skipped})")
                state.results.append(StageResult.ok(stage.value, f"skipped ({skipped})"))
                continue

            self.log.stage(stage.value, "start")
            result = handlers[stage](state)
            if isinstance(result, Err):
                return self._abort(state, stage, result.error)

            self.log.stage(stage.value, f"ok: {result.value}")
            state.results.append(StageResult.ok(stage.value, result.value))

        if self.options.dry_run:
            self._restore_synced(state)

        state.stage = Stage.DONE
        self.log.stage(Stage.DONE.value, "release complete")
        manifest = write_manifest(
            self.ctx.releases_dir,
            state,
            dry_run=self.options.dry_run,
            timestamp=self._clock(),
        )
        self.console.newline()
        self.console.success(f"{self.config.name} v{version} released{mode}")
        self.console.print(f"manifest: {manifest}")
        return ReleaseOutcome(state=state, manifest=manifest)

    def _skip_reason(self, stage: Stage) -> str | None:
        if stage in {Stage.TAG, Stage.HOST_RELEASE} and self.options.dry_run:
            return "dry-run"
        if stage is Stage.VERIFY and self.options.skip_verify:
            return "--skip-verify"
        return None

    # Stages

    def _init(self, state: ReleaseState) -> Result[None, ReleaseError]:
        valid = validate_version(state.version)
        if isinstance(valid, Err):
            return valid

        if self.options.include_docker and self.config.publish.docker_image_name is None:
            return Err(
                ReleaseError(
                    kind="configuration",
                    message=f"--docker requested but {self.config.name} has no dockerImageName",
                    hint=f"set dockerImageName in scripts/release-config/{self.config.name}.json",
                )
            )

        state.tag = format_tag(self.config.name, state.version)

        changelog = generate_changelog(
            self.repo, self.config, state.version, day=self._clock().date()
        )
        if isinstance(changelog, Err):
            self.console.warning(f"changelog unavailable: {changelog.error.message}")
            state.changelog = ""
        else:
            state.changelog = changelog.value
        return Ok(None)

    def _preflight(self, state: ReleaseState) -> Result[str, ReleaseError]:
        report = self.preflight.run_checks(self.config, self.options)
        for check in report.checks:
            if check.passed:
                self.console.success(f"{check.name}: {check.message}")
            else:
                self.console.error(f"{check.name}: {check.message}")
                if check.hint:
                    self.console.hint(check.hint)
            self.log.write(f"check {check.name}: {'pass' if check.passed else 'FAIL'} {check.message}")

        if report.passed:
            return Ok(f"{len(report.checks)} checks passed")

        names = ", ".join(c.name for c in report.failures)
        return Err(
            ReleaseError(
                kind="preflight",
                message=f"{len(report.failures)} preflight check(s) failed: {names}",
                hint="fix the problems above, or elide checks with --skip-tests/--skip-build",
            )
        )

    def _version_sync(self, state: ReleaseState) -> Result[str, ReleaseError]:
        missing = self.version_sync.missing_files(self.config)
        if missing:
            return Err(
                ReleaseError(
                    kind="validation",
                    message=f"version files not found: {', '.join(missing)}",
                    hint="fix filesToSync in the release config or mark entries optional",
                )
            )

        synced = self.version_sync.sync(self.config, state.version)
        if isinstance(synced, Err):
            return synced

        report = synced.value
        state.synced_files = report.files_updated
        for path in report.files_updated:
            self.console.success(f"updated {path}")
        if report.errors:
            for problem in report.errors:
                self.console.error(problem)
            return Err(
                ReleaseError(
                    kind="validation",
                    message=f"version sync failed for {len(report.errors)} file(s)",
                    hint="fix filesToSync in the release config",
                )
            )

        if not self.version_sync.verify(self.config, state.version):
            return Err(
                ReleaseError(
                    kind="validation",
                    message=f"version {state.version} missing from synced files after sync",
                    hint="check that each pattern matches the version field it should replace",
                )
            )

        changelog_note = self._write_changelog(state)

        if not report.files_updated and changelog_note is None:
            return Ok(f"all files already at {state.version}")
        return Ok(f"{len(state.synced_files)} file(s) updated")

    def _write_changelog(self, state: ReleaseState) -> str | None:
        """Prepend this release's section to the package ``CHANGELOG.md``."""
        if not state.changelog:
            return None
        rel = f"{self.config.path}/{CHANGELOG_FILE}"
        path = self.ctx.project_root / rel
        created = not path.exists()
        if not update_changelog_file(path, state.version, state.changelog):
            self.console.info(f"{rel} already lists {state.version}")
            return None
        state.synced_files = (*state.synced_files, rel)
        if created:
            state.created_files = (*state.created_files, rel)
        self.console.success(f"updated {rel}")
        return rel

    def _build(self, state: ReleaseState) -> Result[str, ReleaseError]:
        built = self.builder.build(self.config, state.version, self.options)
        if isinstance(built, Err):
            return built
        state.artifacts = built.value
        state.checksums.update(built.value.checksums)
        return Ok("artifacts built")

    def _publish(self, state: ReleaseState) -> Result[str, ReleaseError]:
        dry_run = self.options.dry_run
        self._publishers = publishers_for(self.ctx, self.config, self.options, state.artifacts)
        if not self._publishers:
            return Ok("no registry targets")

        done: list[str] = []
        for publisher in self._publishers:
            target = publisher.target
            if publisher.verify(publisher.name, state.version):
                self.console.info(f"{target}: {publisher.name}@{state.version} already published, skipping")
                state.published_urls[target] = publisher.url(state.version)
                done.append(f"{target} (already published)")
                continue

            outcome = to_result(target, "publish", publisher.publish(state.version, dry_run=dry_run))
            if isinstance(outcome, Err):
                return outcome

            if dry_run:
                self.console.success(f"{target}: dry-run package ok")
                done.append(f"{target} (dry-run)")
                continue

            state.rollback.append(RegistryPublished(target=target, version=state.version))
            state.published_urls[target] = outcome.value.url or publisher.url(state.version)
            self.console.success(f"{target}: published {publisher.name}@{state.version}")
            done.append(target)

        return Ok(", ".join(done))

    def _tag(self, state: ReleaseState) -> Result[str, ReleaseError]:
        tag = state.tag or format_tag(self.config.name, state.version)
        branch = self.repo.current_branch()
        if branch is None:
            return Err(ReleaseError(kind="git", message="cannot tag from a detached HEAD"))

        if state.synced_files:
            message = f"chore(release): {self.config.name} v{state.version}"
            committed = self.repo.commit_paths(message, state.synced_files)
            if isinstance(committed, Err):
                return Err(ReleaseError(kind="git", message=f"commit failed: {committed.error.message}"))
            state.rollback.append(CommitMade(sha=committed.value))
            self.console.success(f"committed {committed.value[:8]}")

        created = self.repo.create_tag(tag, message=f"Release {self.config.display_name} v{state.version}")
        if isinstance(created, Err):
            return Err(
                ReleaseError(
                    kind="git",
                    message=created.error.message,
                    hint=f"if {tag} is stale, delete it with `git tag -d {tag}`",
                )
            )
        state.rollback.append(TagCreated(tag=tag))
        self.console.success(f"tagged {tag}")

        pushed = self.repo.push(branch, tag=tag)
        if isinstance(pushed, Err):
            return Err(
                ReleaseError(
                    kind="git",
                    message=f"push failed: {pushed.error.message}",
                    hint="check remote permissions and that the branch is not protected",
                )
            )
        self.console.success(f"pushed {branch} and {tag}")
        return Ok(tag)

    def _host_release(self, state: ReleaseState) -> Result[str, ReleaseError]:
        tag = state.tag or format_tag(self.config.name, state.version)
        parsed = validate_version(state.version)
        prerelease = isinstance(parsed, Ok) and parsed.value.is_prerelease

        created = gh.create_release(
            self.ctx,
            self.config.repository,
            tag,
            title=f"{self.config.display_name} v{state.version}",
            notes=render_release_notes(self.config, state.version, state.changelog),
            prerelease=prerelease,
        )
        if isinstance(created, Err):
            return created
        state.rollback.append(ReleaseCreated(tag=tag))
        state.published_urls["github"] = created.value
        self.console.success(f"GitHub release: {created.value}")

        assets = [self.ctx.project_root / a for a in state.artifacts.release_assets]
        attached = gh.attach_assets(self.ctx, self.config.repository, tag, assets)
        if isinstance(attached, Err):
            return attached
        if assets:
            self.console.success(f"attached {len(assets)} asset(s)")
        return Ok(created.value)

    def _verify(self, state: ReleaseState) -> Result[str, ReleaseError]:
        published = [p for p in self._publishers if p.target in state.published_urls]
        tag = state.tag if "github" in state.published_urls else None
        if not published and tag is None:
            return Ok("nothing to verify")

        checks = verify_targets(self.ctx, self.config, state.version, published, tag=tag, delay=self._delay)
        for check in checks:
            state.verification[check.target] = check.passed
            if check.passed:
                self.console.success(f"{check.target}: {check.message}")
            else:
                # Registries can lag; a miss here never triggers rollback.
                self.console.warning(f"{check.target}: {check.message}")

        failed = [c.target for c in checks if not c.passed]
        if failed:
            return Ok(f"unverified: {', '.join(failed)}")
        return Ok(f"{len(checks)} target(s) verified")

    # Failure handling

    def _abort(self, state: ReleaseState, stage: Stage, error: ReleaseError) -> ReleaseOutcome:
        state.error = error
        state.results.append(StageResult.from_error(stage.value, error))
        self.log.stage(stage.value, f"FAILED [{error.kind}] {error.message}")
        self.console.error(error.message)
        if error.hint:
            self.console.hint(error.hint)

        stack = RollbackStack(state.rollback)
        committed = any(isinstance(a, CommitMade) for a in stack)
        undone_count = 0

        if len(stack):
            self.console.header("Rolling back")
            undo = ReleaseUndo(
                ctx=self.ctx,
                repo=self.repo,
                config=self.config,
                publishers={p.target: p for p in self._publishers},
            )
            undone, failures = stack.unwind(undo)
            undone_count = len(undone)
            for action in undone:
                self.console.success(f"undid {describe_action(action)}")
                self.log.write(f"rollback: undid {describe_action(action)}")
            for failure in failures:
                self.console.warning(f"could not undo {failure}")
                self.log.write(f"rollback: FAILED {failure}")
            state.rollback_failures.extend(failures)

        restored = False
        if state.synced_files and not committed:
            restored = self._restore_synced(state)

        state.stage = Stage.ROLLED_BACK if (undone_count or restored) else Stage.FAILED
        self.log.stage(state.stage.value, f"after {stage.value} failure")
        return ReleaseOutcome(state=state)

    def _restore_synced(self, state: ReleaseState) -> bool:
        tracked = [p for p in state.synced_files if p not in state.created_files]
        restored = self.repo.restore_paths(tracked)
        if isinstance(restored, Ok):
            restored = self.repo.forget_paths(state.created_files)
        if isinstance(restored, Err):
            message = f"restore version files: {restored.error.message}"
            self.console.warning(f"could not {message}")
            state.rollback_failures.append(message)
            return False
        for rel in state.created_files:
            (self.ctx.project_root / rel).unlink(missing_ok=True)
        self.log.write(f"restored {', '.join(state.synced_files)}")
        return True
