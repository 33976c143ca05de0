"""Registry publishers (npm, Docker, VS Code marketplace).

Each publisher speaks to one registry through the command runner and reports
a raw ``PublishOutcome``. ``to_result`` is the boundary adapter: it turns a
failed outcome into a classified ``ReleaseError`` (``publish_auth`` or
``publish``) before anything reaches the orchestrator.

Publishing is not assumed idempotent. Callers check ``verify(name, version)``
first and skip targets that already carry the version.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from monorel.core.config import SubmoduleConfig
from monorel.core.context import RuntimeContext
from monorel.core.result import Err, Ok, Result
from monorel.core.structured import as_str_dict, get_list, get_str
from monorel.platform.process import CommandOutput
from monorel.services.release.errors import ReleaseError, publish_error
from monorel.services.release.model import BuildArtifacts, PublishOutcome, ReleaseOptions, docker_enabled
from monorel.services.release.preflight import VSCODE_TOKEN_VARS

__all__ = [
    "DockerPublisher",
    "NpmPublisher",
    "Publisher",
    "VscodePublisher",
    "publishers_for",
    "to_result",
]


class Publisher(Protocol):
    target: str

    @property
    def name(self) -> str:
        """Artifact name at the registry (package, image or extension id)."""
        ...

    def verify(self, name: str, version: str) -> bool:
        """True when ``name@version`` is already available at the registry."""
        ...

    def publish(self, version: str, *, dry_run: bool) -> PublishOutcome: ...

    def retract(self, version: str) -> PublishOutcome:
        """Best-effort undo of a confirmed publish."""
        ...

    def url(self, version: str) -> str: ...


def _outcome(out: CommandOutput, *, url: str | None = None) -> PublishOutcome:
    if out.ok:
        return PublishOutcome(success=True, url=url, output=out.text)
    return PublishOutcome(success=False, output=out.text, error=out.text or f"exit {out.exit_code}")


def to_result(target: str, action: str, outcome: PublishOutcome) -> Result[PublishOutcome, ReleaseError]:
    if outcome.success:
        return Ok(outcome)
    return Err(publish_error(target, action, outcome.error or outcome.output))


@dataclass(frozen=True, slots=True)
class NpmPublisher:
    ctx: RuntimeContext
    package_name: str
    package_dir: Path
    target: str = "npm"

    @property
    def name(self) -> str:
        return self.package_name

    def verify(self, name: str, version: str) -> bool:
        out = self.ctx.runner(["npm", "view", f"{name}@{version}", "version"], self.ctx.project_root)
        return out.ok and out.stdout.strip() == version

    def publish(self, version: str, *, dry_run: bool) -> PublishOutcome:
        if dry_run:
            # Local equivalent: build the tarball that would be uploaded.
            return _outcome(self.ctx.runner(["npm", "pack"], self.package_dir))
        out = self.ctx.runner(["npm", "publish", "--access", "public"], self.package_dir)
        return _outcome(out, url=self.url(version))

    def retract(self, version: str) -> PublishOutcome:
        out = self.ctx.runner(
            ["npm", "unpublish", f"{self.package_name}@{version}"],
            self.ctx.project_root,
        )
        return _outcome(out)

    def url(self, version: str) -> str:
        return f"https://www.npmjs.com/package/{self.package_name}/v/{version}"


@dataclass(frozen=True, slots=True)
class DockerPublisher:
    ctx: RuntimeContext
    image: str
    target: str = "docker"

    @property
    def name(self) -> str:
        return self.image

    def tags(self, version: str) -> list[str]:
        return [f"{self.image}:{version}", f"{self.image}:v{version}", f"{self.image}:latest"]

    def verify(self, name: str, version: str) -> bool:
        out = self.ctx.runner(["docker", "manifest", "inspect", f"{name}:{version}"], self.ctx.project_root)
        return out.ok

    def publish(self, version: str, *, dry_run: bool) -> PublishOutcome:
        source, *aliases = self.tags(version)
        outputs: list[str] = []
        for alias in aliases:
            out = self.ctx.runner(["docker", "tag", source, alias], self.ctx.project_root)
            if not out.ok:
                return _outcome(out)
            outputs.append(out.text)

        if dry_run:
            return PublishOutcome(success=True, output="\n".join(p for p in outputs if p))

        for tag in self.tags(version):
            out = self.ctx.runner(["docker", "push", tag], self.ctx.project_root)
            if not out.ok:
                return _outcome(out)
            outputs.append(out.text)
        return PublishOutcome(success=True, url=self.url(version), output="\n".join(p for p in outputs if p))

    def retract(self, version: str) -> PublishOutcome:
        message = f"registry tags cannot be deleted from the docker CLI; remove {self.image}:{version} manually"
        return PublishOutcome(success=False, error=message)

    def url(self, version: str) -> str:
        del version
        return f"https://hub.docker.com/r/{self.image}"


@dataclass(frozen=True, slots=True)
class VscodePublisher:
    ctx: RuntimeContext
    extension_id: str
    extension_dir: Path
    vsix: Path | None
    target: str = "vscode"

    @property
    def name(self) -> str:
        return self.extension_id

    def verify(self, name: str, version: str) -> bool:
        out = self.ctx.runner(["npx", "vsce", "show", name, "--json"], self.ctx.project_root)
        if not out.ok:
            return False
        try:
            data = as_str_dict(json.loads(out.stdout))
        except json.JSONDecodeError:
            return False
        if data is None:
            return False
        for item in get_list(data, "versions") or []:
            entry = as_str_dict(item)
            if entry is not None and get_str(entry, "version") == version:
                return True
        return False

    def publish(self, version: str, *, dry_run: bool) -> PublishOutcome:
        if self.vsix is None or not self.vsix.is_file():
            return PublishOutcome(success=False, error=f"VSIX not found for {self.extension_id} {version}")
        if dry_run:
            return PublishOutcome(success=True, output=f"VSIX ready: {self.vsix.name}")

        token = self.ctx.getenv(*VSCODE_TOKEN_VARS)
        if token is None:
            return PublishOutcome(
                success=False,
                error=f"marketplace Personal Access Token missing ({' or '.join(VSCODE_TOKEN_VARS)})",
            )
        out = self.ctx.runner(
            ["npx", "vsce", "publish", "--packagePath", str(self.vsix), "-p", token],
            self.extension_dir,
        )
        return _outcome(out, url=self.url(version))

    def retract(self, version: str) -> PublishOutcome:
        # vsce can only unpublish whole extensions, never a single version.
        message = f"marketplace versions cannot be retracted; unpublish {self.extension_id} {version} manually if needed"
        return PublishOutcome(success=False, error=message)

    def url(self, version: str) -> str:
        del version
        return f"https://marketplace.visualstudio.com/items?itemName={self.extension_id}"


def publishers_for(
    ctx: RuntimeContext,
    config: SubmoduleConfig,
    options: ReleaseOptions,
    artifacts: BuildArtifacts,
) -> list[Publisher]:
    """Enabled publishers for a config, in publish order."""
    root = ctx.project_root
    out: list[Publisher] = []

    npm_name = config.publish.npm_package_name
    if config.artifacts.npm and npm_name:
        out.append(NpmPublisher(ctx=ctx, package_name=npm_name, package_dir=root / config.path))

    image = config.publish.docker_image_name
    if docker_enabled(config, options) and image:
        out.append(DockerPublisher(ctx=ctx, image=image))

    ext_id = config.publish.vscode_extension_id
    if config.artifacts.vscode and ext_id:
        out.append(
            VscodePublisher(
                ctx=ctx,
                extension_id=ext_id,
                extension_dir=root / (config.vscode_extension_dir or ""),
                vsix=root / artifacts.vsix if artifacts.vsix else None,
            )
        )
    return out

