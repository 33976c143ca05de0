"""BUILD stage: produce and validate every artifact a release publishes.

Building is a pure function of config + version (same inputs, same files),
so the stage is safe to re-run after a failed release.
"""

from __future__ import annotations

import json
import tarfile
import zipfile
from dataclasses import dataclass
from pathlib import Path

from monorel.core.config import SubmoduleConfig
from monorel.core.context import RuntimeContext
from monorel.core.result import Err, Ok, Result
from monorel.core.structured import as_str_dict, get_str
from monorel.output.console import ConsoleProtocol
from monorel.platform.files import atomic_write_text, sha256_file
from monorel.platform.process import run, split_command
from monorel.services.release.errors import ReleaseError
from monorel.services.release.model import BuildArtifacts, ReleaseOptions, docker_enabled

__all__ = ["PKG_TARGETS", "BuildCoordinator", "binary_name"]

# Release platform name -> `pkg` target triple.
PKG_TARGETS: dict[str, str] = {
    "linux": "node18-linux-x64",
    "macos": "node18-macos-x64",
    "darwin": "node18-macos-x64",
    "windows": "node18-win-x64",
    "win": "node18-win-x64",
}


def _is_windows(platform: str) -> bool:
    return PKG_TARGETS.get(platform, "").endswith("-win-x64")


def binary_name(config: SubmoduleConfig, platform: str, version: str) -> str:
    suffix = ".exe" if _is_windows(platform) else ""
    return f"{config.name}-{platform}-{version}{suffix}"


def _build_error(message: str, hint: str | None = None) -> ReleaseError:
    return ReleaseError(kind="build", message=message, hint=hint)


def _tail(text: str) -> str:
    lines = [ln.strip() for ln in text.splitlines() if ln.strip()]
    return lines[-1] if lines else ""


@dataclass(frozen=True, slots=True)
class BuildCoordinator:
    ctx: RuntimeContext
    console: ConsoleProtocol

    def build(
        self, config: SubmoduleConfig, version: str, options: ReleaseOptions
    ) -> Result[BuildArtifacts, ReleaseError]:
        root = self.ctx.project_root

        built = self._run_step(config.build.command, cwd=root, what="build command")
        if isinstance(built, Err):
            return built
        self.console.success(f"build: {config.build.command}")

        if config.artifacts.npm:
            dist = self.validate_npm_output(config)
            if isinstance(dist, Err):
                return dist

        vsix: str | None = None
        if config.artifacts.vscode:
            packaged = self.build_vscode(config, version)
            if isinstance(packaged, Err):
                return packaged
            vsix = packaged.value

        docker_image: str | None = None
        if docker_enabled(config, options):
            image = self.build_docker(config, version)
            if isinstance(image, Err):
                return image
            docker_image = image.value

        binaries: list[str] = []
        archives: list[str] = []
        checksums: dict[str, str] = {}
        checksum_file: str | None = None
        if config.artifacts.binaries:
            for platform in config.binary_platforms:
                made = self.build_binary(config, platform, version)
                if isinstance(made, Err):
                    return made
                binary, archive = made.value
                binaries.append(binary)
                archives.append(archive)
                checksums[Path(binary).name] = sha256_file(root / binary)
                checksums[Path(archive).name] = sha256_file(root / archive)
            checksum_file = self._write_checksums(config, version, checksums)

        return Ok(
            BuildArtifacts(
                vsix=vsix,
                binaries=tuple(binaries),
                archives=tuple(archives),
                checksums=checksums,
                docker_image=docker_image,
                checksum_file=checksum_file,
            )
        )

    def validate_npm_output(self, config: SubmoduleConfig) -> Result[None, ReleaseError]:
        dist = self.ctx.project_root / config.path / "dist"
        if not dist.is_dir() or not any(dist.iterdir()):
            return Err(
                _build_error(
                    f"Build output missing or empty: {config.path}/dist",
                    hint="check the build command output",
                )
            )
        self.console.success(f"npm output: {config.path}/dist")
        return Ok(None)

    def build_vscode(self, config: SubmoduleConfig, version: str) -> Result[str, ReleaseError]:
        """Compile and package the extension. Returns the VSIX path relative to root."""
        ext_rel = config.vscode_extension_dir or ""
        ext_dir = self.ctx.project_root / ext_rel

        compiled = self._run_step("npm run compile", cwd=ext_dir, what="extension compile")
        if isinstance(compiled, Err):
            return compiled
        if not (ext_dir / "out" / "extension.js").is_file():
            return Err(_build_error(f"Compiled extension missing: {ext_rel}/out/extension.js"))

        packaged = self._run_step("npm run package", cwd=ext_dir, what="extension package")
        if isinstance(packaged, Err):
            return packaged

        vsix_name = f"{self._extension_package_name(config, ext_dir)}-{version}.vsix"
        vsix = ext_dir / vsix_name
        if not vsix.is_file() or vsix.stat().st_size == 0:
            return Err(_build_error(f"VSIX missing or empty: {ext_rel}/{vsix_name}"))

        self.console.success(f"vsix: {vsix_name}")
        return Ok(str(Path(ext_rel) / vsix_name))

    def build_docker(self, config: SubmoduleConfig, version: str) -> Result[str, ReleaseError]:
        package_dir = self.ctx.project_root / config.path
        if not (package_dir / "Dockerfile").is_file():
            return Err(
                _build_error(
                    f"Dockerfile not found in {config.path}",
                    hint="add a Dockerfile or release without --docker",
                )
            )

        image = f"{config.publish.docker_image_name}:{version}"
        result = run(self.ctx.runner, ["docker", "build", "-t", image, "."], cwd=package_dir)
        if isinstance(result, Err):
            return Err(_build_error(f"docker build failed: {_tail(result.error.output)}"))

        self.console.success(f"docker image: {image}")
        return Ok(image)

    def build_binary(
        self, config: SubmoduleConfig, platform: str, version: str
    ) -> Result[tuple[str, str], ReleaseError]:
        """Build one standalone binary and its archive. Paths are relative to root."""
        target = PKG_TARGETS.get(platform)
        if target is None:
            known = ", ".join(sorted(PKG_TARGETS))
            return Err(_build_error(f"Unknown binary platform: {platform}", hint=f"use one of: {known}"))

        root = self.ctx.project_root
        out_dir = self.ctx.binaries_dir
        out_dir.mkdir(parents=True, exist_ok=True)

        name = binary_name(config, platform, version)
        output = out_dir / name
        cmd = [
            "npx",
            "pkg",
            f"{config.path}/package.json",
            "--target",
            target,
            "--output",
            str(output),
        ]
        result = run(self.ctx.runner, cmd, cwd=root)
        if isinstance(result, Err):
            return Err(_build_error(f"binary build failed for {platform}: {_tail(result.error.output)}"))
        if not output.is_file():
            return Err(_build_error(f"Binary not produced: {output.relative_to(root)}"))

        archive = self._archive(output, windows=_is_windows(platform))
        self.console.success(f"binary: {name}")
        return Ok((str(output.relative_to(root)), str(archive.relative_to(root))))

    def _archive(self, binary: Path, *, windows: bool) -> Path:
        stem = binary.name.removesuffix(".exe")
        if windows:
            archive = binary.with_name(f"{stem}.zip")
            with zipfile.ZipFile(archive, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                zf.write(binary, arcname=binary.name)
        else:
            archive = binary.with_name(f"{stem}.tar.gz")
            with tarfile.open(archive, "w:gz") as tf:
                tf.add(binary, arcname=binary.name)
        return archive

    def _write_checksums(self, config: SubmoduleConfig, version: str, checksums: dict[str, str]) -> str:
        path = self.ctx.binaries_dir / f"{config.name}-{version}-checksums.txt"
        lines = [f"{digest}  {name}" for name, digest in sorted(checksums.items())]
        atomic_write_text(path, "\n".join(lines) + "\n")
        return str(path.relative_to(self.ctx.project_root))

    def _run_step(self, command: str, *, cwd: Path, what: str) -> Result[None, ReleaseError]:
        argv = split_command(command)
        if not argv:
            return Err(_build_error(f"No {what} configured"))
        result = run(self.ctx.runner, argv, cwd=cwd)
        if isinstance(result, Err):
            detail = _tail(result.error.output)
            return Err(
                _build_error(
                    f"{what} failed (exit {result.error.returncode})" + (f": {detail}" if detail else ""),
                    hint="see the release log for full output",
                )
            )
        return Ok(None)

    def _extension_package_name(self, config: SubmoduleConfig, ext_dir: Path) -> str:
        try:
            data = as_str_dict(json.loads((ext_dir / "package.json").read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError):
            data = None
        name = get_str(data, "name") if data is not None else None
        if name:
            return name
        ext_id = config.publish.vscode_extension_id or config.name
        return ext_id.rsplit(".", 1)[-1]
