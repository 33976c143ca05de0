"""Release manifest: a JSON audit record of what a release produced."""

from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path

from monorel.platform.files import atomic_write_text
from monorel.services.release.changelog import excerpt
from monorel.services.release.model import ReleaseState


def manifest_path(releases_dir: Path, package: str, version: str) -> Path:
    return releases_dir / f"{package}-v{version}.json"


def build_manifest(state: ReleaseState, *, dry_run: bool, timestamp: datetime) -> dict[str, object]:
    return {
        "package": state.package,
        "version": state.version,
        "tag": state.tag,
        "timestamp": timestamp.isoformat(timespec="seconds"),
        "dryRun": dry_run,
        "publishedUrls": dict(state.published_urls),
        "verificationResults": dict(state.verification),
        "checksums": dict(sorted(state.checksums.items())),
        "changelogExcerpt": excerpt(state.changelog),
        "stages": [
            {"name": r.name, "passed": r.passed, "message": r.message} for r in state.results
        ],
    }


def write_manifest(
    releases_dir: Path,
    state: ReleaseState,
    *,
    dry_run: bool,
    timestamp: datetime,
) -> Path:
    path = manifest_path(releases_dir, state.package, state.version)
    data = build_manifest(state, dry_run=dry_run, timestamp=timestamp)
    atomic_write_text(path, json.dumps(data, indent=2) + "\n")
    return path
