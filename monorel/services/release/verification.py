"""Post-publish verification.

Re-checks every published target after the release. A failed check is a
warning only: registries and CDNs can take minutes to show a new version.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from time import sleep

from monorel.core.config import SubmoduleConfig
from monorel.core.context import RuntimeContext
from monorel.services.release import gh
from monorel.services.release.publishers import Publisher


@dataclass(frozen=True, slots=True)
class VerificationCheck:
    target: str
    passed: bool
    url: str | None = None
    message: str = ""


def verify_targets(
    ctx: RuntimeContext,
    config: SubmoduleConfig,
    version: str,
    publishers: Sequence[Publisher],
    *,
    tag: str | None,
    delay: Callable[[float], None] = sleep,
) -> list[VerificationCheck]:
    """Check each publisher (and the GitHub release when ``tag`` is set)."""
    checks: list[VerificationCheck] = []

    for publisher in publishers:
        url = publisher.url(version)
        if publisher.verify(publisher.name, version):
            checks.append(VerificationCheck(publisher.target, True, url, "available"))
        else:
            checks.append(
                VerificationCheck(
                    publisher.target,
                    False,
                    url,
                    f"{publisher.name}@{version} not visible yet",
                )
            )

    if tag is not None:
        url = gh.release_url(config.repository, tag)
        if gh.release_exists(ctx, config.repository, tag, delay=delay):
            checks.append(VerificationCheck("github", True, url, "release found"))
        else:
            checks.append(VerificationCheck("github", False, url, f"release {tag} not found"))

    return checks
