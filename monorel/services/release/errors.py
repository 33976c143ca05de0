"""Release error payload and failure classification.

External tools report failures as free text. ``classify_failure`` turns that
text into a closed ``FailureClass`` right at the publisher boundary, so the
orchestrator only ever sees a ``ReleaseError`` with a remediation hint.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Literal

from monorel.core.errors import ErrorCode

ReleaseErrorKind = Literal[
    "configuration",
    "validation",
    "preflight",
    "build",
    "publish_auth",
    "publish",
    "git",
]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    kind: ReleaseErrorKind
    message: str
    hint: str | None = None

    def pretty(self) -> str:
        if self.hint:
            return f"{self.message} (hint: {self.hint})"
        return self.message


class FailureClass(Enum):
    AUTH_REQUIRED = "auth_required"
    GENERIC_FAILURE = "generic_failure"


_AUTH_MARKERS = (
    "unauthorized",
    "authentication",
    "not logged in",
    "eneedauth",
    "personal access token",
    "denied: requested access",
)

_AUTH_CODES = ("401", "403")


def classify_failure(text: str) -> FailureClass:
    lowered = text.lower()
    if any(marker in lowered for marker in _AUTH_MARKERS):
        return FailureClass.AUTH_REQUIRED
    # Bare status codes only count as whole tokens ("E401", "HTTP 403", "401 Unauthorized").
    for code in _AUTH_CODES:
        idx = lowered.find(code)
        while idx != -1:
            before = lowered[idx - 1] if idx > 0 else " "
            after = lowered[idx + 3] if idx + 3 < len(lowered) else " "
            if not before.isdigit() and not after.isdigit():
                return FailureClass.AUTH_REQUIRED
            idx = lowered.find(code, idx + 1)
    return FailureClass.GENERIC_FAILURE


LOGIN_HINTS: dict[str, str] = {
    "npm": "run `npm login` (or set NPM_TOKEN) and retry",
    "docker": "run `docker login` for the target registry and retry",
    "vscode": "set VSCE_PAT to a valid marketplace Personal Access Token (or run `npx vsce login`)",
    "github": "run `gh auth login` (or set GITHUB_TOKEN) and retry",
}


def publish_error(target: str, action: str, output: str) -> ReleaseError:
    """Convert a failed publish-like operation into a classified ReleaseError."""
    detail = _last_line(output)
    message = f"{target}: {action} failed" + (f": {detail}" if detail else "")

    if classify_failure(output) is FailureClass.AUTH_REQUIRED:
        hint = LOGIN_HINTS.get(target, f"log in to {target} and retry")
        return ReleaseError(kind="publish_auth", message=message, hint=hint)

    return ReleaseError(
        kind="publish",
        message=message,
        hint="safe to retry: already-published targets are detected and skipped",
    )


def exit_code_for(error: ReleaseError) -> ErrorCode:
    match error.kind:
        case "configuration" | "validation":
            return ErrorCode.USER_ERROR
        case "preflight" | "publish_auth":
            return ErrorCode.ENV_ERROR
        case "build":
            return ErrorCode.BUILD_ERROR
        case "publish" | "git":
            return ErrorCode.NETWORK_ERROR


def _last_line(output: str) -> str:
    lines = [ln.strip() for ln in output.splitlines() if ln.strip()]
    return lines[-1] if lines else ""
