from __future__ import annotations

import pytest

from monorel.core.errors import ErrorCode
from monorel.services.release.errors import (
    FailureClass,
    ReleaseError,
    classify_failure,
    exit_code_for,
    publish_error,
)


@pytest.mark.parametrize(
    "text",
    [
        "npm ERR! code E401",
        "npm ERR! 401 Unauthorized - PUT https://registry.npmjs.org/@scope%2fpkg",
        "HTTP 403: Forbidden",
        "ERROR  Failed request: Unauthorized(401)",
        "npm ERR! code ENEEDAUTH",
        "denied: requested access to the resource is denied",
        "Error: Personal Access Token verification failed",
        "You are not logged in",
        "authentication required",
    ],
)
def test_auth_failures(text: str) -> None:
    assert classify_failure(text) is FailureClass.AUTH_REQUIRED


@pytest.mark.parametrize(
    "text",
    [
        "npm ERR! 500 Internal Server Error",
        "ETIMEDOUT",
        "built in 4013ms",
        "sha 1401ab failed",
        "EACCES: permission denied, open '/tmp/x'",
        "",
    ],
)
def test_generic_failures(text: str) -> None:
    assert classify_failure(text) is FailureClass.GENERIC_FAILURE


def test_publish_error_auth_carries_login_hint() -> None:
    error = publish_error("npm", "publish", "npm ERR! code E401\nnpm ERR! 401 Unauthorized")

    assert error.kind == "publish_auth"
    assert error.message == "npm: publish failed: npm ERR! 401 Unauthorized"
    assert error.hint is not None and "npm login" in error.hint
    assert "npm login" in error.pretty()
    assert exit_code_for(error) == ErrorCode.ENV_ERROR


def test_publish_error_generic_suggests_retry() -> None:
    error = publish_error("docker", "publish", "connection reset by peer")

    assert error.kind == "publish"
    assert error.hint is not None and "safe to retry" in error.hint
    assert exit_code_for(error) == ErrorCode.NETWORK_ERROR


def test_publish_error_unknown_target_hint() -> None:
    error = publish_error("pypi", "upload", "401")
    assert error.hint == "log in to pypi and retry"


@pytest.mark.parametrize(
    ("kind", "code"),
    [
        ("configuration", ErrorCode.USER_ERROR),
        ("validation", ErrorCode.USER_ERROR),
        ("preflight", ErrorCode.ENV_ERROR),
        ("build", ErrorCode.BUILD_ERROR),
        ("git", ErrorCode.NETWORK_ERROR),
        ("publish", ErrorCode.NETWORK_ERROR),
    ],
)
def test_exit_code_for(kind: str, code: ErrorCode) -> None:
    error = ReleaseError(kind=kind, message="x")  # type: ignore[arg-type]
    assert exit_code_for(error) == code


def test_pretty() -> None:
    assert ReleaseError(kind="build", message="failed").pretty() == "failed"
    assert ReleaseError(kind="build", message="failed", hint="look").pretty() == "failed (hint: look)"
