"""Error codes for CLI exit status.

Each release failure kind maps to one of these codes so scripts driving the
release can tell a bad invocation from a broken environment or a failed
publish.
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands.

    These values are used as process exit codes and should remain stable:
    - 0: Success
    - 1: User error (bad version, unknown package, invalid config)
    - 2: Environment error (preflight failed, missing credentials)
    - 3: Build error (build command failed, artifact missing)
    - 4: Network error (publish, push or host release failed)
    - 5: I/O error (file could not be read or written)
    - 6: Rollback incomplete (some actions must be undone by hand)
    """

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    BUILD_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5
    ROLLBACK_INCOMPLETE = 6

    def __str__(self) -> str:
        """Return human-readable name."""
        return self.name.lower().replace("_", " ")

    @property
    def is_success(self) -> bool:
        return self == ErrorCode.OK

    @property
    def is_error(self) -> bool:
        return self != ErrorCode.OK
