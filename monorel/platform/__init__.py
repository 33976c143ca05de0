"""Platform abstraction layer."""

from .files import append_line, atomic_write_text, sha256_file
from .process import (
    CommandOutput,
    CommandRunner,
    ProcessError,
    ScriptedRunner,
    SubprocessRunner,
    run,
    split_command,
)

__all__ = [
    # files
    "append_line",
    "atomic_write_text",
    "sha256_file",
    # process
    "CommandOutput",
    "CommandRunner",
    "ProcessError",
    "ScriptedRunner",
    "SubprocessRunner",
    "run",
    "split_command",
]
