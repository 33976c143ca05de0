"""Output abstraction layer."""

from .console import (
    ConsoleProtocol,
    MockConsole,
    RichConsole,
    Style,
)
from .release_log import LoggingRunner, ReleaseLog, default_log_path

__all__ = [
    "ConsoleProtocol",
    "MockConsole",
    "RichConsole",
    "Style",
    "LoggingRunner",
    "ReleaseLog",
    "default_log_path",
]
