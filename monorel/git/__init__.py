"""Git operations."""

from .repository import GitError, GitStatus, LogEntry, Repository, StatusEntry, format_tag

__all__ = [
    "GitError",
    "GitStatus",
    "LogEntry",
    "Repository",
    "StatusEntry",
    "format_tag",
]
