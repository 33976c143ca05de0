"""Core domain types and logic."""

from .config import ConfigError, SubmoduleConfig, VersionSyncFile, load_config
from .context import RuntimeContext, detect_project_root
from .errors import ErrorCode
from .result import Err, Ok, Result, is_err, is_ok

__all__ = [
    # config
    "ConfigError",
    "SubmoduleConfig",
    "VersionSyncFile",
    "load_config",
    # context
    "RuntimeContext",
    "detect_project_root",
    # errors
    "ErrorCode",
    # result
    "Err",
    "Ok",
    "Result",
    "is_err",
    "is_ok",
]
