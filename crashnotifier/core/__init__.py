"""
Crash Notifier Core Module

Configuration, logging, errors and shared utilities.
"""

from .config import NotifierConfig, default_report_dirs
from .errors import CrashNotifierError, WatchSetupError, ConfigError
from .logging import (
    logger,
    setup_logging,
    setup_console_only,
    get_log_dir,
    add_component_log,
    get_component_logger,
)
from .utils import generate_id

__all__ = [
    # Config
    "NotifierConfig",
    "default_report_dirs",
    # Errors
    "CrashNotifierError",
    "WatchSetupError",
    "ConfigError",
    # Logging
    "logger",
    "setup_logging",
    "setup_console_only",
    "get_log_dir",
    "add_component_log",
    "get_component_logger",
    # Utils
    "generate_id",
]
