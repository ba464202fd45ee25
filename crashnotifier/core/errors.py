"""
Crash Notifier Errors

Only setup-time problems are raised to callers. Parse failures and
predicate failures are handled inside the pipeline.
"""

from pathlib import Path
from typing import Optional, Union


class CrashNotifierError(Exception):
    """Base class for all crashnotifier errors."""


class WatchSetupError(CrashNotifierError):
    """A crash report directory could not be observed."""

    def __init__(self, message: str, path: Optional[Union[str, Path]] = None):
        super().__init__(message)
        self.path = Path(path) if path is not None else None


class ConfigError(CrashNotifierError):
    """Invalid notifier configuration."""

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))
