"""
Crash Notifier Configuration

Handles configuration from environment variables, JSON files, and CLI arguments.
"""

import json
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

from .errors import ConfigError


def default_report_dirs() -> List[str]:
    """
    Directories the operating system deposits crash reports into.

    macOS writes per-user reports to ~/Library/Logs/DiagnosticReports and
    system daemons to /Library/Logs/DiagnosticReports. Other platforms have no
    crash reporter of this kind, so a local directory is used.
    """
    if platform.system() == "Darwin":
        dirs = [os.path.expanduser("~/Library/Logs/DiagnosticReports")]
        if os.path.isdir("/Library/Logs/DiagnosticReports"):
            dirs.append("/Library/Logs/DiagnosticReports")
        return dirs
    return [os.path.abspath("crash_reports")]


@dataclass
class NotifierConfig:
    """Crash notifier configuration"""

    # Watched locations
    report_dirs: List[str] = field(default_factory=default_report_dirs)
    report_extensions: List[str] = field(default_factory=lambda: [".ips", ".crash"])

    # Observer backend
    use_polling: bool = False  # PollingObserver instead of inotify/FSEvents
    polling_timeout: float = 0.25  # seconds between PollingObserver snapshots

    # Settling of half-written reports
    settle_interval: float = 0.5  # seconds between size checks
    max_settle_checks: int = 20  # emit as unstable after this many checks

    # Retry of incomplete reports
    retry_base_delay: float = 0.5
    retry_max_delay: float = 5.0
    max_parse_attempts: int = 5

    # Delivery
    exclusive_delivery: bool = True  # one record completes at most one waiter

    log_level: str = "INFO"

    @classmethod
    def from_json(cls, json_path: str) -> "NotifierConfig":
        """Load configuration from JSON file"""
        with open(json_path, "r") as f:
            data = json.load(f)

        defaults = cls()
        return cls(
            report_dirs=data.get("report_dirs", defaults.report_dirs),
            report_extensions=data.get("report_extensions", defaults.report_extensions),
            use_polling=data.get("use_polling", defaults.use_polling),
            polling_timeout=data.get("polling_timeout", defaults.polling_timeout),
            settle_interval=data.get("settle_interval", defaults.settle_interval),
            max_settle_checks=data.get("max_settle_checks", defaults.max_settle_checks),
            retry_base_delay=data.get("retry_base_delay", defaults.retry_base_delay),
            retry_max_delay=data.get("retry_max_delay", defaults.retry_max_delay),
            max_parse_attempts=data.get("max_parse_attempts", defaults.max_parse_attempts),
            exclusive_delivery=data.get("exclusive_delivery", defaults.exclusive_delivery),
            log_level=data.get("log_level", defaults.log_level),
        )

    @classmethod
    def from_env(cls) -> "NotifierConfig":
        """Load configuration from environment variables"""
        defaults = cls()
        dirs = os.environ.get("CRASHNOTIFIER_REPORT_DIRS")
        extensions = os.environ.get("CRASHNOTIFIER_REPORT_EXTENSIONS")

        return cls(
            report_dirs=dirs.split(os.pathsep) if dirs else defaults.report_dirs,
            report_extensions=(
                extensions.split(",") if extensions else defaults.report_extensions
            ),
            use_polling=os.environ.get("CRASHNOTIFIER_POLLING", "").lower() == "true",
            polling_timeout=float(
                os.environ.get("CRASHNOTIFIER_POLLING_TIMEOUT", defaults.polling_timeout)
            ),
            settle_interval=float(
                os.environ.get("CRASHNOTIFIER_SETTLE_INTERVAL", defaults.settle_interval)
            ),
            max_settle_checks=int(
                os.environ.get("CRASHNOTIFIER_MAX_SETTLE_CHECKS", defaults.max_settle_checks)
            ),
            max_parse_attempts=int(
                os.environ.get("CRASHNOTIFIER_MAX_PARSE_ATTEMPTS", defaults.max_parse_attempts)
            ),
            exclusive_delivery=(
                os.environ.get("CRASHNOTIFIER_EXCLUSIVE_DELIVERY", "true").lower() != "false"
            ),
            log_level=os.environ.get("CRASHNOTIFIER_LOG_LEVEL", defaults.log_level),
        )

    def merge(self, other: "NotifierConfig") -> "NotifierConfig":
        """Merge another config into this one (other takes precedence for non-default values)"""
        defaults = NotifierConfig()
        for field_name in self.__dataclass_fields__:
            other_val = getattr(other, field_name)
            if other_val is not None and other_val != getattr(defaults, field_name):
                setattr(self, field_name, other_val)
        return self

    def validate(self) -> List[str]:
        """Validate configuration, return list of errors"""
        errors = []

        if not self.report_dirs:
            errors.append("At least one report directory is required")

        for ext in self.report_extensions:
            if not ext.startswith("."):
                errors.append(f"Invalid report extension: {ext}")

        if self.settle_interval <= 0:
            errors.append("settle_interval must be positive")
        if self.max_settle_checks < 1:
            errors.append("max_settle_checks must be at least 1")
        if self.polling_timeout <= 0:
            errors.append("polling_timeout must be positive")

        if self.retry_base_delay < 0 or self.retry_max_delay < self.retry_base_delay:
            errors.append("retry delays must satisfy 0 <= base <= max")
        if self.max_parse_attempts < 1:
            errors.append("max_parse_attempts must be at least 1")

        if self.log_level.upper() not in ["TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR"]:
            errors.append(f"Invalid log_level: {self.log_level}")

        return errors

    def ensure_valid(self) -> "NotifierConfig":
        """Raise ConfigError if validate() reports problems."""
        errors = self.validate()
        if errors:
            raise ConfigError(errors)
        return self

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        return {
            "report_dirs": list(self.report_dirs),
            "report_extensions": list(self.report_extensions),
            "use_polling": self.use_polling,
            "polling_timeout": self.polling_timeout,
            "settle_interval": self.settle_interval,
            "max_settle_checks": self.max_settle_checks,
            "retry_base_delay": self.retry_base_delay,
            "retry_max_delay": self.retry_max_delay,
            "max_parse_attempts": self.max_parse_attempts,
            "exclusive_delivery": self.exclusive_delivery,
            "log_level": self.log_level,
        }

    def report_paths(self) -> List[Path]:
        """Report directories as expanded Paths."""
        return [Path(os.path.expanduser(d)) for d in self.report_dirs]
