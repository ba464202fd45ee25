"""
crashnotifier - Crash Log Notifications

Notifies callers when a crash report matching their criteria appears in
the host's crash report directories.
"""

__version__ = "1.0.0"

from .core import NotifierConfig, WatchSetupError
from .notifier import (
    CrashLogNotifier,
    CrashRecord,
    get_default_notifier,
    next_crash_log,
    start_listening,
)
from .notifier import predicates

__all__ = [
    "NotifierConfig",
    "WatchSetupError",
    "CrashLogNotifier",
    "CrashRecord",
    "get_default_notifier",
    "next_crash_log",
    "start_listening",
    "predicates",
]
