"""
Crash Log Notification Module

Background watching of crash report directories with predicate-based waiters.

Components:
- DirectoryWatcher: Detects new, fully written report files
- CrashReportParser: Turns .ips/.crash reports into CrashRecords
- WaiterRegistry: Active waiters and record matching
- CrashLogNotifier: Wires the above together, process-wide default instance
"""

from .models import (
    CrashRecord,
    ParseFailure,
    ParseFailureReason,
    RawReportEvent,
)

from .predicates import (
    CrashPredicate,
    FieldPredicate,
    FunctionPredicate,
    AllOf,
    AnyOf,
    Not,
    Always,
    as_predicate,
)

from .parser import ReportParser, CrashReportParser

from .watcher import DirectoryWatcher, WatcherState

from .retry import RetryQueue

from .registry import Waiter, WaiterHandle, WaiterRegistry

from .notifier import (
    CrashLogNotifier,
    get_default_notifier,
    reset_default_notifier,
    start_listening,
    next_crash_log,
)


__all__ = [
    # Models
    "CrashRecord",
    "ParseFailure",
    "ParseFailureReason",
    "RawReportEvent",
    # Predicates
    "CrashPredicate",
    "FieldPredicate",
    "FunctionPredicate",
    "AllOf",
    "AnyOf",
    "Not",
    "Always",
    "as_predicate",
    # Parser
    "ReportParser",
    "CrashReportParser",
    # Watcher
    "DirectoryWatcher",
    "WatcherState",
    # Retry
    "RetryQueue",
    # Registry
    "Waiter",
    "WaiterHandle",
    "WaiterRegistry",
    # Notifier
    "CrashLogNotifier",
    "get_default_notifier",
    "reset_default_notifier",
    "start_listening",
    "next_crash_log",
]
