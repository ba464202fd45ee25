"""
Crash Notifier Models

Data classes and enums shared by the watcher, parser and waiter registry.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional

from ..core.utils import generate_id


def _freeze(value: Any) -> Any:
    """Read-only copy of nested report data (dicts become mappings, lists tuples)."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(_freeze(item) for item in value)
    return value


def _thaw(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {key: _thaw(item) for key, item in value.items()}
    if isinstance(value, tuple):
        return [_thaw(item) for item in value]
    return value


class ParseFailureReason(str, Enum):
    """Why a report could not be turned into a CrashRecord."""

    INCOMPLETE = "incomplete"  # Still being written, retry later
    MALFORMED = "malformed"  # Unrecognized format, do not retry
    UNREADABLE = "unreadable"  # I/O error, do not retry

    @property
    def retryable(self) -> bool:
        return self is ParseFailureReason.INCOMPLETE


@dataclass(frozen=True)
class ParseFailure:
    """Typed result of a parse that did not produce a record."""

    reason: ParseFailureReason
    path: str
    detail: str = ""

    def __str__(self) -> str:
        suffix = f": {self.detail}" if self.detail else ""
        return f"{self.reason.value} {self.path}{suffix}"


@dataclass(frozen=True)
class RawReportEvent:
    """A report file that appeared in a watched directory."""

    path: Path
    stable: bool = True  # size unchanged across one settle interval
    detected_at: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class CrashRecord:
    """
    A parsed crash report.

    Immutable once built; a single instance is shared read-only by every
    waiter it is delivered to.
    """

    process_name: str = ""
    pid: Optional[int] = None
    parent_pid: Optional[int] = None
    parent_process_name: Optional[str] = None
    crashed_at: Optional[datetime] = None
    executable_path: Optional[str] = None
    bundle_id: Optional[str] = None
    report_path: str = ""
    signal: Optional[str] = None  # SIGSEGV, SIGABRT, ...
    exception_type: Optional[str] = None  # EXC_BAD_ACCESS, EXC_CRASH, ...
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False, compare=False)
    record_id: str = field(default_factory=generate_id, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "metadata", _freeze(dict(self.metadata)))

    def get(self, name: str, default: Any = None) -> Any:
        """Look up a record attribute, falling back to report metadata."""
        if name in _RECORD_FIELDS:
            return getattr(self, name)
        return self.metadata.get(name, default)

    def to_dict(self) -> dict:
        """Convert to a JSON-friendly dictionary."""
        return {
            "record_id": self.record_id,
            "process_name": self.process_name,
            "pid": self.pid,
            "parent_pid": self.parent_pid,
            "parent_process_name": self.parent_process_name,
            "crashed_at": self.crashed_at.isoformat() if self.crashed_at else None,
            "executable_path": self.executable_path,
            "bundle_id": self.bundle_id,
            "report_path": self.report_path,
            "signal": self.signal,
            "exception_type": self.exception_type,
            "metadata": _thaw(self.metadata),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "CrashRecord":
        """Create CrashRecord from dictionary."""
        crashed_at = data.get("crashed_at")
        if isinstance(crashed_at, str):
            crashed_at = datetime.fromisoformat(crashed_at)
        return cls(
            process_name=data.get("process_name", ""),
            pid=data.get("pid"),
            parent_pid=data.get("parent_pid"),
            parent_process_name=data.get("parent_process_name"),
            crashed_at=crashed_at,
            executable_path=data.get("executable_path"),
            bundle_id=data.get("bundle_id"),
            report_path=data.get("report_path", ""),
            signal=data.get("signal"),
            exception_type=data.get("exception_type"),
            metadata=data.get("metadata") or {},
            record_id=data.get("record_id") or generate_id(),
        )

    def summary(self) -> str:
        """One-line description for logs."""
        parts = [f"{self.process_name or '?'}[{self.pid if self.pid is not None else '?'}]"]
        if self.exception_type:
            parts.append(self.exception_type)
        if self.signal:
            parts.append(f"({self.signal})")
        return " ".join(parts)


_RECORD_FIELDS = frozenset(f.name for f in fields(CrashRecord))
