"""
Crash Report Parser

Turns a report file found on disk into a CrashRecord, or a typed
ParseFailure. Parsers never raise for bad input.

The default CrashReportParser understands the two formats written by the
Apple crash reporter:
- .ips (macOS 12+ / iOS 15+): a one-line JSON header followed by a JSON body
- .crash (older releases): "Key: value" text headers followed by thread dumps
"""

import json
import re
import signal as _signal
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from loguru import logger

from .models import CrashRecord, ParseFailure, ParseFailureReason

ParseResult = Union[CrashRecord, ParseFailure]

TIMESTAMP_FORMATS = (
    "%Y-%m-%d %H:%M:%S.%f %z",
    "%Y-%m-%d %H:%M:%S %z",
    "%Y-%m-%dT%H:%M:%S.%fZ",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%d %H:%M:%S.%f",
    "%Y-%m-%d %H:%M:%S",
)

# "Key:   value" header lines of a .crash report
HEADER_LINE = re.compile(r"^([A-Za-z][\w /()-]*?):\s+(.*\S)\s*$")
# "Foo [1234]"
NAME_AND_PID = re.compile(r"^(.*?)\s*\[(\d+)\]\s*$")
# "EXC_BAD_ACCESS (SIGSEGV)"
SIGNAL_IN_PARENS = re.compile(r"\((SIG[A-Z0-9]+)\)")
SIGNAL_PREFIX = re.compile(r"^SIG[A-Z0-9]+")
# "Segmentation fault: 11"
SIGNAL_NUMBER = re.compile(r":\s*(\d+)\s*$")

IPS_METADATA_KEYS = ("bug_type", "os_version", "incident_id", "app_name", "app_version", "name")


class ReportParser(ABC):
    """Boundary between the watcher pipeline and a crash report format."""

    @abstractmethod
    def parse(self, path: Path) -> ParseResult:
        """Return a CrashRecord, or a ParseFailure explaining why not."""


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Best-effort timestamp parsing from crash report."""
    if not value or not isinstance(value, str):
        return None

    text = value.strip()
    for fmt in TIMESTAMP_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def signal_name(value: Any) -> Optional[str]:
    """Normalize 'SIGSEGV', 11 or 'Segmentation fault: 11' to a signal name."""
    if value is None or value == "":
        return None
    if isinstance(value, int):
        number = value
    else:
        text = str(value).strip()
        match = SIGNAL_PREFIX.match(text)
        if match:
            return match.group(0)
        match = SIGNAL_IN_PARENS.search(text)
        if match:
            return match.group(1)
        match = SIGNAL_NUMBER.search(text)
        if not match:
            return None
        number = int(match.group(1))
    try:
        return _signal.Signals(number).name
    except ValueError:
        return f"SIG{number}"


def _to_int(value: Any) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _json_truncated(error: json.JSONDecodeError, text: str) -> bool:
    """A JSON document that was opened but not closed yet is still being written."""
    stripped = text.strip()
    if not stripped.startswith(("{", "[")):
        return False
    return error.pos >= len(stripped) or not stripped.endswith(("}", "]"))


class CrashReportParser(ReportParser):
    """Parser for .ips and .crash reports."""

    def __init__(self, max_metadata_value_length: int = 2000):
        self.max_metadata_value_length = max_metadata_value_length

    def parse(self, path: Path) -> ParseResult:
        path = Path(path)
        try:
            raw = path.read_bytes()
        except OSError as e:
            # Covers a report removed between detection and read
            return ParseFailure(ParseFailureReason.UNREADABLE, str(path), str(e))

        content = raw.decode("utf-8", errors="replace")
        if not content.strip():
            return ParseFailure(ParseFailureReason.INCOMPLETE, str(path), "empty file")

        try:
            if path.suffix == ".ips":
                return self._parse_ips(path, content)
            return self._parse_crash_text(path, content)
        except Exception as e:
            logger.debug(f"[CrashReportParser] Unexpected error parsing {path}: {e}")
            return ParseFailure(ParseFailureReason.MALFORMED, str(path), str(e))

    # ------------------------------------------------------------------
    # .ips
    # ------------------------------------------------------------------

    def _parse_ips(self, path: Path, content: str) -> ParseResult:
        header, body, failure = self._split_ips(path, content)
        if failure:
            return failure

        if not isinstance(body, dict):
            return ParseFailure(ParseFailureReason.MALFORMED, str(path), "body is not an object")

        name = body.get("procName") or header.get("app_name") or header.get("name")
        if not name:
            return ParseFailure(ParseFailureReason.MALFORMED, str(path), "no process name")

        exception = body.get("exception") or {}
        termination = body.get("termination") or {}
        bundle_info = body.get("bundleInfo") or {}

        metadata: Dict[str, Any] = {
            key: header[key] for key in IPS_METADATA_KEYS if key in header
        }
        if exception.get("codes"):
            metadata["exception_codes"] = exception["codes"]
        if termination:
            metadata["termination"] = termination
        if body.get("incident"):
            metadata["incident_id"] = body["incident"]

        return CrashRecord(
            process_name=name,
            pid=_to_int(body.get("pid")),
            parent_pid=_to_int(body.get("parentPid")),
            parent_process_name=body.get("parentProc"),
            crashed_at=parse_timestamp(body.get("captureTime") or header.get("timestamp")),
            executable_path=body.get("procPath"),
            bundle_id=bundle_info.get("CFBundleIdentifier"),
            report_path=str(path),
            signal=self._ips_signal(exception, termination),
            exception_type=exception.get("type"),
            metadata=metadata,
        )

    @staticmethod
    def _ips_signal(exception: dict, termination: dict) -> Optional[str]:
        signal = signal_name(exception.get("signal"))
        if not signal and termination.get("namespace") == "SIGNAL":
            signal = signal_name(termination.get("code"))
        return signal or signal_name(termination.get("indicator"))

    def _split_ips(self, path: Path, content: str) -> Tuple[dict, Any, Optional[ParseFailure]]:
        """Return (header, body, failure) for an .ips document."""
        first, _, rest = content.partition("\n")

        try:
            header = json.loads(first)
        except json.JSONDecodeError:
            # Older .ips files are a single JSON document
            try:
                return {}, json.loads(content), None
            except json.JSONDecodeError as e:
                reason = (
                    ParseFailureReason.INCOMPLETE
                    if _json_truncated(e, content)
                    else ParseFailureReason.MALFORMED
                )
                return {}, None, ParseFailure(reason, str(path), str(e))

        if not isinstance(header, dict):
            return {}, None, ParseFailure(
                ParseFailureReason.MALFORMED, str(path), "header is not an object"
            )

        if not rest.strip():
            if "procName" in header:
                # Single-line legacy document
                return {}, header, None
            return header, None, ParseFailure(
                ParseFailureReason.INCOMPLETE, str(path), "header without body"
            )

        try:
            body = json.loads(rest)
        except json.JSONDecodeError as e:
            reason = (
                ParseFailureReason.INCOMPLETE
                if _json_truncated(e, rest)
                else ParseFailureReason.MALFORMED
            )
            return header, None, ParseFailure(reason, str(path), str(e))

        return header, body, None

    # ------------------------------------------------------------------
    # .crash
    # ------------------------------------------------------------------

    def _parse_crash_text(self, path: Path, content: str) -> ParseResult:
        headers: Dict[str, str] = {}
        for line in content.splitlines():
            if line.startswith("Thread ") or line.startswith("Binary Images:"):
                break
            match = HEADER_LINE.match(line)
            if match and match.group(1) not in headers:
                headers[match.group(1)] = match.group(2)

        if not headers:
            return ParseFailure(ParseFailureReason.MALFORMED, str(path), "no report headers")

        process = headers.get("Process")
        if not process:
            # Headers are written top to bottom; Process comes first
            return ParseFailure(ParseFailureReason.INCOMPLETE, str(path), "no Process header yet")

        name, pid = self._name_and_pid(process)
        parent_name, parent_pid = self._name_and_pid(headers.get("Parent Process", ""))
        exception_type = headers.get("Exception Type")

        signal = signal_name(exception_type) if exception_type else None
        if not signal:
            signal = signal_name(headers.get("Termination Signal"))
        if exception_type:
            exception_type = exception_type.split()[0]

        consumed = {
            "Process", "Parent Process", "Path", "Identifier",
            "Date/Time", "Exception Type",
        }
        metadata = {
            key: value[: self.max_metadata_value_length]
            for key, value in headers.items()
            if key not in consumed
        }

        return CrashRecord(
            process_name=name,
            pid=pid,
            parent_pid=parent_pid,
            parent_process_name=parent_name or None,
            crashed_at=parse_timestamp(headers.get("Date/Time")),
            executable_path=headers.get("Path"),
            bundle_id=headers.get("Identifier"),
            report_path=str(path),
            signal=signal,
            exception_type=exception_type,
            metadata=metadata,
        )

    @staticmethod
    def _name_and_pid(value: str) -> Tuple[str, Optional[int]]:
        match = NAME_AND_PID.match(value.strip())
        if match:
            return match.group(1), int(match.group(2))
        return value.strip(), None
