"""
Tests for the crash report parser.

Covers both report formats and the mapping of bad input to typed failures.
Run with: pytest tests/test_parser.py -v
"""

import json
from datetime import datetime, timedelta, timezone

import pytest

from crashnotifier.notifier.models import CrashRecord, ParseFailure, ParseFailureReason
from crashnotifier.notifier.parser import CrashReportParser, parse_timestamp, signal_name

from conftest import CRASH_TEXT, IPS_BODY, IPS_HEADER, ips_text, write_ips


@pytest.fixture
def parser():
    return CrashReportParser()


class TestIpsReports:
    """macOS 12+ JSON reports."""

    def test_parses_header_and_body(self, parser, report_dir):
        path = write_ips(report_dir)
        record = parser.parse(path)

        assert isinstance(record, CrashRecord)
        assert record.process_name == "Foo"
        assert record.pid == 42
        assert record.parent_pid == 1
        assert record.parent_process_name == "launchd"
        assert record.executable_path == "/Applications/Foo.app/Contents/MacOS/Foo"
        assert record.bundle_id == "com.example.foo"
        assert record.signal == "SIGSEGV"
        assert record.exception_type == "EXC_BAD_ACCESS"
        assert record.report_path == str(path)
        assert record.crashed_at == datetime(
            2026, 10, 18, 10, 15, 41, 812300, tzinfo=timezone(timedelta(0))
        )
        assert record.metadata["bug_type"] == "309"
        assert record.metadata["exception_codes"].startswith("0x")
        assert record.metadata["termination"]["code"] == 11

    def test_signal_from_termination(self, parser, report_dir):
        body = {**IPS_BODY, "exception": {"type": "EXC_CRASH"}}
        body["termination"] = {"namespace": "SIGNAL", "code": 6, "indicator": "Abort trap: 6"}
        path = report_dir / "Foo.ips"
        path.write_text(ips_text(body=body))

        record = parser.parse(path)
        assert record.signal == "SIGABRT"
        assert record.exception_type == "EXC_CRASH"

    def test_legacy_single_document(self, parser, report_dir):
        path = report_dir / "Foo.ips"
        path.write_text(json.dumps(IPS_BODY, indent=2))
        record = parser.parse(path)
        assert isinstance(record, CrashRecord)
        assert record.pid == 42

    def test_truncated_body_is_incomplete(self, parser, report_dir):
        path = report_dir / "Foo.ips"
        text = ips_text()
        path.write_text(text[: len(text) - 40])

        result = parser.parse(path)
        assert isinstance(result, ParseFailure)
        assert result.reason is ParseFailureReason.INCOMPLETE

    def test_header_without_body_is_incomplete(self, parser, report_dir):
        path = report_dir / "Foo.ips"
        path.write_text(json.dumps(IPS_HEADER) + "\n")
        assert parser.parse(path).reason is ParseFailureReason.INCOMPLETE

    def test_truncated_header_is_incomplete(self, parser, report_dir):
        path = report_dir / "Foo.ips"
        path.write_text('{"app_name":"Foo","timest')
        assert parser.parse(path).reason is ParseFailureReason.INCOMPLETE

    def test_garbage_is_malformed(self, parser, report_dir):
        path = report_dir / "Foo.ips"
        path.write_text("this is not json\nneither is this")
        assert parser.parse(path).reason is ParseFailureReason.MALFORMED

    def test_body_without_process_is_malformed(self, parser, report_dir):
        path = report_dir / "Foo.ips"
        path.write_text(ips_text(header={"bug_type": "288"}, body={"threads": []}))
        assert parser.parse(path).reason is ParseFailureReason.MALFORMED

    def test_non_object_body_is_malformed(self, parser, report_dir):
        path = report_dir / "Foo.ips"
        path.write_text(json.dumps(IPS_HEADER) + "\n[1, 2, 3]")
        assert parser.parse(path).reason is ParseFailureReason.MALFORMED


class TestCrashTextReports:
    """Pre-macOS 12 text reports."""

    def test_parses_headers(self, parser, report_dir):
        path = report_dir / "Bar_2026-10-18-102000_host.crash"
        path.write_text(CRASH_TEXT)
        record = parser.parse(path)

        assert isinstance(record, CrashRecord)
        assert record.process_name == "Bar"
        assert record.pid == 1234
        assert record.parent_process_name == "zsh"
        assert record.parent_pid == 999
        assert record.executable_path == "/usr/local/bin/bar"
        assert record.bundle_id == "bar"
        assert record.exception_type == "EXC_CRASH"
        assert record.signal == "SIGABRT"
        assert record.crashed_at.year == 2026
        assert record.metadata["OS Version"] == "macOS 14.1 (23B74)"
        assert record.metadata["Responsible"] == "Terminal [500]"
        assert "Process" not in record.metadata

    def test_termination_signal_fallback(self, parser, report_dir):
        text = CRASH_TEXT.replace(
            "Exception Type:        EXC_CRASH (SIGABRT)",
            "Exception Type:        EXC_CRASH\nTermination Signal:    Segmentation fault: 11",
        )
        path = report_dir / "Bar.crash"
        path.write_text(text)
        assert parser.parse(path).signal == "SIGSEGV"

    def test_missing_process_header_is_incomplete(self, parser, report_dir):
        path = report_dir / "Bar.crash"
        path.write_text("Incident Identifier: 1234\nCrashReporter Key:   abcd\n")
        assert parser.parse(path).reason is ParseFailureReason.INCOMPLETE

    def test_text_without_headers_is_malformed(self, parser, report_dir):
        path = report_dir / "Bar.crash"
        path.write_text("random bytes\nnothing to see\n")
        assert parser.parse(path).reason is ParseFailureReason.MALFORMED


class TestFailures:
    def test_missing_file_is_unreadable(self, parser, report_dir):
        result = parser.parse(report_dir / "gone.ips")
        assert isinstance(result, ParseFailure)
        assert result.reason is ParseFailureReason.UNREADABLE

    def test_empty_file_is_incomplete(self, parser, report_dir):
        path = report_dir / "empty.ips"
        path.write_text("")
        assert parser.parse(path).reason is ParseFailureReason.INCOMPLETE

    def test_directory_is_unreadable(self, parser, report_dir):
        path = report_dir / "dir.ips"
        path.mkdir()
        assert parser.parse(path).reason is ParseFailureReason.UNREADABLE


class TestHelpers:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("SIGSEGV", "SIGSEGV"),
            ("EXC_BAD_ACCESS (SIGBUS)", "SIGBUS"),
            ("Abort trap: 6", "SIGABRT"),
            (11, "SIGSEGV"),
            ("", None),
            (None, None),
            ("no signal here", None),
        ],
    )
    def test_signal_name(self, value, expected):
        assert signal_name(value) == expected

    def test_parse_timestamp(self):
        assert parse_timestamp("2026-10-18 10:20:00") == datetime(2026, 10, 18, 10, 20)
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp(None) is None
