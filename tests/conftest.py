"""Shared fixtures for crashnotifier tests."""

import json
from datetime import datetime
from pathlib import Path

import pytest

from crashnotifier.core.config import NotifierConfig
from crashnotifier.notifier.models import CrashRecord
from crashnotifier.notifier.notifier import reset_default_notifier


IPS_HEADER = {
    "app_name": "Foo",
    "timestamp": "2026-10-18 10:15:42.00 +0000",
    "app_version": "1.0",
    "bug_type": "309",
    "os_version": "macOS 14.1 (23B74)",
    "incident_id": "6E7F4D1A-0000-4C5D-9C1B-0A1B2C3D4E5F",
    "name": "Foo",
}

IPS_BODY = {
    "procName": "Foo",
    "pid": 42,
    "parentPid": 1,
    "parentProc": "launchd",
    "procPath": "/Applications/Foo.app/Contents/MacOS/Foo",
    "captureTime": "2026-10-18 10:15:41.8123 +0000",
    "bundleInfo": {"CFBundleIdentifier": "com.example.foo"},
    "exception": {
        "type": "EXC_BAD_ACCESS",
        "signal": "SIGSEGV",
        "codes": "0x0000000000000001, 0x0000000000000000",
    },
    "termination": {"namespace": "SIGNAL", "code": 11, "indicator": "Segmentation fault: 11"},
}

CRASH_TEXT = """Process:               Bar [1234]
Path:                  /usr/local/bin/bar
Identifier:            bar
Version:               ???
Code Type:             X86-64 (Native)
Parent Process:        zsh [999]
Responsible:           Terminal [500]
User ID:               501

Date/Time:             2026-10-18 10:20:00.123 +0000
OS Version:            macOS 14.1 (23B74)
Report Version:        12

Crashed Thread:        0  Dispatch queue: com.apple.main-thread

Exception Type:        EXC_CRASH (SIGABRT)
Exception Codes:       0x0000000000000000, 0x0000000000000000

Thread 0 Crashed:: Dispatch queue: com.apple.main-thread
0   libsystem_kernel.dylib        0x00007ff80a1b2ffe __pthread_kill + 10
1   libsystem_c.dylib             0x00007ff80a0f3b45 abort + 123
"""


def ips_text(header=None, body=None) -> str:
    """Render an .ips report: one-line JSON header, then the JSON body."""
    header = IPS_HEADER if header is None else header
    body = IPS_BODY if body is None else body
    return json.dumps(header) + "\n" + json.dumps(body, indent=2)


def write_ips(directory: Path, name: str = "Foo-2026-10-18-101542.ips", **body_overrides) -> Path:
    """Write a complete .ips report into `directory`."""
    body = {**IPS_BODY, **body_overrides}
    path = Path(directory) / name
    path.write_text(ips_text(body=body))
    return path


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def report_dir(tmp_path):
    """Empty crash report directory."""
    path = tmp_path / "DiagnosticReports"
    path.mkdir()
    return path


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def config(report_dir):
    """Config watching report_dir; the settle thread effectively never fires on its own."""
    return NotifierConfig(
        report_dirs=[str(report_dir)],
        settle_interval=60.0,
        retry_base_delay=1.0,
        retry_max_delay=4.0,
        max_parse_attempts=3,
    )


@pytest.fixture
def make_record():
    """Factory for CrashRecords with sensible defaults."""

    def _make(**kwargs) -> CrashRecord:
        defaults = {
            "process_name": "Foo",
            "pid": 42,
            "parent_pid": 1,
            "crashed_at": datetime(2026, 10, 18, 10, 15, 41),
            "executable_path": "/usr/local/bin/foo",
            "report_path": "/tmp/Foo.ips",
            "signal": "SIGSEGV",
        }
        defaults.update(kwargs)
        return CrashRecord(**defaults)

    return _make


@pytest.fixture(autouse=True)
def _reset_default_notifier():
    """No test leaks the process-wide notifier into the next one."""
    yield
    reset_default_notifier()
