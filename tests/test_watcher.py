"""
Tests for the crash report directory watcher.

Most tests drive note_file()/check_pending() directly with a settle
interval long enough that the background settle thread stays idle.
Run with: pytest tests/test_watcher.py -v
"""

import os
import threading

import pytest

from crashnotifier.core.errors import WatchSetupError
from crashnotifier.notifier.watcher import DirectoryWatcher, WatcherState

from conftest import write_ips


@pytest.fixture
def events():
    return []


@pytest.fixture
def make_watcher(report_dir, events):
    watchers = []

    def _make(**kwargs):
        options = {
            "directories": [report_dir],
            "on_report": events.append,
            "settle_interval": 60.0,
            "max_settle_checks": 5,
            "use_polling": True,
            "polling_timeout": 60.0,
        }
        options.update(kwargs)
        watcher = DirectoryWatcher(**options)
        watchers.append(watcher)
        return watcher

    yield _make
    for watcher in watchers:
        watcher.stop()


class TestLifecycle:
    def test_missing_directory(self, tmp_path, make_watcher):
        watcher = make_watcher(directories=[tmp_path / "nope"])
        with pytest.raises(WatchSetupError) as exc_info:
            watcher.start()
        assert exc_info.value.path == tmp_path / "nope"
        assert not watcher.is_active()

    def test_file_instead_of_directory(self, tmp_path, make_watcher):
        not_a_dir = tmp_path / "file"
        not_a_dir.write_text("x")
        with pytest.raises(WatchSetupError):
            make_watcher(directories=[not_a_dir]).start()

    def test_start_is_idempotent(self, make_watcher):
        watcher = make_watcher()
        watcher.start()
        observer = watcher.state.observer
        watcher.start()
        assert watcher.state.observer is observer
        assert watcher.is_active()

    def test_stop_is_idempotent(self, make_watcher):
        watcher = make_watcher()
        watcher.start()
        watcher.stop()
        watcher.stop()
        assert not watcher.is_active()
        assert watcher.state.observer is None

    def test_events_ignored_when_inactive(self, report_dir, make_watcher, events):
        watcher = make_watcher()
        path = write_ips(report_dir)
        watcher.note_file(str(path))
        assert watcher.check_pending() == []


class TestSettling:
    def test_historical_reports_are_not_emitted(self, report_dir, make_watcher, events):
        old = write_ips(report_dir, "Old.ips")
        watcher = make_watcher()
        watcher.start()

        watcher.note_file(str(old))
        watcher.check_pending()
        watcher.check_pending()

        assert events == []
        assert str(old.resolve()) in watcher.state.seen

    def test_new_report_emitted_once_size_is_stable(self, report_dir, make_watcher, events):
        watcher = make_watcher()
        watcher.start()
        path = write_ips(report_dir)

        watcher.note_file(str(path))
        assert watcher.check_pending() == []  # first observation of the size

        emitted = watcher.check_pending()
        assert [e.path for e in emitted] == [path.resolve()]
        assert emitted[0].stable
        assert events == emitted

        # Later events for the same file are ignored
        watcher.note_file(str(path))
        watcher.check_pending()
        watcher.check_pending()
        assert len(events) == 1

    def test_growing_report_waits(self, report_dir, make_watcher, events):
        watcher = make_watcher()
        watcher.start()
        path = report_dir / "Foo.ips"
        path.write_text('{"app_name": "Foo"}\n')

        watcher.note_file(str(path))
        watcher.check_pending()
        with open(path, "a") as f:
            f.write('{"procName": "Foo"')
        assert watcher.check_pending() == []

        with open(path, "a") as f:
            f.write(', "pid": 42}')
        assert watcher.check_pending() == []
        assert watcher.check_pending()[0].stable

    def test_empty_report_is_not_stable(self, report_dir, make_watcher, events):
        watcher = make_watcher()
        watcher.start()
        path = report_dir / "Foo.ips"
        path.write_text("")

        watcher.note_file(str(path))
        watcher.check_pending()
        assert watcher.check_pending() == []

    def test_unsettled_report_emitted_after_max_checks(self, report_dir, make_watcher, events):
        watcher = make_watcher(max_settle_checks=3)
        watcher.start()
        path = report_dir / "Foo.ips"
        path.write_text("x")

        watcher.note_file(str(path))
        for i in range(2):
            with open(path, "a") as f:
                f.write("x" * (i + 1))
            watcher.check_pending()
        with open(path, "a") as f:
            f.write("more")
        emitted = watcher.check_pending()

        assert len(emitted) == 1
        assert not emitted[0].stable

    def test_vanished_report_is_dropped(self, report_dir, make_watcher, events):
        watcher = make_watcher()
        watcher.start()
        path = write_ips(report_dir)

        watcher.note_file(str(path))
        os.remove(path)
        watcher.check_pending()
        watcher.check_pending()

        assert events == []
        assert str(path.resolve()) not in watcher.state.seen

    def test_other_files_are_ignored(self, report_dir, make_watcher, events):
        watcher = make_watcher()
        watcher.start()
        path = report_dir / "Foo.diag"
        path.write_text("not a crash report")

        watcher.note_file(str(path))
        watcher.check_pending()
        watcher.check_pending()
        assert events == []

    def test_detection_order_is_preserved(self, report_dir, make_watcher, events):
        watcher = make_watcher()
        watcher.start()
        paths = [write_ips(report_dir, f"Foo-{i}.ips") for i in range(3)]

        for path in reversed(paths):
            watcher.note_file(str(path))
        watcher.check_pending()
        watcher.check_pending()

        assert [e.path.name for e in events] == ["Foo-2.ips", "Foo-1.ips", "Foo-0.ips"]

    def test_callback_errors_do_not_escape(self, report_dir, make_watcher):
        def broken(event):
            raise RuntimeError("boom")

        watcher = make_watcher(on_report=broken)
        watcher.start()
        path = write_ips(report_dir)

        watcher.note_file(str(path))
        watcher.check_pending()
        assert len(watcher.check_pending()) == 1


class TestSharedState:
    def test_seen_set_survives_restart(self, report_dir, make_watcher, events):
        state = WatcherState()
        watcher = make_watcher(state=state)
        watcher.start()
        path = write_ips(report_dir)
        watcher.note_file(str(path))
        watcher.check_pending()
        watcher.check_pending()
        watcher.stop()

        again = make_watcher(state=state)
        again.start()
        again.note_file(str(path))
        again.check_pending()
        again.check_pending()

        assert len(events) == 1


class TestObserverIntegration:
    def test_detects_new_report_in_background(self, report_dir, make_watcher):
        arrived = threading.Event()
        received = []

        def on_report(event):
            received.append(event)
            arrived.set()

        watcher = make_watcher(on_report=on_report, settle_interval=0.05, polling_timeout=0.05)
        watcher.start()
        path = write_ips(report_dir)

        assert arrived.wait(timeout=10)
        assert [e.path for e in received] == [path.resolve()]

    def test_report_created_right_after_snapshot_is_observed(self, report_dir, make_watcher):
        arrived = threading.Event()
        received = []

        def on_report(event):
            received.append(event)
            arrived.set()

        watcher = make_watcher(on_report=on_report, settle_interval=0.05, polling_timeout=0.05)
        original_snapshot = watcher._snapshot
        late = report_dir / "Late.ips"

        def snapshot_then_crash(directories):
            historical = original_snapshot(directories)
            write_ips(report_dir, late.name)
            return historical

        watcher._snapshot = snapshot_then_crash
        watcher.start()

        assert arrived.wait(timeout=10)
        assert [e.path for e in received] == [late.resolve()]
