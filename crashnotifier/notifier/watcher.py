"""
Directory Watcher

Observes crash report directories and emits a RawReportEvent for each new
report once it has finished being written.

Filesystem events come from watchdog (inotify / FSEvents, or a polling
observer). A settle thread checks pending files every settle_interval and
emits a file once its size stopped changing. The crash reporter sometimes
writes reports in several steps, so a created file is never emitted
straight away.

Policy for files already present when watching starts: they are historical,
recorded as seen and never emitted.
"""

import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Set

from loguru import logger
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from ..core.errors import WatchSetupError
from ..core.logging import get_component_logger
from .models import RawReportEvent

ReportCallback = Callable[[RawReportEvent], None]


class WatcherState:
    """
    Watching state owned by one notifier.

    Holds whether watching is active, the set of report paths already seen,
    and the underlying observer handle.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self.active = False
        self.seen: Set[str] = set()
        self.observer = None
        self.settle_thread: Optional[threading.Thread] = None
        self.stop_event = threading.Event()


@dataclass
class _PendingFile:
    size: int = -1
    checks: int = 0


class ReportEventHandler(FileSystemEventHandler):
    """Forwards file events in a watched directory to the watcher."""

    def __init__(self, watcher: "DirectoryWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_created(self, event) -> None:
        if not event.is_directory:
            self.watcher.note_file(event.src_path)

    def on_modified(self, event) -> None:
        if not event.is_directory:
            self.watcher.note_file(event.src_path)

    def on_closed(self, event) -> None:
        if not event.is_directory:
            self.watcher.note_file(event.src_path)

    def on_moved(self, event) -> None:
        # Reports are sometimes written to a temp name and renamed into place
        if not event.is_directory:
            self.watcher.note_file(event.dest_path)


class DirectoryWatcher:
    """
    Watches one or more crash report directories.

    Thread-safe: note_file() is called from observer threads, check_pending()
    from the settle thread, start()/stop() from callers.
    """

    def __init__(
        self,
        directories: Iterable,
        on_report: ReportCallback,
        extensions: Sequence[str] = (".ips", ".crash"),
        settle_interval: float = 0.5,
        max_settle_checks: int = 20,
        use_polling: bool = False,
        polling_timeout: float = 0.25,
        state: Optional[WatcherState] = None,
    ):
        """
        Args:
            directories: Crash report directories to observe
            on_report: Called with each emitted RawReportEvent (settle thread)
            extensions: Report file suffixes to consider
            settle_interval: Seconds between size checks of pending files
            max_settle_checks: Checks before a still-changing file is emitted as unstable
            use_polling: Use watchdog's PollingObserver instead of the native observer
            polling_timeout: Snapshot interval of the PollingObserver
            state: Shared watcher state (a fresh one if not given)
        """
        self.directories: List[Path] = [Path(os.path.expanduser(str(d))) for d in directories]
        self.on_report = on_report
        self.extensions = tuple(extensions)
        self.settle_interval = settle_interval
        self.max_settle_checks = max_settle_checks
        self.use_polling = use_polling
        self.polling_timeout = polling_timeout
        self.state = state or WatcherState()

        self._pending: Dict[str, _PendingFile] = {}
        self._event_log = get_component_logger("watcher")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """
        Begin observing. Idempotent.

        Raises:
            WatchSetupError: a directory cannot be opened or the observer
                cannot be installed. Watching is not started.
        """
        with self.state.lock:
            if self.state.active:
                return

            resolved = []
            for directory in self.directories:
                if not directory.is_dir():
                    raise WatchSetupError(
                        f"Crash report directory does not exist: {directory}", directory
                    )
                resolved.append(directory.resolve())

            observer = (
                PollingObserver(timeout=self.polling_timeout)
                if self.use_polling
                else Observer()
            )
            handler = ReportEventHandler(self)
            try:
                for directory in resolved:
                    observer.schedule(handler, str(directory), recursive=False)
                observer.start()
            except Exception as e:
                self._abandon(observer)
                raise WatchSetupError(f"Unable to install filesystem watch: {e}") from e

            # Snapshot only once the watch is installed: a report created in
            # between is either historical or observed. Its events wait on
            # state.lock until start() returns.
            try:
                historical = self._snapshot(resolved)
            except OSError as e:
                self._abandon(observer)
                raise WatchSetupError(f"Unable to list crash reports: {e}") from e

            self.directories = resolved
            self.state.seen.update(historical)
            self.state.observer = observer
            self.state.stop_event.clear()
            self.state.settle_thread = threading.Thread(
                target=self._settle_loop,
                name="CrashReportSettle",
                daemon=True,  # Auto-exit when main process exits
            )
            self.state.active = True
            self.state.settle_thread.start()

        watch_type = "polling" if self.use_polling else "native"
        logger.info(
            f"[DirectoryWatcher] Watching {len(resolved)} directories ({watch_type}), "
            f"{len(historical)} historical reports ignored"
        )
        for directory in resolved:
            self._event_log.info(f"[WATCH STARTED] path={directory}")

    def stop(self) -> None:
        """
        Stop observing and release the observer. Idempotent.

        Blocks until the observer and settle threads exit.
        """
        with self.state.lock:
            if not self.state.active:
                return
            self.state.active = False
            self.state.stop_event.set()
            observer = self.state.observer
            settle_thread = self.state.settle_thread
            self.state.observer = None
            self.state.settle_thread = None
            self._pending.clear()

        if observer is not None:
            observer.stop()
            observer.join(timeout=10.0)
            if observer.is_alive():
                logger.warning("[DirectoryWatcher] Observer thread did not exit cleanly")

        if settle_thread is not None and settle_thread is not threading.current_thread():
            settle_thread.join(timeout=10.0)

        self._event_log.info("[WATCH STOPPED]")
        logger.info("[DirectoryWatcher] Stopped watching")

    @staticmethod
    def _abandon(observer) -> None:
        if observer.is_alive():
            observer.stop()

    def is_active(self) -> bool:
        return self.state.active

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def _snapshot(self, directories: List[Path]) -> Set[str]:
        historical = set()
        for directory in directories:
            for entry in directory.iterdir():
                if entry.suffix in self.extensions:
                    historical.add(str(entry))
        return historical

    def note_file(self, src_path) -> None:
        """
        Record a created/changed file as pending settlement.

        Args:
            src_path: Path reported by the filesystem event (str or bytes)
        """
        path = Path(os.fsdecode(src_path))
        if path.suffix not in self.extensions:
            return
        key = str(path.resolve())

        with self.state.lock:
            if not self.state.active:
                return
            if key in self.state.seen or key in self._pending:
                return
            self._pending[key] = _PendingFile()

        logger.debug(f"[DirectoryWatcher] Pending: {key}")

    def check_pending(self) -> List[RawReportEvent]:
        """
        Run one settle pass over pending files.

        Files whose size did not change since the previous pass are emitted
        as stable; files still changing after max_settle_checks passes are
        emitted as unstable. Vanished files are dropped.

        Returns:
            Events emitted during this pass, in detection order
        """
        with self.state.lock:
            pending = list(self._pending.items())

        ready: List[RawReportEvent] = []
        for key, entry in pending:
            try:
                size = os.stat(key).st_size
            except FileNotFoundError:
                logger.debug(f"[DirectoryWatcher] Report vanished before settling: {key}")
                self._forget(key)
                continue
            except OSError as e:
                logger.warning(f"[DirectoryWatcher] Unable to stat {key}: {e}")
                self._forget(key)
                continue

            entry.checks += 1
            if size > 0 and size == entry.size:
                ready.append(RawReportEvent(path=Path(key), stable=True))
            elif entry.checks >= self.max_settle_checks:
                logger.warning(
                    f"[DirectoryWatcher] Report still changing after {entry.checks} checks: {key}"
                )
                ready.append(RawReportEvent(path=Path(key), stable=False))
            else:
                entry.size = size

        emitted = []
        for event in ready:
            if self._mark_seen(str(event.path)):
                emitted.append(event)
                self._emit(event)
        return emitted

    def _forget(self, key: str) -> None:
        with self.state.lock:
            self._pending.pop(key, None)

    def _mark_seen(self, key: str) -> bool:
        with self.state.lock:
            self._pending.pop(key, None)
            if key in self.state.seen:
                return False
            self.state.seen.add(key)
            return True

    def _emit(self, event: RawReportEvent) -> None:
        self._event_log.info(
            f"[REPORT DETECTED] stable={event.stable} | file={event.path.name}"
        )
        try:
            self.on_report(event)
        except Exception as e:
            logger.error(f"[DirectoryWatcher] Report callback error for {event.path}: {e}")

    def _settle_loop(self) -> None:
        """Background settle loop (runs in separate thread)."""
        logger.debug("[DirectoryWatcher] Settle loop started")

        while not self.state.stop_event.wait(self.settle_interval):
            try:
                self.check_pending()
            except Exception as e:
                logger.error(f"[DirectoryWatcher] Settle loop error: {e}")

        logger.debug("[DirectoryWatcher] Settle loop exited")
