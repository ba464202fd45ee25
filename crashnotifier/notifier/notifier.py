"""
Crash Log Notifier

Public coordinator: owns the directory watcher, the parse pipeline and the
waiter registry.

Reports emitted by the watcher are queued to a single pipeline thread which
parses them in arrival order and dispatches parsed records to the registry.
Reports that are still being written are retried through a bounded
RetryQueue. Uses threading so the pipeline keeps running regardless of any
asyncio event loop lifecycle; asyncio callers await the returned handles.

Policy: next_crash_log() starts listening on demand, so callers need not
call start_listening() first.
"""

import asyncio
import queue
import threading
import time
from typing import Any, Callable, Dict, Optional

from loguru import logger

from ..core.config import NotifierConfig
from ..core.errors import WatchSetupError
from .models import CrashRecord, ParseFailure, ParseFailureReason, RawReportEvent
from .parser import CrashReportParser, ReportParser
from .predicates import PredicateLike
from .registry import WaiterHandle, WaiterRegistry
from .retry import RetryQueue
from .watcher import DirectoryWatcher, WatcherState

# Upper bound on how long the pipeline sleeps between retry checks
PIPELINE_POLL_INTERVAL = 0.5

_STOP = object()


class CrashLogNotifier:
    """
    Notifies callers of crash reports matching their predicates.

    States: Idle -> start_listening() -> Watching. start_listening() while
    Watching is a no-op. stop() returns to Idle.
    """

    def __init__(
        self,
        config: Optional[NotifierConfig] = None,
        parser: Optional[ReportParser] = None,
        registry: Optional[WaiterRegistry] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize CrashLogNotifier.

        Args:
            config: Notifier configuration (defaults if not given)
            parser: Report parser (CrashReportParser if not given)
            registry: Waiter registry (created from config if not given)
            clock: Monotonic clock driving retry backoff
        """
        self.config = config or NotifierConfig()
        self.parser = parser or CrashReportParser()
        self.registry = registry or WaiterRegistry(
            exclusive_delivery=self.config.exclusive_delivery
        )
        self.retries = RetryQueue(
            max_attempts=self.config.max_parse_attempts,
            base_delay=self.config.retry_base_delay,
            max_delay=self.config.retry_max_delay,
            clock=clock,
        )
        self.state = WatcherState()

        self._lifecycle_lock = threading.Lock()
        self._watcher: Optional[DirectoryWatcher] = None
        self._events: "queue.Queue[Any]" = queue.Queue()
        self._pipeline_thread: Optional[threading.Thread] = None
        self._running = False

        self._stats_lock = threading.Lock()
        self._stats = {
            "events": 0,
            "parsed": 0,
            "retried": 0,
            "dropped": 0,
            "unmatched": 0,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start_listening(self) -> None:
        """
        Start watching for crash reports. Idempotent.

        Each start gets its own event queue and pipeline thread, so a
        restart never feeds a queue that nothing reads.

        Raises:
            WatchSetupError: the report directories cannot be observed;
                the notifier stays idle
        """
        with self._lifecycle_lock:
            if self._running:
                return

            events: "queue.Queue[Any]" = queue.Queue()
            watcher = self._create_watcher(events)
            watcher.start()

            self._watcher = watcher
            self._events = events
            self._running = True
            self._pipeline_thread = threading.Thread(
                target=self._pipeline_loop,
                args=(events,),
                name="CrashLogPipeline",
                daemon=True,  # Auto-exit when main process exits
            )
            self._pipeline_thread.start()

        logger.info(
            f"[CrashLogNotifier] Listening for crash reports in {', '.join(self.config.report_dirs)}"
        )

    def stop(self) -> None:
        """
        Stop watching and the pipeline thread. Idempotent.

        Holds the lifecycle lock until teardown is complete; a concurrent
        start_listening() waits and then starts afresh. Pending waiters stay
        registered and can still be completed by a later start_listening().
        """
        with self._lifecycle_lock:
            if not self._running:
                return
            self._running = False

            if self._watcher is not None:
                self._watcher.stop()

            self._events.put(_STOP)
            pipeline_thread = self._pipeline_thread
            if pipeline_thread is not None and pipeline_thread is not threading.current_thread():
                pipeline_thread.join(timeout=10.0)
                if pipeline_thread.is_alive():
                    logger.warning("[CrashLogNotifier] Pipeline thread did not exit cleanly")

            self._watcher = None
            self._pipeline_thread = None
            self.retries.clear()

        logger.info("[CrashLogNotifier] Stopped listening")

    def is_listening(self) -> bool:
        return self._running

    def _create_watcher(self, events: "queue.Queue[Any]") -> DirectoryWatcher:
        return DirectoryWatcher(
            directories=self.config.report_paths(),
            on_report=lambda event: self._on_report(event, events),
            extensions=self.config.report_extensions,
            settle_interval=self.config.settle_interval,
            max_settle_checks=self.config.max_settle_checks,
            use_polling=self.config.use_polling,
            polling_timeout=self.config.polling_timeout,
            state=self.state,
        )

    # ------------------------------------------------------------------
    # Waiting
    # ------------------------------------------------------------------

    def next_crash_log(self, predicate: PredicateLike) -> WaiterHandle:
        """
        Get a handle that resolves with the next crash matching `predicate`.

        Starts listening if needed. Never raises: if the watch cannot be set
        up the error is logged and the handle stays pending.

        Args:
            predicate: CrashPredicate or a callable taking a CrashRecord

        Returns:
            WaiterHandle (future-like, awaitable)
        """
        handle = self.registry.register(predicate)

        if not self._running:
            try:
                self.start_listening()
            except WatchSetupError as e:
                logger.error(f"[CrashLogNotifier] Unable to start listening: {e}")

        return handle

    async def wait_for_crash_log(
        self, predicate: PredicateLike, timeout: Optional[float] = None
    ) -> CrashRecord:
        """
        Await the next crash matching `predicate`.

        The waiter is cancelled when the timeout expires or the awaiting
        task is cancelled.

        Raises:
            asyncio.TimeoutError: no matching crash within `timeout` seconds
        """
        handle = self.next_crash_log(predicate)
        try:
            if timeout is None:
                return await handle.wait()
            return await asyncio.wait_for(handle.wait(), timeout)
        except asyncio.TimeoutError:
            handle.cancel()
            raise

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _on_report(self, event: RawReportEvent, events: "queue.Queue[Any]") -> None:
        self._increment("events")
        events.put(event)

    def _pipeline_loop(self, events: "queue.Queue[Any]") -> None:
        """Parse and dispatch loop for one listening run (runs in separate thread)."""
        logger.debug("[CrashLogNotifier] Pipeline loop started")

        while True:
            timeout = min(self.retries.next_due_in(), PIPELINE_POLL_INTERVAL)
            try:
                event = events.get(timeout=timeout)
            except queue.Empty:
                event = None

            if event is _STOP:
                break

            try:
                if event is not None:
                    self.process_event(event)
                self.process_due_retries()
            except Exception as e:
                logger.error(f"[CrashLogNotifier] Pipeline error: {e}")

        logger.debug("[CrashLogNotifier] Pipeline loop exited")

    def process_event(self, event: RawReportEvent, attempts: int = 1) -> Optional[CrashRecord]:
        """
        Parse one report and dispatch it to the waiters.

        Args:
            event: Report emitted by the watcher
            attempts: Parse attempt number for this report (1 = first)

        Returns:
            The parsed record, or None if parsing failed
        """
        if not event.stable:
            logger.debug(f"[CrashLogNotifier] Parsing unsettled report {event.path}")

        try:
            result = self.parser.parse(event.path)
        except Exception as e:
            result = ParseFailure(ParseFailureReason.MALFORMED, str(event.path), f"parser raised: {e}")

        if isinstance(result, ParseFailure):
            self._handle_failure(result, attempts)
            return None

        self._increment("parsed")
        completed = self.registry.dispatch(result)
        if not completed:
            self._increment("unmatched")
            logger.debug(f"[CrashLogNotifier] No waiter for {result.summary()}")
        return result

    def process_due_retries(self) -> int:
        """Re-parse reports whose retry delay elapsed. Returns how many were processed."""
        due = self.retries.pop_due()
        for entry in due:
            self.process_event(RawReportEvent(path=entry.path), attempts=entry.attempts + 1)
        return len(due)

    def _handle_failure(self, failure: ParseFailure, attempts: int) -> None:
        if failure.reason.retryable:
            if self.retries.schedule(failure.path, attempts):
                self._increment("retried")
                logger.debug(
                    f"[CrashLogNotifier] Report incomplete, retry {attempts}/"
                    f"{self.retries.max_attempts - 1} in "
                    f"{self.retries.delay_for(attempts):.2f}s: {failure.path}"
                )
                return
            logger.warning(
                f"[CrashLogNotifier] Report still incomplete after {attempts} attempts, "
                f"dropping as malformed: {failure}"
            )
        else:
            logger.warning(f"[CrashLogNotifier] Dropping report: {failure}")
        self._increment("dropped")

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def _increment(self, key: str) -> None:
        with self._stats_lock:
            self._stats[key] += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get pipeline statistics."""
        with self._stats_lock:
            stats = dict(self._stats)
        stats.update(
            {
                "delivered": self.registry.delivered,
                "active_waiters": self.registry.active_count(),
                "pending_retries": len(self.retries),
                "seen_reports": len(self.state.seen),
                "is_listening": self._running,
            }
        )
        return stats

    def __repr__(self) -> str:
        state = "watching" if self._running else "idle"
        return f"CrashLogNotifier({state}, waiters={self.registry.active_count()})"


# =============================================================================
# Process-wide default notifier
# =============================================================================

_default_notifier: Optional[CrashLogNotifier] = None
_default_lock = threading.Lock()


def get_default_notifier(config: Optional[NotifierConfig] = None) -> CrashLogNotifier:
    """
    Get the shared notifier, creating it on first use.

    `config` only applies to the call that creates it; later calls return
    the existing instance. Without a config, it is read from the environment.
    """
    global _default_notifier
    with _default_lock:
        if _default_notifier is None:
            _default_notifier = CrashLogNotifier(config or NotifierConfig.from_env())
        return _default_notifier


def reset_default_notifier() -> None:
    """Stop and discard the shared notifier."""
    global _default_notifier
    with _default_lock:
        notifier = _default_notifier
        _default_notifier = None
    if notifier is not None:
        notifier.stop()


def start_listening() -> None:
    """Start the shared notifier. Raises WatchSetupError."""
    get_default_notifier().start_listening()


def next_crash_log(predicate: PredicateLike) -> WaiterHandle:
    """Next crash matching `predicate`, from the shared notifier."""
    return get_default_notifier().next_crash_log(predicate)
