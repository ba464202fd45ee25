"""
Waiter Registry

Holds the active set of predicate-based waiters and matches incoming crash
records against them.

Each waiter owns a concurrent.futures.Future that completes with at most
one CrashRecord. register(), cancel() and dispatch() are serialized by one
lock. A future is claimed under that lock with set_running_or_notify_cancel()
and completed after the lock is released, so a waiter is never both
completed and cancelled, and done-callbacks never run inside dispatch()'s lock.
"""

import asyncio
import threading
from collections import OrderedDict
from concurrent.futures import Future
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional

from loguru import logger

from ..core.utils import generate_id
from .models import CrashRecord
from .predicates import CrashPredicate, PredicateLike, as_predicate


@dataclass
class Waiter:
    """A pending request for the next crash record matching a predicate."""

    predicate: CrashPredicate
    future: Future = field(default_factory=Future)
    registered_at: datetime = field(default_factory=datetime.now)
    waiter_id: str = field(default_factory=generate_id)


class WaiterHandle:
    """
    Caller-facing handle of a registered waiter.

    Usable from threads (result(timeout)) and from asyncio (await handle).
    """

    def __init__(self, waiter: Waiter, registry: "WaiterRegistry"):
        self._waiter = waiter
        self._registry = registry

    @property
    def waiter_id(self) -> str:
        return self._waiter.waiter_id

    @property
    def future(self) -> Future:
        return self._waiter.future

    @property
    def predicate(self) -> CrashPredicate:
        return self._waiter.predicate

    def cancel(self) -> bool:
        """Cancel the waiter. Returns False if it already completed."""
        return self._registry.cancel(self)

    def result(self, timeout: Optional[float] = None) -> CrashRecord:
        """Block for the matching record (concurrent.futures semantics)."""
        return self._waiter.future.result(timeout=timeout)

    def done(self) -> bool:
        return self._waiter.future.done()

    def cancelled(self) -> bool:
        return self._waiter.future.cancelled()

    async def wait(self) -> CrashRecord:
        """Suspend the current task until a matching record arrives."""
        try:
            return await asyncio.wrap_future(self._waiter.future)
        except asyncio.CancelledError:
            self.cancel()
            raise

    def __await__(self):
        return self.wait().__await__()

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled() else "done" if self.done() else "pending"
        return f"WaiterHandle({self.waiter_id}, {self.predicate!r}, {state})"


class WaiterRegistry:
    """
    Active waiters in registration order.

    Args:
        exclusive_delivery: A record completes at most the first matching
            waiter (True), or every matching waiter (False)
    """

    def __init__(self, exclusive_delivery: bool = True):
        self.exclusive_delivery = exclusive_delivery

        # Reentrant: cancel() runs future done-callbacks while holding the lock
        self._lock = threading.RLock()
        self._waiters: "OrderedDict[str, Waiter]" = OrderedDict()
        self.delivered = 0

    def register(self, predicate: PredicateLike) -> WaiterHandle:
        """
        Add a waiter for the next record matching `predicate`.

        Thread-safe: can be called from any thread.
        """
        waiter = Waiter(predicate=as_predicate(predicate))
        with self._lock:
            self._waiters[waiter.waiter_id] = waiter

        # Cancellation through the raw future also leaves the active set
        waiter.future.add_done_callback(
            lambda _f, waiter_id=waiter.waiter_id: self._discard(waiter_id)
        )

        logger.debug(f"[WaiterRegistry] Registered waiter {waiter.waiter_id}: {waiter.predicate!r}")
        return WaiterHandle(waiter, self)

    def cancel(self, handle: WaiterHandle) -> bool:
        """
        Remove a waiter without completing it.

        Safe to call after completion (no-op).

        Returns:
            True if the waiter was cancelled by this call
        """
        with self._lock:
            self._waiters.pop(handle.waiter_id, None)
            cancelled = handle.future.cancel()

        if cancelled:
            logger.debug(f"[WaiterRegistry] Cancelled waiter {handle.waiter_id}")
        return cancelled

    def dispatch(self, record: CrashRecord) -> List[Waiter]:
        """
        Offer `record` to active waiters in registration order.

        Returns:
            Waiters completed with this record
        """
        completed: List[Waiter] = []
        with self._lock:
            for waiter in list(self._waiters.values()):
                if not self._evaluate(waiter, record):
                    continue

                self._waiters.pop(waiter.waiter_id, None)
                if not waiter.future.set_running_or_notify_cancel():
                    # Cancelled concurrently; the record stays available
                    continue

                completed.append(waiter)
                self.delivered += 1
                if self.exclusive_delivery:
                    break

        # Claimed futures can no longer be cancelled
        for waiter in completed:
            waiter.future.set_result(record)

        for waiter in completed:
            logger.info(
                f"[WaiterRegistry] Delivered {record.summary()} to waiter {waiter.waiter_id}"
            )
        return completed

    def _evaluate(self, waiter: Waiter, record: CrashRecord) -> bool:
        try:
            return bool(waiter.predicate.matches(record))
        except Exception:
            logger.exception(
                f"[WaiterRegistry] Predicate {waiter.predicate!r} of waiter "
                f"{waiter.waiter_id} raised, treating as no match"
            )
            return False

    def _discard(self, waiter_id: str) -> None:
        with self._lock:
            self._waiters.pop(waiter_id, None)

    def pending(self) -> List[Waiter]:
        """Snapshot of active waiters in registration order."""
        with self._lock:
            return list(self._waiters.values())

    def active_count(self) -> int:
        with self._lock:
            return len(self._waiters)

    def __len__(self) -> int:
        return self.active_count()
