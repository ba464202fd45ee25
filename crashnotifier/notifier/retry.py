"""
Retry Queue

Bounded, clock-driven queue of reports that were still being written when
they were parsed. Entries carry their attempt count and due time; nothing is
rescheduled recursively.
"""

import heapq
import itertools
import threading
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List


@dataclass(order=True)
class RetryEntry:
    due_at: float
    seq: int
    path: Path = field(compare=False)
    attempts: int = field(compare=False)


class RetryQueue:
    """
    Holds (path, attempts, due_at) entries until they are due.

    Args:
        max_attempts: Parse attempts allowed per report (first attempt included)
        base_delay: Delay before the first retry in seconds
        max_delay: Upper bound for the exponential backoff
        clock: Monotonic time source, injectable for tests
    """

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay: float = 0.5,
        max_delay: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.clock = clock

        self._lock = threading.Lock()
        self._heap: List[RetryEntry] = []
        self._seq = itertools.count()

    def delay_for(self, attempts: int) -> float:
        """Backoff before the retry that follows attempt number `attempts`."""
        return min(self.base_delay * (2 ** max(attempts - 1, 0)), self.max_delay)

    def schedule(self, path: Path, attempts: int) -> bool:
        """
        Queue another parse of `path` after `attempts` failed attempts.

        Returns:
            False if the attempt budget is used up (entry not queued)
        """
        if attempts >= self.max_attempts:
            return False
        entry = RetryEntry(
            due_at=self.clock() + self.delay_for(attempts),
            seq=next(self._seq),
            path=Path(path),
            attempts=attempts,
        )
        with self._lock:
            heapq.heappush(self._heap, entry)
        return True

    def pop_due(self) -> List[RetryEntry]:
        """Remove and return entries that are due, earliest first."""
        now = self.clock()
        due = []
        with self._lock:
            while self._heap and self._heap[0].due_at <= now:
                due.append(heapq.heappop(self._heap))
        return due

    def next_due_in(self) -> float:
        """Seconds until the earliest entry is due (inf when empty)."""
        with self._lock:
            if not self._heap:
                return float("inf")
            return max(self._heap[0].due_at - self.clock(), 0.0)

    def clear(self) -> None:
        with self._lock:
            self._heap.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._heap)
