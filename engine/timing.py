"""
Deadline and shared byte accumulator for one measurement phase.

Both take an injectable ``clock`` (defaults to ``time.perf_counter``) so the
arithmetic can be unit-tested without sleeping.
"""
from __future__ import annotations

import time
from typing import Callable, Optional

from .constants import PROGRESS_INTERVAL
from .models import Phase, ProgressSample
from .stats import throughput_mbps

Clock = Callable[[], float]


class Deadline:
    """Absolute point in time at which a phase's workers must stop.

    Workers ask for ``remaining()`` before every await instead of tracking a
    countdown of their own, so there is no drift between them.
    """

    def __init__(self, duration: float, clock: Clock = time.perf_counter) -> None:
        self._clock = clock
        self.duration = max(duration, 0.0)
        self.start = clock()
        self.at = self.start + self.duration

    @property
    def expired(self) -> bool:
        return self._clock() >= self.at

    def remaining(self) -> float:
        return max(0.0, self.at - self._clock())

    def elapsed(self) -> float:
        return self._clock() - self.start


class ByteCounter:
    """
    Per-phase byte total shared by every worker.

    ``add`` never awaits, so on a single event loop concurrent workers cannot
    interleave inside it and no update is lost.  Each call may emit one
    ``ProgressSample`` to ``on_progress`` if at least ``interval`` seconds
    have passed since the previous emission.
    """

    def __init__(
        self,
        phase: Phase,
        deadline: Deadline,
        on_progress: Optional[Callable[[ProgressSample], None]] = None,
        interval: float = PROGRESS_INTERVAL,
        clock: Clock = time.perf_counter,
    ) -> None:
        self.phase = phase
        self.deadline = deadline
        self.on_progress = on_progress
        self.interval = interval
        self._clock = clock
        self._total = 0
        self._last_emit = deadline.start
        self.samples_emitted = 0

    @property
    def total(self) -> int:
        return self._total

    def add(self, n: int) -> None:
        if n <= 0:
            return
        self._total += n

        if self.on_progress is None:
            return
        now = self._clock()
        if now - self._last_emit < self.interval:
            return

        elapsed = now - self.deadline.start
        if elapsed <= 0:
            return
        self._last_emit = now
        self.samples_emitted += 1

        progress = elapsed / self.deadline.duration if self.deadline.duration > 0 else 1.0
        self.on_progress(
            ProgressSample(
                phase=self.phase,
                speed_mbps=throughput_mbps(self._total, elapsed),
                bytes_total=self._total,
                elapsed_s=elapsed,
                progress=min(progress, 1.0),
                timestamp=now,
            )
        )
