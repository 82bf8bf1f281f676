"""
Phase coordinator -- one timed download or upload measurement.

Opens a session sized for the phase, fans out to ``worker_count`` transfer
workers reporting into one ``ByteCounter``, and converts the total into a
single bitrate once the deadline has passed and every worker has stopped.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional

from .constants import (
    CANCEL_GRACE,
    DEFAULT_DOWNLOAD_SIZE_MB,
    DEFAULT_UPLOAD_SIZE,
    PROGRESS_INTERVAL,
)
from .endpoints import Endpoints, open_session
from .models import Phase, PhaseResult, ProgressSample
from .timing import ByteCounter, Deadline
from .worker import TransferWorker

logger = logging.getLogger(__name__)


class PhaseCoordinator:
    """Run one download or upload phase against *endpoints*."""

    def __init__(
        self,
        endpoints: Endpoints,
        progress_interval: float = PROGRESS_INTERVAL,
        cancel_grace: float = CANCEL_GRACE,
    ) -> None:
        self.endpoints = endpoints
        self.progress_interval = progress_interval
        self.cancel_grace = cancel_grace

    async def measure(
        self,
        role: Phase,
        duration: float,
        worker_count: int,
        size: Optional[int] = None,
        on_progress: Optional[Callable[[ProgressSample], None]] = None,
    ) -> PhaseResult:
        """Measure throughput for *duration* seconds with *worker_count* workers.

        *size* is MiB per request for downloads and bytes per payload for
        uploads; it defaults to the standard value for the role.
        """
        if role not in (Phase.DOWNLOAD, Phase.UPLOAD):
            raise ValueError(f"Cannot measure throughput for phase {role.value}")
        if size is None:
            size = DEFAULT_DOWNLOAD_SIZE_MB if role is Phase.DOWNLOAD else DEFAULT_UPLOAD_SIZE
        worker_count = max(worker_count, 0)

        deadline = Deadline(duration)
        counter = ByteCounter(role, deadline, on_progress, interval=self.progress_interval)
        logger.info("%s phase started: %d workers for %.1f s", role.value, worker_count, duration)

        async with open_session(worker_count) as session:
            workers = [
                TransferWorker(session, self.endpoints, role, size, worker_id=i)
                for i in range(worker_count)
            ]
            tasks = [asyncio.create_task(w.run(deadline, counter.add)) for w in workers]
            try:
                await self._wait(tasks, deadline)
            finally:
                for t in tasks:
                    if not t.done():
                        t.cancel()
                results = await asyncio.gather(*tasks, return_exceptions=True)

        for worker, outcome in zip(workers, results):
            if isinstance(outcome, Exception):
                logger.error(
                    "%s worker %d crashed: %r", role.value, worker.worker_id, outcome
                )

        result = PhaseResult.from_totals(
            role, counter.total, deadline.elapsed(), connections=worker_count
        )
        logger.info(
            "%s phase finished: %d bytes in %.2f s = %.2f Mbps (%d progress samples)",
            role.value, result.bytes_total, result.duration_ms / 1000,
            result.speed_mbps, counter.samples_emitted,
        )
        return result

    async def _wait(self, tasks: List[asyncio.Task], deadline: Deadline) -> None:
        """Let workers stop on their own, cancelling any still running after the grace period."""
        if not tasks:
            return
        _, pending = await asyncio.wait(tasks, timeout=deadline.remaining() + self.cancel_grace)
        if pending:
            logger.debug("cancelling %d workers past the deadline", len(pending))
