"""
HTTP round-trip latency measurement.

Issues ``sample_count`` GET requests to the liveness endpoint one after the
other and averages the time from issuing each request to receiving its full
body.  Probes never overlap: concurrent probes would measure contention
instead of latency.
"""
from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, List, Optional

import aiohttp

from .constants import DEFAULT_PING_COUNT, NO_STORE_HEADERS, PROBE_TIMEOUT
from .endpoints import Endpoints, open_session
from .errors import ProbeFailure
from .models import LatencyResult

logger = logging.getLogger(__name__)


class LatencyProber:
    """Measure mean round-trip time to the liveness endpoint."""

    def __init__(
        self,
        endpoints: Endpoints,
        sample_count: int = DEFAULT_PING_COUNT,
        timeout: float = PROBE_TIMEOUT,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.endpoints = endpoints
        self.sample_count = sample_count
        self.timeout = timeout
        self._clock = clock

    async def probe(self, session: Optional[aiohttp.ClientSession] = None) -> LatencyResult:
        """Run every probe and return their mean.

        Raises :class:`ProbeFailure` on the first failed round-trip.
        """
        if session is None:
            async with open_session(1) as own:
                return await self._probe_all(own)
        return await self._probe_all(session)

    async def _probe_all(self, session: aiohttp.ClientSession) -> LatencyResult:
        samples: List[float] = []
        for attempt in range(1, self.sample_count + 1):
            rtt = await self._probe_once(session, attempt)
            logger.debug("probe %d: %.2f ms", attempt, rtt)
            samples.append(rtt)

        result = LatencyResult.from_samples(samples)
        logger.info("latency: %.2f ms over %d probes", result.latency_ms, result.count)
        return result

    async def _probe_once(self, session: aiohttp.ClientSession, attempt: int) -> float:
        """Send one request, read the whole response, return the RTT in ms."""
        start = self._clock()
        try:
            async with session.get(
                self.endpoints.ping_url,
                headers=NO_STORE_HEADERS,
                timeout=aiohttp.ClientTimeout(total=self.timeout),
            ) as resp:
                resp.raise_for_status()
                await resp.read()
        except asyncio.TimeoutError as exc:
            raise ProbeFailure(attempt, f"no response within {self.timeout:.1f} s") from exc
        except (aiohttp.ClientError, OSError) as exc:
            raise ProbeFailure(attempt, str(exc) or type(exc).__name__) from exc
        return (self._clock() - start) * 1000
