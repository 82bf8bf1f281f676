"""
Speed test orchestrator -- latency, then download, then upload.

``SpeedTest`` owns the run state machine::

    IDLE --run--> TESTING --success--> COMPLETE --run--> TESTING
                     |
                     +--failure / cancel--> IDLE

Live values (``latency_ms``, ``download_mbps``, ``upload_mbps``) are updated
as progress arrives and overwritten by each phase's final result.  Observers
either register callbacks or consume :meth:`SpeedTest.stream`.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, fields
from typing import Any, AsyncIterator, Callable, Dict, Optional, Union

from .constants import (
    DEFAULT_DOWNLOAD_CONNECTIONS,
    DEFAULT_DOWNLOAD_SIZE_MB,
    DEFAULT_DURATION,
    DEFAULT_PING_COUNT,
    DEFAULT_UPLOAD_CONNECTIONS,
    DEFAULT_UPLOAD_SIZE,
    MIB,
    PROGRESS_INTERVAL,
)
from .endpoints import Endpoints
from .errors import PhaseAbort
from .latency import LatencyProber
from .models import (
    LatencyResult,
    Phase,
    PhaseResult,
    ProgressSample,
    RunState,
    SpeedTestReport,
    StateChange,
)
from .phase import PhaseCoordinator

logger = logging.getLogger(__name__)

Event = Union[StateChange, ProgressSample, LatencyResult, PhaseResult, SpeedTestReport]

STEP_LATENCY = "Measuring latency..."
STEP_DOWNLOAD = "Measuring download speed..."
STEP_UPLOAD = "Measuring upload speed..."
STEP_COMPLETE = "Test complete"
STEP_FAILED = "Speed test failed"
STEP_CANCELLED = "Speed test cancelled"

_TRANSITIONS = {
    RunState.IDLE: {RunState.TESTING},
    RunState.TESTING: {RunState.COMPLETE, RunState.IDLE},
    RunState.COMPLETE: {RunState.TESTING},
}


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

@dataclass
class SpeedTestSettings:
    """Tunables for one run.  Defaults are the standard test profile."""

    ping_count: int = DEFAULT_PING_COUNT
    download_duration: float = DEFAULT_DURATION
    download_connections: int = DEFAULT_DOWNLOAD_CONNECTIONS
    download_size_mb: int = DEFAULT_DOWNLOAD_SIZE_MB
    upload_duration: float = DEFAULT_DURATION
    upload_connections: int = DEFAULT_UPLOAD_CONNECTIONS
    upload_size: int = DEFAULT_UPLOAD_SIZE
    progress_interval: float = PROGRESS_INTERVAL

    @classmethod
    def from_config(cls, config: Dict[str, Any]) -> SpeedTestSettings:
        """Build settings from a config dict; unknown or ``None`` keys are ignored.

        ``upload_size_mb`` (MiB) takes precedence over ``upload_size`` (bytes).
        """
        known = {f.name for f in fields(cls)}
        values = {k: v for k, v in config.items() if k in known and v is not None}
        if config.get("upload_size_mb") is not None:
            values["upload_size"] = int(float(config["upload_size_mb"]) * MIB)
        return cls(**values)


# ---------------------------------------------------------------------------
# Orchestrator
# ---------------------------------------------------------------------------

class SpeedTest:
    """Sequence one full latency / download / upload run.

    Not reentrant: calling :meth:`run` while a run is in progress raises
    ``RuntimeError``.  Re-running from IDLE or COMPLETE is always allowed.
    """

    def __init__(
        self,
        endpoints: Endpoints,
        settings: Optional[SpeedTestSettings] = None,
    ) -> None:
        self.endpoints = endpoints
        self.settings = settings or SpeedTestSettings()

        self.state = RunState.IDLE
        self.step = ""
        self.latency_ms = 0.0
        self.download_mbps = 0.0
        self.upload_mbps = 0.0
        self.report: Optional[SpeedTestReport] = None
        self.error: Optional[str] = None

        self.on_state: Optional[Callable[[StateChange], None]] = None
        self.on_progress: Optional[Callable[[ProgressSample], None]] = None
        self.on_result: Optional[Callable[[Union[LatencyResult, PhaseResult]], None]] = None

    # -- State machine ------------------------------------------------------

    def _transition(self, state: RunState, step: str) -> None:
        if state is not self.state and state not in _TRANSITIONS[self.state]:
            raise RuntimeError(
                f"Invalid speed test transition {self.state.value} -> {state.value}"
            )
        self.state = state
        self.step = step
        if self.on_state:
            self.on_state(StateChange(state, step))

    def _set_step(self, step: str) -> None:
        self._transition(self.state, step)

    def _reset(self) -> None:
        self.latency_ms = 0.0
        self.download_mbps = 0.0
        self.upload_mbps = 0.0
        self.report = None
        self.error = None

    # -- Progress plumbing --------------------------------------------------

    def _handle_progress(self, sample: ProgressSample) -> None:
        if sample.phase is Phase.DOWNLOAD:
            self.download_mbps = sample.speed_mbps
        elif sample.phase is Phase.UPLOAD:
            self.upload_mbps = sample.speed_mbps
        if self.on_progress:
            self.on_progress(sample)

    def _publish(self, result: Union[LatencyResult, PhaseResult]) -> None:
        if self.on_result:
            self.on_result(result)

    # -- Run ----------------------------------------------------------------

    async def run(self) -> SpeedTestReport:
        """Execute latency, download and upload phases in order.

        Raises :class:`PhaseAbort` if any step fails; the state is then IDLE
        and no report is produced.
        """
        if self.state is RunState.TESTING:
            raise RuntimeError("A speed test is already running")

        self._reset()
        self._transition(RunState.TESTING, STEP_LATENCY)
        s = self.settings
        coordinator = PhaseCoordinator(self.endpoints, progress_interval=s.progress_interval)

        try:
            latency = await LatencyProber(self.endpoints, sample_count=s.ping_count).probe()
            self.latency_ms = latency.latency_ms
            self._publish(latency)

            self._set_step(STEP_DOWNLOAD)
            download = await coordinator.measure(
                Phase.DOWNLOAD,
                s.download_duration,
                s.download_connections,
                size=s.download_size_mb,
                on_progress=self._handle_progress,
            )
            self.download_mbps = download.speed_mbps
            self._publish(download)

            self._set_step(STEP_UPLOAD)
            upload = await coordinator.measure(
                Phase.UPLOAD,
                s.upload_duration,
                s.upload_connections,
                size=s.upload_size,
                on_progress=self._handle_progress,
            )
            self.upload_mbps = upload.speed_mbps
            self._publish(upload)

        except asyncio.CancelledError:
            logger.info("speed test cancelled during: %s", self.step)
            self.error = STEP_CANCELLED
            self._transition(RunState.IDLE, STEP_CANCELLED)
            raise
        except Exception as exc:
            failed_step = self.step
            logger.error("speed test failed during %r: %s", failed_step, exc)
            self.error = str(exc) or type(exc).__name__
            self._transition(RunState.IDLE, STEP_FAILED)
            raise PhaseAbort(failed_step, f"{STEP_FAILED} ({failed_step}): {self.error}") from exc

        self.report = SpeedTestReport(latency=latency, download=download, upload=upload)
        self._transition(RunState.COMPLETE, STEP_COMPLETE)
        return self.report

    async def stream(self) -> AsyncIterator[Event]:
        """Run the test, yielding every event followed by the final report.

        Raises :class:`PhaseAbort` when the run fails.  Closing the generator
        early cancels the run.
        """
        queue: asyncio.Queue = asyncio.Queue()
        saved = (self.on_state, self.on_progress, self.on_result)

        def _chain(original, event) -> None:  # noqa: ANN001
            queue.put_nowait(event)
            if original:
                original(event)

        self.on_state = lambda e: _chain(saved[0], e)
        self.on_progress = lambda e: _chain(saved[1], e)
        self.on_result = lambda e: _chain(saved[2], e)

        task = asyncio.create_task(self.run())
        task.add_done_callback(lambda _t: queue.put_nowait(None))
        try:
            while True:
                event = await queue.get()
                if event is None:
                    break
                yield event
            yield task.result()
        finally:
            if not task.done():
                task.cancel()
                try:
                    await task
                except (asyncio.CancelledError, PhaseAbort):
                    pass
            elif not task.cancelled():
                # Mark a failure the consumer never reached as retrieved.
                task.exception()
            self.on_state, self.on_progress, self.on_result = saved
