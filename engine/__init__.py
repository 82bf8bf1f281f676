"""Speed test measurement engine -- workers, phases, latency and orchestration."""

import logging

from .endpoints import Endpoints, open_session
from .errors import PhaseAbort, ProbeFailure, SpeedTestError, TransferFailure
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
from .orchestrator import SpeedTest, SpeedTestSettings
from .phase import PhaseCoordinator
from .stats import format_latency, format_speed, throughput_mbps
from .timing import ByteCounter, Deadline
from .worker import TransferWorker, random_payload

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ByteCounter",
    "Deadline",
    "Endpoints",
    "LatencyProber",
    "LatencyResult",
    "Phase",
    "PhaseAbort",
    "PhaseCoordinator",
    "PhaseResult",
    "ProbeFailure",
    "ProgressSample",
    "RunState",
    "SpeedTest",
    "SpeedTestError",
    "SpeedTestReport",
    "SpeedTestSettings",
    "StateChange",
    "TransferFailure",
    "TransferWorker",
    "format_latency",
    "format_speed",
    "open_session",
    "random_payload",
    "throughput_mbps",
]
