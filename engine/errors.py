"""
Exceptions raised by the measurement engine.

Worker-level ``TransferFailure`` is recovered inside the worker; the other
two end the current run.
"""
from __future__ import annotations

from typing import Optional


class SpeedTestError(Exception):
    """Base class for all engine errors."""


class TransferFailure(SpeedTestError):
    """A single worker's request/response cycle failed."""

    def __init__(self, role: str, worker_id: int, reason: str) -> None:
        self.role = role
        self.worker_id = worker_id
        self.reason = reason
        super().__init__(f"{role} worker {worker_id} failed: {reason}")


class ProbeFailure(SpeedTestError):
    """A latency round-trip failed."""

    def __init__(self, attempt: int, reason: str) -> None:
        self.attempt = attempt
        self.reason = reason
        super().__init__(f"Latency probe {attempt} failed: {reason}")


class PhaseAbort(SpeedTestError):
    """A speed test run was aborted; the orchestrator is back in IDLE."""

    def __init__(self, step: str, message: Optional[str] = None) -> None:
        self.step = step
        super().__init__(message or f"Speed test aborted during: {step}")
