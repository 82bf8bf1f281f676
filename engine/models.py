"""
Result records and events produced by the measurement engine.

Everything here is immutable: a phase produces exactly one result, and
progress samples are transient snapshots handed to observers.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Tuple

from .stats import mean, throughput_mbps


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class Phase(str, Enum):
    """One timed segment of a run.  DOWNLOAD / UPLOAD double as worker roles."""

    LATENCY = "latency"
    DOWNLOAD = "download"
    UPLOAD = "upload"


class RunState(str, Enum):
    IDLE = "idle"
    TESTING = "testing"
    COMPLETE = "complete"


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StateChange:
    """Emitted by the orchestrator on every state or step transition."""

    state: RunState
    step: str = ""


@dataclass(frozen=True)
class ProgressSample:
    """Instantaneous throughput estimate taken while a phase is running."""

    phase: Phase
    speed_mbps: float
    bytes_total: int
    elapsed_s: float
    progress: float = 0.0      # fraction of the phase duration, 0..1
    timestamp: float = 0.0     # monotonic clock reading at emission


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PhaseResult:
    """Final throughput for a completed download or upload phase."""

    phase: Phase
    speed_mbps: float = 0.0
    bytes_total: int = 0
    duration_ms: float = 0.0
    connections: int = 0

    @classmethod
    def from_totals(
        cls,
        phase: Phase,
        bytes_total: int,
        elapsed_s: float,
        connections: int = 0,
    ) -> PhaseResult:
        """Derive speed from total bytes and wall-clock duration."""
        return cls(
            phase=phase,
            speed_mbps=throughput_mbps(bytes_total, elapsed_s),
            bytes_total=bytes_total,
            duration_ms=max(elapsed_s, 0.0) * 1000,
            connections=connections,
        )

    @property
    def speed_bps(self) -> float:
        return self.speed_mbps * 1_000_000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "speed_bps": round(self.speed_bps, 2),
            "speed_mbps": round(self.speed_mbps, 2),
            "bytes_total": self.bytes_total,
            "duration_ms": round(self.duration_ms, 2),
            "connections": self.connections,
        }


@dataclass(frozen=True)
class LatencyResult:
    """Mean of a fixed number of sequential round-trip samples."""

    samples: Tuple[float, ...] = field(default_factory=tuple)
    latency_ms: float = 0.0

    @classmethod
    def from_samples(cls, samples) -> LatencyResult:  # noqa: ANN001
        samples = tuple(samples)
        return cls(samples=samples, latency_ms=mean(samples))

    @property
    def count(self) -> int:
        return len(self.samples)

    @property
    def min_ms(self) -> float:
        return min(self.samples) if self.samples else 0.0

    @property
    def max_ms(self) -> float:
        return max(self.samples) if self.samples else 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latency_ms": round(self.latency_ms, 3),
            "samples": [round(s, 3) for s in self.samples],
            "count": self.count,
        }


@dataclass(frozen=True)
class SpeedTestReport:
    """Final report assembled from one run's phase results."""

    latency: LatencyResult
    download: PhaseResult
    upload: PhaseResult

    @property
    def latency_ms(self) -> float:
        return self.latency.latency_ms

    @property
    def download_mbps(self) -> float:
        return self.download.speed_mbps

    @property
    def upload_mbps(self) -> float:
        return self.upload.speed_mbps

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latency_ms": round(self.latency_ms, 3),
            "download_mbps": round(self.download_mbps, 2),
            "upload_mbps": round(self.upload_mbps, 2),
            "latency": self.latency.to_dict(),
            "download": self.download.to_dict(),
            "upload": self.upload.to_dict(),
        }
