"""
Throughput arithmetic and formatting helpers.

Pure functions -- no I/O, no side effects.
"""
from __future__ import annotations

from typing import Sequence


def throughput_mbps(bytes_total: int, elapsed_seconds: float) -> float:
    """Megabits per second for *bytes_total* over *elapsed_seconds*.

    Returns 0.0 when no time has elapsed, never raising on division.
    """
    if elapsed_seconds <= 0 or bytes_total <= 0:
        return 0.0
    return (bytes_total * 8) / (elapsed_seconds * 1_000_000)


def mean(samples: Sequence[float]) -> float:
    """Arithmetic mean, 0.0 for no samples."""
    if not samples:
        return 0.0
    return sum(samples) / len(samples)


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

def format_speed(speed_mbps: float) -> str:
    """Human-readable speed string."""
    if speed_mbps >= 1000:
        return f"{speed_mbps / 1000:.2f} Gbps"
    return f"{speed_mbps:.2f} Mbps"


def format_latency(latency_ms: float) -> str:
    """Human-readable latency string."""
    if latency_ms >= 1000:
        return f"{latency_ms / 1000:.2f} s"
    return f"{latency_ms:.1f} ms"


def format_bytes(n: int) -> str:
    if n >= 1_000_000_000:
        return f"{n / 1_000_000_000:.2f} GB"
    return f"{n / 1_000_000:.1f} MB"
