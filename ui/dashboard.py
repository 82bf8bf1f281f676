"""
Rich-based terminal dashboard for speed test runs.

All formatting helpers live in ``engine.stats`` -- this module only does
presentation via the ``rich`` library.
"""
from __future__ import annotations

from typing import Sequence

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from engine.endpoints import Endpoints
from engine.models import LatencyResult, PhaseResult, ProgressSample, SpeedTestReport
from engine.stats import format_bytes, format_latency, format_speed

console = Console()


# ---------------------------------------------------------------------------
# Histogram helper
# ---------------------------------------------------------------------------

_BARS = "▁▂▃▄▅▆▇█"


def create_histogram(values: Sequence[float]) -> str:
    """Return a single-line Unicode bar-chart, one bar per value."""
    if not values:
        return "No data"

    lo, hi = min(values), max(values)
    span = hi - lo if hi > lo else 1.0
    top = len(_BARS) - 1
    return "".join(_BARS[min(int((v - lo) / span * top), top)] for v in values)


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------

def print_header() -> None:
    console.print()
    console.print(
        Panel.fit(
            "[bold cyan]HTTP Speed Test[/bold cyan]\n"
            "[dim]Parallel streamed download / upload measurement[/dim]",
            border_style="cyan",
        )
    )
    console.print()


def print_target(endpoints: Endpoints) -> None:
    table = Table(show_header=False, box=None, padding=(0, 1))
    table.add_column(style="dim")
    table.add_column(style="bold")
    table.add_row("Server:", endpoints.base_url)
    table.add_row("Ping:", endpoints.ping_url)
    table.add_row("Download:", endpoints.download_url)
    table.add_row("Upload:", endpoints.upload_url)
    console.print(Panel(table, title="[bold]Target[/bold]", border_style="blue"))


def print_latency_details(result: LatencyResult) -> None:
    """Print the latency samples and a histogram."""
    table = Table(title="Latency", box=box.ROUNDED)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Mean", f"[bold yellow]{format_latency(result.latency_ms)}[/bold yellow]")
    if result.samples:
        table.add_row("Min", format_latency(result.min_ms))
        table.add_row("Max", format_latency(result.max_ms))
    table.add_row("Samples", str(result.count))
    console.print(table)

    if result.samples:
        console.print(
            Panel(
                f"[cyan]{create_histogram(result.samples)}[/cyan]\n"
                f"[dim]Min: {result.min_ms:.1f} ms  Max: {result.max_ms:.1f} ms[/dim]",
                title="Ping Histogram",
            )
        )


def print_speed_result(result: PhaseResult, title: str, color: str = "green") -> None:
    """Print a download or upload result panel."""
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Speed", f"[bold {color}]{format_speed(result.speed_mbps)}[/bold {color}]")
    table.add_row("Data Transferred", format_bytes(result.bytes_total))
    table.add_row("Duration", f"{result.duration_ms / 1000:.1f} s")
    table.add_row("Connections", str(result.connections))
    console.print(table)


def print_final_results(report: SpeedTestReport, base_url: str) -> None:
    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]Server:[/bold cyan] {base_url}\n\n"
            f"[bold white]   Latency:[/bold white]  [bold yellow]{format_latency(report.latency_ms)}[/bold yellow]\n"
            f"[bold white]   Download:[/bold white]  [bold green]{format_speed(report.download_mbps)}[/bold green]\n"
            f"[bold white]   Upload:[/bold white]  [bold blue]{format_speed(report.upload_mbps)}[/bold blue]",
            title="[bold]Results[/bold]",
            border_style="cyan",
        )
    )
    console.print()


def print_failure(message: str) -> None:
    console.print(f"\n[bold red]{message}[/bold red]")
    console.print("[dim]The test can be run again.[/dim]")


# ---------------------------------------------------------------------------
# Progress display
# ---------------------------------------------------------------------------

class ProgressDisplay:
    """Manages a ``rich`` progress bar during a download or upload phase."""

    def __init__(self) -> None:
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold]{task.description}"),
            BarColumn(bar_width=40),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("[bold cyan]{task.fields[speed]}[/bold cyan]"),
            TimeElapsedColumn(),
            console=console,
        )
        self._task_id = None

    @property
    def active(self) -> bool:
        return self._task_id is not None

    def start(self, description: str) -> None:
        self.progress.start()
        self._task_id = self.progress.add_task(description, total=100, speed="...")

    def update(self, sample: ProgressSample) -> None:
        if self._task_id is None:
            return
        speed_str = format_speed(sample.speed_mbps) if sample.speed_mbps > 0 else "..."
        self.progress.update(self._task_id, completed=sample.progress * 100, speed=speed_str)

    def stop(self) -> None:
        if self._task_id is None:
            return
        self.progress.update(self._task_id, completed=100)
        self.progress.stop()
        self._task_id = None
