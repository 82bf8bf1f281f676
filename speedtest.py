#!/usr/bin/env python3
"""
HTTP speed test CLI -- latency, download and upload from the terminal.

Usage::

    python speedtest.py --url http://host:8080      # rich dashboard
    python speedtest.py --simple                    # plain text
    python speedtest.py --json                      # JSON to stdout
    python speedtest.py -o result.json              # save to file
    python speedtest.py --repeat 5 --interval 60    # repeat 5 times

Defaults come from ``~/.speedtest-http/config.json`` when present; flags
override them.
"""
from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import time
from dataclasses import asdict
from typing import Any, Dict, Optional, Tuple

from rich.console import Console
from rich.logging import RichHandler

from engine.config import config_path, load_config, save_config
from engine.constants import (
    MAX_CONNECTIONS,
    MAX_DOWNLOAD_SIZE_MB,
    MAX_DURATION,
    MAX_PING_COUNT,
    MAX_UPLOAD_SIZE,
    MIB,
    MIN_CONNECTIONS,
    MIN_DURATION,
    MIN_PING_COUNT,
    MIN_UPLOAD_SIZE,
)
from engine.endpoints import Endpoints
from engine.errors import PhaseAbort
from engine.models import (
    LatencyResult,
    Phase,
    PhaseResult,
    ProgressSample,
    SpeedTestReport,
    StateChange,
)
from engine.orchestrator import STEP_DOWNLOAD, STEP_UPLOAD, SpeedTest, SpeedTestSettings
from ui.dashboard import (
    ProgressDisplay,
    console,
    print_failure,
    print_final_results,
    print_header,
    print_latency_details,
    print_speed_result,
    print_target,
)
from ui.output import create_result_json, format_text_result, save_json

logger = logging.getLogger("speedtest")


# ---------------------------------------------------------------------------
# Parameter validation
# ---------------------------------------------------------------------------

def _validate(settings: SpeedTestSettings) -> None:
    """Raise ``ValueError`` if any parameter is out of range."""
    s = settings
    if not MIN_PING_COUNT <= s.ping_count <= MAX_PING_COUNT:
        raise ValueError(f"Ping count must be between {MIN_PING_COUNT} and {MAX_PING_COUNT}")
    if not MIN_DURATION <= s.download_duration <= MAX_DURATION:
        raise ValueError(f"Download duration must be between {MIN_DURATION} and {MAX_DURATION} s")
    if not MIN_DURATION <= s.upload_duration <= MAX_DURATION:
        raise ValueError(f"Upload duration must be between {MIN_DURATION} and {MAX_DURATION} s")
    for label, n in (("Download", s.download_connections), ("Upload", s.upload_connections)):
        if not MIN_CONNECTIONS <= n <= MAX_CONNECTIONS:
            raise ValueError(
                f"{label} connections must be between {MIN_CONNECTIONS} and {MAX_CONNECTIONS}"
            )
    if not 1 <= s.download_size_mb <= MAX_DOWNLOAD_SIZE_MB:
        raise ValueError(f"Download size must be between 1 and {MAX_DOWNLOAD_SIZE_MB} MiB")
    if not MIN_UPLOAD_SIZE <= s.upload_size <= MAX_UPLOAD_SIZE:
        raise ValueError(f"Upload size must be between 1 byte and {MAX_UPLOAD_SIZE // MIB} MiB")


def _resolve(args: argparse.Namespace, config: Dict[str, Any]) -> Tuple[Endpoints, SpeedTestSettings]:
    """Merge command-line flags over the config file."""
    merged = dict(config)
    overrides = {
        "base_url": args.url,
        "ping_count": args.ping_count,
        "download_duration": args.download_duration,
        "download_connections": args.download_connections,
        "download_size_mb": args.download_size,
        "upload_duration": args.upload_duration,
        "upload_connections": args.upload_connections,
        "upload_size_mb": args.upload_size,
    }
    merged.update({k: v for k, v in overrides.items() if v is not None})

    endpoints = Endpoints.from_base_url(str(merged["base_url"]))
    settings = SpeedTestSettings.from_config(merged)
    return endpoints, settings


def _config_from(endpoints: Endpoints, settings: SpeedTestSettings) -> Dict[str, Any]:
    """Config-file form of resolved parameters (bytes for the upload size)."""
    config: Dict[str, Any] = {"base_url": endpoints.base_url}
    config.update(asdict(settings))
    config.pop("progress_interval")
    return config


# ---------------------------------------------------------------------------
# Core test runner
# ---------------------------------------------------------------------------

async def run_speedtest(
    endpoints: Endpoints,
    settings: SpeedTestSettings,
    *,
    json_output: bool = False,
    output_file: Optional[str] = None,
    simple: bool = False,
) -> Dict[str, Any]:
    """Execute one full run and return a JSON-serialisable dict.

    Raises ``PhaseAbort`` if the run fails.
    """
    show_ui = not json_output and not simple

    if show_ui:
        print_header()
        print_target(endpoints)

    test = SpeedTest(endpoints, settings)
    progress = ProgressDisplay()
    report: Optional[SpeedTestReport] = None

    try:
        async for event in test.stream():
            if isinstance(event, StateChange):
                if show_ui:
                    if event.step in (STEP_DOWNLOAD, STEP_UPLOAD):
                        progress.start("Downloading" if event.step == STEP_DOWNLOAD else "Uploading")
                    else:
                        console.print(f"\n[bold]{event.step}[/bold]")
            elif isinstance(event, ProgressSample):
                if show_ui:
                    progress.update(event)
            elif isinstance(event, LatencyResult):
                if show_ui:
                    print_latency_details(event)
                elif simple:
                    print(f"Latency: {event.latency_ms:.1f} ms")
            elif isinstance(event, PhaseResult):
                if show_ui:
                    progress.stop()
                    if event.phase is Phase.DOWNLOAD:
                        print_speed_result(event, "Download Results", "green")
                    else:
                        print_speed_result(event, "Upload Results", "blue")
                elif simple:
                    print(f"{event.phase.value.capitalize()}: {event.speed_mbps:.2f} Mbps")
            elif isinstance(event, SpeedTestReport):
                report = event
    finally:
        progress.stop()

    if report is None:
        raise PhaseAbort(test.step, "Speed test ended without a result")

    if show_ui:
        print_final_results(report, endpoints.base_url)

    result_json = create_result_json(report, endpoints)

    if json_output:
        print(json.dumps(result_json, indent=2))
    elif simple:
        print(format_text_result(report, endpoints.base_url))

    if output_file:
        save_json(result_json, output_file)
        if not json_output:
            console.print(f"\n[green]Results saved to:[/green] {output_file}")

    return result_json


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="HTTP speed test -- parallel streamed throughput and latency measurement",
    )
    # Target
    parser.add_argument("--url", type=str, metavar="URL", help="Base URL of the endpoint server")

    # Output modes
    parser.add_argument("--json", "-j", action="store_true", help="Output results as JSON")
    parser.add_argument("--output", "-o", type=str, metavar="FILE", help="Save results to JSON file")
    parser.add_argument("--simple", "-s", action="store_true", help="Simple output mode (no dashboard)")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")

    # Config file
    parser.add_argument("--save-config", action="store_true", help="Save the effective parameters as the new defaults and exit")
    parser.add_argument("--show-config", action="store_true", help="Print the config file path and effective parameters and exit")

    # Test parameters
    parser.add_argument("--ping-count", type=int, metavar="N", help="Number of latency probes (default: 5)")
    parser.add_argument("--download-duration", type=float, metavar="SECS", help="Download phase duration in seconds (default: 8)")
    parser.add_argument("--upload-duration", type=float, metavar="SECS", help="Upload phase duration in seconds (default: 8)")
    parser.add_argument("--download-connections", type=int, metavar="N", help="Concurrent download workers (default: 6)")
    parser.add_argument("--upload-connections", type=int, metavar="N", help="Concurrent upload workers (default: 4)")
    parser.add_argument("--download-size", type=int, metavar="MIB", help="MiB per download request (default: 10)")
    parser.add_argument("--upload-size", type=float, metavar="MIB", help="MiB per upload payload (default: 2)")

    # Repeat mode
    parser.add_argument("--repeat", type=int, default=1, metavar="N", help="Run the test N times (default: 1)")
    parser.add_argument("--interval", type=float, default=60.0, metavar="SECS", help="Seconds between repeated tests (default: 60)")
    return parser


def main(argv: Optional[list] = None) -> None:
    args = build_parser().parse_args(argv)
    _configure_logging(args.verbose)

    try:
        endpoints, settings = _resolve(args, load_config())
        _validate(settings)
    except (ValueError, TypeError) as exc:
        console.print(f"[red]Error: {exc}[/red]")
        sys.exit(1)

    if args.save_config:
        path = save_config(_config_from(endpoints, settings))
        console.print(f"[green]Config saved to:[/green] {path}")
        return
    if args.show_config:
        console.print(f"[bold]Config file:[/bold] {config_path()}")
        print(json.dumps(_config_from(endpoints, settings), indent=2))
        return

    if args.repeat < 1:
        console.print("[red]Error: --repeat must be >= 1[/red]")
        sys.exit(1)

    try:
        for run_idx in range(args.repeat):
            if args.repeat > 1 and not args.json:
                console.print(f"\n[bold cyan]--- Run {run_idx + 1}/{args.repeat} ---[/bold cyan]")

            asyncio.run(
                run_speedtest(
                    endpoints,
                    settings,
                    json_output=args.json,
                    output_file=args.output,
                    simple=args.simple,
                )
            )

            # Wait between runs (but not after the last one)
            if run_idx < args.repeat - 1:
                if not args.json:
                    console.print(f"[dim]Next run in {args.interval:.0f}s...[/dim]")
                time.sleep(args.interval)

    except KeyboardInterrupt:
        console.print("\n[yellow]Test cancelled by user[/yellow]")
        sys.exit(1)
    except PhaseAbort as exc:
        print_failure(str(exc))
        sys.exit(1)
    except OSError as exc:
        console.print(f"\n[red]Error: {exc}[/red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
