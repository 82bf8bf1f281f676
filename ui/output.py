"""
Output formatting -- JSON export and plain text.
"""
from __future__ import annotations

import json
import os
from datetime import datetime, timezone
from typing import Any, Dict

from engine.endpoints import Endpoints
from engine.models import SpeedTestReport


def create_result_json(report: SpeedTestReport, endpoints: Endpoints) -> Dict[str, Any]:
    """Build a JSON-serialisable dict for one completed run."""
    result: Dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "server": endpoints.to_dict(),
    }
    result.update(report.to_dict())
    return result


def save_json(result: Dict[str, Any], filepath: str) -> None:
    """Write *result* to *filepath* atomically (write-tmp then rename)."""
    dir_path = os.path.dirname(filepath) or "."
    tmp = os.path.join(dir_path, f".tmp_{os.path.basename(filepath)}")

    try:
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(result, fh, indent=2, ensure_ascii=False)
        os.replace(tmp, filepath)
    except OSError as exc:
        # Clean up partial temp file
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise OSError(f"Failed to save JSON to {filepath}: {exc}") from exc


def format_text_result(report: SpeedTestReport, base_url: str) -> str:
    sep = "=" * 50
    mid = "-" * 50
    return (
        f"{sep}\n"
        f"Speed Test Results\n"
        f"{sep}\n"
        f"Server: {base_url}\n"
        f"{mid}\n"
        f"Latency: {report.latency_ms:.1f} ms\n"
        f"Download: {report.download_mbps:.2f} Mbps\n"
        f"Upload: {report.upload_mbps:.2f} Mbps\n"
        f"{sep}"
    )
