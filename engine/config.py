"""
User configuration file support.

Reads/writes ``~/.speedtest-http/config.json``.  Command-line flags take
precedence over anything stored here.

Supported keys::

    base_url = "http://localhost:8080"   # server exposing /api/{ping,download,upload}
    ping_count = 5
    download_duration = 8.0              # seconds
    download_connections = 6
    download_size_mb = 10                # MiB per download request
    upload_duration = 8.0
    upload_connections = 4
    upload_size = 2097152                # bytes per upload payload
    upload_size_mb = 2                   # same in MiB; wins over upload_size
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from .constants import (
    DEFAULT_BASE_URL,
    DEFAULT_DOWNLOAD_CONNECTIONS,
    DEFAULT_DOWNLOAD_SIZE_MB,
    DEFAULT_DURATION,
    DEFAULT_PING_COUNT,
    DEFAULT_UPLOAD_CONNECTIONS,
    DEFAULT_UPLOAD_SIZE,
)

logger = logging.getLogger(__name__)

_CONFIG_DIR = os.path.join(Path.home(), ".speedtest-http")
_CONFIG_FILE = "config.json"


def _config_path() -> str:
    return os.path.join(_CONFIG_DIR, _CONFIG_FILE)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULTS: Dict[str, Any] = {
    "base_url": DEFAULT_BASE_URL,
    "ping_count": DEFAULT_PING_COUNT,
    "download_duration": DEFAULT_DURATION,
    "download_connections": DEFAULT_DOWNLOAD_CONNECTIONS,
    "download_size_mb": DEFAULT_DOWNLOAD_SIZE_MB,
    "upload_duration": DEFAULT_DURATION,
    "upload_connections": DEFAULT_UPLOAD_CONNECTIONS,
    "upload_size": DEFAULT_UPLOAD_SIZE,
}


# ---------------------------------------------------------------------------
# Read / Write
# ---------------------------------------------------------------------------

def load_config() -> Dict[str, Any]:
    """Load config from disk, returning defaults for missing keys."""
    path = _config_path()
    config = dict(DEFAULTS)

    if not os.path.isfile(path):
        return config

    try:
        with open(path, encoding="utf-8") as fh:
            user = json.load(fh)
    except (json.JSONDecodeError, OSError) as exc:
        logger.warning("Ignoring unreadable config file %s: %s", path, exc)
        return config

    if isinstance(user, dict):
        config.update(user)
    else:
        logger.warning("Ignoring config file %s: expected a JSON object", path)

    return config


def save_config(config: Dict[str, Any]) -> str:
    """Write *config* to disk.  Returns the file path."""
    path = _config_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)

    with open(path, "w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2, ensure_ascii=False)

    return path


def config_path() -> str:
    """Return the config file path (for display purposes)."""
    return _config_path()
