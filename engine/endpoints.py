"""
Measurement target description and HTTP session factory.

All HTTP work for a phase goes through a single ``aiohttp.ClientSession``
opened with :func:`open_session`.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

import aiohttp

from .constants import (
    COMMON_HEADERS,
    DEFAULT_BASE_URL,
    DOWNLOAD_PATH,
    PING_PATH,
    UPLOAD_PATH,
)


@dataclass(frozen=True)
class Endpoints:
    """The three collaborator endpoints a run talks to."""

    base_url: str = DEFAULT_BASE_URL
    ping_path: str = PING_PATH
    download_path: str = DOWNLOAD_PATH
    upload_path: str = UPLOAD_PATH

    # -- Constructors -------------------------------------------------------

    @classmethod
    def from_base_url(cls, base_url: str) -> Endpoints:
        base_url = base_url.strip()
        if not base_url.startswith(("http://", "https://")):
            raise ValueError(f"Base URL must start with http:// or https://: {base_url!r}")
        return cls(base_url=base_url.rstrip("/"))

    # -- Derived URLs -------------------------------------------------------

    @property
    def ping_url(self) -> str:
        """Liveness endpoint for latency probing."""
        return f"{self.base_url}{self.ping_path}"

    @property
    def download_url(self) -> str:
        return f"{self.base_url}{self.download_path}"

    @property
    def upload_url(self) -> str:
        return f"{self.base_url}{self.upload_path}"

    # -- Serialisation ------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "base_url": self.base_url,
            "ping_url": self.ping_url,
            "download_url": self.download_url,
            "upload_url": self.upload_url,
        }


def open_session(
    connections: int = 1,
    headers: Optional[Dict[str, str]] = None,
) -> aiohttp.ClientSession:
    """Open a session sized for *connections* concurrent requests.

    No total or read timeout is set: every await made through the session
    is bounded by the caller's phase deadline instead.
    """
    connector = aiohttp.TCPConnector(
        limit=max(connections, 1),
        limit_per_host=max(connections, 1),
        force_close=False,
    )
    timeout = aiohttp.ClientTimeout(total=None, sock_read=None)
    return aiohttp.ClientSession(
        headers={**COMMON_HEADERS, **(headers or {})},
        connector=connector,
        timeout=timeout,
    )
