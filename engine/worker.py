"""
Transfer workers -- one concurrent HTTP transfer loop each.

A download worker streams ``size``-MiB payloads from the download endpoint
and reports every read as it arrives.  An upload worker POSTs freshly
generated random payloads and credits each one only after the server has
acknowledged the whole body.

Every await a worker makes is bounded by the phase deadline, so a worker
stops within one in-flight read of the deadline passing.
"""
from __future__ import annotations

import asyncio
import logging
import os
from typing import Callable

import aiohttp

from .constants import CHUNK_SIZE, RANDOM_FILL_LIMIT, RETRY_PAUSE
from .endpoints import Endpoints
from .errors import TransferFailure
from .models import Phase
from .timing import Deadline

logger = logging.getLogger(__name__)


def random_payload(size: int, fill_limit: int = RANDOM_FILL_LIMIT) -> bytes:
    """Return *size* cryptographically random bytes.

    The buffer is filled in slices of at most *fill_limit* bytes per call to
    the randomness source.
    """
    buf = bytearray(size)
    view = memoryview(buf)
    for offset in range(0, size, fill_limit):
        n = min(fill_limit, size - offset)
        view[offset:offset + n] = os.urandom(n)
    return bytes(buf)


class TransferWorker:
    """
    Drive one download or upload loop until the deadline.

    ``size`` is in MiB for download workers (it is passed to the endpoint as
    the ``size`` query parameter) and in bytes for upload workers.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        endpoints: Endpoints,
        role: Phase,
        size: int,
        worker_id: int = 0,
    ) -> None:
        if role not in (Phase.DOWNLOAD, Phase.UPLOAD):
            raise ValueError(f"Transfer workers only download or upload, not {role.value}")
        self.session = session
        self.endpoints = endpoints
        self.role = role
        self.size = size
        self.worker_id = worker_id

        self.bytes_transferred = 0
        self.requests_completed = 0
        self.failures = 0

    async def run(self, deadline: Deadline, on_bytes: Callable[[int], None]) -> None:
        def _report(n: int) -> None:
            self.bytes_transferred += n
            on_bytes(n)

        once = self._download_once if self.role is Phase.DOWNLOAD else self._upload_once

        while not deadline.expired:
            try:
                await once(deadline, _report)
            except asyncio.TimeoutError:
                # Deadline reached mid-request; the response is abandoned.
                break
            except TransferFailure as exc:
                self.failures += 1
                logger.warning("%s", exc)
                pause = min(RETRY_PAUSE, deadline.remaining())
                if pause > 0:
                    await asyncio.sleep(pause)

        logger.debug(
            "%s worker %d stopped: %d bytes, %d requests, %d failures",
            self.role.value, self.worker_id,
            self.bytes_transferred, self.requests_completed, self.failures,
        )

    # -- Download -----------------------------------------------------------

    async def _download_once(self, deadline: Deadline, report: Callable[[int], None]) -> None:
        try:
            resp = await asyncio.wait_for(
                self.session.get(
                    self.endpoints.download_url,
                    params={"size": str(self.size)},
                    headers={"Accept-Encoding": "identity"},
                ),
                timeout=deadline.remaining(),
            )
            async with resp:
                resp.raise_for_status()
                while True:
                    chunk = await asyncio.wait_for(
                        resp.content.read(CHUNK_SIZE),
                        timeout=deadline.remaining(),
                    )
                    if not chunk:
                        break
                    report(len(chunk))
        except asyncio.TimeoutError:
            raise
        except (aiohttp.ClientError, OSError) as exc:
            raise TransferFailure(self.role.value, self.worker_id, _describe(exc)) from exc

        self.requests_completed += 1

    # -- Upload -------------------------------------------------------------

    async def _upload_once(self, deadline: Deadline, report: Callable[[int], None]) -> None:
        payload = random_payload(self.size)
        try:
            resp = await asyncio.wait_for(
                self.session.post(
                    self.endpoints.upload_url,
                    data=payload,
                    headers={"Content-Type": "application/octet-stream"},
                ),
                timeout=deadline.remaining(),
            )
            async with resp:
                resp.raise_for_status()
                await asyncio.wait_for(resp.read(), timeout=deadline.remaining())
        except asyncio.TimeoutError:
            raise
        except (aiohttp.ClientError, OSError) as exc:
            raise TransferFailure(self.role.value, self.worker_id, _describe(exc)) from exc

        self.requests_completed += 1
        report(len(payload))


def _describe(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__
