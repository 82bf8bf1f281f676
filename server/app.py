"""
aiohttp application serving the liveness, download and upload endpoints.

- ``GET  /api/ping``              -> ``{"timestamp": <ms>, "pong": true}``
- ``GET  /api/download?size=<n>`` -> exactly ``n`` MiB of filler bytes, streamed
- ``POST /api/upload``            -> drains the body, ``{"success": true, "bytesReceived": <n>}``

Every response carries no-store caching headers so intermediaries never
answer on the server's behalf.
"""
from __future__ import annotations

import logging
import os
import time

from aiohttp import web

from engine.constants import (
    CHUNK_SIZE,
    DEFAULT_DOWNLOAD_SIZE_MB,
    DOWNLOAD_PATH,
    MAX_DOWNLOAD_SIZE_MB,
    MIB,
    NO_STORE_HEADERS,
    PING_PATH,
    SERVER_BUFFER_SIZE,
    UPLOAD_PATH,
)

logger = logging.getLogger(__name__)

# Filler is generated once and sliced for every response.
FILLER_KEY = web.AppKey("filler", bytes)


async def ping(request: web.Request) -> web.Response:
    return web.json_response(
        {"timestamp": int(time.time() * 1000), "pong": True},
        headers=NO_STORE_HEADERS,
    )


def _parse_size(request: web.Request) -> int:
    raw = request.query.get("size", str(DEFAULT_DOWNLOAD_SIZE_MB))
    try:
        size = int(raw)
    except ValueError:
        raise web.HTTPBadRequest(text=f"size must be an integer number of MiB, got {raw!r}") from None
    if not 0 <= size <= MAX_DOWNLOAD_SIZE_MB:
        raise web.HTTPBadRequest(text=f"size must be between 0 and {MAX_DOWNLOAD_SIZE_MB} MiB")
    return size


async def download(request: web.Request) -> web.StreamResponse:
    size = _parse_size(request)
    total = size * MIB
    filler = memoryview(request.app[FILLER_KEY])

    resp = web.StreamResponse(
        headers={**NO_STORE_HEADERS, "Content-Type": "application/octet-stream"},
    )
    resp.content_length = total
    await resp.prepare(request)

    sent = 0
    try:
        while sent < total:
            n = min(CHUNK_SIZE, total - sent, len(filler))
            await resp.write(filler[:n])
            sent += n
    except ConnectionResetError:
        logger.debug("client abandoned download after %d of %d bytes", sent, total)
        return resp

    await resp.write_eof()
    return resp


async def upload(request: web.Request) -> web.Response:
    if not request.can_read_body:
        return web.json_response(
            {"error": "No data received"}, status=400, headers=NO_STORE_HEADERS
        )

    received = 0
    async for chunk in request.content.iter_chunked(CHUNK_SIZE):
        received += len(chunk)

    logger.debug("upload drained %d bytes", received)
    return web.json_response(
        {"success": True, "bytesReceived": received},
        headers=NO_STORE_HEADERS,
    )


def create_app(buffer_size: int = SERVER_BUFFER_SIZE) -> web.Application:
    """Build the endpoint application with a fresh random filler buffer."""
    app = web.Application()
    app[FILLER_KEY] = os.urandom(buffer_size)
    app.router.add_get(PING_PATH, ping)
    app.router.add_get(DOWNLOAD_PATH, download)
    app.router.add_post(UPLOAD_PATH, upload)
    return app
