"""
Shared constants used across all engine modules.

Centralises magic numbers, default headers, and tunables so they live in
exactly one place.
"""

# ---------------------------------------------------------------------------
# HTTP headers
# ---------------------------------------------------------------------------

USER_AGENT = "speedtest-http/1.0"

# Every request must bypass intermediary caches.
COMMON_HEADERS = {
    "User-Agent": USER_AGENT,
    "Accept": "*/*",
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
}

NO_STORE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

DEFAULT_BASE_URL = "http://localhost:8080"
PING_PATH = "/api/ping"
DOWNLOAD_PATH = "/api/download"
UPLOAD_PATH = "/api/upload"

# ---------------------------------------------------------------------------
# Connection limits
# ---------------------------------------------------------------------------

MIN_CONNECTIONS = 0
MAX_CONNECTIONS = 32
DEFAULT_DOWNLOAD_CONNECTIONS = 6
DEFAULT_UPLOAD_CONNECTIONS = 4

# ---------------------------------------------------------------------------
# Timing
# ---------------------------------------------------------------------------

DEFAULT_PING_COUNT = 5
DEFAULT_DURATION = 8.0           # seconds for download / upload
MIN_DURATION = 0.1
MAX_DURATION = 300.0
MIN_PING_COUNT = 1
MAX_PING_COUNT = 100

PROGRESS_INTERVAL = 0.2          # 200 ms between progress samples
PROBE_TIMEOUT = 5.0              # per-ping round-trip timeout
CANCEL_GRACE = 0.5               # wait past the deadline before cancelling workers
RETRY_PAUSE = 0.2                # pause before re-issuing a failed transfer

# ---------------------------------------------------------------------------
# Data transfer
# ---------------------------------------------------------------------------

MIB = 1024 * 1024

CHUNK_SIZE = 256 * 1024          # 256 KB reads from the response stream
DEFAULT_DOWNLOAD_SIZE_MB = 10    # MiB per download request
DEFAULT_UPLOAD_SIZE = 2 * MIB    # bytes per upload request
MAX_DOWNLOAD_SIZE_MB = 1024
MIN_UPLOAD_SIZE = 1
MAX_UPLOAD_SIZE = 64 * MIB
RANDOM_FILL_LIMIT = 64 * 1024    # max bytes generated per random fill call
SERVER_BUFFER_SIZE = MIB         # pre-generated filler served by /api/download
