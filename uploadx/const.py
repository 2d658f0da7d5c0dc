import os

BYTES_PER_KIB = 1024
BYTES_PER_MIB = 1024 * BYTES_PER_KIB

DEFAULT_CHUNK_SIZE = 5 * BYTES_PER_MIB
DEFAULT_TIMEOUT_SECONDS = 60.0
DEFAULT_MAX_RETRIES = 5
DEFAULT_BACKOFF_FACTOR = 0.1
DEFAULT_BACKOFF_MAX_SECONDS = 30.0
DEFAULT_MAX_STALLED_CHUNKS = 3

RETRYABLE_STATUS_CODES = frozenset({429, *range(500, 600)})
RESUME_INCOMPLETE_CODE = 308

DEFAULT_CONTENT_TYPE = "application/octet-stream"
JSON_CONTENT_TYPE = "application/json"

CHUNK_LOG_INTERVAL = int(os.getenv("UPLOADX_CHUNK_LOG_INTERVAL", "100"))
