"""Pydantic models for uploadx client configuration."""

from pydantic import BaseModel, Field

from uploadx.const import (
    DEFAULT_BACKOFF_FACTOR,
    DEFAULT_BACKOFF_MAX_SECONDS,
    DEFAULT_CHUNK_SIZE,
    DEFAULT_MAX_RETRIES,
    DEFAULT_MAX_STALLED_CHUNKS,
    DEFAULT_TIMEOUT_SECONDS,
    RETRYABLE_STATUS_CODES,
)


class RetryConfig(BaseModel):
    """Retry policy applied by the HTTP transport to every request.

    Attributes:
        retries: maximum number of retries per request.
        backoff_factor: base of the exponential backoff, in seconds.
        backoff_max: upper bound for a single backoff sleep, in seconds.
        status_forcelist: HTTP status codes that trigger a retry.
        respect_retry_after_header: whether to sleep for a server-sent
            ``Retry-After`` instead of the computed backoff.
    """

    retries: int = Field(default=DEFAULT_MAX_RETRIES, ge=0)
    backoff_factor: float = Field(default=DEFAULT_BACKOFF_FACTOR, ge=0)
    backoff_max: float = Field(default=DEFAULT_BACKOFF_MAX_SECONDS, gt=0)
    status_forcelist: frozenset[int] = RETRYABLE_STATUS_CODES
    respect_retry_after_header: bool = True


class UploadConfig(BaseModel):
    """Configuration options for an uploadx client instance.

    Attributes:
        chunk_size: size of each uploaded chunk, in bytes.
        timeout: per-request timeout, in seconds.
        retry: transport retry policy.
        request_headers: extra headers sent with every request.
        max_stalled_chunks: consecutive chunks without server progress
            tolerated before the upload is abandoned.
    """

    chunk_size: int = Field(default=DEFAULT_CHUNK_SIZE, gt=0)
    timeout: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    request_headers: dict[str, str] = Field(default_factory=dict)
    max_stalled_chunks: int = Field(default=DEFAULT_MAX_STALLED_CHUNKS, ge=1)
