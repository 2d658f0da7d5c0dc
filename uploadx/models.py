"""Data model for resumable upload sessions and chunk transfers."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

_RANGE_HEADER_PATTERN = re.compile(r"bytes=\d+-(\d+)")


class UploadMetadata(BaseModel):
    """Caller-declared description of an upload payload.

    Fields not declared here are accepted and forwarded verbatim to the
    server in the session creation body.

    Attributes:
        name: Logical name of the content being uploaded.
        size: Declared total size in bytes. Authoritative for chunk bounds and
            for deciding when the upload is complete.
        mime_type: MIME type of the content.
        last_modified: Last modification time in milliseconds since the epoch.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str
    size: int = Field(ge=0)
    mime_type: str | None = Field(default=None, alias="mimeType")
    last_modified: float | None = Field(default=None, alias="lastModified")

    def to_wire(self) -> dict[str, Any]:
        """Serialize to the JSON body expected by the upload server."""
        return self.model_dump(by_alias=True, exclude_none=True)


class UploadSession(BaseModel):
    """A server-issued upload session.

    Attributes:
        url: Absolute session URL, the only handle for later operations.
        uploaded_bytes: Bytes the server reported as received at creation.
    """

    url: str
    uploaded_bytes: int = 0


class UploadStatus(BaseModel):
    """Result of a status query against an existing session."""

    uploaded_bytes: int = 0


class UploadResult(BaseModel):
    """Outcome of an upload or resume call.

    Attributes:
        url: Session URL the data was sent to.
        uploaded_bytes: Server-confirmed position when the call returned.
        total_size: Declared total size of the upload.
        cancelled: True if the call stopped because it was cancelled.
    """

    url: str
    uploaded_bytes: int
    total_size: int
    cancelled: bool = False

    @property
    def complete(self) -> bool:
        """Whether the server confirmed every declared byte."""
        return self.uploaded_bytes >= self.total_size


@dataclass(frozen=True)
class ChunkBounds:
    """Half-open byte range ``[start, end)`` of one chunk."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if not 0 <= self.start < self.end:
            raise ValueError(f"Invalid chunk bounds: [{self.start}, {self.end})")

    @classmethod
    def for_position(
        cls, position: int, chunk_size: int, total_size: int
    ) -> ChunkBounds:
        """Bounds of the chunk starting at ``position``, capped at the total."""
        return cls(position, min(position + chunk_size, total_size))

    @property
    def length(self) -> int:
        return self.end - self.start

    def content_range(self, total_size: int) -> str:
        """Render the ``Content-Range`` header value for this chunk."""
        return f"bytes {self.start}-{self.end - 1}/{total_size}"


@dataclass(frozen=True)
class ChunkResult:
    """Server response to a chunk upload.

    Attributes:
        acked_bytes: Bytes the server reports as received for the session,
            0 when the response carried no range header.
        status_code: HTTP status code of the response.
    """

    acked_bytes: int
    status_code: int


def parse_range_header(value: str | None) -> int:
    """Return the acked byte count from a ``bytes=<start>-<end>`` header.

    Args:
        value: Raw ``Range`` header value, possibly missing.

    Returns:
        ``end + 1``, or 0 when the header is absent or malformed.
    """
    if not value:
        return 0
    match = _RANGE_HEADER_PATTERN.search(value)
    return int(match.group(1)) + 1 if match else 0
