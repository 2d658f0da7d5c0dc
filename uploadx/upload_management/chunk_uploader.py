"""Single chunk transfer for resumable upload sessions.

A chunk is one bounded byte range sent as a single PUT. The server answers
with the number of bytes it has received for the whole session, which may
differ from what the client meant to send: it can be less after a partial
write, or more after a retried request was merged server side. Only the
server's count is trusted when choosing where the next chunk starts.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from uploadx.cancellation import CancellationToken
from uploadx.const import DEFAULT_CONTENT_TYPE
from uploadx.exceptions import ProtocolError, wrap_error
from uploadx.models import ChunkBounds, ChunkResult, parse_range_header
from uploadx.transport.chunk_body import ChunkBody, ProgressCallback
from uploadx.transport.http_transport import HttpTransport

logger = logging.getLogger(__name__)

SendChunk = Callable[
    [str, bytes, ChunkBounds, int, CancellationToken, ProgressCallback | None],
    ChunkResult,
]


class ChunkUploader:
    """Send chunks to a session URL and report the server's acked offset."""

    def __init__(self, transport: HttpTransport) -> None:
        """Initialize the chunk uploader.

        Args:
            transport: Transport used for chunk requests.
        """
        self._transport = transport

    def send_chunk(
        self,
        session_url: str,
        data: bytes,
        bounds: ChunkBounds,
        total_size: int,
        token: CancellationToken,
        on_progress: ProgressCallback | None = None,
    ) -> ChunkResult:
        """Upload the bytes of one chunk.

        Args:
            session_url: Session URL.
            data: Exactly the bytes in ``[bounds.start, bounds.end)``.
            bounds: Position of the chunk within the upload.
            total_size: Declared total size of the upload.
            token: Cancellation token; also aborts the request body mid-send.
            on_progress: Receives the overall upload fraction as the body is
                sent.

        Returns:
            The server's acked byte count. A response without a range header
            counts as 0 acked bytes, never as the chunk's end.

        Raises:
            ValueError: If ``data`` does not match ``bounds``.
            UploadxError: If the request fails, prefixed with the phase.
            UploadCancelledError: If cancellation was requested.
        """
        if len(data) != bounds.length:
            raise ValueError(
                f"Chunk data has {len(data)} bytes, bounds expect {bounds.length}"
            )

        headers = {
            "Content-Type": DEFAULT_CONTENT_TYPE,
            "Content-Range": bounds.content_range(total_size),
        }
        body = ChunkBody(data, bounds.start, total_size, token, on_progress)
        try:
            response = self._transport.request(
                "PUT", session_url, token=token, headers=headers, data=body
            )
        except Exception as e:
            raise wrap_error(e, "Chunk upload failed")

        return ChunkResult(
            acked_bytes=parse_range_header(response.headers.get("Range")),
            status_code=response.status_code,
        )


def next_position(
    bounds: ChunkBounds,
    result: ChunkResult,
    total_size: int,
    rewind: bool = False,
) -> int:
    """Choose where the next chunk starts after ``result`` was received.

    The server's acked count wins over the chunk's intended end. A missing
    range header restarts from the chunk start. An explicit ack below the
    chunk start moves back to the acked offset when the source can be
    re-read (``rewind``), and restarts from the chunk start otherwise. The
    one exception is a 2xx answer to the chunk that ends the upload: servers
    finalize with a plain success status and no range, and that status is
    the completion signal.

    Args:
        bounds: Bounds of the chunk that was just sent.
        result: Server response for that chunk.
        total_size: Declared total size of the upload.
        rewind: Whether the caller can resend bytes before ``bounds.start``.

    Returns:
        The next transfer position, never past what the server confirmed.
    """
    if result.acked_bytes > bounds.start:
        return min(result.acked_bytes, total_size)
    if rewind and 0 < result.acked_bytes < bounds.start:
        return result.acked_bytes
    if bounds.end == total_size and 200 <= result.status_code < 300:
        return total_size
    return bounds.start


class StallGuard:
    """Fail an upload whose server stops acknowledging new bytes."""

    def __init__(self, max_stalled_chunks: int) -> None:
        self._max_stalled_chunks = max_stalled_chunks
        self._stalled = 0

    def observe(self, previous: int, current: int) -> None:
        """Record the position change caused by one chunk.

        Raises:
            ProtocolError: After ``max_stalled_chunks`` chunks in a row left
                the position unchanged.
        """
        if current > previous:
            self._stalled = 0
            return
        self._stalled += 1
        logger.warning(
            "Server acknowledged no new bytes at offset %d (%d/%d)",
            previous,
            self._stalled,
            self._max_stalled_chunks,
        )
        if self._stalled >= self._max_stalled_chunks:
            raise ProtocolError(
                f"Server acknowledged no new bytes after {self._stalled} "
                f"chunks at offset {previous}"
            )
