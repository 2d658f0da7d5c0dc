"""Sequential chunk loop for sliceable sources (buffers, handles, files)."""

from __future__ import annotations

import logging
import math

from uploadx.cancellation import CancellationToken
from uploadx.const import CHUNK_LOG_INTERVAL, DEFAULT_MAX_STALLED_CHUNKS
from uploadx.exceptions import UploadCancelledError
from uploadx.models import ChunkBounds
from uploadx.transport.chunk_body import ProgressCallback
from uploadx.upload_management.chunk_uploader import (
    SendChunk,
    StallGuard,
    next_position,
)
from uploadx.upload_management.sources import PullSource
from uploadx.utils.sampled_logger import make_sampled_logger

logger = logging.getLogger(__name__)

_log_chunk = make_sampled_logger(
    "Chunk %d/%d sent: url=%s range=%s acked=%d",
    log_interval=CHUNK_LOG_INTERVAL,
    target_logger=logger,
)


def upload_in_chunks(
    send: SendChunk,
    session_url: str,
    source: PullSource,
    start: int,
    total_size: int,
    chunk_size: int,
    token: CancellationToken,
    on_progress: ProgressCallback | None = None,
    max_stalled_chunks: int = DEFAULT_MAX_STALLED_CHUNKS,
) -> int:
    """Upload ``source`` from ``start`` until the server holds ``total_size`` bytes.

    Exactly one chunk is in flight at a time. After every chunk the position
    moves to the server's acked offset (see ``next_position``), so bytes the
    server did not confirm are sent again and bytes it already holds are
    skipped.

    Args:
        send: Chunk transfer primitive.
        session_url: Session URL.
        source: Sliceable payload.
        start: Server-confirmed offset to start from.
        total_size: Declared total size of the upload.
        chunk_size: Maximum bytes per chunk.
        token: Cancellation token checked before every chunk.
        on_progress: Receives the overall upload fraction.
        max_stalled_chunks: Consecutive chunks without progress tolerated.

    Returns:
        The final server-confirmed position.

    Raises:
        UploadCancelledError: If cancellation was requested.
        ProtocolError: If the server stops acknowledging new bytes.
        SourceExhaustedError: If the source holds fewer bytes than declared.
    """
    position = start
    stall_guard = StallGuard(max_stalled_chunks)
    total_chunks = math.ceil(max(total_size - start, 0) / chunk_size)
    chunk_idx = 0

    try:
        while position < total_size:
            token.raise_if_cancelled()

            bounds = ChunkBounds.for_position(position, chunk_size, total_size)
            data = source.read_range(bounds.start, bounds.end)
            result = send(session_url, data, bounds, total_size, token, on_progress)

            previous = position
            position = next_position(bounds, result, total_size, rewind=True)
            _log_chunk(
                chunk_idx,
                total_chunks,
                total_chunks,
                session_url,
                bounds.content_range(total_size),
                result.acked_bytes,
            )
            chunk_idx += 1
            stall_guard.observe(previous, position)
    except UploadCancelledError as e:
        if e.position is None:
            e.position = position
        raise

    return position
