"""Chunked upload of push streams with one-chunk backpressure.

A push stream cannot be re-sliced, so incoming blocks are accumulated until a
full chunk is available. At that point the producer is paused, the chunk is
uploaded, and the producer is resumed once the server has answered. Bytes the
server did not acknowledge stay in the accumulator and are sent again.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable, Iterator
from enum import Enum
from typing import BinaryIO

from uploadx.cancellation import CancellationToken
from uploadx.const import CHUNK_LOG_INTERVAL, DEFAULT_MAX_STALLED_CHUNKS
from uploadx.exceptions import SourceExhaustedError, UploadCancelledError
from uploadx.models import ChunkBounds
from uploadx.transport.chunk_body import ProgressCallback
from uploadx.upload_management.chunk_uploader import (
    SendChunk,
    StallGuard,
    next_position,
)
from uploadx.upload_management.sources import iter_stream_blocks
from uploadx.utils.sampled_logger import make_sampled_logger

logger = logging.getLogger(__name__)

_log_chunk = make_sampled_logger(
    "Stream chunk %d/%d sent: url=%s range=%s acked=%d",
    log_interval=CHUNK_LOG_INTERVAL,
    target_logger=logger,
)


class StreamState(str, Enum):
    """States of the stream driver."""

    WAITING_DATA = "waiting_data"
    CHUNK_READY = "chunk_ready"
    UPLOADING = "uploading"
    FLUSH_TAIL = "flush_tail"
    DONE = "done"
    FAILED = "failed"


class StreamDriver:
    """Upload a push stream in sequential chunks.

    The stream must yield the payload starting at the session's current
    offset. The accumulator is only touched from the thread calling ``run``:
    the data and end handlers append to it, the upload step trims it.
    """

    def __init__(
        self,
        send: SendChunk,
        session_url: str,
        stream: Iterable[bytes] | BinaryIO,
        start: int,
        total_size: int,
        chunk_size: int,
        token: CancellationToken,
        on_progress: ProgressCallback | None = None,
        max_stalled_chunks: int = DEFAULT_MAX_STALLED_CHUNKS,
    ) -> None:
        """Initialize the stream driver.

        Args:
            send: Chunk transfer primitive.
            session_url: Session URL.
            stream: Iterable of byte blocks or a non-seekable reader.
                ``pause``, ``resume`` and ``destroy`` are called on it when
                it provides them.
            start: Server-confirmed offset of the stream's first byte.
            total_size: Declared total size of the upload.
            chunk_size: Maximum bytes per chunk.
            token: Cancellation token.
            on_progress: Receives the overall upload fraction.
            max_stalled_chunks: Consecutive chunks without progress tolerated.
        """
        self._send = send
        self._session_url = session_url
        self._stream = stream
        self._total_size = total_size
        self._chunk_size = chunk_size
        self._token = token
        self._on_progress = on_progress
        self._stall_guard = StallGuard(max_stalled_chunks)

        self._state = StreamState.WAITING_DATA
        self._position = start
        self._buffer = bytearray()
        self._discard = 0
        self._chunk_idx = 0
        self._total_chunks = math.ceil(max(total_size - start, 0) / chunk_size)

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def position(self) -> int:
        """Server-confirmed offset of the first buffered byte."""
        return self._position

    def run(self) -> int:
        """Drive the stream to completion.

        Returns:
            The final server-confirmed position.

        Raises:
            UploadCancelledError: If cancellation was requested.
            SourceExhaustedError: If the stream ends before the declared size.
            Exception: Any error raised by the stream or the upload.
        """
        blocks: Iterator[bytes] = iter_stream_blocks(self._stream)
        try:
            self._token.raise_if_cancelled()
            if self._position >= self._total_size:
                self._finish_early(blocks)
                return self._position

            for block in blocks:
                self._on_data(block)
                if self._state is StreamState.DONE:
                    self._finish_early(blocks)
                    return self._position
                self._resume()

            self._on_end()
            return self._position
        except BaseException as e:
            if isinstance(e, UploadCancelledError) and e.position is None:
                e.position = self._position
            self._fail(e)
            raise

    # Event handlers

    def _on_data(self, block: bytes) -> None:
        self._token.raise_if_cancelled()
        if not block:
            return

        if self._discard:
            skipped = min(self._discard, len(block))
            self._discard -= skipped
            block = block[skipped:]
        self._buffer.extend(block)

        while (
            self._position < self._total_size
            and len(self._buffer) >= self._ready_size()
        ):
            self._pause()
            self._upload_buffered(self._ready_size())

        if self._position >= self._total_size:
            self._state = StreamState.DONE

    def _on_end(self) -> None:
        self._token.raise_if_cancelled()
        while self._buffer and self._position < self._total_size:
            self._state = StreamState.FLUSH_TAIL
            self._upload_buffered(min(len(self._buffer), self._ready_size()))

        if self._position < self._total_size:
            raise SourceExhaustedError(
                f"Stream ended at byte {self._position}, "
                f"declared size is {self._total_size}"
            )
        self._state = StreamState.DONE

    # Upload step

    def _ready_size(self) -> int:
        """Bytes needed for the next chunk, bounded by the declared size."""
        return min(self._chunk_size, self._total_size - self._position)

    def _upload_buffered(self, length: int) -> None:
        bounds = ChunkBounds(self._position, self._position + length)
        data = bytes(self._buffer[:length])

        self._token.raise_if_cancelled("Upload aborted before chunk was sent")
        self._state = StreamState.UPLOADING
        result = self._send(
            self._session_url,
            data,
            bounds,
            self._total_size,
            self._token,
            self._on_progress,
        )

        previous = self._position
        self._position = next_position(bounds, result, self._total_size)
        acked = self._position - previous
        if acked > len(self._buffer):
            self._discard += acked - len(self._buffer)
            self._buffer.clear()
        else:
            del self._buffer[:acked]

        _log_chunk(
            self._chunk_idx,
            self._total_chunks,
            self._total_chunks,
            self._session_url,
            bounds.content_range(self._total_size),
            result.acked_bytes,
        )
        self._chunk_idx += 1
        self._stall_guard.observe(previous, self._position)

    # Producer flow control

    def _pause(self) -> None:
        self._state = StreamState.CHUNK_READY
        pause = getattr(self._stream, "pause", None)
        if pause is not None:
            pause()

    def _resume(self) -> None:
        if self._state is StreamState.WAITING_DATA:
            return
        self._state = StreamState.WAITING_DATA
        resume = getattr(self._stream, "resume", None)
        if resume is not None:
            resume()

    def _finish_early(self, blocks: Iterator[bytes]) -> None:
        """Complete once every declared byte is acked.

        Looks ahead for the end of the stream so a producer that wrote
        exactly the declared size can end cleanly. Extra data is never sent.
        """
        extra = bool(self._buffer)
        self._resume()
        self._state = StreamState.DONE
        if not extra:
            for block in blocks:
                if self._token.cancelled:
                    return
                if block:
                    extra = True
                    break
        if extra:
            logger.warning(
                "Stream holds more data than the declared size %d; "
                "ignoring the remainder",
                self._total_size,
            )
            self._destroy(None)

    def _fail(self, error: BaseException) -> None:
        self._state = StreamState.FAILED
        logger.debug("Stream upload failed at offset %d: %s", self._position, error)
        self._destroy(error)

    def _destroy(self, error: BaseException | None) -> None:
        destroy = getattr(self._stream, "destroy", None)
        if destroy is not None:
            destroy(error)
