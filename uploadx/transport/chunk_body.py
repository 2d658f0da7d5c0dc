"""Request body wrapper reporting send progress and honouring cancellation."""

from __future__ import annotations

import io
from collections.abc import Callable

from uploadx.cancellation import CancellationToken

ProgressCallback = Callable[[float], None]


class ChunkBody:
    """Sized, seekable, readable view over one chunk's bytes.

    ``requests`` sends this object as a streamed body with an exact
    ``Content-Length``. Every block the connection reads is reported through
    the progress callback, and a cancelled token aborts the request from
    inside the read. ``tell``/``seek`` let the retry layer rewind the body
    before a re-send.
    """

    def __init__(
        self,
        data: bytes | bytearray | memoryview,
        chunk_start: int,
        total_size: int,
        token: CancellationToken | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> None:
        """Wrap chunk data for sending.

        Args:
            data: Bytes of the chunk.
            chunk_start: Absolute offset of the first byte within the upload.
            total_size: Declared total size of the upload.
            token: Cancellation token checked on every read.
            on_progress: Called with the overall upload fraction after each
                block is read.
        """
        self._view = memoryview(data)
        self._position = 0
        self._chunk_start = chunk_start
        self._total_size = total_size
        self._token = token
        self._on_progress = on_progress

    def __len__(self) -> int:
        return len(self._view)

    def tell(self) -> int:
        return self._position

    def seek(self, offset: int, whence: int = io.SEEK_SET) -> int:
        if whence == io.SEEK_SET:
            position = offset
        elif whence == io.SEEK_CUR:
            position = self._position + offset
        elif whence == io.SEEK_END:
            position = len(self._view) + offset
        else:
            raise ValueError(f"Invalid whence: {whence}")
        self._position = max(0, min(position, len(self._view)))
        return self._position

    def read(self, size: int = -1) -> bytes:
        """Read up to ``size`` bytes, reporting progress for the block.

        Raises:
            UploadCancelledError: If the cancellation token is set.
        """
        if self._token is not None:
            self._token.raise_if_cancelled("Chunk upload aborted")

        remaining = len(self._view) - self._position
        if size is None or size < 0 or size > remaining:
            size = remaining
        block = self._view[self._position : self._position + size].tobytes()
        self._position += size

        if block and self._on_progress is not None and self._total_size > 0:
            sent = self._chunk_start + self._position
            self._on_progress(min(1.0, sent / self._total_size))
        return block
