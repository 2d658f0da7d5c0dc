"""Normalize upload payloads into the source shapes the drivers understand.

Payloads are classified once, at the public entry point, into one of four
shapes. Buffers, seekable handles and file paths can be sliced at arbitrary
offsets and go through the pull driver. Iterables and non-seekable readers
are push streams and go through the stream driver.
"""

from __future__ import annotations

import io
import os
import sys
from collections.abc import Iterable, Iterator
from enum import Enum
from functools import partial
from typing import BinaryIO, Union

from uploadx.exceptions import EnvironmentUnavailableError, SourceExhaustedError

STREAM_READ_SIZE = 64 * 1024

_SANDBOXED_PLATFORMS = {"emscripten", "wasi"}

Uploadable = Union[
    bytes, bytearray, memoryview, BinaryIO, Iterable[bytes], str, os.PathLike
]


class SourceKind(str, Enum):
    """Capability set of an upload payload."""

    BUFFER = "buffer"
    HANDLE = "handle"
    STREAM = "stream"
    FILE = "file"


def ensure_filesystem_available() -> None:
    """Raise if the runtime has no real filesystem to read files from.

    Raises:
        EnvironmentUnavailableError: On sandboxed platforms.
    """
    if sys.platform in _SANDBOXED_PLATFORMS:
        raise EnvironmentUnavailableError(
            f"File uploads are not available on platform {sys.platform!r}"
        )


def _is_seekable(handle: object) -> bool:
    seekable = getattr(handle, "seekable", None)
    if seekable is None:
        return False
    try:
        return bool(seekable())
    except (OSError, ValueError):
        return False


def classify_source(data: object) -> SourceKind:
    """Classify an upload payload.

    Args:
        data: Payload passed by the caller.

    Returns:
        The matching ``SourceKind``.

    Raises:
        TypeError: If the payload has no supported shape.
    """
    if isinstance(data, (str, os.PathLike)):
        return SourceKind.FILE
    if isinstance(data, (bytes, bytearray, memoryview)):
        return SourceKind.BUFFER
    if hasattr(data, "read"):
        return SourceKind.HANDLE if _is_seekable(data) else SourceKind.STREAM
    if isinstance(data, Iterable):
        return SourceKind.STREAM
    raise TypeError(f"Unsupported upload payload type: {type(data).__name__}")


def _check_length(block: bytes, start: int, end: int) -> bytes:
    if len(block) != end - start:
        raise SourceExhaustedError(
            f"Source ended at byte {start + len(block)}, expected data up to {end}"
        )
    return block


class BufferSource:
    """In-memory payload sliced without copying the whole buffer."""

    kind = SourceKind.BUFFER

    def __init__(self, data: bytes | bytearray | memoryview) -> None:
        self._view = memoryview(data).cast("B")

    def read_range(self, start: int, end: int) -> bytes:
        return _check_length(self._view[start:end].tobytes(), start, end)


class HandleSource:
    """Seekable binary file object, read one window at a time."""

    kind = SourceKind.HANDLE

    def __init__(self, handle: BinaryIO) -> None:
        self._handle = handle

    def read_range(self, start: int, end: int) -> bytes:
        self._handle.seek(start)
        return _check_length(_read_exactly(self._handle, end - start), start, end)


class FileSource:
    """File on disk, opened afresh for every chunk.

    No descriptor is held between chunks, so a failure on one chunk cannot
    leak a handle for the rest of the transfer.
    """

    kind = SourceKind.FILE

    def __init__(self, path: str | os.PathLike) -> None:
        ensure_filesystem_available()
        self.path = os.fspath(path)

    def read_range(self, start: int, end: int) -> bytes:
        with open(self.path, "rb") as f:
            f.seek(start)
            return _check_length(_read_exactly(f, end - start), start, end)


def _read_exactly(handle: BinaryIO, size: int) -> bytes:
    """Read ``size`` bytes, looping over short reads until EOF."""
    buffer = io.BytesIO()
    remaining = size
    while remaining > 0:
        block = handle.read(remaining)
        if not block:
            break
        buffer.write(block)
        remaining -= len(block)
    return buffer.getvalue()


PullSource = Union[BufferSource, HandleSource, FileSource]


def make_pull_source(data: Uploadable, kind: SourceKind) -> PullSource:
    """Build the sliceable source for a buffer, handle or file payload."""
    if kind is SourceKind.BUFFER:
        return BufferSource(data)  # type: ignore[arg-type]
    if kind is SourceKind.HANDLE:
        return HandleSource(data)  # type: ignore[arg-type]
    if kind is SourceKind.FILE:
        return FileSource(data)  # type: ignore[arg-type]
    raise ValueError(f"{kind.value} payloads are not sliceable")


def iter_stream_blocks(stream: Iterable[bytes] | BinaryIO) -> Iterator[bytes]:
    """Iterate over the byte blocks of a push stream.

    Non-seekable readers are read in ``STREAM_READ_SIZE`` blocks; any other
    iterable is consumed as it is.
    """
    if hasattr(stream, "read"):
        return iter(partial(stream.read, STREAM_READ_SIZE), b"")
    return iter(stream)
