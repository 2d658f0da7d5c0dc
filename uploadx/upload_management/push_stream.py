"""Thread-safe push stream feeding the stream driver from a producer thread.

The producer writes blocks as they become available; the stream driver
iterates over them on its own thread. The channel is bounded, and the driver
can pause the producer explicitly while a chunk is being uploaded, so memory
stays within roughly one chunk plus ``max_pending_blocks`` blocks.
"""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Iterator

from uploadx.exceptions import StreamClosedError

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SECONDS = 0.1
_END = object()


class _Failure:
    def __init__(self, error: BaseException) -> None:
        self.error = error


class PushStream:
    """Bounded producer/consumer byte channel with pause and resume."""

    def __init__(self, max_pending_blocks: int = 16) -> None:
        """Initialize the stream.

        Args:
            max_pending_blocks: Blocks that may wait in the channel before
                ``write`` blocks the producer.
        """
        self._queue: queue.Queue = queue.Queue(maxsize=max_pending_blocks)
        self._flowing = threading.Event()
        self._flowing.set()
        self._lock = threading.Lock()
        self._ended = False
        self._destroyed: BaseException | None = None

    # Producer side

    def write(self, data: bytes) -> None:
        """Push a block of data, blocking while the consumer is paused or full.

        Raises:
            StreamClosedError: If the stream was ended or destroyed.
        """
        with self._lock:
            if self._ended:
                raise StreamClosedError("Cannot write to an ended stream")
        if not data:
            return
        self._put(bytes(data))

    def end(self) -> None:
        """Signal that no more data will be written."""
        with self._lock:
            if self._ended:
                return
            self._ended = True
        self._put(_END)

    def fail(self, error: BaseException) -> None:
        """Terminate the stream with a producer-side error."""
        with self._lock:
            if self._ended:
                return
            self._ended = True
        self._put(_Failure(error))

    def _put(self, item: object) -> None:
        while True:
            self._raise_if_destroyed()
            if not self._flowing.wait(_POLL_INTERVAL_SECONDS):
                continue
            try:
                self._queue.put(item, timeout=_POLL_INTERVAL_SECONDS)
                return
            except queue.Full:
                continue

    def _raise_if_destroyed(self) -> None:
        if self._destroyed is not None:
            raise StreamClosedError(
                f"Stream was destroyed: {self._destroyed}"
            ) from self._destroyed

    # Consumer side

    def pause(self) -> None:
        """Stop accepting writes until ``resume`` is called."""
        self._flowing.clear()

    def resume(self) -> None:
        """Accept writes again."""
        self._flowing.set()

    @property
    def paused(self) -> bool:
        return not self._flowing.is_set()

    def destroy(self, error: BaseException | None = None) -> None:
        """Tear the stream down, waking blocked writers with an error."""
        self._destroyed = error or StreamClosedError("Stream destroyed")
        self._flowing.set()
        logger.debug("Push stream destroyed: %s", self._destroyed)

    def __iter__(self) -> Iterator[bytes]:
        """Yield written blocks until the producer ends the stream.

        Yields ``b""`` while no data is available so that the consumer gets a
        chance to observe cancellation.

        Raises:
            BaseException: The error passed to ``fail`` by the producer.
        """
        while True:
            try:
                item = self._queue.get(timeout=_POLL_INTERVAL_SECONDS)
            except queue.Empty:
                if self._destroyed is not None:
                    return
                yield b""
                continue
            if item is _END:
                return
            if isinstance(item, _Failure):
                raise item.error
            yield item
