"""Cooperative cancellation shared between the client and its transfers."""

from __future__ import annotations

import threading

from uploadx.exceptions import UploadCancelledError


class CancellationToken:
    """A terminal, externally settable cancellation flag.

    A token may be linked to parent tokens: it reports cancellation as soon as
    it or any of its parents has been cancelled. Cancelling a child never
    affects its parents.
    """

    def __init__(self, *parents: CancellationToken | None) -> None:
        """Create a token, optionally linked to parent tokens.

        Args:
            parents: Tokens whose cancellation this token observes. ``None``
                entries are ignored so optional tokens can be passed directly.
        """
        self._event = threading.Event()
        self._parents = tuple(parent for parent in parents if parent is not None)

    def cancel(self) -> None:
        """Request cancellation. Idempotent."""
        self._event.set()

    @property
    def cancelled(self) -> bool:
        """Whether this token or any of its parents has been cancelled."""
        if self._event.is_set():
            return True
        return any(parent.cancelled for parent in self._parents)

    def raise_if_cancelled(self, message: str = "Operation aborted") -> None:
        """Raise ``UploadCancelledError`` if cancellation was requested."""
        if self.cancelled:
            raise UploadCancelledError(message)
