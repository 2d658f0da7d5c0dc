"""Exception classes for the resumable upload workflow."""

from __future__ import annotations

import copy


class UploadxError(Exception):
    """Base error for the upload workflow."""

    def with_context(self, context: str) -> UploadxError:
        """Return a copy of this error with its message prefixed by ``context``.

        The copy keeps the concrete class and any extra attributes (such as a
        transport status code) so callers can still dispatch on the error type.

        Args:
            context: Human readable name of the phase that failed.

        Returns:
            A new error of the same class.
        """
        wrapped = copy.copy(self)
        wrapped.args = (f"{context}: {self}",)
        return wrapped


class UploadCancelledError(UploadxError):
    """Raised when an upload is cancelled through its cancellation token."""

    def __init__(self, message: str = "Operation aborted"):
        """Initialize UploadCancelledError.

        Args:
            message: Description of where the cancellation was observed.
        """
        super().__init__(message)
        # Server-confirmed offset when the transfer stopped, set by the drivers.
        self.position: int | None = None


class ProtocolError(UploadxError):
    """Raised when a server response violates the resumable upload contract."""


class TransportError(UploadxError):
    """Raised when an HTTP request fails after the transport's retries."""

    def __init__(self, message: str, status_code: int | None = None):
        """Initialize TransportError.

        Args:
            message: Description of the failure.
            status_code: HTTP status code of the failed response, if any.
        """
        super().__init__(message)
        self.status_code = status_code


class EnvironmentUnavailableError(UploadxError):
    """Raised when an operation needs a capability the runtime does not offer."""


class SourceExhaustedError(UploadxError):
    """Raised when a data source ends before the declared upload size."""


class StreamClosedError(UploadxError):
    """Raised when writing to a push stream that was ended or destroyed."""


class ConfigLoadError(UploadxError):
    """Raised when a configuration file cannot be loaded."""


def wrap_error(error: BaseException, context: str) -> BaseException:
    """Attach a phase context to an error raised during an upload operation.

    Cancellation passes through untouched. Upload errors keep their class;
    anything else is wrapped in ``UploadxError``.

    Args:
        error: The error that was raised.
        context: Human readable name of the phase that failed.

    Returns:
        The error to raise in place of ``error``.
    """
    if isinstance(error, UploadCancelledError):
        return error
    if isinstance(error, UploadxError):
        wrapped = error.with_context(context)
    elif str(error):
        wrapped = UploadxError(f"{context}: {error}")
    else:
        wrapped = UploadxError(f"{context}: {type(error).__name__}")
    wrapped.__cause__ = error
    return wrapped
