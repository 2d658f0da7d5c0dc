from .cancellation import CancellationToken
from .client import UploadxClient
from .config.upload_config import RetryConfig, UploadConfig
from .exceptions import (
    ConfigLoadError,
    EnvironmentUnavailableError,
    ProtocolError,
    SourceExhaustedError,
    StreamClosedError,
    TransportError,
    UploadCancelledError,
    UploadxError,
)
from .models import UploadMetadata, UploadResult, UploadSession, UploadStatus
from .upload_management.push_stream import PushStream
from .upload_management.sources import SourceKind

__version__ = "0.1.0"

__all__ = [
    "UploadxClient",
    "UploadConfig",
    "RetryConfig",
    "UploadMetadata",
    "UploadResult",
    "UploadSession",
    "UploadStatus",
    "CancellationToken",
    "PushStream",
    "SourceKind",
    "UploadxError",
    "UploadCancelledError",
    "ProtocolError",
    "TransportError",
    "EnvironmentUnavailableError",
    "SourceExhaustedError",
    "StreamClosedError",
    "ConfigLoadError",
]
