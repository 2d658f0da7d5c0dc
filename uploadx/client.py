"""Client for resumable, chunked uploads.

This module provides ``UploadxClient``, the public entry point of the library.
It creates or rediscovers upload sessions, classifies the payload into one of
the supported source shapes and drives the matching chunk loop. Cancellation
is cooperative: every call links its own optional token to a client-wide
token that ``abort`` cancels and replaces.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any

import requests

from uploadx.cancellation import CancellationToken
from uploadx.config.config import resolve_config
from uploadx.config.upload_config import UploadConfig
from uploadx.exceptions import UploadCancelledError, wrap_error
from uploadx.models import UploadMetadata, UploadResult, UploadSession, UploadStatus
from uploadx.transport.chunk_body import ProgressCallback
from uploadx.transport.http_transport import HttpTransport
from uploadx.upload_management.chunk_uploader import ChunkUploader
from uploadx.upload_management.pull_driver import upload_in_chunks
from uploadx.upload_management.session_negotiator import SessionNegotiator
from uploadx.upload_management.sources import (
    SourceKind,
    Uploadable,
    classify_source,
    ensure_filesystem_available,
    make_pull_source,
)
from uploadx.upload_management.stream_driver import StreamDriver

logger = logging.getLogger(__name__)

MetadataLike = UploadMetadata | Mapping[str, Any]


def _as_metadata(metadata: MetadataLike) -> UploadMetadata:
    if isinstance(metadata, UploadMetadata):
        return metadata
    return UploadMetadata.model_validate(dict(metadata))


class UploadxClient:
    """Client handling resumable chunked uploads.

    Supports in-memory buffers, seekable file objects, push streams and file
    paths, with progress reporting, cancellation and resumption of
    interrupted uploads from the server's confirmed offset.
    """

    def __init__(
        self,
        config: UploadConfig | dict[str, Any] | None = None,
        session: requests.Session | None = None,
        config_file: str | os.PathLike | None = None,
    ) -> None:
        """Create a client.

        Args:
            config: Client configuration, or a partial mapping of overrides
                applied on top of environment variables, the config file and
                defaults.
            session: Optional ``requests.Session`` to send requests with.
            config_file: Optional YAML configuration file. Defaults to the
                path in ``UPLOADX_CONFIG``, if set.
        """
        self.config = resolve_config(config, config_file)
        self._transport = HttpTransport(self.config, session=session)
        self._negotiator = SessionNegotiator(self._transport)
        self._chunk_uploader = ChunkUploader(self._transport)
        self._abort_token = CancellationToken()

    def __enter__(self) -> UploadxClient:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        """Release the client's HTTP connections."""
        self._transport.close()

    def abort(self) -> None:
        """Cancel every operation in progress on this client.

        The client-wide token is replaced, not reset: operations already
        running keep observing the cancelled token while later calls start
        with a fresh one.
        """
        previous, self._abort_token = self._abort_token, CancellationToken()
        previous.cancel()
        logger.info("Aborted all uploads in progress")

    def _call_token(self, token: CancellationToken | None) -> CancellationToken:
        return CancellationToken(self._abort_token, token)

    # Session operations

    def create_upload(
        self,
        endpoint: str,
        metadata: MetadataLike,
        token: CancellationToken | None = None,
    ) -> UploadSession:
        """Create a new upload session on the server.

        Args:
            endpoint: Upload endpoint URL.
            metadata: Description of the payload.
            token: Optional cancellation token.

        Returns:
            The new session and the bytes the server already holds for it.
        """
        return self._negotiator.create_session(
            endpoint, _as_metadata(metadata), self._call_token(token)
        )

    def create_file_upload(
        self,
        endpoint: str,
        file_path: str | os.PathLike,
        metadata: MetadataLike,
        token: CancellationToken | None = None,
    ) -> UploadSession:
        """Create an upload session for a file on disk.

        The declared size is taken from the file, and its modification time
        fills ``last_modified`` when the caller did not set it.

        Raises:
            EnvironmentUnavailableError: If the runtime has no filesystem.
        """
        ensure_filesystem_available()
        return self.create_upload(
            endpoint, self._file_metadata(file_path, metadata), token
        )

    def get_upload_status(
        self,
        url: str,
        metadata: MetadataLike | None = None,
        token: CancellationToken | None = None,
    ) -> UploadStatus:
        """Get the number of bytes the server holds for a session.

        Args:
            url: Session URL.
            metadata: Optional metadata; its size is declared to the server.
            token: Optional cancellation token.
        """
        size: int | None = None
        if isinstance(metadata, UploadMetadata):
            size = metadata.size
        elif metadata is not None:
            size = metadata.get("size")
        return self._negotiator.query_status(url, self._call_token(token), size)

    def update_upload(
        self,
        url: str,
        metadata: MetadataLike,
        token: CancellationToken | None = None,
    ) -> None:
        """Update the metadata of an existing upload.

        Args:
            url: Session URL.
            metadata: Partial metadata. Only fields set by the caller are sent.
            token: Optional cancellation token.
        """
        if isinstance(metadata, UploadMetadata):
            payload = metadata.model_dump(by_alias=True, exclude_unset=True)
        else:
            payload = dict(metadata)
        self._negotiator.update_metadata(url, payload, self._call_token(token))

    def delete_upload(
        self, url: str, token: CancellationToken | None = None
    ) -> None:
        """Delete an existing upload from the server."""
        self._negotiator.delete_session(url, self._call_token(token))

    # Transfers

    def upload(
        self,
        endpoint: str,
        data: Uploadable,
        metadata: MetadataLike,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> UploadResult:
        """Create a session and upload ``data`` to it.

        Args:
            endpoint: Upload endpoint URL.
            data: Bytes-like object, binary file object, iterable of byte
                blocks, or a file path.
            metadata: Description of the payload.
            on_progress: Receives the overall upload fraction in ``[0, 1]``.
            token: Optional cancellation token.

        Returns:
            The upload outcome; ``cancelled`` is set if the call was
            cancelled, which is not treated as an error.

        Raises:
            UploadxError: If any phase fails, prefixed with "Upload failed".
        """
        call_token = self._call_token(token)
        total_size = 0
        url: str | None = None
        try:
            metadata = _as_metadata(metadata)
            total_size = metadata.size
            kind = self._checked_kind(data)
            session = self._negotiator.create_session(endpoint, metadata, call_token)
            url = session.url
            position = self._transfer(
                url,
                data,
                kind,
                session.uploaded_bytes,
                total_size,
                call_token,
                on_progress,
            )
        except UploadCancelledError as e:
            return self._cancelled_result(url or endpoint, total_size, e)
        except Exception as e:
            raise wrap_error(e, "Upload failed")
        return UploadResult(url=url, uploaded_bytes=position, total_size=total_size)

    def resume_upload(
        self,
        url: str,
        data: Uploadable,
        metadata: MetadataLike,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> UploadResult:
        """Resume an upload from the offset the server reports for ``url``.

        Sliceable payloads are read from the server's offset. Streams must
        yield the payload starting at that offset.
        """
        call_token = self._call_token(token)
        total_size = 0
        try:
            metadata = _as_metadata(metadata)
            total_size = metadata.size
            kind = self._checked_kind(data)
            status = self._negotiator.query_status(url, call_token, total_size)
            position = self._transfer(
                url,
                data,
                kind,
                status.uploaded_bytes,
                total_size,
                call_token,
                on_progress,
            )
        except UploadCancelledError as e:
            return self._cancelled_result(url, total_size, e)
        except Exception as e:
            raise wrap_error(e, "Upload failed")
        return UploadResult(url=url, uploaded_bytes=position, total_size=total_size)

    def file_upload(
        self,
        endpoint: str,
        file_path: str | os.PathLike,
        metadata: MetadataLike,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> UploadResult:
        """Create a session for a file on disk and upload it.

        The declared size comes from the file itself.
        """
        call_token = self._call_token(token)
        context = f"File upload failed for {os.fspath(file_path)}"
        total_size = 0
        url: str | None = None
        try:
            ensure_filesystem_available()
            metadata = self._file_metadata(file_path, metadata)
            total_size = metadata.size
            session = self._negotiator.create_session(endpoint, metadata, call_token)
            url = session.url
            position = self._transfer(
                url,
                file_path,
                SourceKind.FILE,
                session.uploaded_bytes,
                total_size,
                call_token,
                on_progress,
            )
        except UploadCancelledError as e:
            return self._cancelled_result(url or endpoint, total_size, e)
        except Exception as e:
            raise wrap_error(e, context)
        return UploadResult(url=url, uploaded_bytes=position, total_size=total_size)

    def resume_file_upload(
        self,
        url: str,
        file_path: str | os.PathLike,
        metadata: MetadataLike,
        on_progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
    ) -> UploadResult:
        """Resume the upload of a file on disk from the server's offset."""
        call_token = self._call_token(token)
        context = f"File upload failed for {os.fspath(file_path)}"
        total_size = 0
        try:
            ensure_filesystem_available()
            metadata = _as_metadata(metadata)
            total_size = metadata.size
            status = self._negotiator.query_status(url, call_token, total_size)
            position = self._transfer(
                url,
                file_path,
                SourceKind.FILE,
                status.uploaded_bytes,
                total_size,
                call_token,
                on_progress,
            )
        except UploadCancelledError as e:
            return self._cancelled_result(url, total_size, e)
        except Exception as e:
            raise wrap_error(e, context)
        return UploadResult(url=url, uploaded_bytes=position, total_size=total_size)

    # Helpers

    @staticmethod
    def _checked_kind(data: Uploadable) -> SourceKind:
        """Classify ``data`` and fail early if it cannot be read here."""
        kind = classify_source(data)
        if kind is SourceKind.FILE:
            ensure_filesystem_available()
        return kind

    def _transfer(
        self,
        url: str,
        data: Uploadable,
        kind: SourceKind,
        start: int,
        total_size: int,
        token: CancellationToken,
        on_progress: ProgressCallback | None,
    ) -> int:
        """Run the driver matching ``kind`` and return the final position."""
        logger.info(
            "Uploading %s source: url=%s start=%d total=%d",
            kind.value,
            url,
            start,
            total_size,
        )
        if kind is SourceKind.STREAM:
            driver = StreamDriver(
                self._chunk_uploader.send_chunk,
                url,
                data,  # type: ignore[arg-type]
                start,
                total_size,
                self.config.chunk_size,
                token,
                on_progress,
                self.config.max_stalled_chunks,
            )
            position = driver.run()
        else:
            position = upload_in_chunks(
                self._chunk_uploader.send_chunk,
                url,
                make_pull_source(data, kind),
                start,
                total_size,
                self.config.chunk_size,
                token,
                on_progress,
                self.config.max_stalled_chunks,
            )
        logger.info("Upload complete: url=%s bytes=%d", url, position)
        return position

    @staticmethod
    def _file_metadata(
        file_path: str | os.PathLike, metadata: MetadataLike
    ) -> UploadMetadata:
        fields = (
            metadata.model_dump(by_alias=True)
            if isinstance(metadata, UploadMetadata)
            else dict(metadata)
        )
        stats = os.stat(file_path)
        fields["size"] = stats.st_size
        if fields.get("lastModified") is None and fields.get("last_modified") is None:
            fields["lastModified"] = stats.st_mtime * 1000
        fields.setdefault("name", os.path.basename(os.fspath(file_path)))
        return UploadMetadata.model_validate(fields)

    @staticmethod
    def _cancelled_result(
        url: str, total_size: int, error: UploadCancelledError
    ) -> UploadResult:
        position = error.position or 0
        logger.info("Upload cancelled: url=%s position=%d", url, position)
        return UploadResult(
            url=url, uploaded_bytes=position, total_size=total_size, cancelled=True
        )
