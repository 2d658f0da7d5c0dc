"""Session creation and status discovery for resumable uploads.

The session URL returned by the server is the only handle for an upload. This
module creates sessions, asks the server how many bytes it has durably
received, and issues the metadata update and delete requests that operate on
an existing session.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any
from urllib.parse import urljoin

from uploadx.cancellation import CancellationToken
from uploadx.const import DEFAULT_CONTENT_TYPE, JSON_CONTENT_TYPE
from uploadx.exceptions import ProtocolError, wrap_error
from uploadx.models import (
    UploadMetadata,
    UploadSession,
    UploadStatus,
    parse_range_header,
)
from uploadx.transport.http_transport import HttpTransport

logger = logging.getLogger(__name__)


class SessionNegotiator:
    """Create and inspect upload sessions on the server."""

    def __init__(self, transport: HttpTransport) -> None:
        """Initialize the negotiator.

        Args:
            transport: Transport used for every request.
        """
        self._transport = transport

    def create_session(
        self,
        endpoint: str,
        metadata: UploadMetadata,
        token: CancellationToken,
    ) -> UploadSession:
        """Create a new upload session.

        Sends the declared size and content type as protocol headers and the
        full metadata as the JSON body. Servers may pre-seed a session with
        bytes they already hold; a ``Range`` header in the response seeds the
        session's starting offset.

        Args:
            endpoint: Upload endpoint URL.
            metadata: Description of the payload.
            token: Cancellation token for the request.

        Returns:
            The created session with an absolute URL.

        Raises:
            ProtocolError: If the response has no ``Location`` header.
            TransportError: If the request fails.
            UploadCancelledError: If cancellation was requested.
        """
        headers = {
            "X-Upload-Content-Length": str(metadata.size),
            "X-Upload-Content-Type": metadata.mime_type or DEFAULT_CONTENT_TYPE,
            "Content-Type": JSON_CONTENT_TYPE,
        }
        logger.info(
            "Creating upload session: endpoint=%s name=%s size=%d",
            endpoint,
            metadata.name,
            metadata.size,
        )
        try:
            response = self._transport.request(
                "POST",
                endpoint,
                token=token,
                headers=headers,
                json=metadata.to_wire(),
            )
            location = response.headers.get("Location")
            if not location:
                raise ProtocolError("Missing Location header in response")
        except Exception as e:
            raise wrap_error(e, "Session creation failed")

        session = UploadSession(
            url=urljoin(endpoint, location),
            uploaded_bytes=parse_range_header(response.headers.get("Range")),
        )
        logger.info(
            "Upload session created: url=%s uploaded_bytes=%d",
            session.url,
            session.uploaded_bytes,
        )
        return session

    def query_status(
        self,
        session_url: str,
        token: CancellationToken,
        size: int | None = None,
    ) -> UploadStatus:
        """Ask the server how many bytes it holds for a session.

        Args:
            session_url: Session URL.
            token: Cancellation token for the request.
            size: Declared total size, if known.

        Returns:
            The server's authoritative received-byte count, 0 when the
            response carries no range.
        """
        headers = {
            "Content-Type": DEFAULT_CONTENT_TYPE,
            "Content-Range": f"bytes */{size if size is not None else '*'}",
        }
        try:
            response = self._transport.request(
                "PUT", session_url, token=token, headers=headers
            )
        except Exception as e:
            raise wrap_error(e, "Status query failed")

        status = UploadStatus(
            uploaded_bytes=parse_range_header(response.headers.get("Range"))
        )
        logger.info(
            "Upload status: url=%s uploaded_bytes=%d",
            session_url,
            status.uploaded_bytes,
        )
        return status

    def update_metadata(
        self,
        session_url: str,
        metadata: Mapping[str, Any],
        token: CancellationToken,
    ) -> None:
        """Send a partial metadata update for a session."""
        try:
            self._transport.request(
                "PATCH",
                session_url,
                token=token,
                headers={"Content-Type": JSON_CONTENT_TYPE},
                json=dict(metadata),
            )
        except Exception as e:
            raise wrap_error(e, "Failed to update metadata")
        logger.info("Upload metadata updated: url=%s", session_url)

    def delete_session(self, session_url: str, token: CancellationToken) -> None:
        """Delete a session and the data the server holds for it."""
        try:
            self._transport.request("DELETE", session_url, token=token)
        except Exception as e:
            raise wrap_error(e, "Failed to delete upload")
        logger.info("Upload deleted: url=%s", session_url)
