"""HTTP transport for the resumable upload protocol.

This module wraps a ``requests.Session`` configured with an exponential
backoff retry policy. It is the only place that talks to the network: the
session negotiator and the chunk uploader hand it fully described requests
and get back responses whose status is already validated.
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from uploadx.cancellation import CancellationToken
from uploadx.config.upload_config import RetryConfig, UploadConfig
from uploadx.const import RESUME_INCOMPLETE_CODE
from uploadx.exceptions import TransportError
from uploadx.utils.http_errors import extract_error_detail

logger = logging.getLogger(__name__)


def build_retry(retry_config: RetryConfig) -> Retry:
    """Translate a ``RetryConfig`` into a urllib3 ``Retry`` policy.

    Every method is retried, including POST and PUT: the protocol makes chunk
    uploads idempotent because each one names its byte range.
    """
    return Retry(
        total=retry_config.retries,
        connect=retry_config.retries,
        read=retry_config.retries,
        status=retry_config.retries,
        backoff_factor=retry_config.backoff_factor,
        backoff_max=retry_config.backoff_max,
        status_forcelist=sorted(retry_config.status_forcelist),
        allowed_methods=None,
        respect_retry_after_header=retry_config.respect_retry_after_header,
        raise_on_status=False,
    )


def is_accepted_status(status_code: int) -> bool:
    """Whether a status code counts as success for the upload protocol."""
    return 200 <= status_code < 400 or status_code == RESUME_INCOMPLETE_CODE


class HttpTransport:
    """Send upload protocol requests with retries and cancellation checks."""

    def __init__(
        self,
        config: UploadConfig,
        session: requests.Session | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            config: Client configuration providing timeout, retry policy and
                extra request headers.
            session: Optional pre-built session. When given, its adapters are
                left untouched and the caller owns its retry behaviour.
        """
        self._config = config
        self._owns_session = session is None
        if session is None:
            session = requests.Session()
            adapter = HTTPAdapter(max_retries=build_retry(config.retry))
            session.mount("https://", adapter)
            session.mount("http://", adapter)
        self._session = session

    @property
    def session(self) -> requests.Session:
        return self._session

    def request(
        self,
        method: str,
        url: str,
        *,
        token: CancellationToken,
        headers: dict[str, str] | None = None,
        data: Any = None,
        json: Any = None,
    ) -> requests.Response:
        """Send one request and validate its status.

        Args:
            method: HTTP method.
            url: Absolute request URL.
            token: Cancellation token checked before and after the request.
            headers: Protocol headers for this request.
            data: Optional request body.
            json: Optional JSON-serializable request body.

        Returns:
            The response, with a status in 200-399 or 308.

        Raises:
            UploadCancelledError: If cancellation was requested.
            TransportError: If the request failed or the server returned an
                unaccepted status after retries.
        """
        token.raise_if_cancelled()

        request_headers = {**self._config.request_headers, **(headers or {})}
        logger.debug("%s %s headers=%s", method, url, headers)
        try:
            response = self._session.request(
                method,
                url,
                headers=request_headers,
                data=data,
                json=json,
                timeout=self._config.timeout,
                allow_redirects=False,
            )
        except requests.exceptions.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        logger.debug("%s %s response: status=%d", method, url, response.status_code)
        token.raise_if_cancelled()

        if not is_accepted_status(response.status_code):
            detail = extract_error_detail(response)
            message = f"HTTP {response.status_code}"
            if detail:
                message = f"{message}: {detail}"
            raise TransportError(message, status_code=response.status_code)
        return response

    def close(self) -> None:
        """Close the underlying session if this transport created it."""
        if self._owns_session:
            self._session.close()
