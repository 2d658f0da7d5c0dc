"""Shared fixtures: an in-memory resumable upload server behind requests-mock."""

from __future__ import annotations

import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import pytest
import requests_mock

from uploadx.client import UploadxClient

ENDPOINT = "http://uploads.test/files"

_CHUNK_RANGE = re.compile(r"bytes (\d+)-(\d+)/(\d+)")


@dataclass
class RecordedRequest:
    method: str
    url: str
    headers: dict[str, str]
    body: bytes = b""
    json: Any = None


@dataclass
class FakeSession:
    metadata: dict[str, Any]
    total: int
    data: bytearray = field(default_factory=bytearray)
    deleted: bool = False


class FakeUploadServer:
    """Resumable upload server storing chunk bodies in memory.

    Hooks let a test change what the server acknowledges:
    ``ack_override(start, end, stored)`` returns the byte count to report
    instead of the stored one, and ``on_chunk(request)`` runs before every
    chunk is stored.
    """

    def __init__(self) -> None:
        self.sessions: dict[str, FakeSession] = {}
        self.requests: list[RecordedRequest] = []
        self.session_count = 0
        self.preseed = 0
        self.range_on_complete = True
        self.ack_override: Callable[[int, int, int], int] | None = None
        self.on_chunk: Callable[[RecordedRequest], None] | None = None

    # Helpers used by tests

    @property
    def chunk_requests(self) -> list[RecordedRequest]:
        return [
            r
            for r in self.requests
            if r.method == "PUT"
            and not r.headers["Content-Range"].startswith("bytes */")
        ]

    @property
    def content_ranges(self) -> list[str]:
        return [r.headers["Content-Range"] for r in self.chunk_requests]

    def session_url(self, session_id: str) -> str:
        return f"{ENDPOINT}/{session_id}"

    def add_session(self, total: int, data: bytes = b"") -> str:
        """Register a session as if a previous process had started it."""
        self.session_count += 1
        session_id = f"sess-{self.session_count}"
        self.sessions[session_id] = FakeSession(
            metadata={"size": total}, total=total, data=bytearray(data)
        )
        return self.session_url(session_id)

    def data_for(self, url: str) -> bytes:
        return bytes(self.sessions[url.rsplit("/", 1)[-1]].data)

    # requests-mock callbacks

    def _record(
        self, request: Any, body: bytes = b"", json: Any = None
    ) -> RecordedRequest:
        recorded = RecordedRequest(
            method=request.method,
            url=request.url,
            headers=dict(request.headers),
            body=body,
            json=json,
        )
        self.requests.append(recorded)
        return recorded

    def _session(self, request: Any) -> FakeSession | None:
        session = self.sessions.get(request.url.rsplit("/", 1)[-1])
        if session is None or session.deleted:
            return None
        return session

    @staticmethod
    def _set_range(context: Any, stored: int) -> None:
        if stored > 0:
            context.headers["Range"] = f"bytes=0-{stored - 1}"

    def create(self, request: Any, context: Any) -> str:
        payload = request.json()
        self._record(request, json=payload)
        self.session_count += 1
        session_id = f"sess-{self.session_count}"
        total = int(request.headers["X-Upload-Content-Length"])
        self.sessions[session_id] = FakeSession(
            metadata=payload, total=total, data=bytearray(self.preseed)
        )
        context.status_code = 201
        context.headers["Location"] = f"/files/{session_id}"
        self._set_range(context, self.preseed)
        return ""

    def put(self, request: Any, context: Any) -> str:
        body = request.body
        if hasattr(body, "read"):
            body = body.read()
        recorded = self._record(request, body=body or b"")
        session = self._session(request)
        if session is None:
            context.status_code = 404
            return '{"detail": "Upload not found"}'

        content_range = request.headers["Content-Range"]
        if content_range.startswith("bytes */"):
            stored = len(session.data)
            context.status_code = 200 if stored >= session.total else 308
            self._set_range(context, stored)
            return ""

        if self.on_chunk is not None:
            self.on_chunk(recorded)

        match = _CHUNK_RANGE.fullmatch(content_range)
        assert match is not None, content_range
        start, last = int(match.group(1)), int(match.group(2))
        if start <= len(session.data):
            session.data[start:] = recorded.body
        stored = len(session.data)
        acked = stored
        if self.ack_override is not None:
            acked = self.ack_override(start, last + 1, stored)

        if stored >= session.total:
            context.status_code = 200
            if self.range_on_complete:
                self._set_range(context, acked)
        else:
            context.status_code = 308
            self._set_range(context, acked)
        return ""

    def patch(self, request: Any, context: Any) -> str:
        payload = request.json()
        self._record(request, json=payload)
        session = self._session(request)
        if session is None:
            context.status_code = 404
            return ""
        session.metadata.update(payload)
        context.status_code = 200
        return ""

    def delete(self, request: Any, context: Any) -> str:
        self._record(request)
        session = self._session(request)
        if session is None:
            context.status_code = 404
            return ""
        session.deleted = True
        context.status_code = 204
        return ""


@pytest.fixture
def upload_server():
    """Fixture serving a ``FakeUploadServer`` at ``ENDPOINT``."""
    server = FakeUploadServer()
    session_pattern = re.compile(re.escape(ENDPOINT) + r"/[^/]+$")
    with requests_mock.Mocker() as m:
        m.post(ENDPOINT, text=server.create)
        m.put(session_pattern, text=server.put)
        m.patch(session_pattern, text=server.patch)
        m.delete(session_pattern, text=server.delete)
        yield server


@pytest.fixture
def client(monkeypatch):
    """Client with a small chunk size and no environment influence."""
    for name in (
        "UPLOADX_CONFIG",
        "UPLOADX_CHUNK_SIZE",
        "UPLOADX_TIMEOUT",
        "UPLOADX_RETRIES",
        "UPLOADX_MAX_STALLED_CHUNKS",
    ):
        monkeypatch.delenv(name, raising=False)
    with UploadxClient({"chunk_size": 1024}) as upload_client:
        yield upload_client
