import pytest
import requests_mock

from uploadx.cancellation import CancellationToken
from uploadx.config.upload_config import RetryConfig, UploadConfig
from uploadx.exceptions import ProtocolError, TransportError, UploadCancelledError
from uploadx.models import ChunkBounds, ChunkResult
from uploadx.transport.http_transport import HttpTransport
from uploadx.upload_management.chunk_uploader import (
    ChunkUploader,
    StallGuard,
    next_position,
)


@pytest.fixture
def uploader():
    transport = HttpTransport(UploadConfig(retry=RetryConfig(retries=0)))
    yield ChunkUploader(transport)
    transport.close()


def test_send_chunk_puts_exact_range(upload_server, uploader):
    url = upload_server.add_session(total=2048)
    progress: list[float] = []

    result = uploader.send_chunk(
        url,
        b"a" * 1024,
        ChunkBounds(0, 1024),
        2048,
        CancellationToken(),
        progress.append,
    )

    assert result == ChunkResult(acked_bytes=1024, status_code=308)
    chunk = upload_server.chunk_requests[0]
    assert chunk.headers["Content-Range"] == "bytes 0-1023/2048"
    assert chunk.headers["Content-Type"] == "application/octet-stream"
    assert chunk.headers["Content-Length"] == "1024"
    assert chunk.body == b"a" * 1024
    assert progress[-1] == 0.5


def test_send_chunk_reports_zero_without_range_header(uploader):
    url = "http://uploads.test/files/sess-1"
    with requests_mock.Mocker() as m:
        m.put(url, status_code=308)

        result = uploader.send_chunk(
            url, b"abc", ChunkBounds(0, 3), 10, CancellationToken()
        )

    assert result.acked_bytes == 0


def test_send_chunk_rejects_mismatched_data(uploader):
    with pytest.raises(ValueError, match="bounds expect 4"):
        uploader.send_chunk(
            "http://uploads.test/files/sess-1",
            b"abc",
            ChunkBounds(0, 4),
            10,
            CancellationToken(),
        )


def test_send_chunk_failure_is_wrapped(upload_server, uploader):
    with pytest.raises(
        TransportError, match="^Chunk upload failed: HTTP 404: Upload not found$"
    ):
        uploader.send_chunk(
            "http://uploads.test/files/missing",
            b"abc",
            ChunkBounds(0, 3),
            3,
            CancellationToken(),
        )


def test_cancellation_while_body_is_sent(uploader):
    url = "http://uploads.test/files/sess-1"
    token = CancellationToken()

    def respond(request, context):
        request.body.read(5)
        token.cancel()
        request.body.read(5)
        return ""

    with requests_mock.Mocker() as m:
        m.put(url, status_code=308, text=respond)

        with pytest.raises(UploadCancelledError, match="Chunk upload aborted"):
            uploader.send_chunk(url, b"x" * 10, ChunkBounds(0, 10), 10, token)


@pytest.mark.parametrize(
    "bounds,result,total_size,expected",
    [
        # Server confirmed the whole chunk.
        (ChunkBounds(0, 1024), ChunkResult(1024, 308), 3000, 1024),
        # Partial write: resend from the acked offset.
        (ChunkBounds(0, 1024), ChunkResult(600, 308), 3000, 600),
        # Server already holds more than this chunk.
        (ChunkBounds(0, 1024), ChunkResult(1500, 308), 3000, 1500),
        # Ack beyond the declared size is clamped.
        (ChunkBounds(1024, 2048), ChunkResult(4096, 308), 3000, 3000),
        # Missing range on an intermediate chunk: retry the same chunk.
        (ChunkBounds(1024, 2048), ChunkResult(0, 308), 3000, 1024),
        (ChunkBounds(1024, 2048), ChunkResult(0, 200), 3000, 1024),
        # Ack below the chunk start restarts at the chunk start by default.
        (ChunkBounds(1024, 2048), ChunkResult(512, 308), 3000, 1024),
        # Missing range on a 2xx final chunk is completion.
        (ChunkBounds(2048, 3000), ChunkResult(0, 200), 3000, 3000),
        # Missing range on a 308 final chunk is not.
        (ChunkBounds(2048, 3000), ChunkResult(0, 308), 3000, 2048),
    ],
)
def test_next_position(bounds, result, total_size, expected):
    assert next_position(bounds, result, total_size) == expected


@pytest.mark.parametrize(
    "result,expected",
    [
        # Explicit ack below the chunk start moves back to it.
        (ChunkResult(512, 308), 512),
        # A missing range still retries the same chunk.
        (ChunkResult(0, 308), 1024),
        # An ack equal to the chunk start stays there.
        (ChunkResult(1024, 308), 1024),
        (ChunkResult(1800, 308), 1800),
    ],
)
def test_next_position_with_rewind(result, expected):
    bounds = ChunkBounds(1024, 2048)

    assert next_position(bounds, result, 3000, rewind=True) == expected


def test_stall_guard_raises_after_consecutive_stalls():
    guard = StallGuard(max_stalled_chunks=2)

    guard.observe(0, 0)
    with pytest.raises(ProtocolError, match="after 2 chunks at offset 0"):
        guard.observe(0, 0)


def test_stall_guard_resets_on_progress():
    guard = StallGuard(max_stalled_chunks=2)

    guard.observe(0, 0)
    guard.observe(0, 100)
    guard.observe(100, 100)
    guard.observe(100, 200)
