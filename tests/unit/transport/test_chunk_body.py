import io

import pytest

from uploadx.cancellation import CancellationToken
from uploadx.exceptions import UploadCancelledError
from uploadx.transport.chunk_body import ChunkBody


def test_reads_in_blocks_and_reports_overall_progress():
    progress: list[float] = []
    body = ChunkBody(
        b"x" * 100, chunk_start=100, total_size=400, on_progress=progress.append
    )

    assert len(body) == 100
    assert body.read(40) == b"x" * 40
    assert body.read() == b"x" * 60
    assert body.read() == b""

    assert progress == [140 / 400, 200 / 400]


def test_progress_is_capped_at_one():
    progress: list[float] = []
    body = ChunkBody(b"abc", chunk_start=0, total_size=2, on_progress=progress.append)

    body.read()

    assert progress == [1.0]


def test_seek_rewinds_for_a_resend():
    body = ChunkBody(b"abcdef", chunk_start=0, total_size=6)
    body.read(4)

    assert body.tell() == 4
    assert body.seek(0) == 0
    assert body.read() == b"abcdef"
    assert body.seek(-2, io.SEEK_END) == 4
    assert body.seek(1, io.SEEK_CUR) == 5
    assert body.seek(100) == 6


def test_invalid_whence():
    with pytest.raises(ValueError):
        ChunkBody(b"a", 0, 1).seek(0, 7)


def test_read_raises_once_cancelled():
    token = CancellationToken()
    body = ChunkBody(b"abcdef", chunk_start=0, total_size=6, token=token)
    assert body.read(2) == b"ab"

    token.cancel()

    with pytest.raises(UploadCancelledError, match="Chunk upload aborted"):
        body.read(2)
