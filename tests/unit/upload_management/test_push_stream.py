import threading
import time

import pytest

from uploadx.exceptions import StreamClosedError
from uploadx.upload_management.push_stream import PushStream


def _drain(stream: PushStream) -> list[bytes]:
    return [block for block in stream if block]


def test_blocks_written_before_end_are_yielded_in_order():
    stream = PushStream()
    stream.write(b"ab")
    stream.write(b"")
    stream.write(bytearray(b"cd"))
    stream.end()

    assert _drain(stream) == [b"ab", b"cd"]


def test_write_after_end_raises():
    stream = PushStream()
    stream.end()

    with pytest.raises(StreamClosedError):
        stream.write(b"x")


def test_end_is_idempotent():
    stream = PushStream()
    stream.end()
    stream.end()

    assert _drain(stream) == []


def test_producer_failure_is_raised_to_the_consumer():
    stream = PushStream()
    stream.write(b"ab")
    stream.fail(RuntimeError("camera unplugged"))

    iterator = iter(stream)
    assert next(iterator) == b"ab"
    with pytest.raises(RuntimeError, match="camera unplugged"):
        next(iterator)


def test_idle_stream_yields_heartbeats():
    stream = PushStream()

    assert next(iter(stream)) == b""


def test_pause_blocks_writer_until_resume():
    stream = PushStream()
    stream.pause()
    assert stream.paused
    written = threading.Event()

    def produce():
        stream.write(b"data")
        written.set()

    producer = threading.Thread(target=produce)
    producer.start()
    assert not written.wait(0.3)

    stream.resume()
    assert written.wait(5)
    producer.join(5)
    assert not stream.paused


def test_destroy_wakes_blocked_writer():
    stream = PushStream(max_pending_blocks=1)
    stream.write(b"first")
    errors: list[BaseException] = []

    def produce():
        try:
            stream.write(b"second")
        except StreamClosedError as exc:
            errors.append(exc)

    producer = threading.Thread(target=produce)
    producer.start()
    time.sleep(0.2)
    stream.destroy(RuntimeError("upload failed"))
    producer.join(5)

    assert len(errors) == 1
    assert "upload failed" in str(errors[0])
    assert isinstance(errors[0].__cause__, RuntimeError)


def test_destroyed_stream_stops_iteration_once_drained():
    stream = PushStream()
    stream.write(b"ab")
    stream.destroy()

    assert list(stream) == [b"ab"]


def test_threaded_producer_and_consumer():
    stream = PushStream(max_pending_blocks=2)
    blocks = [bytes([i]) * 100 for i in range(50)]

    def produce():
        for block in blocks:
            stream.write(block)
        stream.end()

    producer = threading.Thread(target=produce)
    producer.start()
    received = _drain(stream)
    producer.join(5)

    assert received == blocks
