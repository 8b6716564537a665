from __future__ import annotations

import io
import itertools
import threading

import pytest

from source_reader import ChunkReader, ImportCancelled, ProgressThrottle, stream_size


def _reader(data: bytes, **kwargs) -> ChunkReader:
    return ChunkReader(io.BytesIO(data), **kwargs)


def test_chunks_cover_the_stream_in_order() -> None:
    data = bytes(range(256)) * 4
    reader = _reader(data, chunk_size=100)

    chunks = list(reader)
    assert b"".join(chunks) == data
    assert max(len(c) for c in chunks) == 100
    assert reader.processed == len(data)
    assert reader.finished


def test_progress_is_throttled_and_ends_at_100() -> None:
    seen = []
    reader = _reader(b"x" * 100, total_bytes=100, chunk_size=10, on_progress=seen.append, clock=lambda: 0.0)

    list(reader)
    assert seen == [10, 100]


def test_progress_reports_every_chunk_when_interval_has_passed() -> None:
    seen = []
    ticks = itertools.count(0.0, 1.0)
    reader = _reader(
        b"x" * 50, total_bytes=50, chunk_size=10, on_progress=seen.append, clock=lambda: next(ticks)
    )

    list(reader)
    assert seen == [20, 40, 60, 80, 100, 100]


def test_unknown_size_only_reports_completion() -> None:
    seen = []
    list(_reader(b"abc", total_bytes=None, on_progress=seen.append))

    assert seen == [100]


def test_finish_is_reported_once() -> None:
    seen = []
    reader = _reader(b"", total_bytes=0, on_progress=seen.append)
    list(reader)
    reader.finish()

    assert seen == [100]


def test_cancel_is_checked_before_each_chunk() -> None:
    cancel = threading.Event()
    reader = _reader(b"x" * 30, chunk_size=10, cancel=cancel)
    it = iter(reader)

    assert next(it) == b"x" * 10
    cancel.set()
    with pytest.raises(ImportCancelled):
        next(it)


def test_read_failure_propagates() -> None:
    class Broken(io.RawIOBase):
        def readable(self):
            return True

        def read(self, size=-1):
            raise OSError("device went away")

    with pytest.raises(OSError, match="device went away"):
        list(ChunkReader(Broken()))


def test_iter_lines_handles_split_multibyte_characters() -> None:
    data = "header\nnaïve,ü,☾\r\nlast".encode("utf-8")

    lines = list(_reader(data, chunk_size=1).iter_lines())
    assert lines == ["header", "naïve,ü,☾", "last"]


def test_read_text_small_file() -> None:
    assert _reader("zzz ☾".encode("utf-8"), chunk_size=2).read_text() == "zzz ☾"


def test_read_with_file_object_semantics() -> None:
    reader = _reader(b"abcdef", chunk_size=4)

    assert reader.read(2) == b"ab"
    assert reader.read() == b"cdef"
    assert reader.read() == b""


def test_stream_size_from_current_position() -> None:
    stream = io.BytesIO(b"0123456789")
    stream.read(4)

    assert stream_size(stream) == 6
    assert stream.tell() == 4


def test_throttle_without_callback_is_silent() -> None:
    throttle = ProgressThrottle(None, 100)
    throttle.update(50)
    throttle.finish()

    assert throttle.last_percent is None


def test_chunk_size_must_be_positive() -> None:
    with pytest.raises(ValueError):
        ChunkReader(io.BytesIO(b""), chunk_size=0)
