"""
Incremental reading of uploaded export files.

`ChunkReader` pulls fixed-size byte chunks from a binary stream so that a
multi-hundred-MB export.xml never sits in memory as one string. It is
also the single place where progress is reported and cancellation is
honoured:

- progress: `round(processed / total * 100)`, at most once per
  `interval_ms`, plus a final 100 once the stream is exhausted;
- cancellation: a `threading.Event` checked before every chunk;
- cooperative yield: on the same throttle the reader sleeps for
  `yield_seconds` so request threads serving status polls get scheduled.

`ChunkReader` also offers `read(size)` so it can be handed to libraries
that expect a file object (ijson).
"""

import codecs
import logging
import os
import threading
import time
from typing import BinaryIO, Callable, Iterator, Optional

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int], None]


class ImportCancelled(Exception):
    """Raised when the caller cancels an import while it is being read."""


def stream_size(stream: BinaryIO) -> Optional[int]:
    """Best-effort total size of `stream` in bytes; None if unknown."""
    if getattr(stream, "seekable", lambda: False)():
        pos = stream.tell()
        stream.seek(0, os.SEEK_END)
        size = stream.tell()
        stream.seek(pos)
        return size - pos
    try:
        return os.fstat(stream.fileno()).st_size
    except (AttributeError, OSError, ValueError):
        return None


class ProgressThrottle:
    """Forwards byte counts to a percent callback no more often than `interval_ms`."""

    def __init__(
        self,
        callback: Optional[ProgressCallback],
        total_bytes: Optional[int],
        interval_ms: int = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.callback = callback
        self.total_bytes = total_bytes
        self.interval = interval_ms / 1000.0
        self.clock = clock
        self._last_emit: Optional[float] = None
        self.last_percent: Optional[int] = None

    def due(self) -> bool:
        now = self.clock()
        if self._last_emit is not None and now - self._last_emit < self.interval:
            return False
        self._last_emit = now
        return True

    def update(self, processed: int) -> None:
        if self.callback is None or not self.total_bytes:
            return
        if not self.due():
            return
        percent = min(100, round(processed / self.total_bytes * 100))
        self._emit(percent)

    def finish(self) -> None:
        if self.callback is not None:
            self._emit(100)

    def _emit(self, percent: int) -> None:
        self.last_percent = percent
        self.callback(percent)


class ChunkReader:
    """Iterates a binary stream chunk by chunk with progress and cancellation."""

    def __init__(
        self,
        stream: BinaryIO,
        total_bytes: Optional[int] = None,
        chunk_size: int = 1024 * 1024,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
        interval_ms: int = 300,
        yield_seconds: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self.stream = stream
        self.total_bytes = total_bytes
        self.chunk_size = chunk_size
        self.cancel = cancel
        self.yield_seconds = yield_seconds
        self.processed = 0
        self.finished = False
        self.progress = ProgressThrottle(on_progress, total_bytes, interval_ms, clock)
        self._yield_throttle = ProgressThrottle(None, None, interval_ms, clock)

    def _check_cancel(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            raise ImportCancelled("Import cancelled")

    def read(self, size: int = -1) -> bytes:
        """File-object style read; reports progress like iteration does."""
        if size == 0:
            return b""
        self._check_cancel()
        if size is None or size < 0:
            size = self.chunk_size
        data = self.stream.read(size)
        if not data:
            self.finish()
            return b""
        self.processed += len(data)
        self.progress.update(self.processed)
        if self._yield_throttle.due():
            time.sleep(self.yield_seconds)
        return data

    def __iter__(self) -> Iterator[bytes]:
        while True:
            data = self.read(self.chunk_size)
            if not data:
                return
            yield data

    def finish(self) -> None:
        """Mark the read complete and emit the final 100%."""
        if self.finished:
            return
        self.finished = True
        logger.debug("Read %d bytes", self.processed)
        self.progress.finish()

    def read_text(self, encoding: str = "utf-8") -> str:
        """Read the remaining stream as one string (small files only)."""
        return b"".join(self).decode(encoding, errors="replace")

    def iter_lines(self, encoding: str = "utf-8") -> Iterator[str]:
        """Decode chunks incrementally and yield complete lines without newlines."""
        decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
        pending = ""
        for data in self:
            pending += decoder.decode(data)
            lines = pending.split("\n")
            pending = lines.pop()
            for line in lines:
                yield line.rstrip("\r")
        pending += decoder.decode(b"", final=True)
        if pending:
            yield pending.rstrip("\r")
