"""
Byte stream plumbing -- chunked reads, gzip framing, and the tee.

The upload transform is a chain of generators (read -> encrypt ->
compress) whose output is fanned out by ``StreamTee`` to several sinks
at once. Each sink drains its own bounded queue on its own thread, so
the chain never runs further ahead than the slowest sink allows.
"""

from __future__ import annotations

import logging
import queue
import threading
import zlib
from pathlib import Path
from typing import Iterable, Iterator, Optional, Protocol, Sequence

from .errors import CorruptData

logger = logging.getLogger("skstash.streams")

GZIP_WBITS = 16 + zlib.MAX_WBITS

_EOF = object()
_ABORT = object()


class Sink(Protocol):
    """Consumer end of a stream."""

    def write(self, chunk: bytes) -> None: ...

    def close(self) -> None: ...


def read_chunks(path: Path, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
    """Yield a file's bytes in ``chunk_size`` pieces."""
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            yield chunk


def gzip_compress(chunks: Iterable[bytes], level: int = 6) -> Iterator[bytes]:
    """Compress a byte stream into a single gzip member."""
    z = zlib.compressobj(level, zlib.DEFLATED, GZIP_WBITS)
    for chunk in chunks:
        out = z.compress(chunk)
        if out:
            yield out
    yield z.flush()


def gzip_decompress(chunks: Iterable[bytes]) -> Iterator[bytes]:
    """Decompress a gzip byte stream.

    Raises:
        CorruptData: If the stream is not gzip, is truncated, or carries
            trailing bytes after the gzip member.
    """
    z = zlib.decompressobj(GZIP_WBITS)
    for chunk in chunks:
        try:
            out = z.decompress(chunk)
        except zlib.error as exc:
            raise CorruptData(f"Blob is not a valid gzip stream: {exc}") from exc
        if out:
            yield out
        if z.unused_data:
            raise CorruptData("Unexpected data after end of gzip stream")
    tail = z.flush()
    if tail:
        yield tail
    if not z.eof:
        raise CorruptData("Blob gzip stream is truncated")


class StreamTee:
    """One reader, several consumers, synchronized completion.

    ``run`` pulls each chunk from the source exactly once and hands it to
    every sink. When the source is exhausted every sink is closed; when
    the source or any sink fails, the other sinks are aborted (``abort``
    if they have one) instead of closed, and the first error is raised.

    Args:
        sinks: Consumers of the stream.
        max_pending: Chunks a sink may fall behind before the reader
            blocks.
    """

    def __init__(self, sinks: Sequence[Sink], max_pending: int = 8):
        if not sinks:
            raise ValueError("StreamTee needs at least one sink")
        self._sinks = list(sinks)
        self._max_pending = max_pending

    def run(self, source: Iterable[bytes]) -> int:
        """Pump ``source`` through every sink.

        Returns:
            int: Number of bytes delivered to each sink.
        """
        queues = [queue.Queue(maxsize=self._max_pending) for _ in self._sinks]
        errors: list[Optional[BaseException]] = [None] * len(self._sinks)
        finished = threading.Barrier(len(self._sinks))
        threads = [
            threading.Thread(
                target=self._drain,
                args=(i, sink, queues[i], errors, finished),
                name=f"skstash-tee-{i}",
                daemon=True,
            )
            for i, sink in enumerate(self._sinks)
        ]
        for t in threads:
            t.start()

        total = 0
        end = _ABORT
        source_error: Optional[BaseException] = None
        try:
            for chunk in source:
                if any(errors):
                    break
                for q in queues:
                    q.put(chunk)
                total += len(chunk)
            else:
                end = _EOF
        except BaseException as exc:
            source_error = exc
            raise
        finally:
            if end is _ABORT:
                close = getattr(source, "close", None)
                if close is not None:
                    close()
            for q in queues:
                q.put(end)
            for t in threads:
                t.join()
            if source_error is None:
                for exc in errors:
                    if exc is not None:
                        raise exc
            else:
                for exc in errors:
                    if exc is not None:
                        logger.debug("Sink error after source failure: %s", exc)
        return total

    @staticmethod
    def _drain(
        index: int,
        sink: Sink,
        q: queue.Queue,
        errors: list[Optional[BaseException]],
        finished: threading.Barrier,
    ) -> None:
        failed = False
        while True:
            item = q.get()
            if item is _EOF or item is _ABORT:
                break
            if failed:
                continue
            try:
                sink.write(item)
            except BaseException as exc:
                errors[index] = exc
                failed = True

        # Every sink has consumed its queue before any of them commits.
        finished.wait()
        try:
            if item is _EOF and not failed and not any(errors):
                sink.close()
            else:
                abort = getattr(sink, "abort", None)
                if abort is not None:
                    abort()
        except BaseException as exc:
            if errors[index] is None:
                errors[index] = exc
