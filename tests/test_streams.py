"""Tests for gzip framing and the stream tee."""

from __future__ import annotations

import gzip
import threading
import time

import pytest

from skstash.errors import CorruptData
from skstash.streams import StreamTee, gzip_compress, gzip_decompress, read_chunks


class Collector:
    """Sink that keeps everything it is given."""

    def __init__(self):
        self.chunks: list[bytes] = []
        self.closed = False
        self.aborted = False

    def write(self, chunk: bytes) -> None:
        self.chunks.append(chunk)

    def close(self) -> None:
        self.closed = True

    def abort(self) -> None:
        self.aborted = True

    @property
    def data(self) -> bytes:
        return b"".join(self.chunks)


class Exploding(Collector):
    """Sink that fails on its second write."""

    def write(self, chunk: bytes) -> None:
        if self.chunks:
            raise OSError("disk on fire")
        super().write(chunk)


class TestReadChunks:
    def test_splits_file(self, tmp_path):
        f = tmp_path / "f"
        f.write_bytes(b"x" * 2500)
        chunks = list(read_chunks(f, 1000))
        assert [len(c) for c in chunks] == [1000, 1000, 500]


class TestGzip:
    """gzip_compress / gzip_decompress."""

    def test_output_is_standard_gzip(self):
        data = b"hello world " * 1000
        compressed = b"".join(gzip_compress([data[:100], data[100:]]))
        assert compressed[:2] == b"\x1f\x8b"
        assert gzip.decompress(compressed) == data

    def test_decompress_across_chunk_boundaries(self):
        data = bytes(range(256)) * 100
        compressed = gzip.compress(data)
        pieces = [compressed[i:i + 7] for i in range(0, len(compressed), 7)]
        assert b"".join(gzip_decompress(pieces)) == data

    def test_empty_stream(self):
        compressed = b"".join(gzip_compress([]))
        assert b"".join(gzip_decompress([compressed])) == b""

    def test_garbage_raises_corrupt(self):
        with pytest.raises(CorruptData):
            list(gzip_decompress([b"this is not gzip at all"]))

    def test_truncated_raises_corrupt(self):
        compressed = gzip.compress(b"hello" * 100)
        with pytest.raises(CorruptData):
            list(gzip_decompress([compressed[:-10]]))

    def test_no_input_raises_corrupt(self):
        with pytest.raises(CorruptData):
            list(gzip_decompress([]))

    def test_trailing_bytes_raise_corrupt(self):
        with pytest.raises(CorruptData):
            list(gzip_decompress([gzip.compress(b"hello") + b"junk"]))


class TestStreamTee:
    """One reader, several consumers."""

    def test_every_sink_sees_every_byte(self):
        a, b = Collector(), Collector()
        source = [b"one", b"two", b"three"]
        total = StreamTee([a, b]).run(source)

        assert total == 11
        assert a.data == b.data == b"onetwothree"
        assert a.closed and b.closed
        assert not a.aborted and not b.aborted

    def test_source_read_once(self):
        pulled = []

        def source():
            for i in range(5):
                pulled.append(i)
                yield bytes([i])

        a, b = Collector(), Collector()
        StreamTee([a, b]).run(source())
        assert pulled == [0, 1, 2, 3, 4]

    def test_sink_failure_aborts_others(self):
        good, bad = Collector(), Exploding()
        with pytest.raises(OSError, match="disk on fire"):
            StreamTee([good, bad]).run(iter([b"a", b"b", b"c", b"d"]))
        assert good.aborted
        assert not good.closed
        assert not bad.closed

    def test_source_failure_aborts_sinks(self):
        def source():
            yield b"a"
            raise RuntimeError("encryptor crashed")

        a, b = Collector(), Collector()
        with pytest.raises(RuntimeError, match="encryptor crashed"):
            StreamTee([a, b]).run(source())
        assert a.aborted and b.aborted
        assert not a.closed and not b.closed

    def test_back_pressure_from_slow_sink(self):
        gate = threading.Event()
        produced = []

        class Slow(Collector):
            def write(self, chunk: bytes) -> None:
                gate.wait(timeout=10)
                super().write(chunk)

        def source():
            for i in range(50):
                produced.append(i)
                yield b"x"

        fast, slow = Collector(), Slow()
        tee = StreamTee([fast, slow], max_pending=2)
        runner = threading.Thread(target=tee.run, args=(source(),))
        runner.start()
        time.sleep(0.3)

        # One chunk held by the slow sink, two queued, one blocked in put.
        assert len(produced) <= 4
        gate.set()
        runner.join(timeout=10)
        assert len(produced) == 50
        assert slow.data == fast.data == b"x" * 50

    def test_requires_a_sink(self):
        with pytest.raises(ValueError):
            StreamTee([])
