"""Shared test fixtures for skstash."""

from __future__ import annotations

import itertools
import os
import sys
from pathlib import Path
from typing import Iterable, Iterator

import pytest

from skstash.crypto import Cipher
from skstash.errors import DecryptionFailure
from skstash.models import StashConfig
from skstash.stash import Stash
from skstash.transport import LocalTransport


class XorCipher(Cipher):
    """Reversible test cipher with a random nonce per stream.

    Like real public-key encryption, two encryptions of the same
    plaintext give different bytes.
    """

    MAGIC = b"XOR1"
    HEADER = len(MAGIC) + 8

    @classmethod
    def from_config(cls, config: StashConfig) -> "XorCipher":
        return cls()

    def encrypt(self, chunks: Iterable[bytes]) -> Iterator[bytes]:
        nonce = os.urandom(8)
        yield self.MAGIC + nonce
        yield from self._xor(chunks, nonce)

    def decrypt(self, chunks: Iterable[bytes]) -> Iterator[bytes]:
        it = iter(chunks)
        head = b""
        for chunk in it:
            head += chunk
            if len(head) >= self.HEADER:
                break
        if len(head) < self.HEADER or not head.startswith(self.MAGIC):
            raise DecryptionFailure("not an XOR1 stream")
        nonce = head[len(self.MAGIC):self.HEADER]
        yield from self._xor(itertools.chain([head[self.HEADER:]], it), nonce)

    @staticmethod
    def _xor(chunks: Iterable[bytes], key: bytes) -> Iterator[bytes]:
        offset = 0
        for chunk in chunks:
            if not chunk:
                continue
            yield bytes(b ^ key[(offset + i) % len(key)] for i, b in enumerate(chunk))
            offset += len(chunk)


@pytest.fixture
def remote_root(tmp_path: Path) -> Path:
    """Directory standing in for the store root on the remote host."""
    root = tmp_path / "remote"
    root.mkdir()
    return root


@pytest.fixture
def config(remote_root: Path) -> StashConfig:
    """Config for a local store driven by this interpreter."""
    return StashConfig(
        remote_root=str(remote_root),
        recipient="test@skstash.local",
        origin="testhost",
        remote_python=sys.executable,
        chunk_size=1024,
    )


@pytest.fixture
def stash(config: StashConfig) -> Stash:
    """An initialized stash on a local transport with the test cipher."""
    s = Stash(config, transport=LocalTransport(), cipher=XorCipher())
    s.init()
    return s


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    """Directory holding files to upload."""
    d = tmp_path / "work"
    d.mkdir()
    return d


@pytest.fixture
def cipher_cls() -> type:
    """The test cipher class, for patching in place of GPG."""
    return XorCipher
