"""
Hasher -- identity keys and integrity checksums.

The identity hash is computed over plaintext and is permanent: it is the
blob's filename and the catalog's primary key. The integrity checksum is
computed over the transformed (encrypted, compressed) stream on both ends
of one transfer and then thrown away.
"""

from __future__ import annotations

import hashlib
import re
from pathlib import Path
from typing import Iterable, Iterator

from .errors import InvalidHash, MissingFile, SourceChanged

INTEGRITY_ALGORITHM = "sha256"

_HASH_RE = re.compile(r"^[0-9a-f]{16,128}$")


def identity_hash(
    path: Path,
    algorithm: str = "sha256",
    chunk_size: int = 64 * 1024,
) -> str:
    """Compute the identity hash of a file's plaintext.

    Args:
        path: File to hash.
        algorithm: Any ``hashlib`` algorithm name.
        chunk_size: Read size in bytes.

    Returns:
        str: Lowercase hex digest.

    Raises:
        MissingFile: If the file does not exist.
        OSError: If the file cannot be read.
    """
    h = hashlib.new(algorithm)
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(chunk_size), b""):
                h.update(chunk)
    except FileNotFoundError as exc:
        raise MissingFile(f"File not found: {path}") from exc
    return h.hexdigest()


def verify_identity(
    chunks: Iterable[bytes],
    expected: str,
    algorithm: str = "sha256",
    label: str = "source",
) -> Iterator[bytes]:
    """Pass ``chunks`` through, checking they still hash to ``expected``.

    The check runs when the stream is exhausted, so a consumer never sees
    the end of a stream whose content drifted from its identity hash.

    Raises:
        SourceChanged: If the bytes seen do not hash to ``expected``.
    """
    h = hashlib.new(algorithm)
    for chunk in chunks:
        h.update(chunk)
        yield chunk
    actual = h.hexdigest()
    if actual != expected:
        raise SourceChanged(label, expected, actual)


class IntegrityChecksum:
    """Stream sink that hashes the transformed bytes of one transfer."""

    def __init__(self, algorithm: str = INTEGRITY_ALGORITHM):
        self._hash = hashlib.new(algorithm)
        self.bytes_seen = 0

    def write(self, chunk: bytes) -> None:
        self._hash.update(chunk)
        self.bytes_seen += len(chunk)

    def close(self) -> None:
        pass

    def hexdigest(self) -> str:
        return self._hash.hexdigest()


def validate_hash(value: str) -> str:
    """Reject anything that is not a plain lowercase hex digest.

    Hashes end up in remote paths and queries, so user input is never
    trusted as-is.

    Raises:
        InvalidHash: If ``value`` is not a hex digest.
    """
    if not isinstance(value, str) or not _HASH_RE.match(value):
        raise InvalidHash(f"Not a valid content hash: {value!r}")
    return value


def human_size(num_bytes: int) -> str:
    """Format a byte count the way ``du -h`` does (``512B``, ``1.5K``, ``12M``)."""
    if num_bytes < 1024:
        return f"{num_bytes}B"
    size = float(num_bytes)
    for unit in ("K", "M", "G", "T"):
        size /= 1024
        if size < 1024 or unit == "T":
            break
    return f"{size:.1f}{unit}" if size < 10 else f"{size:.0f}{unit}"
