"""
Blob Store -- content-addressed objects on the remote.

    <root>/store/<hash>

One object per identity hash, holding the encrypted and compressed
bytes. Blobs are written once: a put lands in ``<hash>.part`` and is
renamed into place, and a put for a hash that already exists is refused.
"""

from __future__ import annotations

import logging
from typing import Iterator

from .errors import AlreadyStored, BlobNotFound, TransportFailure
from .hashing import validate_hash
from .transport import RemoteProcess, Transport

logger = logging.getLogger("skstash.blobstore")

EXISTS_EXIT = 17

_PUT_SCRIPT = f"""set -e
[ ! -e "$1" ] || {{ echo "blob already stored: $1" >&2; exit {EXISTS_EXIT}; }}
mkdir -p "$(dirname "$1")"
cat > "$1.part"
mv "$1.part" "$1"
"""

_CHECKSUM_SCRIPT = """if command -v sha256sum >/dev/null 2>&1; then
  sha256sum "$1"
else
  shasum -a 256 "$1"
fi
"""


class BlobWriter:
    """Stream sink that writes one blob to the remote store."""

    def __init__(self, store: "BlobStore", hash: str, proc: RemoteProcess):
        self._store = store
        self._hash = hash
        self._proc = proc
        self.bytes_sent = 0

    def write(self, chunk: bytes) -> None:
        try:
            self._proc.stdin.write(chunk)
        except BrokenPipeError:
            self._finish()
            raise TransportFailure(
                " ".join(self._proc.argv), -1, "remote closed the stream early"
            )
        self.bytes_sent += len(chunk)

    def close(self) -> None:
        self._finish()
        logger.debug("Blob %s written (%d bytes)", self._hash, self.bytes_sent)

    def abort(self) -> None:
        """Kill the upload and remove its partial file."""
        self._proc.kill()
        try:
            self._store.transport.run(["rm", "-f", self._store.path(self._hash) + ".part"])
        except TransportFailure as exc:
            logger.warning("Could not remove partial blob %s: %s", self._hash, exc)

    def _finish(self) -> None:
        try:
            self._proc.finish()
        except TransportFailure as exc:
            if exc.returncode == EXISTS_EXIT:
                raise AlreadyStored(f"Blob already stored: {self._hash}") from exc
            raise


class BlobStore:
    """Remote content-addressed object storage keyed by identity hash.

    Args:
        transport: Remote command runner.
        root: Remote root directory.
    """

    def __init__(self, transport: Transport, root: str):
        self.transport = transport
        self.root = root.rstrip("/") or "/"
        self.store_dir = f"{self.root.rstrip('/')}/store"

    def path(self, hash: str) -> str:
        """Remote path of the blob for ``hash``."""
        return f"{self.store_dir}/{validate_hash(hash)}"

    def init(self) -> None:
        """Create the store directory if it is missing."""
        self.transport.run(["mkdir", "-p", self.store_dir])

    def exists(self, hash: str) -> bool:
        """Cheap existence check. Never reads the blob."""
        result = self.transport.run(["test", "-f", self.path(hash)], ok_codes=(0, 1))
        return result.returncode == 0

    def writer(self, hash: str) -> BlobWriter:
        """Open a write-once upload stream for ``hash``.

        The blob becomes visible only when the writer is closed. Closing
        raises ``AlreadyStored`` if another blob won the race.
        """
        proc = self.transport.open(
            ["sh", "-c", _PUT_SCRIPT, "skstash-put", self.path(hash)], write=True
        )
        return BlobWriter(self, hash, proc)

    def checksum(self, hash: str) -> str:
        """SHA-256 of the stored bytes, computed on the remote."""
        result = self.transport.run(
            ["sh", "-c", _CHECKSUM_SCRIPT, "skstash-sum", self.path(hash)]
        )
        fields = result.stdout.decode("utf-8", "replace").split()
        if not fields:
            raise TransportFailure("sha256sum", 0, "empty checksum output")
        return fields[0].lower()

    def read(self, hash: str, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        """Stream a blob's bytes.

        Raises:
            BlobNotFound: If no blob is stored for ``hash``.
        """
        if not self.exists(hash):
            raise BlobNotFound(f"No blob stored for {hash}")
        return self._stream(hash, chunk_size)

    def _stream(self, hash: str, chunk_size: int) -> Iterator[bytes]:
        proc = self.transport.open(["cat", self.path(hash)], write=False)
        completed = False
        try:
            for chunk in iter(lambda: proc.stdout.read(chunk_size), b""):
                yield chunk
            completed = True
        finally:
            if not completed:
                proc.kill()
        proc.finish()

    def delete(self, hash: str) -> bool:
        """Remove a blob.

        Returns:
            bool: True if a blob was removed, False if none existed.
        """
        existed = self.exists(hash)
        if existed:
            self.transport.run(["rm", "-f", self.path(hash)])
            logger.info("Blob deleted: %s", hash)
        return existed
