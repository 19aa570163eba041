"""
Transfer and retrieval pipelines.

    upload:  hash -> exists? -> read | rehash | encrypt | gzip -+-> remote blob
                                                                +-> local sha256
             remote sha256 == local sha256 ? -> catalog insert

    fetch:   remote blob -> gunzip -> decrypt -> local file

The transformed stream is produced once and fanned out, so the
checksum covers exactly the bytes that were sent. Encryption is not
deterministic, which rules out re-running the transform to compare.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from .blobstore import BlobStore
from .catalog import RemoteCatalog
from .crypto import Cipher
from .errors import (
    AlreadyStored,
    DuplicateKey,
    IntegrityFailure,
    MissingFile,
    StashError,
    UnsupportedInput,
)
from .hashing import IntegrityChecksum, human_size, identity_hash, verify_identity
from .models import DEFAULT_CHUNK_SIZE, CatalogEntry, Outcome, UploadResult
from .streams import StreamTee, gzip_compress, gzip_decompress, read_chunks

logger = logging.getLogger("skstash.pipeline")


class TransferPipeline:
    """Uploads one file: dedup check, verified transfer, catalog commit.

    Args:
        blobs: Remote blob store.
        catalog: Remote catalog.
        cipher: Stream cipher for the plaintext.
        origin: Name of this machine, recorded as provenance.
        identity_algorithm: ``hashlib`` algorithm for identity hashes.
        compress_level: gzip level, 1..9.
        chunk_size: Read size for the source file.
    """

    def __init__(
        self,
        blobs: BlobStore,
        catalog: RemoteCatalog,
        cipher: Cipher,
        origin: str,
        identity_algorithm: str = "sha256",
        compress_level: int = 6,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.blobs = blobs
        self.catalog = catalog
        self.cipher = cipher
        self.origin = origin
        self.identity_algorithm = identity_algorithm
        self.compress_level = compress_level
        self.chunk_size = chunk_size

    def upload(self, path: Path) -> UploadResult:
        """Upload a single file.

        Args:
            path: Local file to store.

        Returns:
            UploadResult with outcome UPLOADED or SKIPPED.

        Raises:
            MissingFile: If ``path`` does not exist.
            UnsupportedInput: If ``path`` is not a regular file.
            SourceChanged: If the file changed between hashing and sending.
            IntegrityFailure: If the two checksums disagree.
            TransportFailure: If a remote command fails.
        """
        path = Path(path).expanduser()
        if not path.exists():
            raise MissingFile(f"File not found: {path}")
        if not path.is_file():
            raise UnsupportedInput(f"Not a regular file, skipping: {path}")

        hash = identity_hash(path, self.identity_algorithm, self.chunk_size)
        size = path.stat().st_size
        entry = CatalogEntry(
            hash=hash,
            origin=self.origin,
            path=str(path.resolve().parent),
            file=path.name,
            size=human_size(size),
        )

        if self.blobs.exists(hash):
            if self.catalog.get(hash) is not None:
                logger.info("Skipped %s: already stored as %s", path.name, hash)
                return UploadResult(
                    path=str(path), outcome=Outcome.SKIPPED, hash=hash,
                    message="already stored",
                )
            # No row means the blob was never verified; send a fresh copy.
            logger.warning("Blob %s has no catalog entry; replacing it", hash)
            self.blobs.delete(hash)

        try:
            sent = self.transfer(path, hash)
        except AlreadyStored:
            logger.info("Skipped %s: stored concurrently as %s", path.name, hash)
            return UploadResult(
                path=str(path), outcome=Outcome.SKIPPED, hash=hash,
                message="already stored",
            )

        try:
            self.catalog.insert(entry)
        except DuplicateKey:
            logger.warning("Catalog already indexed %s; keeping existing entry", hash)

        logger.info(
            "Uploaded %s as %s (%s -> %d bytes)",
            path.name, hash, entry.size, sent,
        )
        return UploadResult(
            path=str(path), outcome=Outcome.UPLOADED, hash=hash,
            bytes_read=size, bytes_sent=sent,
        )

    def transfer(self, path: Path, hash: str) -> int:
        """Encrypt, compress and send a file, then verify both ends agree.

        Returns:
            int: Bytes written to the remote blob.

        Raises:
            SourceChanged: If the file no longer hashes to ``hash`` by the
                time it has been read. Nothing is committed.
            IntegrityFailure: If the remote checksum differs from the
                local one. The blob is deleted first.
            TransportFailure: If the remote checksum cannot be taken. The
                blob is deleted first.
        """
        writer = self.blobs.writer(hash)
        checksum = IntegrityChecksum()
        plaintext = verify_identity(
            read_chunks(path, self.chunk_size), hash,
            self.identity_algorithm, label=str(path),
        )
        transformed = gzip_compress(self.cipher.encrypt(plaintext), self.compress_level)
        StreamTee([writer, checksum]).run(transformed)

        # The blob is committed from here on; it must not outlive a failed check.
        local = checksum.hexdigest()
        try:
            remote = self.blobs.checksum(hash)
        except StashError:
            self._discard(hash)
            raise
        if local != remote:
            logger.error(
                "Integrity failure for %s: local %s, remote %s", hash, local, remote
            )
            self._discard(hash)
            raise IntegrityFailure(hash, local, remote)

        logger.debug("Checksum verified for %s: %s", hash, local)
        return writer.bytes_sent

    def _discard(self, hash: str) -> None:
        """Best-effort removal of an unverified blob."""
        try:
            self.blobs.delete(hash)
        except StashError as exc:
            logger.warning("Could not remove unverified blob %s: %s", hash, exc)


class RetrievalPipeline:
    """Streams a blob back to plaintext on local disk."""

    def __init__(self, blobs: BlobStore, cipher: Cipher, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.blobs = blobs
        self.cipher = cipher
        self.chunk_size = chunk_size

    def retrieve(self, hash: str, target: Path, force: bool = False) -> Path:
        """Fetch, decompress and decrypt a blob into ``target``.

        The plaintext lands in a temporary file next to ``target`` and is
        renamed into place only when the whole stream decoded cleanly.

        Raises:
            FileExistsError: If ``target`` exists and ``force`` is False.
            BlobNotFound: If no blob is stored for ``hash``.
            CorruptData: If the blob is not a valid gzip stream.
            DecryptionFailure: If the blob cannot be decrypted.
        """
        target = Path(target)
        if target.exists() and not force:
            raise FileExistsError(f"Refusing to overwrite {target}")

        stream = self.blobs.read(hash, self.chunk_size)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            dir=target.parent, prefix=f".{target.name}.", suffix=".part"
        )
        written = 0
        try:
            with os.fdopen(fd, "wb") as out:
                for chunk in self.cipher.decrypt(gzip_decompress(stream)):
                    out.write(chunk)
                    written += len(chunk)
            os.replace(tmp_name, target)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

        logger.info("Fetched %s -> %s (%d bytes)", hash, target, written)
        return target
