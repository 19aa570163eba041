"""
Stash -- the operator's actions, wired to catalog and pipelines.

    stash = Stash(load_config())
    stash.upload_many(["notes.txt", "photos/cat.jpg"])
    stash.search("notes")
    stash.fetch(hash, dest_dir=Path("."))
    stash.delete(hash)
"""

from __future__ import annotations

import logging
import socket
import time
from pathlib import Path
from typing import Callable, Iterable, Optional, Union

from .blobstore import BlobStore
from .catalog import RemoteCatalog
from .crypto import Cipher, GPGCipher
from .errors import BatchAborted, MissingFile, NotFound, StashError, UnsupportedInput
from .hashing import validate_hash
from .models import BatchReport, CatalogEntry, Outcome, StashConfig, UploadResult
from .pipeline import RetrievalPipeline, TransferPipeline
from .transport import Transport, create_transport

logger = logging.getLogger("skstash.stash")

PathLike = Union[str, Path]


class Stash:
    """Content-addressed encrypted backup store.

    Args:
        config: Stash configuration.
        transport: Remote command runner. Defaults to one built from config.
        cipher: Stream cipher. Defaults to GPG for ``config.recipient``.
    """

    def __init__(
        self,
        config: StashConfig,
        transport: Optional[Transport] = None,
        cipher: Optional[Cipher] = None,
    ):
        self.config = config
        self.transport = transport or create_transport(config)
        self.cipher = cipher or GPGCipher.from_config(config)
        self.origin = config.origin or socket.gethostname()

        self.blobs = BlobStore(self.transport, config.remote_root)
        self.catalog = RemoteCatalog(
            self.transport, config.remote_root, config.remote_python
        )
        self.uploader = TransferPipeline(
            self.blobs,
            self.catalog,
            self.cipher,
            origin=self.origin,
            identity_algorithm=config.identity_algorithm,
            compress_level=config.compress_level,
            chunk_size=config.chunk_size,
        )
        self.retriever = RetrievalPipeline(
            self.blobs, self.cipher, chunk_size=config.chunk_size
        )

    def init(self) -> None:
        """Create the remote store layout and catalog schema."""
        self.blobs.init()
        self.catalog.init()
        logger.info("Stash initialized at %s:%s", self.transport.name, self.config.remote_root)

    def upload(self, path: PathLike) -> UploadResult:
        """Upload a single file. See ``TransferPipeline.upload``."""
        return self.uploader.upload(Path(path))

    def upload_many(
        self,
        paths: Iterable[PathLike],
        keep_going: bool = False,
        on_result: Optional[Callable[[UploadResult], None]] = None,
    ) -> BatchReport:
        """Upload files one after another.

        Missing files and directories are reported and skipped. Any other
        failure stops the batch, unless ``keep_going`` is set, in which
        case it is recorded and the next file is tried.

        Args:
            paths: Files to upload, in order.
            keep_going: Record fatal per-file failures instead of stopping.
            on_result: Called with each file's result as it completes.

        Returns:
            BatchReport: Results, counts and timing.

        Raises:
            BatchAborted: On a fatal failure when ``keep_going`` is False.
        """
        report = BatchReport()
        started = time.monotonic()

        def record(result: UploadResult) -> None:
            report.results.append(result)
            if on_result is not None:
                on_result(result)

        for raw in paths:
            path = str(raw)
            try:
                record(self.upload(path))
            except MissingFile as exc:
                logger.warning("%s", exc)
                record(UploadResult(path=path, outcome=Outcome.MISSING, message=str(exc)))
            except UnsupportedInput as exc:
                logger.warning("%s", exc)
                record(UploadResult(path=path, outcome=Outcome.UNSUPPORTED, message=str(exc)))
            except (StashError, OSError) as exc:
                logger.error("Upload of %s failed: %s", path, exc)
                record(UploadResult(path=path, outcome=Outcome.FAILED, message=str(exc)))
                if not keep_going:
                    report.aborted = True
                    report.elapsed = time.monotonic() - started
                    raise BatchAborted(report, exc) from exc

        report.elapsed = time.monotonic() - started
        logger.info(
            "Batch done: %d uploaded, %d skipped, %d failed in %.1fs",
            report.count(Outcome.UPLOADED),
            report.count(Outcome.SKIPPED),
            report.failed,
            report.elapsed,
        )
        return report

    def info(self, hash: str) -> CatalogEntry:
        """Catalog entry for a hash.

        Raises:
            NotFound: If the hash is not in the catalog.
        """
        return self.catalog.lookup(hash)

    def fetch(
        self,
        hash: str,
        dest_dir: Optional[Path] = None,
        force: bool = False,
    ) -> Path:
        """Restore a stored file under its original name.

        Args:
            hash: Identity hash of the file.
            dest_dir: Directory to write into. Defaults to the cwd.
            force: Overwrite an existing file of the same name.

        Returns:
            Path: The restored file.

        Raises:
            NotFound: If the hash is not in the catalog or has no blob.
        """
        entry = self.catalog.lookup(validate_hash(hash))
        name = Path(entry.file).name
        if name in ("", ".", ".."):
            name = hash
        target = Path(dest_dir or Path.cwd()).expanduser() / name
        return self.retriever.retrieve(hash, target, force=force)

    def delete(self, hash: str) -> None:
        """Remove a blob and its catalog entry.

        The blob goes first: an interruption leaves a catalog row that
        points nowhere rather than a blob nothing points to.

        Raises:
            NotFound: If neither a blob nor a row exists for ``hash``.
        """
        validate_hash(hash)
        blob_removed = self.blobs.delete(hash)
        row_removed = self.catalog.delete(hash)
        if not blob_removed and not row_removed:
            raise NotFound(f"Nothing stored for {hash}")
        if blob_removed != row_removed:
            logger.warning(
                "Deleted %s with blob=%s catalog=%s", hash, blob_removed, row_removed
            )

    def search(self, term: str) -> list[CatalogEntry]:
        """Catalog rows matching ``term``, newest first."""
        return self.catalog.search(term)
