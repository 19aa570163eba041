"""Error taxonomy for the stash.

Per-file conditions (missing file, directory, dedup hit) are caught by
the batch loop and reported. Integrity and transport failures are not
locally recoverable and terminate the run.
"""

from __future__ import annotations


class StashError(Exception):
    """Base class for every stash failure."""


class ConfigError(StashError):
    """Raised when the stash configuration is missing or invalid."""


class MissingFile(StashError):
    """Raised when an upload source path does not exist."""


class UnsupportedInput(StashError):
    """Raised when an upload source is not a regular file."""


class AlreadyStored(StashError):
    """A blob for this hash already exists. Not a failure."""


class IntegrityFailure(StashError):
    """Raised when local and remote checksums of a transfer disagree."""

    def __init__(self, hash: str, local: str, remote: str):
        super().__init__(
            f"Checksum mismatch for {hash}: local {local}, remote {remote}"
        )
        self.hash = hash
        self.local = local
        self.remote = remote


class SourceChanged(StashError):
    """Raised when a file's content changed while it was being uploaded."""

    def __init__(self, path: str, expected: str, actual: str):
        super().__init__(
            f"{path} changed during upload: hashed as {expected}, sent {actual}"
        )
        self.path = path
        self.expected = expected
        self.actual = actual


class NotFound(StashError):
    """Raised when a hash is unknown to the catalog."""


class BlobNotFound(NotFound):
    """Raised when a hash has no blob in the remote store."""


class DuplicateKey(StashError):
    """Raised when a catalog row for this hash already exists."""


class TransportFailure(StashError):
    """Raised when a remote command fails or the remote is unreachable."""

    def __init__(self, command: str, returncode: int, stderr: str = ""):
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else ""
        message = f"Remote command failed ({returncode}): {command}"
        if detail:
            message += f" -> {detail}"
        super().__init__(message)
        self.command = command
        self.returncode = returncode
        self.stderr = stderr


class EncryptionFailure(StashError):
    """Raised when the cipher cannot encrypt the plaintext stream."""


class DecryptionFailure(StashError):
    """Raised when a fetched blob cannot be decrypted."""


class CorruptData(StashError):
    """Raised when a fetched blob is not a valid compressed stream."""


class InvalidHash(StashError, ValueError):
    """Raised when a hash string is not a plain lowercase hex digest."""


class BatchAborted(StashError):
    """Raised when a fatal failure stops an upload batch.

    Carries the partial report so callers can still show what finished.
    """

    def __init__(self, report, cause: BaseException):
        super().__init__(f"Batch aborted: {cause}")
        self.report = report
        self.cause = cause
