"""
Streaming public-key encryption for blobs.

Plaintext is encrypted to the configured recipient with GnuPG. Only the
holder of the recipient's private key can read a blob back. GPG runs as
a subprocess fed by a writer thread, so neither side of the stream is
ever buffered whole in memory.
"""

from __future__ import annotations

import logging
import shutil
import subprocess
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Iterable, Iterator, Optional, Type

from .errors import DecryptionFailure, EncryptionFailure, StashError
from .models import StashConfig

logger = logging.getLogger("skstash.crypto")


class Cipher(ABC):
    """Abstract stream cipher."""

    @abstractmethod
    def encrypt(self, chunks: Iterable[bytes]) -> Iterator[bytes]:
        """Encrypt a plaintext stream.

        Raises:
            EncryptionFailure: If encryption fails.
        """

    @abstractmethod
    def decrypt(self, chunks: Iterable[bytes]) -> Iterator[bytes]:
        """Decrypt a ciphertext stream.

        Raises:
            DecryptionFailure: If the stream cannot be decrypted.
        """


class GPGCipher(Cipher):
    """GnuPG public-key encryption to a single recipient.

    Args:
        recipient: Key id, fingerprint or email of the recipient.
        binary: gpg executable.
        home: Optional GNUPGHOME to use instead of the default keyring.
        chunk_size: Read size for gpg's output.
    """

    def __init__(
        self,
        recipient: str,
        binary: str = "gpg",
        home: Optional[Path] = None,
        chunk_size: int = 64 * 1024,
    ):
        self.recipient = recipient
        self.binary = binary
        self.home = home
        self.chunk_size = chunk_size

    @classmethod
    def from_config(cls, config: StashConfig) -> "GPGCipher":
        return cls(
            recipient=config.recipient,
            binary=config.gpg_binary,
            home=config.gpg_home,
            chunk_size=config.chunk_size,
        )

    def available(self) -> bool:
        return shutil.which(self.binary) is not None

    def _base_args(self) -> list[str]:
        args = [self.binary, "--batch", "--yes", "--quiet"]
        if self.home:
            args.extend(["--homedir", str(Path(self.home).expanduser())])
        return args

    def encrypt(self, chunks: Iterable[bytes]) -> Iterator[bytes]:
        args = self._base_args() + [
            "--trust-model", "always",
            "--encrypt", "--recipient", self.recipient,
            "--output", "-",
        ]
        return self._pipe(args, chunks, EncryptionFailure)

    def decrypt(self, chunks: Iterable[bytes]) -> Iterator[bytes]:
        args = self._base_args() + ["--decrypt", "--output", "-"]
        return self._pipe(args, chunks, DecryptionFailure)

    def _pipe(
        self,
        args: list[str],
        chunks: Iterable[bytes],
        error_cls: Type[StashError],
    ) -> Iterator[bytes]:
        """Run gpg with ``chunks`` on stdin, yielding its stdout."""
        stderr = tempfile.TemporaryFile()
        try:
            proc = subprocess.Popen(
                args,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=stderr,
            )
        except OSError as exc:
            stderr.close()
            raise error_cls(f"Cannot start {self.binary}: {exc}") from exc

        feed_errors: list[BaseException] = []

        def feed() -> None:
            try:
                for chunk in chunks:
                    proc.stdin.write(chunk)
            except BrokenPipeError:
                pass
            except BaseException as exc:
                feed_errors.append(exc)
            finally:
                try:
                    proc.stdin.close()
                except BrokenPipeError:
                    pass

        feeder = threading.Thread(target=feed, name="skstash-gpg-feed", daemon=True)
        feeder.start()

        completed = False
        try:
            for out in iter(lambda: proc.stdout.read(self.chunk_size), b""):
                yield out
            completed = True
        finally:
            if not completed and proc.poll() is None:
                proc.kill()
            proc.stdout.close()
            returncode = proc.wait()
            feeder.join()
            stderr.seek(0)
            message = stderr.read().decode("utf-8", "replace").strip()
            stderr.close()

        if feed_errors:
            raise feed_errors[0]
        if returncode != 0:
            logger.error("%s exited %d: %s", self.binary, returncode, message)
            raise error_cls(f"{self.binary} exited {returncode}: {message}")
