"""Tests for GPG stream encryption."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from skstash.crypto import GPGCipher
from skstash.errors import DecryptionFailure, EncryptionFailure
from skstash.models import StashConfig


class TestGPGCipherFailures:
    """Failure paths, no keyring needed."""

    def test_from_config(self):
        cfg = StashConfig(
            remote_root="/srv", recipient="me@example.org",
            gpg_binary="gpg2", gpg_home=Path("/tmp/gnupg"),
        )
        cipher = GPGCipher.from_config(cfg)
        assert cipher.recipient == "me@example.org"
        assert cipher.binary == "gpg2"
        assert "--homedir" in cipher._base_args()

    def test_missing_binary(self):
        cipher = GPGCipher("me", binary="skstash-no-such-gpg")
        assert not cipher.available()
        with pytest.raises(EncryptionFailure):
            list(cipher.encrypt([b"data"]))

    def test_nonzero_exit_is_encryption_failure(self):
        cipher = GPGCipher("me", binary="false")
        with pytest.raises(EncryptionFailure):
            list(cipher.encrypt([b"data"]))

    def test_nonzero_exit_is_decryption_failure(self):
        cipher = GPGCipher("me", binary="false")
        with pytest.raises(DecryptionFailure):
            list(cipher.decrypt([b"data"]))

    def test_input_errors_propagate(self):
        def broken():
            yield b"start"
            raise OSError("source vanished")

        cipher = GPGCipher("me", binary="cat")
        with pytest.raises(OSError, match="source vanished"):
            list(cipher._pipe(["cat"], broken(), EncryptionFailure))


@pytest.fixture
def gnupg_home(tmp_path: Path) -> Path:
    """A throwaway keyring with one passphrase-less key."""
    if shutil.which("gpg") is None:
        pytest.skip("gpg not installed")
    home = tmp_path / "gnupg"
    home.mkdir(mode=0o700)
    result = subprocess.run(
        ["gpg", "--homedir", str(home), "--batch", "--passphrase", "",
         "--quick-gen-key", "skstash-test@example.org", "default", "default", "never"],
        capture_output=True, check=False,
    )
    if result.returncode != 0:
        pytest.skip(f"cannot generate gpg key: {result.stderr.decode()[:200]}")
    yield home
    subprocess.run(
        ["gpgconf", "--homedir", str(home), "--kill", "gpg-agent"],
        capture_output=True, check=False,
    )


class TestGPGRoundtrip:
    def test_encrypt_decrypt(self, gnupg_home: Path):
        cipher = GPGCipher("skstash-test@example.org", home=gnupg_home, chunk_size=512)
        plaintext = b"hello sovereign stash " * 500

        ciphertext = b"".join(cipher.encrypt([plaintext[:1000], plaintext[1000:]]))
        assert plaintext not in ciphertext

        restored = b"".join(cipher.decrypt([ciphertext]))
        assert restored == plaintext

    def test_encryption_is_not_deterministic(self, gnupg_home: Path):
        cipher = GPGCipher("skstash-test@example.org", home=gnupg_home)
        a = b"".join(cipher.encrypt([b"same"]))
        b = b"".join(cipher.encrypt([b"same"]))
        assert a != b

    def test_garbage_fails_to_decrypt(self, gnupg_home: Path):
        cipher = GPGCipher("skstash-test@example.org", home=gnupg_home)
        with pytest.raises(DecryptionFailure):
            list(cipher.decrypt([b"definitely not openpgp"]))
