"""
Remote command execution -- the only thing the stash asks of the wire.

Every blob-store and catalog operation is a command run on the host that
holds the store. The transport knows how to run an argv there and hand
back its exit status, output, or a live pipe for streaming.

SSH: the argv is shell-quoted and executed by ``ssh <host>``.
Local: the argv runs on this machine. For USB drives, NAS mounts, tests.
"""

from __future__ import annotations

import logging
import shlex
import subprocess
import tempfile
from abc import ABC, abstractmethod
from typing import IO, Optional, Sequence

from .errors import TransportFailure
from .models import StashConfig

logger = logging.getLogger("skstash.transport")


class RemoteProcess:
    """A streaming remote command: write to ``stdin`` or read ``stdout``.

    stderr is spooled to a temporary file so a chatty command can never
    block on a full pipe.
    """

    def __init__(self, argv: Sequence[str], proc: subprocess.Popen, stderr: IO[bytes]):
        self.argv = list(argv)
        self._proc = proc
        self._stderr = stderr

    @property
    def stdin(self) -> IO[bytes]:
        return self._proc.stdin

    @property
    def stdout(self) -> IO[bytes]:
        return self._proc.stdout

    def finish(self) -> None:
        """Close our end, wait for exit, raise if the command failed.

        Raises:
            TransportFailure: On a non-zero exit status.
        """
        if self._proc.stdin and not self._proc.stdin.closed:
            try:
                self._proc.stdin.close()
            except BrokenPipeError:
                pass
        returncode = self._proc.wait()
        if self._proc.stdout and not self._proc.stdout.closed:
            self._proc.stdout.close()
        self._stderr.seek(0)
        stderr = self._stderr.read().decode("utf-8", "replace")
        self._stderr.close()
        if returncode != 0:
            raise TransportFailure(shlex.join(self.argv), returncode, stderr)

    def kill(self) -> None:
        """Abort the command and release its resources."""
        if self._proc.poll() is None:
            self._proc.kill()
        for stream in (self._proc.stdin, self._proc.stdout):
            if stream and not stream.closed:
                try:
                    stream.close()
                except BrokenPipeError:
                    pass
        self._proc.wait()
        self._stderr.close()


class Transport(ABC):
    """Abstract remote command runner."""

    @abstractmethod
    def command(self, argv: Sequence[str]) -> list[str]:
        """Translate a remote argv into the local argv that executes it."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable transport name."""

    def run(
        self,
        argv: Sequence[str],
        input: Optional[bytes] = None,
        ok_codes: Sequence[int] = (0,),
    ) -> subprocess.CompletedProcess:
        """Run a command to completion and capture its output.

        Args:
            argv: Command to execute on the remote.
            input: Bytes fed to the command's stdin.
            ok_codes: Exit statuses that are not failures.

        Returns:
            CompletedProcess with bytes ``stdout`` and ``stderr``.

        Raises:
            TransportFailure: If the command cannot start or exits with a
                status outside ``ok_codes``.
        """
        cmd = self.command(argv)
        logger.debug("%s: %s", self.name, shlex.join(argv))
        try:
            result = subprocess.run(
                cmd, input=input, capture_output=True, check=False,
            )
        except OSError as exc:
            raise TransportFailure(shlex.join(argv), -1, str(exc)) from exc
        if result.returncode not in ok_codes:
            raise TransportFailure(
                shlex.join(argv),
                result.returncode,
                result.stderr.decode("utf-8", "replace"),
            )
        return result

    def open(self, argv: Sequence[str], write: bool) -> RemoteProcess:
        """Start a command with a streaming pipe.

        Args:
            argv: Command to execute on the remote.
            write: True to stream into stdin, False to stream from stdout.
        """
        cmd = self.command(argv)
        logger.debug("%s (stream): %s", self.name, shlex.join(argv))
        stderr = tempfile.TemporaryFile()
        try:
            proc = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE if write else subprocess.DEVNULL,
                stdout=subprocess.DEVNULL if write else subprocess.PIPE,
                stderr=stderr,
            )
        except OSError as exc:
            stderr.close()
            raise TransportFailure(shlex.join(argv), -1, str(exc)) from exc
        return RemoteProcess(argv, proc, stderr)


class LocalTransport(Transport):
    """Runs commands on this machine."""

    @property
    def name(self) -> str:
        return "local"

    def command(self, argv: Sequence[str]) -> list[str]:
        return list(argv)


class SSHTransport(Transport):
    """Runs commands on a remote host over ssh.

    The remote side receives a single shell-quoted command line, so no
    argument is ever interpreted by the remote shell.
    """

    def __init__(self, host: str, options: Optional[Sequence[str]] = None):
        self.host = host
        self.options = list(options or [])

    @property
    def name(self) -> str:
        return f"ssh:{self.host}"

    def command(self, argv: Sequence[str]) -> list[str]:
        return [
            "ssh", "-o", "BatchMode=yes", *self.options,
            self.host, "--", shlex.join(argv),
        ]


def create_transport(config: StashConfig) -> Transport:
    """Factory: SSH when a host is configured, local otherwise.

    Args:
        config: Stash configuration.

    Returns:
        Instantiated Transport.
    """
    if config.host:
        return SSHTransport(config.host, config.ssh_options)
    return LocalTransport()
