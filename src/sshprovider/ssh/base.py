"""Abstract base class for SSH client backends."""

import io
import logging
from abc import ABC, abstractmethod
from typing import IO

from sshprovider.core.errors import RemoteCommandError
from sshprovider.ssh.compat import looks_like_non_posix_shell_error, run_via_script

logger = logging.getLogger(__name__)

CHUNK_SIZE = 32768


def read_chunk(stream: IO[bytes], size: int = CHUNK_SIZE) -> bytes:
    """Read whatever is available from a stream, up to ``size`` bytes."""
    read1 = getattr(stream, "read1", None)
    if read1 is not None:
        return read1(size)
    return stream.read(size)


def write_chunk(sink: IO[bytes], data: bytes) -> None:
    """Write to a sink and flush it so output streams as it arrives."""
    sink.write(data)
    flush = getattr(sink, "flush", None)
    if flush is not None:
        flush()


class SSHClient(ABC):
    """Abstract base class for SSH client backends.

    This class defines the interface that both the native (paramiko) and the
    shell (``ssh``/``scp`` binaries) backends implement. Callers only rely on
    ``connect``, ``execute``, ``upload`` and ``close``.
    """

    name = "ssh"

    def __enter__(self) -> "SSHClient":
        self.connect()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @abstractmethod
    def connect(self) -> None:
        """Establish the connection."""
        pass

    @abstractmethod
    def upload(self, local_path: str, remote_path: str) -> None:
        """Transfer a local file to the remote host.

        Args:
            local_path: Local file to send.
            remote_path: Destination path on the remote host.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Terminate the connection. Safe to call more than once."""
        pass

    @abstractmethod
    def _exec(
        self,
        command: str,
        output: IO[bytes],
        stderr: IO[bytes] | None = None,
        stdin: IO[bytes] | None = None,
    ) -> tuple[int, str]:
        """Run a command directly, without any shell compatibility handling.

        Args:
            command: Command to run.
            output: Sink receiving stdout as it arrives.
            stderr: Optional sink that also receives stderr.
            stdin: Optional stream forwarded to the remote command.

        Returns:
            Tuple of (exit_status, captured stderr text).
        """
        pass

    def execute(
        self,
        command: str,
        output: IO[bytes],
        stderr: IO[bytes] | None = None,
        stdin: IO[bytes] | None = None,
    ) -> None:
        """Execute a command on the remote host.

        Falls back to uploading the command as a script when the remote
        default shell rejects it as non-POSIX.

        Args:
            command: Command to execute.
            output: Sink receiving stdout.
            stderr: Optional sink that also receives stderr.
            stdin: Optional stream forwarded to the remote command.

        Raises:
            RemoteCommandError: If the command exits non-zero.
        """
        exit_status, stderr_text = self._exec(command, output, stderr, stdin)

        if looks_like_non_posix_shell_error(stderr_text):
            logger.warning("non-posix shell detected, using script upload")
            run_via_script(self, command, output, stderr=stderr, stdin=stdin)
            return

        if exit_status != 0:
            raise RemoteCommandError(command, exit_status, stderr_text)

    def run(self, command: str) -> str:
        """Execute a command and return its stdout as text.

        Args:
            command: Command to execute.

        Returns:
            Decoded stdout.
        """
        buffer = io.BytesIO()
        self.execute(command, buffer)
        return buffer.getvalue().decode("utf-8", errors="replace")
