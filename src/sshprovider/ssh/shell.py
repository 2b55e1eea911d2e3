"""SSH backend built on the external ssh and scp binaries."""

import logging
import shlex
import subprocess
import threading
from pathlib import Path
from typing import IO

from sshprovider.core.config import resolve_port
from sshprovider.core.errors import ShellParseError, TransportError, UploadError
from sshprovider.core.types import DEFAULT_SSH_PORT, ConnectionProfile
from sshprovider.ssh.base import SSHClient, read_chunk, write_chunk

logger = logging.getLogger(__name__)

# Host keys are accepted without prompting; this backend is a fallback, the
# native backend enforces the known hosts policy.
BASE_OPTIONS = ("-oStrictHostKeyChecking=no", "-oBatchMode=yes")


class ShellSSHClient(SSHClient):
    """Runs commands through the ``ssh`` binary and uploads with ``scp``.

    Stateless: every operation spawns its own process, so ``connect`` and
    ``close`` do nothing.
    """

    name = "shell"

    def __init__(
        self,
        profile: ConnectionProfile,
        ssh_binary: str = "ssh",
        scp_binary: str = "scp",
    ) -> None:
        """Initialize shell SSH client.

        Args:
            profile: Connection profile.
            ssh_binary: ssh executable.
            scp_binary: scp executable.
        """
        self._profile = profile
        self._ssh_binary = ssh_binary
        self._scp_binary = scp_binary

    @property
    def profile(self) -> ConnectionProfile:
        """Get connection profile."""
        return self._profile

    def connect(self) -> None:
        """No-op; each command opens its own connection."""
        logger.debug(f"Using ssh binary for {self._profile.host}")

    def close(self) -> None:
        """No-op."""
        pass

    def _extra_flags(self) -> list[str]:
        extra = self._profile.extra_flags
        if not extra:
            return []
        try:
            return shlex.split(extra)
        except ValueError as e:
            raise ShellParseError(f"parse extra flags: {e}") from e

    def _options(self, port_flag: str) -> list[str]:
        options = list(BASE_OPTIONS)
        port = resolve_port(self._profile.port)
        if port != DEFAULT_SSH_PORT:
            options.extend([port_flag, str(port)])
        options.extend(self._extra_flags())
        return options

    def build_ssh_command(self, command: str | None = None) -> list[str]:
        """Build ssh command line.

        Args:
            command: Remote command to execute.

        Returns:
            Command line as list.

        Raises:
            ShellParseError: If the extra flags cannot be tokenized.
        """
        cmd = [self._ssh_binary, *self._options("-p"), self._profile.host]
        if command:
            cmd.append(command)
        return cmd

    def build_scp_command(self, local_path: str, remote_path: str) -> list[str]:
        """Build scp command line.

        Args:
            local_path: Local source file.
            remote_path: Remote destination path.

        Returns:
            Command line as list.

        Raises:
            ShellParseError: If the extra flags cannot be tokenized.
        """
        return [
            self._scp_binary,
            *self._options("-P"),
            str(local_path),
            self._profile.host + ":" + remote_path,
        ]

    def _exec(
        self,
        command: str,
        output: IO[bytes],
        stderr: IO[bytes] | None = None,
        stdin: IO[bytes] | None = None,
    ) -> tuple[int, str]:
        try:
            cmd = self.build_ssh_command(command)
        except ShellParseError as e:
            e.command = command
            raise

        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.PIPE if stdin is not None else subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise TransportError(
                f"start {self._ssh_binary}: {e}", stage="execute", command=command
            ) from e

        stderr_buffer = bytearray()

        def collect_stderr() -> None:
            for chunk in iter(lambda: read_chunk(process.stderr), b""):
                stderr_buffer.extend(chunk)
                if stderr is not None:
                    write_chunk(stderr, chunk)

        stderr_thread = threading.Thread(
            target=collect_stderr, name="ssh-stderr", daemon=True
        )
        stderr_thread.start()
        if stdin is not None:
            threading.Thread(
                target=_feed_stdin,
                args=(stdin, process.stdin),
                name="ssh-stdin",
                daemon=True,
            ).start()

        for chunk in iter(lambda: read_chunk(process.stdout), b""):
            write_chunk(output, chunk)

        exit_status = process.wait()
        stderr_thread.join()

        stderr_text = stderr_buffer.decode("utf-8", errors="replace")
        if exit_status != 0 and stderr_text.strip():
            logger.error(stderr_text.strip())
        return exit_status, stderr_text

    def upload(self, local_path: str, remote_path: str) -> None:
        """Copy a local file to the remote host with scp.

        Args:
            local_path: Local file to send.
            remote_path: Destination path on the remote host.

        Raises:
            ShellParseError: If the extra flags cannot be tokenized.
            UploadError: If the local file is missing or scp fails.
        """
        try:
            cmd = self.build_scp_command(local_path, remote_path)
        except ShellParseError as e:
            e.stage = "upload"
            raise

        if not Path(local_path).is_file():
            raise UploadError(f"open local file {local_path}: not a file", side="local")

        try:
            result = subprocess.run(cmd, capture_output=True, text=True)
        except OSError as e:
            raise TransportError(f"start {self._scp_binary}: {e}", stage="upload") from e

        if result.returncode != 0:
            raise UploadError(
                f"copy to {self._profile.host}:{remote_path} failed "
                f"with status {result.returncode}: {result.stderr.strip()}",
                side="remote",
            )


def _feed_stdin(source: IO[bytes], sink: IO[bytes]) -> None:
    """Forward local stdin to a child process until either side closes."""
    try:
        for chunk in iter(lambda: read_chunk(source), b""):
            write_chunk(sink, chunk)
    except (OSError, ValueError) as e:
        logger.debug(f"stdin forwarding stopped: {e}")
    finally:
        try:
            sink.close()
        except OSError as e:
            logger.debug(f"Could not close child stdin: {e}")
