"""Compatibility handling for remote hosts with a non-POSIX default shell."""

import logging
import os
import posixpath
import tempfile
from pathlib import Path
from typing import IO, TYPE_CHECKING

from sshprovider.core.errors import RemoteCommandError

if TYPE_CHECKING:
    from sshprovider.ssh.base import SSHClient

logger = logging.getLogger(__name__)

NON_POSIX_SHELL_MARKER = "fish: Unsupported"
REMOTE_SCRIPT_DIR = "/tmp"
SCRIPT_PREFIX = "sshprovider-command-"


def looks_like_non_posix_shell_error(stderr_text: str) -> bool:
    """Check whether stderr shows the remote shell rejected POSIX syntax.

    Args:
        stderr_text: Captured stderr of a remote command.

    Returns:
        True if the non-POSIX shell marker is present.
    """
    return NON_POSIX_SHELL_MARKER in (stderr_text or "")


def script_command(remote_path: str) -> str:
    """Build the command that runs and then removes an uploaded script."""
    return f"/bin/sh {remote_path}; rm -f {remote_path}"


def run_via_script(
    client: "SSHClient",
    command: str,
    output: IO[bytes],
    stderr: IO[bytes] | None = None,
    stdin: IO[bytes] | None = None,
) -> None:
    """Upload a command as a script and run it with ``/bin/sh``.

    Args:
        client: Backend used for both the upload and the execution.
        command: Command text to run.
        output: Sink receiving stdout.
        stderr: Optional sink that also receives stderr.
        stdin: Optional stream forwarded to the script.

    Raises:
        RemoteCommandError: If the script exits non-zero.
    """
    with tempfile.NamedTemporaryFile(
        "w", prefix=SCRIPT_PREFIX, delete=False, encoding="utf-8", newline="\n"
    ) as script:
        script.write(command)
        local_path = script.name

    try:
        remote_path = posixpath.join(REMOTE_SCRIPT_DIR, Path(local_path).name)
        client.upload(local_path, remote_path)
        logger.debug(f"Uploaded script to {remote_path}")

        exit_status, stderr_text = client._exec(
            script_command(remote_path), output, stderr, stdin
        )
        if exit_status != 0:
            raise RemoteCommandError(command, exit_status, stderr_text)
    finally:
        try:
            os.remove(local_path)
        except OSError as e:
            logger.debug(f"Could not remove temporary script {local_path}: {e}")
