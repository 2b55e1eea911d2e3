"""Provider session tying a profile, a backend and the remote OS together."""

import logging
import sys
from typing import IO

from sshprovider.core.config import ConfigResolver
from sshprovider.core.errors import RemoteOSUndetermined, SSHProviderError
from sshprovider.core.types import ConnectionProfile, RemoteOSClass
from sshprovider.ssh.base import SSHClient
from sshprovider.ssh.remote_os import CMD_VER_COMMAND, POWERSHELL_COMMAND, RemoteOSDetector
from sshprovider.ssh.selector import ClientSelector

logger = logging.getLogger(__name__)


def collapse_whitespace(text: str) -> str:
    """Join all whitespace separated fields of ``text`` with single spaces."""
    return " ".join(text.split())


def init_commands(os_class: RemoteOSClass, docker_path: str = "") -> list[str]:
    """Get the diagnostic commands run by ``initialize``.

    Args:
        os_class: Remote OS.
        docker_path: Docker executable on the remote host. Skipped if empty.

    Returns:
        Commands in execution order.

    Raises:
        RemoteOSUndetermined: If the OS is UNKNOWN.
    """
    if os_class in (RemoteOSClass.LINUX, RemoteOSClass.DARWIN):
        commands = ["uname -s", "lsb_release -is || true"]
        if docker_path:
            commands.append(f"{docker_path} ps -qa")
        return commands

    if os_class is RemoteOSClass.WINDOWS:
        commands = [CMD_VER_COMMAND, POWERSHELL_COMMAND]
        if docker_path:
            commands.append(f'"{docker_path}" ps -qa')
        return commands

    raise RemoteOSUndetermined()


class ProviderSession:
    """One connection profile, one selected backend, one OS classification.

    Example:
        >>> with ProviderSession.from_env() as session:
        ...     session.initialize()
    """

    def __init__(
        self,
        profile: ConnectionProfile,
        selector: ClientSelector | None = None,
    ) -> None:
        """Initialize session.

        Args:
            profile: Connection profile.
            selector: Backend selector. Created from the profile if None.
        """
        self._profile = profile
        self._selector = selector or ClientSelector(profile)
        self._detector: RemoteOSDetector | None = None

    @classmethod
    def from_env(cls) -> "ProviderSession":
        """Create a session from the process environment.

        Raises:
            ConfigurationError: If the environment is incomplete or invalid.
        """
        return cls(ConfigResolver.from_env().resolve())

    @property
    def profile(self) -> ConnectionProfile:
        """Get connection profile."""
        return self._profile

    @property
    def backend_name(self) -> str | None:
        """Name of the selected backend, or None before first use."""
        return self._selector.backend_name

    def client(self) -> SSHClient:
        """Get the connected client, selecting a backend on first use."""
        return self._selector.obtain()

    def detect_os(self, strict: bool = False) -> RemoteOSClass:
        """Detect the remote OS once per session.

        Args:
            strict: Raise instead of returning UNKNOWN.

        Returns:
            Remote OS classification.
        """
        if self._detector is None:
            self._detector = RemoteOSDetector(self.client())
        return self._detector.detect(strict=strict)

    def initialize(self) -> list[tuple[str, str | None]]:
        """Detect the remote OS and run its diagnostic commands.

        Failing commands are logged and skipped.

        Returns:
            (command, collapsed output) pairs; output is None on failure.

        Raises:
            RemoteOSUndetermined: If the remote OS cannot be detected.
        """
        os_class = self.detect_os(strict=True)
        logger.info(f"Detected remote OS: {os_class}")
        logger.info(f"Running initialization commands for {os_class}")

        client = self.client()
        results: list[tuple[str, str | None]] = []
        for command in init_commands(os_class, self._profile.docker_path):
            try:
                output = collapse_whitespace(client.run(command))
            except SSHProviderError as e:
                logger.error(f"Failed: {command}: {e}")
                results.append((command, None))
                continue
            logger.info(f"Output: {output}")
            results.append((command, output))
        return results

    def run_command(
        self,
        command: str,
        stdout: IO[bytes] | None = None,
        stderr: IO[bytes] | None = None,
        stdin: IO[bytes] | None = None,
    ) -> None:
        """Run a command with its streams attached.

        Args:
            command: Command to run.
            stdout: Stdout sink. Defaults to this process's stdout.
            stderr: Stderr sink. Defaults to this process's stderr.
            stdin: Stream forwarded to the command. Not forwarded if None.

        Raises:
            RemoteCommandError: If the command exits non-zero.
        """
        self.client().execute(
            command,
            stdout if stdout is not None else sys.stdout.buffer,
            stderr=stderr if stderr is not None else sys.stderr.buffer,
            stdin=stdin,
        )

    def upload(self, local_path: str, remote_path: str) -> None:
        """Upload a file through the selected backend."""
        self.client().upload(local_path, remote_path)

    def close(self) -> None:
        """Close the selected backend."""
        self._selector.close()

    def __enter__(self) -> "ProviderSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
