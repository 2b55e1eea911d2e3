"""Remote operating system detection."""

import logging

from sshprovider.core.errors import RemoteOSUndetermined, SSHProviderError
from sshprovider.core.types import RemoteOSClass
from sshprovider.ssh.base import SSHClient

logger = logging.getLogger(__name__)

UNAME_COMMAND = "uname -s"
CMD_VER_COMMAND = 'cmd /c "ver"'
POWERSHELL_COMMAND = (
    "powershell -NoProfile -Command "
    '"(Get-CimInstance -ClassName Win32_OperatingSystem).Caption"'
)


class RemoteOSDetector:
    """Classifies the remote OS by running diagnostic commands.

    The result, including Unknown, is computed once per detector.
    """

    def __init__(self, client: SSHClient) -> None:
        """Initialize detector.

        Args:
            client: Connected SSH client.
        """
        self._client = client
        self._detected: RemoteOSClass | None = None

    def detect(self, strict: bool = False) -> RemoteOSClass:
        """Detect the remote OS.

        Args:
            strict: Raise instead of returning UNKNOWN.

        Returns:
            The remote OS classification.

        Raises:
            RemoteOSUndetermined: If strict and no command matched.
        """
        if self._detected is None:
            self._detected = self._classify()
            logger.info(f"Remote OS: {self._detected}")

        if strict and self._detected is RemoteOSClass.UNKNOWN:
            raise RemoteOSUndetermined()
        return self._detected

    def _classify(self) -> RemoteOSClass:
        output = self._try(UNAME_COMMAND)
        if output is not None:
            lowered = output.lower()
            if "linux" in lowered:
                return RemoteOSClass.LINUX
            if "darwin" in lowered:
                return RemoteOSClass.DARWIN

        for command in (CMD_VER_COMMAND, POWERSHELL_COMMAND):
            output = self._try(command)
            if output is not None and "windows" in output.lower():
                return RemoteOSClass.WINDOWS

        return RemoteOSClass.UNKNOWN

    def _try(self, command: str) -> str | None:
        try:
            return self._client.run(command)
        except SSHProviderError as e:
            logger.debug(f"OS detection command {command!r} failed: {e}")
            return None
