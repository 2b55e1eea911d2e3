"""Backend selection with fallback from native to shell."""

import logging
from collections.abc import Callable

from sshprovider.core.errors import should_fallback
from sshprovider.core.types import ConnectionProfile
from sshprovider.ssh.base import SSHClient
from sshprovider.ssh.native import NativeSSHClient
from sshprovider.ssh.shell import ShellSSHClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[ConnectionProfile], SSHClient]


class ClientSelector:
    """Chooses the SSH backend for a profile, once.

    The native backend is preferred. If it fails with an error the shell
    backend can work around (unsupported config directive, auth method or
    key format), the shell backend is used instead. Any other failure is
    raised as is.
    """

    def __init__(
        self,
        profile: ConnectionProfile,
        native_factory: ClientFactory = NativeSSHClient,
        shell_factory: ClientFactory = ShellSSHClient,
    ) -> None:
        """Initialize selector.

        Args:
            profile: Connection profile.
            native_factory: Creates the native backend.
            shell_factory: Creates the shell backend.
        """
        self._profile = profile
        self._native_factory = native_factory
        self._shell_factory = shell_factory
        self._client: SSHClient | None = None

    @property
    def backend_name(self) -> str | None:
        """Name of the selected backend, or None before selection."""
        if self._client is None:
            return None
        return self._client.name

    def obtain(self) -> SSHClient:
        """Get the connected client, selecting a backend on first use.

        Returns:
            Connected SSH client.

        Raises:
            SSHProviderError: If the chosen backend cannot connect.
        """
        if self._client is not None:
            return self._client

        if not self._profile.use_builtin_ssh:
            logger.debug("Built-in SSH disabled, using ssh binary")
            self._client = self._connect_shell()
            return self._client

        native = self._native_factory(self._profile)
        try:
            native.connect()
        except Exception as e:
            native.close()
            if not should_fallback(e):
                raise
            logger.warning(f"Falling back to ssh binary: {e}")
            self._client = self._connect_shell()
            return self._client

        self._client = native
        return self._client

    def _connect_shell(self) -> SSHClient:
        client = self._shell_factory(self._profile)
        client.connect()
        return client

    def close(self) -> None:
        """Close the selected client, if any."""
        if self._client is not None:
            self._client.close()
