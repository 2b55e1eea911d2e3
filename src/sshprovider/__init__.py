"""sshprovider - Remote development environments over SSH.

This package provides a dual-backend SSH client (paramiko in-process, or the
local ssh/scp binaries) with host key policies, credential resolution,
remote OS detection and a small provider CLI.
"""

from sshprovider.core.config import ConfigResolver
from sshprovider.core.errors import (
    AuthenticationExhausted,
    ConfigurationError,
    FallbackableError,
    HostKeyRejected,
    RemoteCommandError,
    SSHProviderError,
    UploadError,
)
from sshprovider.core.types import (
    ConnectionProfile,
    KnownHostsPolicy,
    RemoteOSClass,
)
from sshprovider.provider import ProviderSession
from sshprovider.ssh import ClientSelector, NativeSSHClient, SSHClient, ShellSSHClient

__version__ = "0.1.0"

__all__ = [
    # Configuration
    "ConfigResolver",
    "ConnectionProfile",
    "KnownHostsPolicy",
    "RemoteOSClass",
    # Clients
    "ClientSelector",
    "NativeSSHClient",
    "ProviderSession",
    "SSHClient",
    "ShellSSHClient",
    # Errors
    "AuthenticationExhausted",
    "ConfigurationError",
    "FallbackableError",
    "HostKeyRejected",
    "RemoteCommandError",
    "SSHProviderError",
    "UploadError",
]


def main() -> None:
    """CLI entry point."""
    import sys

    from sshprovider.cli import main as cli_main

    sys.exit(cli_main())
