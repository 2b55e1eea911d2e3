"""SSH communication layer for sshprovider."""

from sshprovider.ssh.auth import AuthMethod, AuthResolver
from sshprovider.ssh.base import SSHClient
from sshprovider.ssh.host_config import HostConfigLookup
from sshprovider.ssh.known_hosts import KnownHostsStore, build_host_key_callback
from sshprovider.ssh.native import NativeSSHClient
from sshprovider.ssh.remote_os import RemoteOSDetector
from sshprovider.ssh.selector import ClientSelector
from sshprovider.ssh.shell import ShellSSHClient

__all__ = [
    "AuthMethod",
    "AuthResolver",
    "ClientSelector",
    "HostConfigLookup",
    "KnownHostsStore",
    "NativeSSHClient",
    "RemoteOSDetector",
    "SSHClient",
    "ShellSSHClient",
    "build_host_key_callback",
]
