"""Core layer for sshprovider."""

from sshprovider.core.config import ConfigResolver
from sshprovider.core.types import (
    ConnectionProfile,
    HostTarget,
    KnownHostsPolicy,
    RemoteOSClass,
)

__all__ = [
    "ConfigResolver",
    "ConnectionProfile",
    "HostTarget",
    "KnownHostsPolicy",
    "RemoteOSClass",
]
