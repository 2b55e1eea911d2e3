"""Type definitions for sshprovider."""

from enum import Enum
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

DEFAULT_SSH_PORT = 22


class KnownHostsPolicy(Enum):
    """Host key verification policies."""

    STRICT = "strict"  # fail on unknown or mismatched keys
    ACCEPT_NEW = "accept-new"  # add unknown hosts automatically
    IGNORE = "ignore"  # do not verify host keys (insecure)

    @classmethod
    def parse(cls, value: "str | KnownHostsPolicy | None") -> "KnownHostsPolicy":
        """Parse a policy name, falling back to STRICT for unknown values.

        Args:
            value: Policy name or alias (case-insensitive).

        Returns:
            Matching policy.
        """
        if isinstance(value, KnownHostsPolicy):
            return value
        normalized = (value or "").strip().lower()
        if normalized in ("ignore", "insecure"):
            return cls.IGNORE
        if normalized in ("accept-new", "add-unknown"):
            return cls.ACCEPT_NEW
        return cls.STRICT


class RemoteOSClass(Enum):
    """Remote operating system classification."""

    LINUX = "Linux"
    DARWIN = "macOS"
    WINDOWS = "Windows"
    UNKNOWN = "Unknown"

    def __str__(self) -> str:
        return self.value


class ConnectionProfile(BaseModel):
    """Fully resolved connection settings.

    ``host`` may carry a ``user@`` prefix; it is passed verbatim to the
    ``ssh`` binary so that local SSH client configuration still applies.
    """

    host: str
    user: str
    port: str = str(DEFAULT_SSH_PORT)
    identity_files: tuple[Path, ...] = ()
    extra_flags: str = ""
    known_hosts_policy: KnownHostsPolicy = KnownHostsPolicy.STRICT
    known_hosts_path: Path | None = None
    docker_path: str = ""
    agent_path: str = ""
    use_builtin_ssh: bool = True

    model_config = {"extra": "forbid", "frozen": True}

    @property
    def hostname(self) -> str:
        """Get host without any ``user@`` prefix."""
        if "@" in self.host:
            return self.host.split("@", 1)[1]
        return self.host

    @property
    def login_user(self) -> str:
        """Get the user from a ``user@`` prefix, or the profile user."""
        if "@" in self.host:
            prefix = self.host.split("@", 1)[0]
            if prefix:
                return prefix
        return self.user


class HostTarget(BaseModel):
    """Per-host connection target used by the native backend."""

    alias: str
    hostname: str
    user: str
    port: int = DEFAULT_SSH_PORT
    identity_candidates: tuple[Path, ...] = ()
    directives: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "forbid", "frozen": True}

    @property
    def address(self) -> str:
        """Get ``hostname:port`` for log messages."""
        return f"{self.hostname}:{self.port}"
