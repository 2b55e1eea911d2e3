"""Connection profile resolution for sshprovider."""

import getpass
import logging
import os
import platform
import socket
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from sshprovider.core.errors import ConfigurationError
from sshprovider.core.paths import expand_home, get_default_known_hosts_path, get_home_dir
from sshprovider.core.types import DEFAULT_SSH_PORT, ConnectionProfile, KnownHostsPolicy

logger = logging.getLogger(__name__)

ENV_DOCKER_PATH = "DOCKER_PATH"
ENV_AGENT_PATH = "AGENT_PATH"
ENV_HOST = "HOST"
ENV_PORT = "PORT"
ENV_EXTRA_FLAGS = "EXTRA_FLAGS"
ENV_USE_BUILTIN_SSH = "USE_BUILTIN_SSH"
ENV_KNOWN_HOSTS_POLICY = "KNOWN_HOSTS_POLICY"
ENV_KNOWN_HOSTS_PATH = "KNOWN_HOSTS_PATH"
ENV_IDENTITY_FILE = "IDENTITY_FILE"

_TRUE_VALUES = ("1", "true", "yes", "on")
_FALSE_VALUES = ("0", "false", "no", "off")


def platform_defaults(system: str) -> dict[str, str]:
    """Get docker and agent binary defaults for a local platform.

    Args:
        system: Platform name as reported by ``platform.system()``.

    Returns:
        Mapping with ``docker_path`` and ``agent_path``.

    Raises:
        ConfigurationError: If the platform is not supported.
    """
    normalized = system.strip().lower()
    if normalized in ("linux", "darwin"):
        return {
            "docker_path": "/usr/bin/docker",
            "agent_path": "/usr/bin/ssh-agent",
        }
    if normalized == "windows":
        return {
            "docker_path": "C:\\Program Files\\Docker\\Docker\\resources\\bin\\docker.exe",
            "agent_path": "C:\\Windows\\System32\\OpenSSH\\ssh-agent.exe",
        }
    raise ConfigurationError(f"unsupported operating system: {system}")


def resolve_port(value: str | int | None) -> int:
    """Parse an SSH port, falling back to 22.

    Args:
        value: Port as text or integer. Empty means default.

    Returns:
        Port number between 1 and 65535.
    """
    text = str(value if value is not None else "").strip()
    if not text:
        return DEFAULT_SSH_PORT
    try:
        port = int(text)
    except ValueError:
        port = 0
    if not 0 < port < 65536:
        logger.warning(
            f"Invalid port {text}. Falling back to default SSH port: {DEFAULT_SSH_PORT}"
        )
        return DEFAULT_SSH_PORT
    return port


class ConfigResolver:
    """Merges defaults, environment and overrides into a ConnectionProfile."""

    def __init__(
        self,
        environ: Mapping[str, str] | None = None,
        system: str | None = None,
        overrides: Mapping[str, Any] | None = None,
        home: Path | None = None,
    ) -> None:
        """Initialize resolver.

        Args:
            environ: Environment to read options from. Defaults to os.environ.
            system: Local platform name. Defaults to ``platform.system()``.
            overrides: Explicit values that win over the environment.
            home: Home directory. Looked up if None.
        """
        self._environ = os.environ if environ is None else environ
        self._system = system or platform.system()
        self._overrides = dict(overrides or {})
        self._home = home

    @classmethod
    def from_env(cls) -> "ConfigResolver":
        """Create a resolver reading the process environment."""
        return cls()

    def resolve(self) -> ConnectionProfile:
        """Resolve the connection profile.

        Returns:
            Immutable ConnectionProfile.

        Raises:
            ConfigurationError: Listing every problem found.
        """
        problems: list[str] = []
        home = self._home or get_home_dir()

        data: dict[str, Any] = {
            "port": str(DEFAULT_SSH_PORT),
            "extra_flags": "",
            "known_hosts_policy": KnownHostsPolicy.STRICT,
            "known_hosts_path": get_default_known_hosts_path(home),
            "use_builtin_ssh": True,
        }
        try:
            data.update(platform_defaults(self._system))
        except ConfigurationError as e:
            problems.append(e.message)

        user = self._current_user()
        if user:
            data["user"] = user
        hostname = self._local_hostname()
        if hostname:
            data["host"] = hostname

        data.update(self._from_env(problems))
        data.update(self._overrides)

        host = str(data.get("host") or "")
        if not host:
            problems.append("cannot determine host; set HOST")
        if not data.get("user"):
            prefix = host.split("@", 1)[0] if "@" in host else ""
            if prefix:
                data["user"] = prefix
            else:
                problems.append("cannot determine current user; use HOST=user@host")
        data["known_hosts_policy"] = KnownHostsPolicy.parse(data["known_hosts_policy"])
        if (
            data.get("known_hosts_path") is None
            and home is None
            and data["known_hosts_policy"] is not KnownHostsPolicy.IGNORE
        ):
            problems.append("cannot determine home directory; set KNOWN_HOSTS_PATH")

        self._normalize_paths(data, home, problems)

        if problems:
            raise ConfigurationError(
                "invalid configuration: " + "; ".join(problems), problems=problems
            )

        try:
            profile = ConnectionProfile(**data)
        except ValidationError as e:
            messages = [
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            ]
            raise ConfigurationError(
                "invalid configuration: " + "; ".join(messages), problems=messages
            ) from e

        logger.debug(
            f"Resolved profile host={profile.host} port={profile.port} "
            f"policy={profile.known_hosts_policy.value}"
        )
        return profile

    def _from_env(self, problems: list[str]) -> dict[str, Any]:
        """Read options from the environment; empty variables are ignored."""
        env = {k: v for k, v in self._environ.items() if v != ""}
        data: dict[str, Any] = {}

        simple = {
            ENV_DOCKER_PATH: "docker_path",
            ENV_AGENT_PATH: "agent_path",
            ENV_HOST: "host",
            ENV_PORT: "port",
            ENV_EXTRA_FLAGS: "extra_flags",
            ENV_KNOWN_HOSTS_PATH: "known_hosts_path",
        }
        for name, field in simple.items():
            if name in env:
                data[field] = env[name]

        if ENV_KNOWN_HOSTS_POLICY in env:
            data["known_hosts_policy"] = KnownHostsPolicy.parse(
                env[ENV_KNOWN_HOSTS_POLICY]
            )

        if ENV_USE_BUILTIN_SSH in env:
            value = env[ENV_USE_BUILTIN_SSH].strip().lower()
            if value in _TRUE_VALUES:
                data["use_builtin_ssh"] = True
            elif value in _FALSE_VALUES:
                data["use_builtin_ssh"] = False
            else:
                problems.append(
                    f"{ENV_USE_BUILTIN_SSH} must be true or false, got {value!r}"
                )

        if ENV_IDENTITY_FILE in env:
            data["identity_files"] = tuple(
                part for part in env[ENV_IDENTITY_FILE].split(os.pathsep) if part
            )

        return data

    @staticmethod
    def _normalize_paths(
        data: dict[str, Any], home: Path | None, problems: list[str]
    ) -> None:
        """Expand ``~`` in known hosts and identity paths in place."""
        if data.get("known_hosts_path") is not None:
            try:
                data["known_hosts_path"] = expand_home(data["known_hosts_path"], home)
            except ValueError as e:
                problems.append(str(e))

        identity_files: list[Path] = []
        for path in data.get("identity_files", ()):
            try:
                identity_files.append(expand_home(path, home))
            except ValueError as e:
                problems.append(str(e))
        data["identity_files"] = tuple(identity_files)

    @staticmethod
    def _current_user() -> str | None:
        try:
            return getpass.getuser() or None
        except (KeyError, OSError, ImportError):
            return None

    @staticmethod
    def _local_hostname() -> str | None:
        try:
            return socket.gethostname() or None
        except OSError:
            return None
