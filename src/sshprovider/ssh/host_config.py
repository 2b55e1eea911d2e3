"""Best-effort lookup of the local SSH client configuration."""

import getpass
import logging
import subprocess
from pathlib import Path
from typing import Any

import paramiko

from sshprovider.core.config import resolve_port
from sshprovider.core.errors import ConfigurationError
from sshprovider.core.paths import (
    expand_home,
    get_default_ssh_config_path,
    get_ssh_dir,
)
from sshprovider.core.types import DEFAULT_SSH_PORT, ConnectionProfile, HostTarget

logger = logging.getLogger(__name__)

# Directives the native backend cannot honour; the ssh binary can.
UNSUPPORTED_DIRECTIVES = ("proxyjump", "proxycommand")

# Keys ``ssh -G`` lists when no IdentityFile is configured for the host.
OPENSSH_DEFAULT_KEY_NAMES = (
    "id_rsa",
    "id_ecdsa",
    "id_ecdsa_sk",
    "id_ed25519",
    "id_ed25519_sk",
    "id_xmss",
    "id_dsa",
)


class HostConfigLookup:
    """Looks up per-host settings from the local SSH client configuration.

    ``ssh -G <alias>`` is tried first because it evaluates ``Include`` and
    ``Match`` blocks exactly as the ssh binary would. If the binary is
    missing or fails, ``~/.ssh/config`` is parsed directly.

    ``ssh -G`` also prints OpenSSH's built-in values for settings the user
    never wrote. The default key list and a User equal to the local login
    are dropped from its output, so they cannot displace the profile.
    """

    def __init__(
        self,
        ssh_binary: str = "ssh",
        config_path: Path | None = None,
        timeout: int = 10,
        home: Path | None = None,
        local_user: str | None = None,
    ) -> None:
        """Initialize lookup.

        Args:
            ssh_binary: ssh executable used for ``ssh -G``.
            config_path: SSH config file. Defaults to ``~/.ssh/config``.
            timeout: Timeout in seconds for ``ssh -G``.
            home: Home directory for default key paths. Looked up if None.
            local_user: Local login name. Looked up if None.
        """
        self._ssh_binary = ssh_binary
        self._config_path = config_path
        self._timeout = timeout
        self._home = home
        self._local_user = local_user

    def lookup(self, alias: str) -> dict[str, Any] | None:
        """Look up the effective settings for a host alias.

        Args:
            alias: Host alias, optionally prefixed with ``user@``.

        Returns:
            Lowercase directive mapping, or None if nothing could be read.
        """
        config = self._from_ssh_binary(alias)
        lookup_name = alias
        from_binary = config is not None
        if config is None:
            config = self._from_file()
            lookup_name = alias.split("@", 1)[1] if "@" in alias else alias
        if config is None:
            return None

        try:
            directives = dict(config.lookup(lookup_name))
        except (paramiko.SSHException, ValueError, KeyError) as e:
            logger.debug(f"SSH config lookup for {alias!r} failed: {e}")
            return None

        if from_binary:
            self._drop_implicit_defaults(directives, alias)
        return directives

    def _drop_implicit_defaults(self, directives: dict[str, Any], alias: str) -> None:
        defaults = {f"~/.ssh/{name}" for name in OPENSSH_DEFAULT_KEY_NAMES}
        ssh_dir = get_ssh_dir(self._home)
        if ssh_dir is not None:
            defaults.update(str(ssh_dir / name) for name in OPENSSH_DEFAULT_KEY_NAMES)

        if "identityfile" in directives:
            explicit = [
                path for path in directives["identityfile"] if path not in defaults
            ]
            if explicit:
                directives["identityfile"] = explicit
            else:
                del directives["identityfile"]

        # A user@ prefix on the alias is echoed back as User and is kept.
        if "@" not in alias and directives.get("user") == self._login_name():
            del directives["user"]

    def _login_name(self) -> str | None:
        if self._local_user is not None:
            return self._local_user
        try:
            return getpass.getuser()
        except (OSError, KeyError) as e:
            logger.debug(f"Could not determine local user: {e}")
            return None

    def _from_ssh_binary(self, alias: str) -> paramiko.SSHConfig | None:
        try:
            result = subprocess.run(
                [self._ssh_binary, "-G", alias],
                capture_output=True,
                text=True,
                timeout=self._timeout,
                check=True,
            )
        except (OSError, subprocess.SubprocessError) as e:
            logger.debug(
                f"ssh -G {alias!r} failed: {e} (falling back to explicit config)"
            )
            return None

        try:
            return paramiko.SSHConfig.from_text(result.stdout)
        except paramiko.SSHException as e:
            logger.debug(f"Could not parse ssh -G output for {alias!r}: {e}")
            return None

    def _from_file(self) -> paramiko.SSHConfig | None:
        path = self._config_path or get_default_ssh_config_path()
        if path is None or not path.is_file():
            return None
        try:
            return paramiko.SSHConfig.from_path(str(path))
        except (OSError, paramiko.SSHException) as e:
            logger.debug(f"Could not parse SSH config {path}: {e}")
            return None


def find_unsupported_directive(directives: dict[str, Any]) -> str | None:
    """Return the first directive the native backend cannot handle.

    Args:
        directives: Result of HostConfigLookup.lookup.

    Returns:
        Directive name as written in ssh_config, or None.
    """
    for key in UNSUPPORTED_DIRECTIVES:
        value = directives.get(key)
        if value and str(value).strip().lower() != "none":
            return {"proxyjump": "ProxyJump", "proxycommand": "ProxyCommand"}[key]
    return None


def resolve_host_target(
    profile: ConnectionProfile, host_config: HostConfigLookup | None = None
) -> HostTarget:
    """Apply per-host SSH configuration on top of the profile.

    Hostname, User and IdentityFile from the local SSH configuration win over
    the profile, except that a ``user@`` prefix on the host and an explicit
    non-default port are kept.

    Args:
        profile: Resolved connection profile.
        host_config: Local SSH configuration lookup. Skipped if None.

    Returns:
        HostTarget for the native backend.

    Raises:
        ConfigurationError: If no hostname or user can be determined.
    """
    directives: dict[str, Any] = {}
    if host_config is not None and profile.host:
        directives = host_config.lookup(profile.host) or {}

    hostname = str(directives.get("hostname") or profile.hostname)
    if "@" in profile.host:
        user = profile.login_user
    else:
        user = str(directives.get("user") or profile.user)

    port = resolve_port(profile.port)
    if port == DEFAULT_SSH_PORT and directives.get("port"):
        port = resolve_port(directives["port"])

    candidates: list[Path] = []
    for raw in [*directives.get("identityfile", []), *profile.identity_files]:
        try:
            path = expand_home(raw)
        except ValueError as e:
            logger.debug(f"Identity candidate skipped {raw}: {e}")
            continue
        if path not in candidates:
            candidates.append(path)

    if not hostname:
        raise ConfigurationError(
            "no remote address provided (Host or ssh config Hostname required)"
        )
    if not user:
        raise ConfigurationError(
            "no remote user provided (User or ssh config User required)"
        )

    return HostTarget(
        alias=profile.host,
        hostname=hostname,
        user=user,
        port=port,
        identity_candidates=tuple(candidates),
        directives=directives,
    )
