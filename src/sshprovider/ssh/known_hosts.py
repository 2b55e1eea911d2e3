"""Host key verification policies backed by an OpenSSH known_hosts file."""

import logging
import os
from collections.abc import Callable
from pathlib import Path

import paramiko
from paramiko.hostkeys import HostKeyEntry

from sshprovider.core.errors import ConfigurationError, HostKeyRejected
from sshprovider.core.paths import get_default_known_hosts_path
from sshprovider.core.types import ConnectionProfile, KnownHostsPolicy

logger = logging.getLogger(__name__)

# (host_identifier, remote_address, presented_key); raises HostKeyRejected.
HostKeyCallback = Callable[[str, str, paramiko.PKey], None]


class KnownHostsStore:
    """Lazily loaded known_hosts file.

    The file is read at most once per store. A missing file behaves as an
    empty store and is created on the first append. Appends are not
    protected against other processes writing the same file.
    """

    def __init__(self, path: Path) -> None:
        """Initialize store.

        Args:
            path: known_hosts file path.
        """
        self._path = path
        self._host_keys: paramiko.HostKeys | None = None

    @property
    def path(self) -> Path:
        """Get known_hosts file path."""
        return self._path

    @property
    def loaded(self) -> bool:
        """Whether the file has been read."""
        return self._host_keys is not None

    def _load(self) -> paramiko.HostKeys:
        if self._host_keys is None:
            host_keys = paramiko.HostKeys()
            if self._path.is_file():
                host_keys.load(str(self._path))
                logger.debug(f"Loaded {len(host_keys)} known hosts from {self._path}")
            else:
                logger.debug(f"Known hosts file {self._path} does not exist")
            self._host_keys = host_keys
        return self._host_keys

    def verify(self, host: str, key: paramiko.PKey) -> None:
        """Check a presented key against the store.

        Args:
            host: Host identifier (``host`` or ``[host]:port``).
            key: Key presented by the server.

        Raises:
            HostKeyRejected: With an empty ``wanted`` list if the host is
                unknown, or the known keys if they differ.
        """
        known = self._load().lookup(host)
        if known is None:
            raise HostKeyRejected(host)

        match = known.get(key.get_name())
        if match is not None and match.asbytes() == key.asbytes():
            return

        raise HostKeyRejected(host, wanted=list(known.values()))

    def add(self, host: str, key: paramiko.PKey) -> None:
        """Append a host key in OpenSSH format.

        Args:
            host: Host identifier (``host`` or ``[host]:port``).
            key: Key to trust.
        """
        line = HostKeyEntry([host], key).to_line()
        if not self._path.parent.exists():
            self._path.parent.mkdir(parents=True, exist_ok=True)
            os.chmod(self._path.parent, 0o700)

        needs_newline = False
        if self._path.is_file() and self._path.stat().st_size > 0:
            with open(self._path, "rb") as f:
                f.seek(-1, os.SEEK_END)
                needs_newline = f.read(1) != b"\n"

        with open(self._path, "a", encoding="utf-8") as f:
            if needs_newline:
                f.write("\n")
            f.write(line)

        self._load().add(host, key.get_name(), key)


def build_host_key_callback(
    profile: ConnectionProfile, store: KnownHostsStore | None = None
) -> HostKeyCallback:
    """Build the host key callback for the profile's policy.

    Args:
        profile: Connection profile.
        store: Known hosts store. Created from the profile if None.

    Returns:
        Callback accepting (host, remote_address, key).

    Raises:
        ConfigurationError: If a known_hosts path is required but unknown.
    """
    policy = KnownHostsPolicy.parse(profile.known_hosts_policy)

    if policy is KnownHostsPolicy.IGNORE:
        logger.warning(
            "Host key verification is disabled (known hosts policy: ignore). "
            "This is insecure."
        )

        def accept_any(host: str, remote: str, key: paramiko.PKey) -> None:
            return None

        return accept_any

    if store is None:
        path = profile.known_hosts_path or get_default_known_hosts_path()
        if path is None:
            raise ConfigurationError("known hosts: no known_hosts path available")
        store = KnownHostsStore(path)

    if policy is KnownHostsPolicy.ACCEPT_NEW:
        return _accept_new_callback(store)

    def strict(host: str, remote: str, key: paramiko.PKey) -> None:
        store.verify(host, key)

    return strict


def _accept_new_callback(store: KnownHostsStore) -> HostKeyCallback:
    def accept_new(host: str, remote: str, key: paramiko.PKey) -> None:
        try:
            store.verify(host, key)
        except HostKeyRejected as e:
            if not e.is_unknown_host:
                logger.warning(
                    f"Host key mismatch for {host} ({remote}): possible man in the middle"
                )
                raise
            store.add(host, key)
            logger.info(f"Host {host} added to known_hosts ({store.path})")

    return accept_new


class CallbackHostKeyPolicy(paramiko.MissingHostKeyPolicy):
    """Routes every server host key through a HostKeyCallback.

    The paramiko client is given no host keys of its own, so paramiko calls
    ``missing_host_key`` for every connection and the callback decides.
    """

    def __init__(self, callback: HostKeyCallback) -> None:
        self._callback = callback

    def missing_host_key(
        self, client: paramiko.SSHClient, hostname: str, key: paramiko.PKey
    ) -> None:
        remote = ""
        transport = client.get_transport()
        if transport is not None:
            try:
                peer = transport.getpeername()
                remote = f"{peer[0]}:{peer[1]}"
            except (OSError, IndexError, TypeError):
                remote = ""
        self._callback(hostname, remote, key)
