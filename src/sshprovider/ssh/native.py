"""SSH backend speaking the protocol in-process with paramiko."""

import logging
import shutil
import threading
import time
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import IO

import paramiko

from sshprovider.core.errors import (
    AuthenticationExhausted,
    TransportError,
    UnsupportedAuthMethod,
    UnsupportedConfigDirective,
    UnsupportedKeyFormat,
    UploadError,
)
from sshprovider.core.types import ConnectionProfile, HostTarget
from sshprovider.ssh.auth import AuthMethod, AuthResolver
from sshprovider.ssh.base import CHUNK_SIZE, SSHClient, read_chunk, write_chunk
from sshprovider.ssh.host_config import (
    HostConfigLookup,
    find_unsupported_directive,
    resolve_host_target,
)
from sshprovider.ssh.known_hosts import (
    CallbackHostKeyPolicy,
    HostKeyCallback,
    KnownHostsStore,
    build_host_key_callback,
)

logger = logging.getLogger(__name__)

DIAL_TIMEOUT = 30.0
MAX_IDLE = 5 * 60.0
MAX_LIFETIME = 60 * 60.0


class _ReadWriteLock:
    """Many readers or one writer. Not reentrant."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._readers = 0
        self._writer = False

    @contextmanager
    def read(self) -> Iterator[None]:
        with self._cond:
            while self._writer:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if not self._readers:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._readers:
                self._cond.wait()
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class SessionState:
    """Lifecycle of the underlying connection."""

    def __init__(self) -> None:
        self.lock = _ReadWriteLock()
        self.client: paramiko.SSHClient | None = None
        self.connected_at = 0.0
        self.last_used = 0.0
        self.connection_id = 0

    def is_stale(self, now: float) -> bool:
        """Whether the connection must be re-established before use.

        Args:
            now: Current clock reading.

        Returns:
            True if there is no connection, the transport is inactive, or the
            connection is idle or old beyond its limits.
        """
        if self.client is None:
            return True
        transport = self.client.get_transport()
        if transport is None or not transport.is_active():
            return True
        if now - self.last_used > MAX_IDLE:
            return True
        return now - self.connected_at > MAX_LIFETIME

    def reset(self, client: paramiko.SSHClient, now: float) -> None:
        self.client = client
        self.connected_at = now
        self.last_used = now
        self.connection_id += 1

    def touch(self, now: float) -> None:
        self.last_used = now

    def clear(self) -> None:
        if self.client is not None:
            self.client.close()
        self.client = None


class NativeSSHClient(SSHClient):
    """Paramiko based SSH client.

    Host settings from the local SSH configuration are applied on every
    connect. Host keys are checked against the known hosts file according
    to the profile's policy. A connection that has been idle for more than
    five minutes, is older than an hour, or has dropped is re-established
    transparently before the next command or upload.

    Example:
        >>> with NativeSSHClient(profile) as client:
        ...     print(client.run("uname -s"))
    """

    name = "native"

    def __init__(
        self,
        profile: ConnectionProfile,
        host_config: HostConfigLookup | None = None,
        auth_resolver: AuthResolver | None = None,
        known_hosts: KnownHostsStore | None = None,
        client_factory: Callable[[], paramiko.SSHClient] = paramiko.SSHClient,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize native SSH client.

        Args:
            profile: Connection profile.
            host_config: Local SSH configuration lookup.
            auth_resolver: Credential resolver.
            known_hosts: Known hosts store. Derived from the profile if None.
            client_factory: Creates paramiko clients.
            clock: Monotonic clock used for staleness checks.
        """
        self._profile = profile
        self._host_config = host_config or HostConfigLookup()
        self._auth_resolver = auth_resolver or AuthResolver()
        self._known_hosts = known_hosts
        self._client_factory = client_factory
        self._clock = clock
        self._host_key_callback: HostKeyCallback | None = None
        self._target: HostTarget | None = None
        self._state = SessionState()

    @property
    def profile(self) -> ConnectionProfile:
        """Get connection profile."""
        return self._profile

    @property
    def target(self) -> HostTarget | None:
        """Get the host target of the last connect."""
        return self._target

    @property
    def connection_id(self) -> int:
        """Counter incremented on every successful connect."""
        with self._state.lock.read():
            return self._state.connection_id

    @property
    def is_connected(self) -> bool:
        """Whether a live connection exists."""
        with self._state.lock.read():
            return not self._state.is_stale(self._clock())

    def connect(self) -> None:
        """Establish the SSH connection.

        Raises:
            UnsupportedConfigDirective: If the host uses ProxyJump or ProxyCommand.
            UnsupportedKeyFormat: If identity files exist but none parse.
            UnsupportedAuthMethod: If the server refuses public key auth.
            AuthenticationExhausted: If no credential is available.
            HostKeyRejected: If the server host key is refused.
            TransportError: For any other dial or auth failure.
        """
        with self._state.lock.write():
            self._state.clear()
            self._connect_locked()

    def close(self) -> None:
        """Close the SSH connection."""
        with self._state.lock.write():
            if self._state.client is not None:
                logger.debug(f"Closing connection to {self._profile.host}")
            self._state.clear()

    def _connect_locked(self) -> None:
        target = resolve_host_target(self._profile, self._host_config)
        directive = find_unsupported_directive(target.directives)
        if directive:
            raise UnsupportedConfigDirective(directive)

        try:
            auth = self._auth_resolver.resolve(target.identity_candidates)
        except AuthenticationExhausted as e:
            if e.unparseable:
                raise UnsupportedKeyFormat(", ".join(e.unparseable)) from e
            raise

        if self._host_key_callback is None:
            self._host_key_callback = build_host_key_callback(
                self._profile, self._known_hosts
            )

        client = self._client_factory()
        client.set_missing_host_key_policy(
            CallbackHostKeyPolicy(self._host_key_callback)
        )
        try:
            self._dial(client, target, auth)
        except Exception:
            client.close()
            raise

        self._target = target
        self._state.reset(client, self._clock())
        logger.info(
            f"Connected to {target.user}@{target.address} "
            f"(auth: {auth.kind} {auth.source})"
        )

    def _dial(
        self, client: paramiko.SSHClient, target: HostTarget, auth: AuthMethod
    ) -> None:
        logger.debug(f"Dialing {target.address} as {target.user}")
        try:
            client.connect(
                hostname=target.hostname,
                port=target.port,
                username=target.user,
                timeout=DIAL_TIMEOUT,
                banner_timeout=DIAL_TIMEOUT,
                auth_timeout=DIAL_TIMEOUT,
                **auth.connect_kwargs(),
            )
        except paramiko.BadAuthenticationType as e:
            raise UnsupportedAuthMethod(",".join(e.allowed_types)) from e
        except paramiko.AuthenticationException as e:
            raise TransportError(
                f"authenticate as {target.user}: {e}", stage="auth"
            ) from e
        except (paramiko.SSHException, OSError) as e:
            raise TransportError(f"dial {target.address}: {e}") from e

    def _ensure_connected(self) -> paramiko.SSHClient:
        with self._state.lock.read():
            if not self._state.is_stale(self._clock()):
                return self._state.client

        with self._state.lock.write():
            if self._state.is_stale(self._clock()):
                if self._state.client is not None:
                    logger.debug(f"Connection to {self._profile.host} is stale, reconnecting")
                self._state.clear()
                self._connect_locked()
            return self._state.client

    def _touch(self) -> None:
        with self._state.lock.write():
            self._state.touch(self._clock())

    def _exec(
        self,
        command: str,
        output: IO[bytes],
        stderr: IO[bytes] | None = None,
        stdin: IO[bytes] | None = None,
    ) -> tuple[int, str]:
        client = self._ensure_connected()
        stderr_buffer = bytearray()

        try:
            channel = client.get_transport().open_session(timeout=DIAL_TIMEOUT)
        except (paramiko.SSHException, OSError) as e:
            raise TransportError(
                f"open session: {e}", stage="execute", command=command
            ) from e

        try:
            channel.exec_command(command)
        except (paramiko.SSHException, OSError) as e:
            channel.close()
            raise TransportError(
                f"exec: {e}", stage="execute", command=command
            ) from e

        stderr_errors: list[Exception] = []

        with channel:

            def collect_stderr() -> None:
                try:
                    for chunk in iter(lambda: channel.recv_stderr(CHUNK_SIZE), b""):
                        stderr_buffer.extend(chunk)
                        if stderr is not None:
                            write_chunk(stderr, chunk)
                except (paramiko.SSHException, OSError) as e:
                    stderr_errors.append(e)

            stderr_thread = threading.Thread(
                target=collect_stderr, name="ssh-stderr", daemon=True
            )
            stderr_thread.start()
            if stdin is not None:
                threading.Thread(
                    target=_forward_stdin,
                    args=(stdin, channel),
                    name="ssh-stdin",
                    daemon=True,
                ).start()

            try:
                for chunk in iter(lambda: channel.recv(CHUNK_SIZE), b""):
                    write_chunk(output, chunk)
                exit_status = channel.recv_exit_status()
            except (paramiko.SSHException, OSError) as e:
                raise TransportError(
                    f"read output: {e}", stage="execute", command=command
                ) from e
            stderr_thread.join()

        if stderr_errors:
            e = stderr_errors[0]
            raise TransportError(
                f"read error output: {e}", stage="execute", command=command
            ) from e

        self._touch()
        stderr_text = stderr_buffer.decode("utf-8", errors="replace")
        if exit_status != 0 and stderr_text.strip():
            logger.error(stderr_text.strip())
        return exit_status, stderr_text

    def upload(self, local_path: str, remote_path: str) -> None:
        """Copy a local file to the remote host over SFTP.

        Args:
            local_path: Local file to send.
            remote_path: Destination path on the remote host.

        Raises:
            UploadError: If the local file cannot be read, the remote file
                cannot be created, or the copy is interrupted.
            TransportError: If the SFTP subsystem cannot be started.
        """
        client = self._ensure_connected()

        try:
            local = open(local_path, "rb")
        except OSError as e:
            raise UploadError(f"open local file {local_path}: {e}", side="local") from e

        with local:
            try:
                sftp = client.open_sftp()
            except (paramiko.SSHException, OSError) as e:
                raise TransportError(f"start sftp: {e}", stage="upload") from e

            with sftp:
                try:
                    remote = sftp.open(remote_path, "wb")
                except (paramiko.SSHException, OSError) as e:
                    raise UploadError(
                        f"create remote file {remote_path}: {e}", side="remote"
                    ) from e

                with remote:
                    try:
                        shutil.copyfileobj(local, remote, CHUNK_SIZE)
                    except (paramiko.SSHException, OSError) as e:
                        raise UploadError(
                            f"copy {local_path} to {remote_path}: {e}", side="copy"
                        ) from e

        self._touch()
        logger.debug(f"Uploaded {local_path} to {remote_path}")


def _forward_stdin(source: IO[bytes], channel: paramiko.Channel) -> None:
    """Send local stdin to the remote command, then signal EOF."""
    try:
        for chunk in iter(lambda: read_chunk(source), b""):
            channel.sendall(chunk)
    except (paramiko.SSHException, OSError, ValueError) as e:
        logger.debug(f"stdin forwarding stopped: {e}")
    finally:
        try:
            channel.shutdown_write()
        except (paramiko.SSHException, OSError) as e:
            logger.debug(f"Could not close remote stdin: {e}")
