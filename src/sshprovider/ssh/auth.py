"""SSH authentication method resolution."""

import logging
import os
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import paramiko
from cryptography.exceptions import UnsupportedAlgorithm
from paramiko.pkey import UnknownKeyType

from sshprovider.core.errors import AuthenticationExhausted
from sshprovider.core.paths import expand_home, get_default_identity_files

logger = logging.getLogger(__name__)

AGENT_SOCKET_ENV = "SSH_AUTH_SOCK"


@dataclass(frozen=True)
class AuthMethod:
    """A usable credential."""

    kind: str  # "publickey" or "agent"
    source: str
    pkey: paramiko.PKey | None = None

    def connect_kwargs(self) -> dict[str, Any]:
        """Get keyword arguments for ``paramiko.SSHClient.connect``."""
        if self.kind == "agent":
            return {"allow_agent": True, "look_for_keys": False}
        return {"pkey": self.pkey, "allow_agent": False, "look_for_keys": False}


def load_private_key(path: Path) -> paramiko.PKey:
    """Parse an unencrypted private key file of any supported type.

    Args:
        path: Private key path.

    Returns:
        Parsed key.

    Raises:
        TypeError: If the key is encrypted.
        ValueError: If the key is malformed.
        UnknownKeyType: If the key type is not supported.
    """
    return paramiko.PKey.from_path(path)


class AuthResolver:
    """Finds the first usable credential.

    Tiers, in order: the given identity candidates, the SSH agent, then the
    conventional ``~/.ssh`` default keys.
    """

    def __init__(
        self,
        home: Path | None = None,
        environ: Mapping[str, str] | None = None,
        agent_factory: Callable[[], paramiko.Agent] = paramiko.Agent,
    ) -> None:
        """Initialize resolver.

        Args:
            home: Home directory for default keys. Looked up if None.
            environ: Environment used to find the agent socket.
            agent_factory: Creates an SSH agent connection.
        """
        self._home = home
        self._environ = os.environ if environ is None else environ
        self._agent_factory = agent_factory

    def resolve(self, identity_candidates: Iterable[str | Path]) -> AuthMethod:
        """Resolve an authentication method.

        Args:
            identity_candidates: Private key paths in priority order.

        Returns:
            The first usable AuthMethod.

        Raises:
            AuthenticationExhausted: If no tier yields a credential.
        """
        tried: set[Path] = set()
        unparseable: list[str] = []

        for candidate in identity_candidates:
            try:
                path = expand_home(candidate, self._home)
            except ValueError as e:
                logger.debug(f"Identity candidate skipped {candidate}: {e}")
                continue
            method = self._try_key(path, tried, unparseable)
            if method is not None:
                return method

        method = self._try_agent()
        if method is not None:
            return method

        for path in get_default_identity_files(self._home):
            if path in tried:
                continue
            method = self._try_key(path, tried, unparseable)
            if method is not None:
                logger.debug(f"Using default identity file: {path}")
                return method

        raise AuthenticationExhausted(unparseable=unparseable)

    def _try_key(
        self, path: Path, tried: set[Path], unparseable: list[str]
    ) -> AuthMethod | None:
        tried.add(path)
        if not path.is_file():
            logger.debug(f"Identity candidate skipped {path}: not a regular file")
            return None
        try:
            pkey = load_private_key(path)
        except (
            paramiko.SSHException,
            UnknownKeyType,
            UnsupportedAlgorithm,
            TypeError,
            ValueError,
            OSError,
        ) as e:
            logger.debug(f"Key not usable {path}: {e}")
            unparseable.append(str(path))
            return None
        logger.debug(f"Loaded ssh key: {path}")
        return AuthMethod(kind="publickey", source=str(path), pkey=pkey)

    def _try_agent(self) -> AuthMethod | None:
        socket_path = self._environ.get(AGENT_SOCKET_ENV, "")
        if not socket_path:
            return None

        try:
            agent = self._agent_factory()
        except (paramiko.SSHException, OSError) as e:
            logger.debug(f"SSH agent not usable: {e}")
            return None

        try:
            keys = agent.get_keys()
        except (paramiko.SSHException, OSError) as e:
            logger.debug(f"SSH agent not usable: {e}")
            keys = ()
        finally:
            agent.close()

        if not keys:
            logger.debug("SSH agent not usable: no identities")
            return None
        return AuthMethod(kind="agent", source=socket_path)
