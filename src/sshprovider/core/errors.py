"""Exception types for sshprovider."""

from typing import Any


class SSHProviderError(Exception):
    """Base class for all errors surfaced by sshprovider.

    Every error records the stage that failed (``resolve``, ``auth``,
    ``dial``, ``execute``, ``upload`` or ``detect``) and, where one is
    involved, the remote command that produced it.
    """

    stage = "execute"

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        command: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if stage is not None:
            self.stage = stage
        self.command = command

    def __str__(self) -> str:
        text = f"{self.stage}: {self.message}"
        if self.command:
            text += f" (command: {self.command})"
        return text


class ConfigurationError(SSHProviderError):
    """Raised when the connection profile cannot be resolved."""

    stage = "resolve"

    def __init__(self, message: str, problems: list[str] | None = None) -> None:
        super().__init__(message)
        self.problems = problems or [message]


class AuthenticationExhausted(SSHProviderError):
    """Raised when no identity file, agent or default key is usable."""

    stage = "auth"

    def __init__(self, unparseable: list[str] | None = None) -> None:
        super().__init__("no usable SSH auth found")
        self.unparseable = unparseable or []


class FallbackableError(SSHProviderError):
    """Native backend failure that the shell backend may be able to handle."""

    stage = "dial"


class UnsupportedConfigDirective(FallbackableError):
    """Raised when the local SSH config uses a directive the native backend lacks."""

    def __init__(self, directive: str) -> None:
        super().__init__(f"unsupported SSH config directive: {directive}")
        self.directive = directive


class UnsupportedAuthMethod(FallbackableError):
    """Raised when the server only offers authentication methods we cannot use."""

    stage = "auth"

    def __init__(self, method: str) -> None:
        super().__init__(f"unsupported authentication method: {method}")
        self.method = method


class UnsupportedKeyFormat(FallbackableError):
    """Raised when identity files exist but none can be parsed."""

    stage = "auth"

    def __init__(self, key_format: str) -> None:
        super().__init__(f"unsupported key format: {key_format}")
        self.key_format = key_format


class HostKeyRejected(SSHProviderError):
    """Raised when a presented host key is unknown or does not match.

    ``wanted`` lists the keys the known-hosts store holds for the host. An
    empty list means the host is unknown; a non-empty list means the host is
    known with a different key.
    """

    stage = "dial"

    def __init__(self, host: str, wanted: list[Any] | None = None) -> None:
        self.host = host
        self.wanted = list(wanted or [])
        if self.wanted:
            message = f"host key mismatch for {host}"
        else:
            message = f"host key for {host} is unknown"
        super().__init__(message)

    @property
    def is_unknown_host(self) -> bool:
        """Whether the host has no entry at all in the store."""
        return not self.wanted


class TransportError(SSHProviderError):
    """Dial or session failure that does not warrant a backend fallback."""

    stage = "dial"


class RemoteCommandError(SSHProviderError):
    """Raised when a remote command exits non-zero."""

    def __init__(self, command: str, exit_status: int, stderr: str = "") -> None:
        message = f"remote command exited with status {exit_status}"
        detail = stderr.strip()
        if detail:
            message += f": {detail}"
        super().__init__(message, stage="execute", command=command)
        self.exit_status = exit_status
        self.stderr = stderr


class UploadError(SSHProviderError):
    """Raised when a file transfer fails.

    ``side`` is ``local`` (the source could not be opened), ``remote`` (the
    destination could not be created) or ``copy`` (transfer interrupted).
    """

    stage = "upload"

    def __init__(self, message: str, side: str) -> None:
        super().__init__(message)
        self.side = side


class ShellParseError(SSHProviderError):
    """Raised when user supplied extra flags cannot be tokenized."""


class RemoteOSUndetermined(SSHProviderError):
    """Raised when the remote OS is required but could not be detected."""

    stage = "detect"

    def __init__(self) -> None:
        super().__init__("could not determine remote OS")


def should_fallback(error: BaseException | None) -> bool:
    """Return True if ``error`` (or anything it wraps) allows a shell fallback.

    Args:
        error: Error raised by the native backend.

    Returns:
        True for unsupported config directives, auth methods and key formats.
    """
    seen: set[int] = set()
    while error is not None and id(error) not in seen:
        if isinstance(error, FallbackableError):
            return True
        seen.add(id(error))
        error = error.__cause__
    return False
