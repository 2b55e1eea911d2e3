"""Tests for sshprovider.ssh.selector module."""

from unittest.mock import MagicMock

import pytest

from sshprovider.core.errors import (
    HostKeyRejected,
    TransportError,
    UnsupportedAuthMethod,
    UnsupportedConfigDirective,
    UnsupportedKeyFormat,
)
from sshprovider.core.types import ConnectionProfile
from sshprovider.ssh.selector import ClientSelector


def backend(name: str, error: Exception | None = None) -> MagicMock:
    """Create a backend mock, optionally failing to connect."""
    client = MagicMock()
    client.name = name
    if error is not None:
        client.connect.side_effect = error
    return client


class TestClientSelector:
    """Tests for ClientSelector class."""

    def test_native_preferred(self, profile: ConnectionProfile) -> None:
        """Test the native backend is used when it connects."""
        native = backend("native")
        shell_factory = MagicMock()
        selector = ClientSelector(profile, MagicMock(return_value=native), shell_factory)

        assert selector.obtain() is native
        assert selector.backend_name == "native"
        shell_factory.assert_not_called()

    def test_selection_cached(self, profile: ConnectionProfile) -> None:
        """Test the backend is chosen once."""
        native_factory = MagicMock(return_value=backend("native"))
        selector = ClientSelector(profile, native_factory, MagicMock())

        assert selector.obtain() is selector.obtain()
        native_factory.assert_called_once_with(profile)

    def test_builtin_disabled(self, profile: ConnectionProfile) -> None:
        """Test opting out uses the shell backend without trying native."""
        shell = backend("shell")
        native_factory = MagicMock()
        selector = ClientSelector(
            profile.model_copy(update={"use_builtin_ssh": False}),
            native_factory,
            MagicMock(return_value=shell),
        )

        assert selector.obtain() is shell
        assert selector.backend_name == "shell"
        native_factory.assert_not_called()
        shell.connect.assert_called_once()

    @pytest.mark.parametrize(
        "error",
        [
            UnsupportedConfigDirective("ProxyJump"),
            UnsupportedAuthMethod("keyboard-interactive"),
            UnsupportedKeyFormat("/keys/a"),
        ],
    )
    def test_fallback(
        self,
        profile: ConnectionProfile,
        error: Exception,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """Test fallbackable errors switch to the shell backend."""
        native = backend("native", error)
        shell = backend("shell")
        selector = ClientSelector(
            profile, MagicMock(return_value=native), MagicMock(return_value=shell)
        )

        assert selector.obtain() is shell
        assert selector.backend_name == "shell"
        native.close.assert_called_once()
        assert "Falling back to ssh binary" in caplog.text

    def test_wrapped_fallback(self, profile: ConnectionProfile) -> None:
        """Test a fallbackable cause also switches backends."""
        error = RuntimeError("connect")
        error.__cause__ = UnsupportedKeyFormat("/keys/a")
        shell = backend("shell")
        selector = ClientSelector(
            profile,
            MagicMock(return_value=backend("native", error)),
            MagicMock(return_value=shell),
        )

        assert selector.obtain() is shell

    @pytest.mark.parametrize(
        "error",
        [HostKeyRejected("example.com"), TransportError("connection refused")],
    )
    def test_terminal_errors(self, profile: ConnectionProfile, error: Exception) -> None:
        """Test other errors never reach the shell backend."""
        shell_factory = MagicMock()
        selector = ClientSelector(
            profile, MagicMock(return_value=backend("native", error)), shell_factory
        )

        with pytest.raises(type(error)):
            selector.obtain()

        shell_factory.assert_not_called()
        assert selector.backend_name is None

    def test_close(self, profile: ConnectionProfile) -> None:
        """Test close closes the selected backend only."""
        native = backend("native")
        selector = ClientSelector(profile, MagicMock(return_value=native), MagicMock())

        selector.close()
        selector.obtain()
        selector.close()

        native.close.assert_called_once()
