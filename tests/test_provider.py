"""Tests for sshprovider.provider module."""

import io
import logging
from unittest.mock import MagicMock

import pytest

from sshprovider.core.errors import RemoteCommandError, RemoteOSUndetermined
from sshprovider.core.types import ConnectionProfile, RemoteOSClass
from sshprovider.provider import ProviderSession, collapse_whitespace, init_commands
from sshprovider.ssh.remote_os import POWERSHELL_COMMAND
from sshprovider.ssh.selector import ClientSelector


def session_with(client: MagicMock, profile: ConnectionProfile) -> ProviderSession:
    """Create a session whose selector returns ``client``."""
    selector = MagicMock(spec=ClientSelector)
    selector.obtain.return_value = client
    selector.backend_name = "native"
    return ProviderSession(profile, selector=selector)


def scripted_client(responses: dict[str, str]) -> MagicMock:
    client = MagicMock()

    def run(command: str) -> str:
        if command in responses:
            return responses[command]
        raise RemoteCommandError(command, 1, "failed")

    client.run.side_effect = run
    return client


class TestInitCommands:
    """Tests for init_commands function."""

    def test_linux(self) -> None:
        """Test the Linux and macOS command list."""
        expected = ["uname -s", "lsb_release -is || true", "/usr/bin/docker ps -qa"]
        assert init_commands(RemoteOSClass.LINUX, "/usr/bin/docker") == expected
        assert init_commands(RemoteOSClass.DARWIN, "/usr/bin/docker") == expected

    def test_windows(self) -> None:
        """Test the Windows command list quotes the docker path."""
        docker = "C:\\Program Files\\Docker\\docker.exe"
        assert init_commands(RemoteOSClass.WINDOWS, docker) == [
            'cmd /c "ver"',
            POWERSHELL_COMMAND,
            f'"{docker}" ps -qa',
        ]

    def test_without_docker(self) -> None:
        """Test the docker command is skipped without a path."""
        assert init_commands(RemoteOSClass.LINUX, "") == [
            "uname -s",
            "lsb_release -is || true",
        ]

    def test_unknown(self) -> None:
        """Test an unknown OS has no commands."""
        with pytest.raises(RemoteOSUndetermined):
            init_commands(RemoteOSClass.UNKNOWN)


class TestCollapseWhitespace:
    """Tests for collapse_whitespace function."""

    def test_collapse(self) -> None:
        """Test runs of whitespace become single spaces."""
        assert collapse_whitespace("  a\n\tb   c\r\n") == "a b c"
        assert collapse_whitespace("") == ""


class TestProviderSession:
    """Tests for ProviderSession class."""

    def test_initialize_linux(
        self, profile: ConnectionProfile, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Test diagnostic commands run and failures do not abort."""
        client = scripted_client(
            {"uname -s": "Linux\n", "lsb_release -is || true": "Ubuntu\n"}
        )
        session = session_with(client, profile)

        with caplog.at_level(logging.INFO):
            results = session.initialize()

        assert results == [
            ("uname -s", "Linux"),
            ("lsb_release -is || true", "Ubuntu"),
            ("/usr/bin/docker ps -qa", None),
        ]
        assert "Detected remote OS: Linux" in caplog.text
        assert "Output: Ubuntu" in caplog.text
        assert "Failed: /usr/bin/docker ps -qa" in caplog.text

    def test_initialize_unknown(self, profile: ConnectionProfile) -> None:
        """Test an unknown OS fails initialization."""
        session = session_with(scripted_client({"uname -s": "Plan9\n"}), profile)

        with pytest.raises(RemoteOSUndetermined):
            session.initialize()

    def test_detect_os_cached(self, profile: ConnectionProfile) -> None:
        """Test the OS is detected once per session."""
        client = scripted_client({"uname -s": "Darwin\n"})
        session = session_with(client, profile)

        assert session.detect_os() is RemoteOSClass.DARWIN
        assert session.detect_os() is RemoteOSClass.DARWIN
        assert client.run.call_count == 1

    def test_run_command(self, profile: ConnectionProfile) -> None:
        """Test streams are passed to the backend."""
        client = MagicMock()
        session = session_with(client, profile)
        stdout, stderr, stdin = io.BytesIO(), io.BytesIO(), io.BytesIO(b"in")

        session.run_command("cat", stdout=stdout, stderr=stderr, stdin=stdin)

        client.execute.assert_called_once_with("cat", stdout, stderr=stderr, stdin=stdin)

    def test_upload(self, profile: ConnectionProfile) -> None:
        """Test uploads go through the selected backend."""
        client = MagicMock()
        session = session_with(client, profile)

        session.upload("/tmp/a", "/srv/a")

        client.upload.assert_called_once_with("/tmp/a", "/srv/a")

    def test_context_manager_closes(self, profile: ConnectionProfile) -> None:
        """Test leaving the context closes the selector."""
        session = session_with(MagicMock(), profile)

        with session:
            assert session.backend_name == "native"

        session._selector.close.assert_called_once()
