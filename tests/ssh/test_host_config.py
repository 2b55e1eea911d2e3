"""Tests for sshprovider.ssh.host_config module."""

import shutil
import subprocess
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest

from sshprovider.core.errors import ConfigurationError
from sshprovider.core.types import ConnectionProfile
from sshprovider.ssh.auth import AuthResolver
from sshprovider.ssh.host_config import (
    HostConfigLookup,
    find_unsupported_directive,
    resolve_host_target,
)

SSH_G_OUTPUT = """\
user deploy
hostname 10.0.0.5
port 2200
identityfile ~/.ssh/deploy_key
proxyjump none
"""

# What ssh -G prints for a host with no matching config block.
SSH_G_DEFAULTS_OUTPUT = """\
user root
hostname example.com
port 22
identityfile ~/.ssh/id_rsa
identityfile ~/.ssh/id_ecdsa
identityfile ~/.ssh/id_ecdsa_sk
identityfile ~/.ssh/id_ed25519
identityfile ~/.ssh/id_ed25519_sk
identityfile ~/.ssh/id_xmss
identityfile ~/.ssh/id_dsa
proxyjump none
"""


def lookup_returning(directives: dict | None) -> MagicMock:
    """Create a host config lookup stub."""
    host_config = MagicMock(spec=HostConfigLookup)
    host_config.lookup.return_value = directives
    return host_config


class TestHostConfigLookup:
    """Tests for HostConfigLookup class."""

    @patch("subprocess.run")
    def test_ssh_g(self, mock_run: MagicMock) -> None:
        """Test ssh -G output is parsed."""
        mock_run.return_value = MagicMock(returncode=0, stdout=SSH_G_OUTPUT, stderr="")

        directives = HostConfigLookup().lookup("dev")

        assert mock_run.call_args[0][0] == ["ssh", "-G", "dev"]
        assert directives["hostname"] == "10.0.0.5"
        assert directives["user"] == "deploy"
        assert directives["port"] == "2200"
        assert directives["identityfile"][0].endswith("deploy_key")

    @patch("subprocess.run")
    def test_falls_back_to_config_file(self, mock_run: MagicMock, temp_dir: Path) -> None:
        """Test the config file is parsed when ssh -G fails."""
        mock_run.side_effect = FileNotFoundError("ssh")
        config = temp_dir / "config"
        config.write_text(
            "Host dev\n  HostName dev.internal\n  User carol\n", encoding="utf-8"
        )

        directives = HostConfigLookup(config_path=config).lookup("alice@dev")

        assert directives["hostname"] == "dev.internal"
        assert directives["user"] == "carol"

    @patch("subprocess.run")
    def test_nothing_available(self, mock_run: MagicMock, temp_dir: Path) -> None:
        """Test None when neither source is available."""
        mock_run.side_effect = subprocess.CalledProcessError(255, ["ssh", "-G", "dev"])

        assert HostConfigLookup(config_path=temp_dir / "missing").lookup("dev") is None

    @patch("subprocess.run")
    def test_ssh_g_implicit_defaults_dropped(
        self, mock_run: MagicMock, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test OpenSSH's built-in keys and login user are not host settings."""
        monkeypatch.setenv("HOME", str(temp_dir))
        mock_run.return_value = MagicMock(
            returncode=0, stdout=SSH_G_DEFAULTS_OUTPUT, stderr=""
        )

        directives = HostConfigLookup(home=temp_dir, local_user="root").lookup(
            "example.com"
        )

        assert directives["hostname"] == "example.com"
        assert "identityfile" not in directives
        assert "user" not in directives

    @patch("subprocess.run")
    def test_ssh_g_configured_values_kept(
        self, mock_run: MagicMock, temp_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test configured keys and users survive next to the defaults."""
        monkeypatch.setenv("HOME", str(temp_dir))
        mock_run.return_value = MagicMock(
            returncode=0,
            stdout="user deploy\nidentityfile ~/.ssh/deploy_key\n" + SSH_G_DEFAULTS_OUTPUT,
            stderr="",
        )

        directives = HostConfigLookup(home=temp_dir, local_user="root").lookup(
            "example.com"
        )

        assert directives["user"] == "deploy"
        assert directives["identityfile"] == [str(temp_dir / ".ssh" / "deploy_key")]

    @patch("subprocess.run")
    def test_ssh_g_user_prefix_kept(self, mock_run: MagicMock) -> None:
        """Test a user@ prefix echoed back by ssh -G is not dropped."""
        mock_run.return_value = MagicMock(
            returncode=0, stdout="user alice\nhostname dev\n", stderr=""
        )

        directives = HostConfigLookup(local_user="alice").lookup("alice@dev")

        assert directives["user"] == "alice"

    @patch("subprocess.run")
    def test_config_file_keeps_default_key_names(
        self, mock_run: MagicMock, temp_dir: Path
    ) -> None:
        """Test keys written in ~/.ssh/config are kept even with stock names."""
        mock_run.side_effect = FileNotFoundError("ssh")
        config = temp_dir / "config"
        config.write_text(
            "Host dev\n  User root\n  IdentityFile /keys/id_rsa\n", encoding="utf-8"
        )

        directives = HostConfigLookup(config_path=config, local_user="root").lookup("dev")

        assert directives["user"] == "root"
        assert directives["identityfile"] == ["/keys/id_rsa"]


class TestFindUnsupportedDirective:
    """Tests for find_unsupported_directive function."""

    def test_proxy_jump(self) -> None:
        """Test ProxyJump is detected."""
        assert find_unsupported_directive({"proxyjump": "bastion"}) == "ProxyJump"

    def test_proxy_command(self) -> None:
        """Test ProxyCommand is detected."""
        directives = {"proxycommand": "ssh -W %h:%p bastion"}
        assert find_unsupported_directive(directives) == "ProxyCommand"

    def test_none_value(self) -> None:
        """Test an explicit none is not a proxy."""
        assert find_unsupported_directive({"proxyjump": "none"}) is None
        assert find_unsupported_directive({}) is None


class TestResolveHostTarget:
    """Tests for resolve_host_target function."""

    def test_without_lookup(self) -> None:
        """Test the profile alone."""
        profile = ConnectionProfile(host="example.com", user="alice", port="2222")

        target = resolve_host_target(profile)

        assert target.hostname == "example.com"
        assert target.user == "alice"
        assert target.port == 2222
        assert target.identity_candidates == ()

    def test_directives_applied(self, temp_dir: Path) -> None:
        """Test host config overrides hostname, user and default port."""
        profile = ConnectionProfile(
            host="dev",
            user="alice",
            identity_files=(temp_dir / "profile_key",),
        )
        host_config = lookup_returning(
            {
                "hostname": "10.0.0.5",
                "user": "deploy",
                "port": "2200",
                "identityfile": [str(temp_dir / "host_key")],
            }
        )

        target = resolve_host_target(profile, host_config)

        assert target.alias == "dev"
        assert target.hostname == "10.0.0.5"
        assert target.user == "deploy"
        assert target.port == 2200
        assert target.identity_candidates == (
            temp_dir / "host_key",
            temp_dir / "profile_key",
        )

    def test_explicit_port_and_user_prefix_kept(self) -> None:
        """Test a user@ prefix and a non-default port win."""
        profile = ConnectionProfile(host="bob@dev", user="alice", port="2222")
        host_config = lookup_returning({"user": "deploy", "port": "2200"})

        target = resolve_host_target(profile, host_config)

        assert target.user == "bob"
        assert target.port == 2222
        assert target.hostname == "dev"
        host_config.lookup.assert_called_once_with("bob@dev")

    def test_identity_files_deduplicated(self, temp_dir: Path) -> None:
        """Test the same key listed twice is tried once."""
        key = temp_dir / "key"
        profile = ConnectionProfile(host="dev", user="alice", identity_files=(key,))
        host_config = lookup_returning({"identityfile": [str(key)]})

        target = resolve_host_target(profile, host_config)

        assert target.identity_candidates == (key,)

    @patch("subprocess.run")
    def test_explicit_key_wins_over_ssh_g_defaults(
        self,
        mock_run: MagicMock,
        temp_dir: Path,
        ed25519_key_file: Path,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test IDENTITY_FILE keys are tried before OpenSSH's stock keys."""
        home = temp_dir / "home"
        (home / ".ssh").mkdir(parents=True)
        shutil.copy(ed25519_key_file, home / ".ssh" / "id_rsa")
        explicit = temp_dir / "explicit_key"
        shutil.copy(ed25519_key_file, explicit)
        monkeypatch.setenv("HOME", str(home))
        mock_run.return_value = MagicMock(
            returncode=0, stdout=SSH_G_DEFAULTS_OUTPUT, stderr=""
        )
        profile = ConnectionProfile(
            host="example.com", user="alice", identity_files=(explicit,)
        )

        target = resolve_host_target(
            profile, HostConfigLookup(home=home, local_user="root")
        )
        method = AuthResolver(home=home, environ={}).resolve(target.identity_candidates)

        assert target.user == "alice"
        assert target.identity_candidates == (explicit,)
        assert method.source == str(explicit)

    def test_lookup_failure_ignored(self) -> None:
        """Test a failed lookup leaves the profile values."""
        profile = ConnectionProfile(host="example.com", user="alice")

        target = resolve_host_target(profile, lookup_returning(None))

        assert target.hostname == "example.com"
        assert target.directives == {}

    def test_missing_user(self) -> None:
        """Test an empty user is an error."""
        profile = ConnectionProfile(host="example.com", user="")

        with pytest.raises(ConfigurationError, match="no remote user"):
            resolve_host_target(profile)
