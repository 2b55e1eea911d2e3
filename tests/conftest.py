"""Pytest fixtures and configuration."""

import shutil
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Generator

import paramiko
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ed25519

from sshprovider.core.types import ConnectionProfile, KnownHostsPolicy


def write_ed25519_key(path: Path) -> Path:
    """Write an unencrypted Ed25519 private key in OpenSSH format."""
    key = ed25519.Ed25519PrivateKey.generate()
    path.write_bytes(
        key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.OpenSSH,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )
    return path


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmpdir = tempfile.mkdtemp()
    try:
        yield Path(tmpdir)
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def ed25519_key_file(temp_dir: Path) -> Path:
    """Create a private key file usable for authentication."""
    return write_ed25519_key(temp_dir / "id_test")


@pytest.fixture
def make_host_key(temp_dir: Path) -> Callable[[], paramiko.PKey]:
    """Factory for distinct server host keys."""
    counter = iter(range(1000))

    def factory() -> paramiko.PKey:
        path = write_ed25519_key(temp_dir / f"host_key_{next(counter)}")
        return paramiko.Ed25519Key(filename=str(path))

    return factory


@pytest.fixture
def profile(temp_dir: Path) -> ConnectionProfile:
    """Create a connection profile with an isolated known_hosts file."""
    return ConnectionProfile(
        host="example.com",
        user="alice",
        known_hosts_policy=KnownHostsPolicy.STRICT,
        known_hosts_path=temp_dir / "ssh" / "known_hosts",
        docker_path="/usr/bin/docker",
    )
