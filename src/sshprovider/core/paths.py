"""Home directory and SSH path utilities."""

from pathlib import Path

DEFAULT_KEY_NAMES = ("id_ed25519", "id_ecdsa", "id_rsa")


def get_home_dir() -> Path | None:
    """Get the current user's home directory.

    Returns:
        Home directory, or None if it cannot be determined.
    """
    try:
        home = Path.home()
    except (RuntimeError, KeyError, OSError):
        return None
    if not str(home) or str(home) == "~":
        return None
    return home


def expand_home(path: str | Path, home: Path | None = None) -> Path:
    """Expand a leading ``~`` to the home directory.

    Args:
        path: Path that may start with ``~``.
        home: Home directory to use. Looked up if None.

    Returns:
        Expanded path. Paths without a leading ``~`` are returned unchanged.

    Raises:
        ValueError: If the path needs expansion and no home is available.
    """
    text = str(path)
    if not text.startswith("~"):
        return Path(text)

    home = home or get_home_dir()
    if home is None:
        raise ValueError(f"cannot expand {text}: home directory unknown")

    rest = text[1:].lstrip("/\\")
    return home / rest if rest else home


def get_ssh_dir(home: Path | None = None) -> Path | None:
    """Get the ``~/.ssh`` directory.

    Args:
        home: Home directory to use. Looked up if None.

    Returns:
        Path to the SSH directory, or None without a home directory.
    """
    home = home or get_home_dir()
    if home is None:
        return None
    return home / ".ssh"


def get_default_known_hosts_path(home: Path | None = None) -> Path | None:
    """Get the default known hosts file path (``~/.ssh/known_hosts``)."""
    ssh_dir = get_ssh_dir(home)
    return ssh_dir / "known_hosts" if ssh_dir else None


def get_default_ssh_config_path(home: Path | None = None) -> Path | None:
    """Get the default SSH client config path (``~/.ssh/config``)."""
    ssh_dir = get_ssh_dir(home)
    return ssh_dir / "config" if ssh_dir else None


def get_default_identity_files(home: Path | None = None) -> list[Path]:
    """Get the conventional private key paths in preference order.

    Args:
        home: Home directory to use. Looked up if None.

    Returns:
        ``id_ed25519``, ``id_ecdsa`` and ``id_rsa`` under ``~/.ssh``, or an
        empty list without a home directory.
    """
    ssh_dir = get_ssh_dir(home)
    if ssh_dir is None:
        return []
    return [ssh_dir / name for name in DEFAULT_KEY_NAMES]
