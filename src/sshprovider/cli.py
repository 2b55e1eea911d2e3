"""CLI for the SSH provider.

This module provides command-line interface for:
- Initializing a remote host (OS detection and diagnostic commands)
- Running a command on the remote host
- Uploading files to the remote host
- Detecting the remote operating system

Connection settings are read from the environment (HOST, PORT, EXTRA_FLAGS,
USE_BUILTIN_SSH, KNOWN_HOSTS_POLICY, KNOWN_HOSTS_PATH, IDENTITY_FILE, ...).
"""

import argparse
import logging
import os
import sys

from sshprovider import __version__
from sshprovider.core.errors import RemoteCommandError, SSHProviderError
from sshprovider.provider import ProviderSession

logger = logging.getLogger(__name__)

ENV_COMMAND = "COMMAND"


def cmd_init(args: argparse.Namespace) -> int:
    """Detect the remote OS and run initialization commands.

    Args:
        args: Parsed arguments.

    Returns:
        Exit code.
    """
    try:
        with ProviderSession.from_env() as session:
            session.initialize()
    except SSHProviderError as e:
        print(f"init failed: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_command(args: argparse.Namespace) -> int:
    """Run a command on the remote host.

    The command comes from the positional arguments or the COMMAND
    environment variable. Local stdin, stdout and stderr are attached.

    Args:
        args: Parsed arguments.

    Returns:
        Exit code of the remote command, or 1 on other errors.
    """
    command = " ".join(args.command) if args.command else os.environ.get(ENV_COMMAND, "")
    if not command:
        print(f"No command given (pass it as arguments or set {ENV_COMMAND})", file=sys.stderr)
        return 1

    try:
        with ProviderSession.from_env() as session:
            session.run_command(
                command,
                stdout=sys.stdout.buffer,
                stderr=sys.stderr.buffer,
                stdin=sys.stdin.buffer,
            )
    except RemoteCommandError as e:
        logger.debug(f"Remote command failed: {e}")
        return e.exit_status or 1
    except SSHProviderError as e:
        print(f"command failed: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_upload(args: argparse.Namespace) -> int:
    """Upload a local file to the remote host.

    Args:
        args: Parsed arguments.

    Returns:
        Exit code.
    """
    try:
        with ProviderSession.from_env() as session:
            session.upload(args.source, args.destination)
    except SSHProviderError as e:
        print(f"upload failed: {e}", file=sys.stderr)
        return 1
    print(f"Uploaded {args.source} to {args.destination}")
    return 0


def cmd_detect_os(args: argparse.Namespace) -> int:
    """Print the remote operating system.

    Args:
        args: Parsed arguments.

    Returns:
        Exit code. 1 if the OS is unknown.
    """
    try:
        with ProviderSession.from_env() as session:
            os_class = session.detect_os(strict=True)
            backend = session.backend_name
    except SSHProviderError as e:
        print(f"detect-os failed: {e}", file=sys.stderr)
        return 1
    print(f"{os_class} (backend: {backend})")
    return 0


def create_parser() -> argparse.ArgumentParser:
    """Create CLI argument parser.

    Returns:
        Configured ArgumentParser.
    """
    parser = argparse.ArgumentParser(
        prog="sshprovider",
        description="Run commands and copy files on a remote host over SSH",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="subcommand", help="Available commands")

    # init command
    init_parser = subparsers.add_parser("init", help="Initialize the remote host")
    init_parser.set_defaults(func=cmd_init)

    # command command
    command_parser = subparsers.add_parser(
        "command", aliases=["exec"], help="Run a command on the remote host"
    )
    command_parser.add_argument(
        "command",
        nargs=argparse.REMAINDER,
        help=f"Command to run (defaults to ${ENV_COMMAND})",
    )
    command_parser.set_defaults(func=cmd_command)

    # upload command
    upload_parser = subparsers.add_parser("upload", help="Upload a file")
    upload_parser.add_argument("source", help="Local file")
    upload_parser.add_argument("destination", help="Remote path")
    upload_parser.set_defaults(func=cmd_upload)

    # detect-os command
    detect_parser = subparsers.add_parser("detect-os", help="Detect the remote OS")
    detect_parser.set_defaults(func=cmd_detect_os)

    return parser


def main(argv: list[str] | None = None) -> int:
    """CLI entry point.

    Args:
        argv: Arguments. Defaults to sys.argv[1:].

    Returns:
        Exit code.
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.subcommand is None:
        parser.print_help()
        print()
        print("Quick start:")
        print("  HOST=user@example.com sshprovider init")
        print("  HOST=user@example.com sshprovider command uname -a")
        print("  HOST=user@example.com sshprovider upload ./setup.sh /tmp/setup.sh")
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
