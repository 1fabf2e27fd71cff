"""Command line front end for ftpsclient.

Wires settings, credentials and logging to an FtpClient and runs one
operation per invocation:

    python -m ftpsclient --host localhost --port 2100 \\
        --security implicit-tls --user test ls /
"""

import argparse
import getpass
import logging
import sys
from typing import Callable, Dict, List, Optional

from ftpsclient.config.credentials import CredentialManager
from ftpsclient.config.paths import get_log_file_path
from ftpsclient.config.settings import ClientSettings, SettingsManager
from ftpsclient.ftp.client import FtpClient
from ftpsclient.ftp.listing import FileEntry
from ftpsclient.ftp.result import OperationResult
from ftpsclient.ftp.session import SecurityMode
from ftpsclient.utils.logging import get_logger, setup_logging
from ftpsclient.utils.validators import (
    validate_host,
    validate_port,
    validate_remote_path,
    validate_timeout,
)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2

logger = get_logger("ftpsclient.cli")

TYPE_MARKERS = {"file": "-", "directory": "d", "symlink": "l"}


def format_entry(entry: FileEntry) -> str:
    """One listing line for the terminal."""
    size = "" if entry.size is None else str(entry.size)
    modified = entry.modified.strftime("%Y-%m-%d %H:%M") if entry.modified else ""
    name = entry.name
    if entry.link_target:
        name = f"{name} -> {entry.link_target}"
    return f"{TYPE_MARKERS[entry.type.value]} {size:>12} {modified:16} {name}"


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(prog="ftpsclient", description="FTP/FTPS client")
    parser.add_argument("--host", help="server host (defaults to the last used host)")
    parser.add_argument("--port", type=int, help="server port")
    parser.add_argument("--security", choices=[mode.value for mode in SecurityMode],
                        help="plain, explicit-tls or implicit-tls")
    parser.add_argument("--user", help="login name")
    parser.add_argument("--active", action="store_true", help="use active mode")
    parser.add_argument("--ascii", action="store_true", help="transfer in ASCII mode")
    parser.add_argument("--insecure", action="store_true",
                        help="do not verify the server certificate")
    parser.add_argument("--timeout", type=float,
                        help="connect and read timeout in seconds")
    parser.add_argument("--save-password", action="store_true",
                        help="store the password in the system keyring")
    parser.add_argument("--forget-password", action="store_true",
                        help="remove the stored password and ask for it again")
    parser.add_argument("-v", "--verbose", action="store_true", help="log protocol traffic")

    commands = parser.add_subparsers(dest="command", required=True)

    ls = commands.add_parser("ls", help="list a directory")
    ls.add_argument("path", nargs="?")
    ls.add_argument("--dirs", action="store_true", help="only subdirectories")

    get = commands.add_parser("get", help="download a file")
    get.add_argument("remote")
    get.add_argument("local", nargs="?", default=".")

    put = commands.add_parser("put", help="upload a file")
    put.add_argument("local")
    put.add_argument("remote", nargs="?")

    for name, help_text in (("rm", "delete a file"), ("mkdir", "create a directory"),
                            ("rmdir", "remove a directory")):
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument("path")

    rename = commands.add_parser("rename", help="rename a file or directory")
    rename.add_argument("source")
    rename.add_argument("target")

    commands.add_parser("pwd", help="print the working directory")
    return parser


def _run_ls(client: FtpClient, args: argparse.Namespace) -> OperationResult:
    result = client.lsdir(args.path) if args.dirs else client.ls(args.path)
    if result:
        for entry in result.value:
            print(format_entry(entry))
        if result.value.skipped:
            print(f"({result.value.skipped} unparseable line(s) skipped)", file=sys.stderr)
    return result


def _run_get(client: FtpClient, args: argparse.Namespace) -> OperationResult:
    result = client.get(args.remote, args.local)
    if result:
        print(result.value)
    return result


def _run_pwd(client: FtpClient, args: argparse.Namespace) -> OperationResult:
    result = client.pwd()
    if result:
        print(result.value)
    return result


COMMANDS: Dict[str, Callable[[FtpClient, argparse.Namespace], OperationResult]] = {
    "ls": _run_ls,
    "get": _run_get,
    "put": lambda client, args: client.put(args.local, args.remote),
    "rm": lambda client, args: client.rm(args.path),
    "mkdir": lambda client, args: client.mkdir(args.path),
    "rmdir": lambda client, args: client.rmdir(args.path),
    "rename": lambda client, args: client.rename(args.source, args.target),
    "pwd": _run_pwd,
}


def _remote_arguments(args: argparse.Namespace) -> List[str]:
    names = ("path", "remote", "source", "target")
    return [getattr(args, name) for name in names if getattr(args, name, None)]


def main(
    argv: Optional[List[str]] = None,
    settings_manager: Optional[SettingsManager] = None,
    credentials: Optional[CredentialManager] = None,
) -> int:
    """
    Run the command line client.

    Args:
        argv: Arguments (defaults to sys.argv[1:])
        settings_manager: Settings store (defaults to the platform location)
        credentials: Password store (defaults to the system keyring)

    Returns:
        Process exit status
    """
    args = build_parser().parse_args(argv)
    settings_manager = settings_manager or SettingsManager()
    credentials = credentials or CredentialManager()
    settings: ClientSettings = settings_manager.load()

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        log_file=get_log_file_path() if settings.log_to_file else None,
    )

    host = args.host or settings.last_host
    checks = [validate_host(host)]
    if args.port is not None:
        checks.append(validate_port(args.port))
    if args.timeout is not None:
        checks.append(validate_timeout(args.timeout))
    checks.extend(validate_remote_path(value) for value in _remote_arguments(args))
    for is_valid, error in checks:
        if not is_valid:
            print(f"ftpsclient: {error}", file=sys.stderr)
            return EXIT_USAGE

    try:
        config = settings.to_session_config(
            host=host,
            port=args.port,
            security=SecurityMode(args.security) if args.security else None,
            username=args.user,
            passive=False if args.active else None,
            verify_certificate=False if args.insecure else None,
            connect_timeout=args.timeout,
            read_timeout=args.timeout,
        )
    except ValueError as e:
        print(f"ftpsclient: {e}", file=sys.stderr)
        return EXIT_USAGE

    if args.forget_password and credentials.has_password(config.host, config.username):
        if credentials.delete_password(config.host, config.username):
            logger.info(f"Removed stored password for {config.username}@{config.host}")
        password = None
    else:
        password = credentials.get_password(config.host, config.username)
    if password is None:
        password = getpass.getpass(f"Password for {config.username}@{config.host}: ")

    with FtpClient(config) as client:
        result = client.login(config.username, password)
        if result and args.ascii:
            result = client.set_ascii_mode()
        if result:
            result = COMMANDS[args.command](client, args)

    if not result:
        print(f"ftpsclient: {result.operation}: {result.error_message}", file=sys.stderr)
        return EXIT_FAILURE

    settings_manager.update(
        last_host=config.host,
        last_port=config.port,
        last_username=config.username,
        security=config.security.value,
    )
    if args.save_password and not credentials.save_password(config.host, config.username, password):
        logger.warning("Could not store the password in the system keyring")
    return EXIT_OK
