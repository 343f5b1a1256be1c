"""Command-line entry point for the FTP client engine.

Connects, logs in and runs an interactive command loop. Every command
line maps onto exactly one Command variant; results are printed as the
engine returns them.
"""

import argparse
import getpass
import logging
import shlex
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional, Tuple

from ftpclient.config.credentials import CredentialManager
from ftpclient.config.paths import get_log_file_path
from ftpclient.config.settings import SettingsManager
from ftpclient.ftp.commands import (
    Ack,
    Bytes,
    ChangeDirectory,
    Command,
    Delete,
    Failure,
    Get,
    List,
    Listing,
    Mkdir,
    Move,
    PrintWorkingDirectory,
    Put,
    Quit,
    Result,
    Rmdir,
    Text,
)
from ftpclient.ftp.session import Session, SessionState
from ftpclient.utils.logging import get_logger, setup_logging
from ftpclient.utils.threading import CommandTask
from ftpclient.utils.validators import validate_credentials, validate_endpoint


HELP_TEXT = """\
Commands are:

  ?                      show this help
  cd <path>              change remote directory
  delete <path>          delete a remote file
  get <remote> [local]   download a file
  ls [path]              list a directory
  mkdir <path>           create a remote directory
  mv <from> <to>         rename a remote file or directory
  put <local> [remote]   upload a file
  pwd                    print remote directory
  quit                   close the session and exit
  rmdir <path>           remove a remote directory
"""

# name -> (command type, minimum args, maximum args)
COMMAND_LINE_SYNTAX = {
    "cd": (ChangeDirectory, 1, 1),
    "delete": (Delete, 1, 1),
    "get": (Get, 1, 2),
    "ls": (List, 0, 1),
    "mkdir": (Mkdir, 1, 1),
    "mv": (Move, 2, 2),
    "put": (Put, 1, 2),
    "pwd": (PrintWorkingDirectory, 0, 0),
    "quit": (Quit, 0, 0),
    "rmdir": (Rmdir, 1, 1),
}

# Seconds between checks for Ctrl-C while a command runs
POLL_INTERVAL = 0.1


def parse_command_line(line: str) -> Tuple[Command, Optional[Path]]:
    """
    Parse one interactive command line.

    Args:
        line: Text typed at the prompt

    Returns:
        Tuple of (command, local file path for get/put or None). The Put
        returned carries no data yet; the caller reads the local file.

    Raises:
        ValueError: If the command is unknown or has the wrong arguments
    """
    try:
        words = shlex.split(line)
    except ValueError as e:
        raise ValueError(f"Invalid command line: {e}")

    if not words:
        raise ValueError("Empty command")

    name, args = words[0].lower(), words[1:]
    if name not in COMMAND_LINE_SYNTAX:
        raise ValueError(f"Invalid command: {name} (type ? for help)")

    command_type, minimum, maximum = COMMAND_LINE_SYNTAX[name]
    if not minimum <= len(args) <= maximum:
        raise ValueError(f"Invalid arguments for {name} (type ? for help)")

    if command_type is Get:
        remote = args[0]
        local = Path(args[1]) if len(args) > 1 else Path(remote.rstrip("/").split("/")[-1])
        return Get(remote), local

    if command_type is Put:
        local = Path(args[0])
        remote = args[1] if len(args) > 1 else local.name
        return Put(remote), local

    return command_type(*args), None


def format_result(result: Result) -> str:
    """Render a result for the terminal."""
    if isinstance(result, Failure):
        return f"Error ({result.kind.value}): {result.detail}"
    if isinstance(result, Text):
        return result.text
    if isinstance(result, Listing):
        lines = []
        for entry in result:
            modified = entry.modified_time.strftime("%Y-%m-%d %H:%M") if entry.modified_time else "-"
            marker = "/" if entry.is_directory else ""
            lines.append(f"{entry.type.value:<9} {entry.size:>12} {modified:<16} {entry.name}{marker}")
        lines.append(f"{len(result)} entries")
        return "\n".join(lines)
    if isinstance(result, Bytes):
        return f"{result.size} bytes received"
    if isinstance(result, Ack) and result.reply is not None:
        return str(result.reply)
    return "OK"


class Application:
    """
    Command runner.

    Wires settings, credentials and logging to a Session and drives it
    from the terminal, running each command on a worker thread so Ctrl-C
    can cancel it.
    """

    def __init__(self, args: argparse.Namespace):
        """
        Initialize the application.

        Args:
            args: Parsed command-line arguments
        """
        self._args = args
        log_level = logging.DEBUG if args.verbose else logging.INFO
        setup_logging(level=log_level, log_file=args.log_file or get_log_file_path(), console=args.verbose)
        self._logger = get_logger("ftpclient.cli")

        self._settings_manager = SettingsManager(args.config)
        self._settings = self._settings_manager.load()
        if args.active:
            self._settings = replace(self._settings, passive_mode=False)
        self._credential_manager = CredentialManager()
        self._session: Optional[Session] = None

    def run(self) -> int:
        """
        Connect, log in and run the command loop.

        Returns:
            Process exit code
        """
        host = self._args.host or self._prompt("host", self._settings.last_host)
        port = self._args.port or self._prompt("port", str(self._settings.last_port))

        endpoint = validate_endpoint(host, port)
        if isinstance(endpoint, Failure):
            print(format_result(endpoint), file=sys.stderr)
            return 2

        self._session = Session(endpoint, self._settings)
        result = self._session.connect()
        if not result.ok:
            print(format_result(result), file=sys.stderr)
            return 1
        if self._session.welcome:
            print(self._session.welcome)

        if not self._login(endpoint.host, endpoint.port):
            self._session.disconnect()
            return 1

        try:
            self._loop()
        finally:
            self._session.disconnect()
        return 0

    def _login(self, host: str, port: int) -> bool:
        username = self._args.user or self._prompt("username", self._settings.last_username)
        password = self._credential_manager.get_password(host, port, username)
        if password is None:
            password = getpass.getpass("password: ")

        credentials = validate_credentials(
            username, password, allow_empty_password=username == "anonymous"
        )
        if isinstance(credentials, Failure):
            print(format_result(credentials), file=sys.stderr)
            return False

        result = self._session.authenticate(credentials)
        print(format_result(result))
        if not result.ok:
            return False

        self._settings_manager.update(last_host=host, last_port=port, last_username=username)
        if self._args.save_password:
            if not self._credential_manager.save_password(host, port, username, password):
                self._logger.warning("Could not save password to the system keyring")
        return True

    def _loop(self) -> None:
        while self._session.state not in (SessionState.CLOSED, SessionState.DISCONNECTED):
            try:
                line = input("ftp> ").strip()
            except EOFError:
                break

            if not line:
                continue
            if line == "?":
                print(HELP_TEXT)
                continue

            try:
                command, local_path = parse_command_line(line)
                if isinstance(command, Put):
                    command = replace(command, data=local_path.read_bytes())
            except (ValueError, OSError) as e:
                print(e, file=sys.stderr)
                continue

            result = self.run_command(command)
            if isinstance(result, Bytes) and local_path is not None:
                try:
                    local_path.write_bytes(result.data)
                except OSError as e:
                    print(f"Could not write {local_path}: {e}", file=sys.stderr)
                else:
                    print(f"{result.size} bytes written to {local_path}")
            else:
                print(format_result(result))

            if self._session.state == SessionState.DEGRADED:
                print("Connection degraded, reconnecting...")
                print(format_result(self._session.reconnect()))

    def run_command(self, command: Command) -> Result:
        """
        Run a command on a worker thread; Ctrl-C cancels it.

        Returns:
            The command's Result
        """
        task = CommandTask(self._session, command)
        task.start()
        while True:
            try:
                return task.get_result(timeout=POLL_INTERVAL)
            except TimeoutError:
                continue
            except KeyboardInterrupt:
                print("Cancelling...", file=sys.stderr)
                task.cancel()

    @staticmethod
    def _prompt(label: str, default: str = "") -> str:
        suffix = f" [{default}]" if default else ""
        value = input(f"{label}{suffix}: ").strip()
        return value or default


def build_parser() -> argparse.ArgumentParser:
    """Command-line options."""
    parser = argparse.ArgumentParser(prog="ftpclient", description="Interactive FTP client")
    parser.add_argument("--host", help="server IPv4 address")
    parser.add_argument("--port", help="control port (default 21)")
    parser.add_argument("--user", help="login name")
    parser.add_argument("--active", action="store_true", help="use active mode (PORT) for data connections")
    parser.add_argument("--save-password", action="store_true", help="store the password in the system keyring")
    parser.add_argument("--config", type=Path, help="settings file (default: per-user config directory)")
    parser.add_argument("--log-file", type=Path, help="log file (default: per-user log directory)")
    parser.add_argument("-v", "--verbose", action="store_true", help="log protocol traffic to the console")
    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Application entry point."""
    args = build_parser().parse_args(argv)
    try:
        return Application(args).run()
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
