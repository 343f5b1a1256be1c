"""Command dispatch for the FTP client engine.

Translates each Command variant into its control-channel exchange, using
a data channel for LIST, RETR and STOR, and maps replies onto Result
variants or FTPError subclasses.
"""

import logging
from typing import Callable, Dict, Optional, Tuple, Type

from ftpclient.ftp.commands import (
    Ack,
    Bytes,
    ChangeDirectory,
    Command,
    Delete,
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
from ftpclient.ftp.connection import ControlChannel
from ftpclient.ftp.data_channel import DataChannelManager, DataTransfer, TransferDirection
from ftpclient.ftp.exceptions import (
    FTPActiveModeError,
    FTPConnectionLostError,
    FTPError,
    FTPPathError,
    FTPPermissionError,
    FTPProtocolError,
    FTPRenameIncompleteError,
    FTPTransientError,
)
from ftpclient.ftp.listing import parse_listing
from ftpclient.ftp.reply import Reply

logger = logging.getLogger("ftpclient.dispatcher")


# Reply text that turns a 550 into a permission problem rather than a missing path
PERMISSION_HINTS = (
    "permission",
    "denied",
    "privilege",
    "not allowed",
    "forbidden",
    "exists",
    "not empty",
    "read-only",
)

TRANSFER_COMPLETE_CODES = (226, 250)


def error_for_reply(reply: Reply, operation: str, path: str = "") -> FTPError:
    """
    Map a failing reply onto the matching FTPError.

    Args:
        reply: Reply that did not indicate success
        operation: Operation name for the error message
        path: Remote path the operation acted on

    Returns:
        FTPError instance (not raised)
    """
    if reply.code == 421:
        return FTPConnectionLostError(reply=reply)
    if reply.is_transient:
        return FTPTransientError(operation, reply=reply)
    if reply.code == 530:
        return FTPPermissionError(path, operation, reply=reply)
    if reply.code in (550, 552, 553):
        text = reply.message.lower()
        if reply.code != 550 or any(hint in text for hint in PERMISSION_HINTS):
            return FTPPermissionError(path, operation, reply=reply)
        return FTPPathError(path, operation, reply=reply)
    return FTPProtocolError(f"Unexpected reply to {operation}", reply=reply)


class CommandDispatcher:
    """Runs Command variants over a control channel."""

    def __init__(self, control: ControlChannel, data_channels: Optional[DataChannelManager] = None):
        """
        Initialize the dispatcher.

        Args:
            control: Logged-in control channel
            data_channels: Data channel negotiator (created if omitted)
        """
        self._control = control
        self._data = data_channels or DataChannelManager(control)
        self._block_size = control.settings.block_size
        self._encoding = control.settings.encoding
        self._handlers: Dict[Type[Command], Callable[[Command], Result]] = {
            ChangeDirectory: self._change_directory,
            Delete: self._delete,
            Get: self._get,
            List: self._list,
            Mkdir: self._mkdir,
            Put: self._put,
            PrintWorkingDirectory: self._print_working_directory,
            Quit: self._quit,
            Rmdir: self._rmdir,
            Move: self._move,
        }

    @property
    def data_channels(self) -> DataChannelManager:
        return self._data

    def dispatch(self, command: Command) -> Result:
        """
        Execute one command.

        Args:
            command: Command variant with absolute paths

        Returns:
            Result of the command's declared type

        Raises:
            FTPError: On any failure
        """
        handler = self._handlers.get(type(command))
        if handler is None:
            raise FTPProtocolError(f"Unsupported command {type(command).__name__}")

        logger.debug(f"Dispatching {command!r}")
        return handler(command)

    def set_transfer_type(self, type_code: str) -> Reply:
        """Send TYPE; 200 is the only success reply."""
        reply = self._control.send_command(f"TYPE {type_code}")
        if reply.code != 200:
            raise error_for_reply(reply, "set transfer type")
        return reply

    def query_working_directory(self) -> str:
        """Ask the server for its working directory."""
        return self._print_working_directory(PrintWorkingDirectory()).text

    # ------------------------------------------------------ single round trip

    def _simple(self, line: str, accepted: Tuple[int, ...], operation: str, path: str) -> Ack:
        reply = self._control.send_command(line)
        if reply.code not in accepted:
            raise error_for_reply(reply, operation, path)
        return Ack(reply)

    def _change_directory(self, command: ChangeDirectory) -> Ack:
        return self._simple(command.wire_lines()[0], (250, 200), "change directory", command.path)

    def _mkdir(self, command: Mkdir) -> Ack:
        return self._simple(command.wire_lines()[0], (257, 250), "create directory", command.path)

    def _rmdir(self, command: Rmdir) -> Ack:
        return self._simple(command.wire_lines()[0], (250, 200), "remove directory", command.path)

    def _delete(self, command: Delete) -> Ack:
        return self._simple(command.wire_lines()[0], (250, 200), "delete", command.path)

    def _print_working_directory(self, command: PrintWorkingDirectory) -> Text:
        reply = self._control.send_command(command.wire_lines()[0])
        if reply.code != 257:
            raise error_for_reply(reply, "print working directory")

        path = reply.quoted_path()
        if path is None:
            raise FTPProtocolError("No quoted path in PWD reply", reply=reply)
        return Text(path)

    def _move(self, command: Move) -> Ack:
        rename_from, rename_to = command.wire_lines()

        reply = self._control.send_command(rename_from)
        if reply.code != 350:
            raise error_for_reply(reply, "rename", command.source)

        reply = self._control.send_command(rename_to)
        if reply.code in (250, 200):
            return Ack(reply)
        if reply.code == 421:
            raise FTPConnectionLostError(reply=reply)
        logger.warning(f"RNTO refused after RNFR accepted: {reply}")
        raise FTPRenameIncompleteError(command.source, command.target, reply=reply)

    def _quit(self, command: Quit) -> Ack:
        return Ack(self._control.close())

    # --------------------------------------------------------- data transfers

    def _list(self, command: List) -> Listing:
        data, _ = self._transfer(
            command.wire_lines()[0], TransferDirection.DOWNLOAD, "list", command.path or ""
        )
        text = data.decode(self._encoding, errors="replace")
        return Listing(parse_listing(text.splitlines()))

    def _get(self, command: Get) -> Bytes:
        data, _ = self._transfer(
            command.wire_lines()[0], TransferDirection.DOWNLOAD, "download", command.path
        )
        return Bytes(data)

    def _put(self, command: Put) -> Ack:
        _, reply = self._transfer(
            command.wire_lines()[0], TransferDirection.UPLOAD, "upload", command.path, command.data
        )
        return Ack(reply)

    def _transfer(
        self,
        line: str,
        direction: TransferDirection,
        operation: str,
        path: str,
        payload: bytes = b""
    ) -> Tuple[bytes, Reply]:
        """
        Run one transfer command over a fresh data channel.

        The channel is opened before the command is sent and released
        before the final reply is read. Partial data is discarded when
        the transfer fails; the raised error records the byte count.

        Returns:
            Tuple of (received bytes, final reply)
        """
        channel = self._data.open()
        transfer = DataTransfer(direction, channel)
        try:
            self._control.send_line(line)
            reply = self._control.read_reply()
            if not reply.is_preliminary:
                raise error_for_reply(reply, operation, path)

            data = b""
            try:
                channel.establish()
                if direction is TransferDirection.DOWNLOAD:
                    data = transfer.receive(self._block_size)
                else:
                    transfer.send(payload, self._block_size)
            except (FTPTransientError, FTPActiveModeError) as data_error:
                # The server still owes a reply for this command
                self._data.release(channel)
                data_error.reply = self._control.get_final_reply()
                raise

            self._data.release(channel)
            final = self._control.get_final_reply()
            if final.code not in TRANSFER_COMPLETE_CODES:
                raise error_for_reply(final, operation, path)

            logger.info(f"{direction.value.capitalize()} of '{path or '.'}' complete ({transfer.byte_count} bytes)")
            return data, final.folded((reply,))

        except FTPError as e:
            e.bytes_transferred = transfer.byte_count
            raise
        finally:
            self._data.release(channel)
