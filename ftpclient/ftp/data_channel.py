"""Data connection management for the FTP client engine.

Opens the secondary connection FTP uses for listings and file transfers,
in passive mode (PASV, client connects) or active mode (PORT, server
connects back). One data channel serves exactly one transfer command.
"""

import logging
import re
import socket
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from ftpclient.ftp.connection import ControlChannel
from ftpclient.ftp.exceptions import (
    FTPActiveModeError,
    FTPCancelledError,
    FTPConnectionLostError,
    FTPError,
    FTPPassiveModeError,
    FTPProtocolError,
    FTPTimeoutError,
    FTPTransientError,
)
from ftpclient.ftp.reply import Reply

logger = logging.getLogger("ftpclient.data")


PASV_TUPLE_PATTERN = re.compile(r"(\d{1,3}),(\d{1,3}),(\d{1,3}),(\d{1,3}),(\d{1,3}),(\d{1,3})")


class TransferDirection(Enum):
    """Direction of a data transfer."""
    UPLOAD = "upload"
    DOWNLOAD = "download"


def parse_pasv_reply(reply: Reply) -> Tuple[str, int]:
    """
    Extract the data address from a 227 reply.

    Args:
        reply: Reply to PASV

    Returns:
        Tuple of (host, port)

    Raises:
        FTPProtocolError: If the reply carries no valid address tuple
    """
    match = PASV_TUPLE_PATTERN.search(reply.message)
    if match is None:
        raise FTPProtocolError("No address in PASV reply", reply=reply)

    numbers = [int(n) for n in match.groups()]
    if any(n > 255 for n in numbers):
        raise FTPProtocolError("Invalid address in PASV reply", reply=reply)

    host = ".".join(str(n) for n in numbers[:4])
    port = (numbers[4] << 8) + numbers[5]
    return host, port


def encode_port_argument(host: str, port: int) -> str:
    """Encode an address as the h1,h2,h3,h4,p1,p2 argument of PORT."""
    return ",".join(host.split(".") + [str(port >> 8), str(port & 0xFF)])


class DataChannel:
    """A single data connection, connected (passive) or pending accept (active)."""

    def __init__(
        self,
        sock: Optional[socket.socket] = None,
        listener: Optional[socket.socket] = None,
        timeout: float = 30.0
    ):
        """
        Initialize a data channel.

        Args:
            sock: Connected data socket (passive mode)
            listener: Listening socket awaiting the server (active mode)
            timeout: Timeout for accept and socket reads/writes
        """
        self._sock = sock
        self._listener = listener
        self._timeout = timeout
        self._cancelled = threading.Event()

    @property
    def is_passive(self) -> bool:
        """True if the channel was opened with PASV."""
        return self._listener is None

    @property
    def is_established(self) -> bool:
        """True once a connected socket exists."""
        return self._sock is not None

    def establish(self) -> None:
        """
        Accept the server's connection in active mode (no-op when passive).

        Raises:
            FTPActiveModeError: If the server never connects back
        """
        if self._sock is not None:
            return
        if self._listener is None:
            raise self._io_error(None)

        try:
            sock, address = self._listener.accept()
        except socket.timeout as e:
            raise FTPActiveModeError(e)
        except OSError as e:
            if self._cancelled.is_set():
                raise FTPCancelledError("Data transfer")
            raise FTPActiveModeError(e)
        finally:
            self._listener.close()

        logger.debug(f"Accepted data connection from {address[0]}")
        sock.settimeout(self._timeout)
        self._sock = sock

    def read_block(self, size: int) -> bytes:
        """Read up to size bytes; b"" at end of data."""
        try:
            block = self._require_socket().recv(size)
        except socket.timeout:
            raise FTPTimeoutError("Data transfer", self._timeout)
        except OSError as e:
            raise self._io_error(e)
        if not block and self._cancelled.is_set():
            raise FTPCancelledError("Data transfer")
        return block

    def write_block(self, block: bytes) -> None:
        """Write a whole block."""
        try:
            self._require_socket().sendall(block)
        except socket.timeout:
            raise FTPTimeoutError("Data transfer", self._timeout)
        except OSError as e:
            raise self._io_error(e)

    def close(self) -> None:
        """Close the channel; an upload's end of file is signalled by this close."""
        sock, listener = self._sock, self._listener
        self._sock = None
        self._listener = None
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                # Peer already closed its side
                pass
            sock.close()
        if listener is not None:
            listener.close()

    def abort(self) -> None:
        """Close from another thread, failing any blocked read or write."""
        self._cancelled.set()
        self.close()

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise self._io_error(None)
        return self._sock

    def _io_error(self, error: Optional[Exception]):
        if self._cancelled.is_set():
            return FTPCancelledError("Data transfer")
        return FTPTransientError("Data transfer", original_error=error)

    def __enter__(self) -> "DataChannel":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


@dataclass
class DataTransfer:
    """Bytes moved over one data channel for one GET, PUT or LIST."""
    direction: TransferDirection
    channel: DataChannel = field(repr=False)
    byte_count: int = 0

    def receive(self, block_size: int = 8192) -> bytes:
        """Read until the server closes the data connection."""
        chunks = []
        while True:
            block = self.channel.read_block(block_size)
            if not block:
                break
            chunks.append(block)
            self.byte_count += len(block)
        return b"".join(chunks)

    def send(self, data: bytes, block_size: int = 8192) -> int:
        """Write the whole payload in blocks; returns bytes sent."""
        view = memoryview(data)
        for offset in range(0, len(view), block_size):
            block = view[offset:offset + block_size]
            self.channel.write_block(block)
            self.byte_count += len(block)
        return self.byte_count


class DataChannelManager:
    """Negotiates a data channel per transfer over a control channel."""

    def __init__(self, control: ControlChannel):
        """
        Initialize the manager.

        Args:
            control: Logged-in control channel
        """
        self._control = control
        self._settings = control.settings
        self._current: Optional[DataChannel] = None

    @property
    def current(self) -> Optional[DataChannel]:
        """Channel of the transfer in flight, if any."""
        return self._current

    def open(self, listen_address: Optional[str] = None) -> DataChannel:
        """
        Open a data channel, passive first with active as fallback.

        Args:
            listen_address: Local address for active mode (defaults to the
                control connection's local address)

        Returns:
            DataChannel ready for the transfer command

        Raises:
            FTPActiveModeError: If active mode (used directly or as the
                fallback) is rejected
        """
        if self._settings.passive_mode:
            try:
                return self.open_passive()
            except FTPPassiveModeError as passive_error:
                logger.warning(f"{passive_error}; falling back to active mode")
                try:
                    return self.open_active(listen_address)
                except FTPActiveModeError as active_error:
                    raise active_error from passive_error
        return self.open_active(listen_address)

    def open_passive(self) -> DataChannel:
        """
        Send PASV and connect to the announced address.

        Raises:
            FTPPassiveModeError: If PASV is refused, its reply is malformed or
                the connection fails
        """
        reply = self._control.send_command("PASV")
        if reply.code == 421:
            raise FTPConnectionLostError(reply=reply)
        if reply.code != 227:
            raise FTPPassiveModeError(reply=reply)

        try:
            host, port = parse_pasv_reply(reply)
        except FTPProtocolError as e:
            raise FTPPassiveModeError(e, reply)
        if not self._settings.trust_pasv_address:
            host = self._control.peer_host

        logger.debug(f"Opening passive data connection to {host}:{port}")
        try:
            sock = socket.create_connection((host, port), timeout=self._settings.connect_timeout)
        except OSError as e:
            raise FTPPassiveModeError(e, reply)

        sock.settimeout(self._settings.reply_timeout)
        return self._track(DataChannel(sock=sock, timeout=self._settings.reply_timeout))

    def open_active(self, listen_address: Optional[str] = None) -> DataChannel:
        """
        Listen locally and announce the address with PORT.

        Args:
            listen_address: Local IPv4 address to listen on

        Raises:
            FTPActiveModeError: If binding fails or PORT is refused
        """
        host = listen_address or self._control.local_address[0]
        listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            listener.bind((host, 0))
            listener.listen(1)
            listener.settimeout(self._settings.connect_timeout)
        except OSError as e:
            listener.close()
            raise FTPActiveModeError(e)

        port = listener.getsockname()[1]
        try:
            reply = self._control.send_command(f"PORT {encode_port_argument(host, port)}")
        except FTPError:
            listener.close()
            raise

        if reply.code != 200:
            listener.close()
            if reply.code == 421:
                raise FTPConnectionLostError(reply=reply)
            raise FTPActiveModeError(reply=reply)

        logger.debug(f"Listening for active data connection on {host}:{port}")
        return self._track(DataChannel(listener=listener, timeout=self._settings.reply_timeout))

    def release(self, channel: DataChannel) -> None:
        """Close a channel and forget it."""
        channel.close()
        if self._current is channel:
            self._current = None

    def abort(self) -> None:
        """Abort the channel in flight (called from another thread)."""
        channel = self._current
        if channel is not None:
            channel.abort()

    def _track(self, channel: DataChannel) -> DataChannel:
        self._current = channel
        return channel
