"""Control connection for the FTP client engine.

Provides the Endpoint and Credentials value types and the ControlChannel
class, which owns the TCP connection to the server's command port and
exchanges command lines for complete replies.
"""

import errno
import logging
import socket
import threading
from dataclasses import dataclass, field
from typing import Optional, Tuple

from ftpclient.config.settings import ClientSettings
from ftpclient.ftp.exceptions import (
    FTPAuthenticationError,
    FTPCancelledError,
    FTPConnectionError,
    FTPConnectionLostError,
    FTPError,
    FTPProtocolError,
    FTPTimeoutError,
    FTPUnreachableError,
)
from ftpclient.ftp.reply import Reply, ReplyBuilder

logger = logging.getLogger("ftpclient.control")


CRLF = "\r\n"

# Longest reply line accepted before the peer is considered broken
MAXLINE = 8192

UNREACHABLE_ERRNOS = {errno.ENETUNREACH, errno.EHOSTUNREACH, errno.EHOSTDOWN}


@dataclass(frozen=True)
class Endpoint:
    """Server address of a control connection."""
    host: str
    port: int = 21

    def __post_init__(self):
        """Enforce dotted-quad host and port range."""
        octets = self.host.split(".")
        if len(octets) != 4 or not all(o.isascii() and o.isdigit() and int(o) <= 255 for o in octets):
            raise ValueError(f"Host must be an IPv4 address, got {self.host!r}")
        if isinstance(self.port, bool) or not isinstance(self.port, int) or not 0 <= self.port <= 65535:
            raise ValueError(f"Port must be between 0 and 65535, got {self.port!r}")

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class Credentials:
    """Login name and password. The password never appears in repr()."""
    username: str
    password: str = field(default="", repr=False)


def mask_command(line: str) -> str:
    """Hide the argument of a PASS command for logging."""
    if line[:5].upper() == "PASS ":
        return line[:5] + "****"
    return line


class ControlChannel:
    """Request/reply exchange over the FTP control connection."""

    def __init__(self, settings: Optional[ClientSettings] = None):
        """
        Initialize an unconnected channel.

        Args:
            settings: Timeouts and encoding (defaults if omitted)
        """
        self._settings = settings or ClientSettings()
        self._endpoint: Optional[Endpoint] = None
        self._sock: Optional[socket.socket] = None
        self._file = None
        self._cancelled = threading.Event()
        self._welcome: Optional[Reply] = None

    @classmethod
    def connect(cls, endpoint: Endpoint, settings: Optional[ClientSettings] = None) -> "ControlChannel":
        """
        Open a control connection and read the server greeting.

        Args:
            endpoint: Server to connect to
            settings: Timeouts and encoding

        Returns:
            Connected ControlChannel

        Raises:
            FTPConnectionError: If the server refuses the connection
            FTPUnreachableError: If the host cannot be reached
            FTPTimeoutError: If connecting or greeting times out
        """
        channel = cls(settings)
        channel.open(endpoint)
        return channel

    @property
    def endpoint(self) -> Optional[Endpoint]:
        """Endpoint this channel is connected to."""
        return self._endpoint

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def welcome(self) -> Optional[Reply]:
        """Greeting the server sent on connect."""
        return self._welcome

    @property
    def is_open(self) -> bool:
        """True while the socket is held."""
        return self._sock is not None

    @property
    def was_cancelled(self) -> bool:
        """True once abort() was called."""
        return self._cancelled.is_set()

    @property
    def local_address(self) -> Tuple[str, int]:
        """Local (host, port) of the control socket."""
        try:
            return self._require_socket().getsockname()[:2]
        except OSError as e:
            raise self._transport_error(e)

    @property
    def peer_host(self) -> str:
        """Remote host of the control socket."""
        try:
            return self._require_socket().getpeername()[0]
        except OSError as e:
            raise self._transport_error(e)

    def open(self, endpoint: Endpoint) -> Reply:
        """
        Connect to the endpoint and consume the greeting.

        Returns:
            The final (220) greeting reply
        """
        self._endpoint = endpoint
        self._cancelled.clear()
        timeout = self._settings.connect_timeout
        logger.info(f"Connecting to {endpoint} (timeout {timeout}s)")

        try:
            sock = socket.create_connection((endpoint.host, endpoint.port), timeout=timeout)
        except socket.timeout:
            raise FTPTimeoutError("Connection", timeout)
        except ConnectionRefusedError as e:
            raise FTPConnectionError(endpoint.host, endpoint.port, e)
        except socket.gaierror as e:
            raise FTPUnreachableError(endpoint.host, endpoint.port, e)
        except OSError as e:
            if e.errno in UNREACHABLE_ERRNOS:
                raise FTPUnreachableError(endpoint.host, endpoint.port, e)
            raise FTPConnectionError(endpoint.host, endpoint.port, e)

        sock.settimeout(self._settings.reply_timeout)
        self._sock = sock
        self._file = sock.makefile("rb")

        try:
            greeting = self.get_final_reply()
        except FTPError:
            self.abort()
            raise

        if greeting.code != 220:
            self.abort()
            if greeting.code == 421 or greeting.is_permanent:
                raise FTPConnectionError(endpoint.host, endpoint.port, reply=greeting)
            raise FTPProtocolError("Unexpected greeting", reply=greeting)

        self._welcome = greeting
        logger.info(f"Connected to {endpoint}")
        return greeting

    def authenticate(self, username: str, password: str) -> Reply:
        """
        Log in with USER and, when asked for it, PASS.

        Args:
            username: Login name
            password: Password

        Returns:
            The 230 (or 202) reply that completed the login

        Raises:
            FTPAuthenticationError: If the server rejects the login
            FTPProtocolError: If the server answers outside the login sequence
        """
        reply = self.send_command(f"USER {username}")
        if reply.code == 331:
            reply = self.send_command(f"PASS {password}")

        if reply.code in (230, 202):
            logger.info(f"Logged in as '{username}'")
            return reply
        if reply.code == 421:
            raise FTPConnectionLostError(reply=reply)
        if reply.code in (530, 430, 332) or reply.is_permanent:
            logger.warning(f"Login rejected for '{username}': {reply.code}")
            raise FTPAuthenticationError(username, reply=reply)
        raise FTPProtocolError("Unexpected login reply", reply=reply)

    def send_line(self, line: str) -> None:
        """
        Write one command line terminated by CRLF.

        Raises:
            FTPProtocolError: If the line embeds CR or LF
        """
        if "\r" in line or "\n" in line:
            raise FTPProtocolError(f"Command line contains a line break: {mask_command(line)!r}")

        sock = self._require_socket()
        logger.debug(f"> {mask_command(line)}")
        try:
            sock.sendall((line + CRLF).encode(self._settings.encoding))
        except socket.timeout:
            raise FTPTimeoutError("Sending command", self._settings.reply_timeout)
        except OSError as e:
            raise self._transport_error(e)

    def read_line(self) -> str:
        """
        Read one reply line without its terminator.

        Raises:
            FTPTimeoutError: If no line arrives within the reply timeout
            FTPConnectionLostError: If the server closed the connection
            FTPCancelledError: If abort() closed the socket
        """
        file = self._file
        if file is None:
            raise self._transport_error(None)
        try:
            raw = file.readline(MAXLINE + 1)
        except socket.timeout:
            raise FTPTimeoutError("Awaiting reply", self._settings.reply_timeout)
        except (OSError, ValueError) as e:
            raise self._transport_error(e)

        if len(raw) > MAXLINE:
            raise FTPProtocolError(f"Reply line longer than {MAXLINE} bytes")
        if not raw:
            raise self._transport_error(None)
        return raw.decode(self._settings.encoding, errors="replace").rstrip("\r\n")

    def read_reply(self) -> Reply:
        """
        Read one complete reply, reassembling multi-line replies.

        Returns:
            Reply (preliminary replies are returned as they are)
        """
        builder = ReplyBuilder()
        while True:
            reply = builder.feed(self.read_line())
            if reply is not None:
                logger.debug(f"< {reply}")
                return reply

    def get_final_reply(self) -> Reply:
        """
        Read replies until a non-1xx one arrives.

        Returns:
            Final reply with any preliminary replies folded into it
        """
        preliminary: Tuple[Reply, ...] = ()
        reply = self.read_reply()
        while reply.is_preliminary:
            preliminary += (reply,)
            reply = self.read_reply()
        return reply.folded(preliminary)

    def send_command(self, line: str) -> Reply:
        """
        Send a command line and wait for its final reply.

        Args:
            line: Command line without CRLF

        Returns:
            Final Reply
        """
        self.send_line(line)
        return self.get_final_reply()

    def close(self) -> Optional[Reply]:
        """
        Send QUIT, await 221 and release the socket.

        The socket is released even if QUIT fails or is never answered.

        Returns:
            The server's reply to QUIT, or None if none was received
        """
        if self._sock is None:
            return None

        reply = None
        try:
            reply = self.send_command("QUIT")
            if reply.code != 221:
                logger.warning(f"Unexpected reply to QUIT: {reply}")
        except FTPError as e:
            logger.warning(f"QUIT not acknowledged: {e}")
        finally:
            self._release()

        logger.info(f"Disconnected from {self._endpoint}")
        return reply

    def abort(self) -> None:
        """
        Force-close the socket without QUIT.

        Safe to call from another thread: a read blocked on this channel
        fails with FTPCancelledError.
        """
        self._cancelled.set()
        sock = self._sock
        if sock is not None:
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                # Already disconnected
                pass
        self._release()

    def _release(self) -> None:
        file, sock = self._file, self._sock
        self._file = None
        self._sock = None
        if file is not None:
            try:
                file.close()
            except OSError:
                pass
        if sock is not None:
            sock.close()

    def _require_socket(self) -> socket.socket:
        if self._sock is None:
            raise self._transport_error(None)
        return self._sock

    def _transport_error(self, error: Optional[Exception]) -> FTPError:
        if self._cancelled.is_set():
            return FTPCancelledError("Command")
        return FTPConnectionLostError(error)

    def __enter__(self) -> "ControlChannel":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
