"""Pytest configuration and shared fixtures for FTP client engine tests."""

import io
import socket
import threading
from pathlib import Path
from typing import Generator, Iterable, Optional
from unittest.mock import patch

import pytest

from ftpclient.config.settings import ClientSettings
from ftpclient.ftp.connection import ControlChannel, Credentials, Endpoint
from ftpclient.ftp.session import Session


# Test constants
TEST_FTP_HOST = "127.0.0.1"
TEST_FTP_PORT = 2121
TEST_FTP_USER = "testuser"
TEST_FTP_PASS = "testpass"

# Replies a server sends for connect + login + TYPE I + PWD
LOGIN_REPLIES = [
    "220 Test server ready",
    "331 Password required",
    "230 Logged in",
    "200 Type set to I",
    '257 "/" is the current directory',
]


class ScriptedReader:
    """
    Readable side of a FakeSocket.

    Serves canned bytes line by line. With hold_after set, the reader
    blocks before serving that line until release() is called.
    """

    def __init__(self, data: bytes, hold_after: Optional[int] = None):
        self._buffer = io.BytesIO(data)
        self._hold_after = hold_after
        self._served = 0
        self._gate = threading.Event()
        self.waiting = threading.Event()
        self.closed = False

    def release(self) -> None:
        self._gate.set()

    def readline(self, limit: int = -1) -> bytes:
        if self._hold_after is not None and self._served >= self._hold_after:
            self.waiting.set()
            self._gate.wait(timeout=5)
        if self.closed:
            return b""
        self._served += 1
        return self._buffer.readline(limit)

    def close(self) -> None:
        self.closed = True
        self._gate.set()


class TimeoutReader:
    """Reader whose every read times out."""

    def readline(self, limit: int = -1) -> bytes:
        raise socket.timeout("timed out")

    def close(self) -> None:
        pass


class FakeSocket:
    """Stand-in for a connected control socket."""

    def __init__(self, replies: Iterable[str] = (), hold_after: Optional[int] = None, reader=None):
        data = "".join(f"{line}\r\n" for line in replies).encode("utf-8")
        self.reader = reader or ScriptedReader(data, hold_after)
        self.sent: list[bytes] = []
        self.closed = False
        self.timeout = None

    @property
    def sent_lines(self) -> list[str]:
        """Command lines written so far, without CRLF."""
        return [chunk.decode("utf-8").rstrip("\r\n") for chunk in self.sent]

    def makefile(self, mode: str = "rb"):
        return self.reader

    def sendall(self, data: bytes) -> None:
        if self.closed:
            raise OSError("socket closed")
        self.sent.append(bytes(data))

    def settimeout(self, timeout) -> None:
        self.timeout = timeout

    def getsockname(self):
        return ("127.0.0.1", 50000)

    def getpeername(self):
        return ("127.0.0.1", 21)

    def shutdown(self, how) -> None:
        self.reader.close()

    def close(self) -> None:
        self.closed = True


class FakeDataChannel:
    """Data channel serving a canned download or recording an upload."""

    def __init__(self, payload: bytes = b"", fail_after: Optional[int] = None):
        self._buffer = io.BytesIO(payload)
        self._fail_after = fail_after
        self.received = bytearray()
        self.established = False
        self.closed = False

    def establish(self) -> None:
        self.established = True

    def read_block(self, size: int) -> bytes:
        from ftpclient.ftp.exceptions import FTPTransientError

        if self._fail_after is not None and self._buffer.tell() >= self._fail_after:
            raise FTPTransientError("Data transfer", original_error=ConnectionResetError("reset"))
        return self._buffer.read(size)

    def write_block(self, block: bytes) -> None:
        self.received.extend(block)

    def close(self) -> None:
        self.closed = True

    def abort(self) -> None:
        self.close()


class FakeDataChannels:
    """DataChannelManager stand-in handing out FakeDataChannels in order."""

    def __init__(self, *channels: FakeDataChannel):
        self._channels = list(channels)
        self.opened: list[FakeDataChannel] = []

    def open(self, listen_address: Optional[str] = None) -> FakeDataChannel:
        channel = self._channels.pop(0)
        self.opened.append(channel)
        return channel

    def release(self, channel: FakeDataChannel) -> None:
        channel.close()

    def abort(self) -> None:
        for channel in self.opened:
            channel.abort()


def open_control(fake: FakeSocket, settings: Optional[ClientSettings] = None) -> ControlChannel:
    """Open a ControlChannel over a FakeSocket."""
    with patch("ftpclient.ftp.connection.socket.create_connection", return_value=fake):
        return ControlChannel.connect(Endpoint(TEST_FTP_HOST, TEST_FTP_PORT), settings)


def open_session(fake: FakeSocket, settings: Optional[ClientSettings] = None) -> Session:
    """Connect and log a Session in over a FakeSocket fed LOGIN_REPLIES first."""
    session = Session(Endpoint(TEST_FTP_HOST, TEST_FTP_PORT), settings)
    with patch("ftpclient.ftp.connection.socket.create_connection", return_value=fake):
        assert session.connect().ok
    assert session.authenticate(Credentials(TEST_FTP_USER, TEST_FTP_PASS)).ok
    return session


@pytest.fixture
def temp_settings_file(tmp_path: Path) -> Generator[Path, None, None]:
    """Provide a temporary settings file path for testing."""
    settings_file = tmp_path / "settings.json"
    yield settings_file
