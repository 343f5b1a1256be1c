"""Unit tests for data channel negotiation."""

import socket
from unittest.mock import MagicMock, patch

import pytest

from ftpclient.config.settings import ClientSettings
from ftpclient.ftp.data_channel import (
    DataChannel,
    DataChannelManager,
    DataTransfer,
    TransferDirection,
    encode_port_argument,
    parse_pasv_reply,
)
from ftpclient.ftp.exceptions import (
    FTPActiveModeError,
    FTPCancelledError,
    FTPConnectionLostError,
    FTPPassiveModeError,
    FTPProtocolError,
    FTPTimeoutError,
    FTPTransientError,
)
from ftpclient.ftp.reply import Reply
from tests.conftest import FakeDataChannel, FakeSocket, open_control


class TestParsePasvReply:
    """Tests for parse_pasv_reply()."""

    def test_standard_reply(self):
        reply = Reply(227, "Entering Passive Mode (192,168,1,10,195,80).")
        assert parse_pasv_reply(reply) == ("192.168.1.10", 50000)

    def test_without_parentheses(self):
        reply = Reply(227, "Entering Passive Mode 10,0,0,1,4,1")
        assert parse_pasv_reply(reply) == ("10.0.0.1", 1025)

    @pytest.mark.parametrize("message", [
        "Entering Passive Mode",
        "Entering Passive Mode (300,1,1,1,4,1)",
    ])
    def test_invalid(self, message):
        with pytest.raises(FTPProtocolError):
            parse_pasv_reply(Reply(227, message))


class TestEncodePortArgument:
    """Tests for encode_port_argument()."""

    def test_encoding(self):
        assert encode_port_argument("192.168.1.10", 50000) == "192,168,1,10,195,80"

    def test_low_port(self):
        assert encode_port_argument("127.0.0.1", 255) == "127,0,0,1,0,255"


class TestDataTransfer:
    """Tests for byte counting over a channel."""

    def test_receive_until_eof(self):
        channel = FakeDataChannel(b"x" * 10000)
        transfer = DataTransfer(TransferDirection.DOWNLOAD, channel)

        data = transfer.receive(block_size=4096)

        assert data == b"x" * 10000
        assert transfer.byte_count == 10000

    def test_receive_counts_bytes_before_failure(self):
        channel = FakeDataChannel(b"x" * 10000, fail_after=4096)
        transfer = DataTransfer(TransferDirection.DOWNLOAD, channel)

        with pytest.raises(FTPTransientError):
            transfer.receive(block_size=4096)
        assert transfer.byte_count == 4096

    def test_send_in_blocks(self):
        channel = FakeDataChannel()
        transfer = DataTransfer(TransferDirection.UPLOAD, channel)

        sent = transfer.send(b"abcdefghij", block_size=3)

        assert sent == 10
        assert bytes(channel.received) == b"abcdefghij"

    def test_send_empty_payload(self):
        channel = FakeDataChannel()
        assert DataTransfer(TransferDirection.UPLOAD, channel).send(b"") == 0


class TestDataChannel:
    """Tests for DataChannel socket handling."""

    def test_read_timeout(self):
        sock = MagicMock()
        sock.recv.side_effect = socket.timeout("timed out")
        channel = DataChannel(sock=sock, timeout=5)

        with pytest.raises(FTPTimeoutError):
            channel.read_block(1024)

    def test_reset_is_transient(self):
        sock = MagicMock()
        sock.recv.side_effect = ConnectionResetError("reset")
        channel = DataChannel(sock=sock)

        with pytest.raises(FTPTransientError):
            channel.read_block(1024)

    def test_abort_turns_errors_into_cancellation(self):
        sock = MagicMock()
        sock.recv.side_effect = OSError("Bad file descriptor")
        channel = DataChannel(sock=sock)

        channel.abort()

        with pytest.raises(FTPCancelledError):
            channel.read_block(1024)

    def test_active_accept_timeout(self):
        listener = MagicMock()
        listener.accept.side_effect = socket.timeout("timed out")
        channel = DataChannel(listener=listener)

        with pytest.raises(FTPActiveModeError):
            channel.establish()
        listener.close.assert_called_once()

    def test_active_accept(self):
        conn = MagicMock()
        listener = MagicMock()
        listener.accept.return_value = (conn, ("127.0.0.1", 20))
        channel = DataChannel(listener=listener, timeout=7)

        channel.establish()

        assert channel.is_established is True
        conn.settimeout.assert_called_once_with(7)

    def test_passive_establish_is_noop(self):
        channel = DataChannel(sock=MagicMock())
        channel.establish()
        assert channel.is_passive is True


class TestDataChannelManager:
    """Tests for PASV/PORT negotiation."""

    def test_passive_connects_to_control_peer(self):
        """The PASV host is replaced by the control connection's peer."""
        fake = FakeSocket(["220 Ready", "227 Entering Passive Mode (10,9,8,7,195,80)"])
        manager = DataChannelManager(open_control(fake))

        with patch("ftpclient.ftp.data_channel.socket.create_connection") as create:
            channel = manager.open()

        assert create.call_args[0][0] == ("127.0.0.1", 50000)
        assert channel.is_passive is True
        assert manager.current is channel

    def test_passive_trusts_announced_address(self):
        fake = FakeSocket(["220 Ready", "227 Entering Passive Mode (10,9,8,7,195,80)"])
        manager = DataChannelManager(open_control(fake, ClientSettings(trust_pasv_address=True)))

        with patch("ftpclient.ftp.data_channel.socket.create_connection") as create:
            manager.open()

        assert create.call_args[0][0] == ("10.9.8.7", 50000)

    def test_passive_refused_falls_back_to_active(self):
        fake = FakeSocket(["220 Ready", "502 PASV not implemented", "200 PORT ok"])
        manager = DataChannelManager(open_control(fake))

        channel = manager.open()
        try:
            assert channel.is_passive is False
            assert fake.sent_lines[0] == "PASV"
            assert fake.sent_lines[1].startswith("PORT 127,0,0,1,")
        finally:
            manager.release(channel)
        assert manager.current is None

    def test_malformed_pasv_falls_back_to_active(self):
        """A 227 without an address counts as a passive failure."""
        fake = FakeSocket(["220 Ready", "227 Entering Passive Mode", "200 PORT ok"])
        manager = DataChannelManager(open_control(fake))

        channel = manager.open()
        try:
            assert channel.is_passive is False
            assert fake.sent_lines[1].startswith("PORT ")
        finally:
            manager.release(channel)

    def test_malformed_pasv_is_passive_error(self):
        fake = FakeSocket(["220 Ready", "227 Entering Passive Mode (1,2,3)"])
        manager = DataChannelManager(open_control(fake))

        with pytest.raises(FTPPassiveModeError):
            manager.open_passive()

    def test_both_modes_rejected(self):
        fake = FakeSocket(["220 Ready", "502 PASV not implemented", "500 PORT not understood"])
        manager = DataChannelManager(open_control(fake))

        with pytest.raises(FTPActiveModeError) as exc_info:
            manager.open()
        assert isinstance(exc_info.value.__cause__, FTPPassiveModeError)

    def test_active_only(self):
        fake = FakeSocket(["220 Ready", "200 PORT ok"])
        manager = DataChannelManager(open_control(fake, ClientSettings(passive_mode=False)))

        channel = manager.open()
        manager.release(channel)

        assert fake.sent_lines[0].startswith("PORT ")

    def test_passive_connect_failure(self):
        fake = FakeSocket(["220 Ready", "227 Entering Passive Mode (127,0,0,1,195,80)"])
        manager = DataChannelManager(open_control(fake))

        with patch("ftpclient.ftp.data_channel.socket.create_connection",
                   side_effect=ConnectionRefusedError("refused")):
            with pytest.raises(FTPPassiveModeError):
                manager.open_passive()

    def test_service_closing(self):
        fake = FakeSocket(["220 Ready", "421 Service closing"])
        manager = DataChannelManager(open_control(fake))

        with pytest.raises(FTPConnectionLostError):
            manager.open()
