"""Unit tests for reply parsing and multi-line reassembly."""

import pytest

from ftpclient.ftp.exceptions import FTPProtocolError
from ftpclient.ftp.reply import Reply, ReplyBuilder, parse_reply


class TestReplyBuilder:
    """Tests for ReplyBuilder."""

    def test_single_line_reply(self):
        """A '### text' line completes a reply immediately."""
        reply = ReplyBuilder().feed("200 Command okay")
        assert reply.code == 200
        assert reply.message == "Command okay"
        assert reply.is_multiline is False

    def test_code_only_reply(self):
        """A bare three-digit code is a valid reply."""
        reply = ReplyBuilder().feed("226")
        assert reply.code == 226
        assert reply.message == ""

    def test_multiline_reply(self):
        """Lines between '###-' and '### ' belong to one reply."""
        builder = ReplyBuilder()
        assert builder.feed("211-Features:") is None
        assert builder.in_progress is True
        assert builder.feed(" MDTM") is None
        assert builder.feed(" SIZE") is None
        reply = builder.feed("211 End")

        assert reply.code == 211
        assert reply.is_multiline is True
        assert reply.message == "Features:\nMDTM\nSIZE\nEnd"
        assert len(reply.lines) == 4
        assert builder.in_progress is False

    def test_inner_line_with_other_code_does_not_terminate(self):
        """Only the opening code followed by a space ends the reply."""
        builder = ReplyBuilder()
        builder.feed("230-Welcome")
        assert builder.feed("220 not the end") is None
        assert builder.feed("230-still going") is None
        reply = builder.feed("230 Logged in")
        assert reply.code == 230
        assert "not the end" in reply.message

    @pytest.mark.parametrize("line", ["hello", "20 short", "2000 too long", "abc text", ""])
    def test_malformed_first_line_raises(self, line):
        """Lines that do not start with a three-digit code are rejected."""
        with pytest.raises(FTPProtocolError):
            ReplyBuilder().feed(line)


class TestReply:
    """Tests for the Reply value type."""

    @pytest.mark.parametrize("code,attribute", [
        (150, "is_preliminary"),
        (226, "is_success"),
        (331, "is_intermediate"),
        (425, "is_transient"),
        (550, "is_permanent"),
    ])
    def test_code_classes(self, code, attribute):
        """Each code class maps to exactly one predicate."""
        reply = Reply(code, "text")
        predicates = ["is_preliminary", "is_success", "is_intermediate", "is_transient", "is_permanent"]
        for name in predicates:
            assert getattr(reply, name) is (name == attribute)

    def test_quoted_path(self):
        """The quoted name of a 257 reply is extracted."""
        assert Reply(257, '"/pub/incoming" is current directory').quoted_path() == "/pub/incoming"

    def test_quoted_path_with_doubled_quotes(self):
        """Doubled quotes inside the name collapse to one."""
        assert Reply(257, '"/say ""hi""" created').quoted_path() == '/say "hi"'

    def test_quoted_path_missing(self):
        assert Reply(257, "no quotes here").quoted_path() is None

    def test_folded_keeps_final_code(self):
        """Folding preliminary replies keeps the final code and marks multi-line."""
        preliminary = Reply(150, "Opening", lines=("150 Opening",))
        final = Reply(226, "Done", lines=("226 Done",))

        folded = final.folded((preliminary,))

        assert folded.code == 226
        assert folded.is_multiline is True
        assert folded.lines == ("150 Opening", "226 Done")
        assert folded.preliminary == (preliminary,)

    def test_replies_are_immutable(self):
        reply = Reply(200, "ok")
        with pytest.raises(AttributeError):
            reply.code = 500


class TestParseReply:
    """Tests for parse_reply."""

    def test_parses_crlf_text(self):
        reply = parse_reply("250-First\r\n250 Last\r\n")
        assert reply.code == 250
        assert reply.is_multiline is True

    def test_incomplete_reply_raises(self):
        with pytest.raises(FTPProtocolError, match="Incomplete"):
            parse_reply("250-First\r\nmore\r\n")

    def test_trailing_data_raises(self):
        with pytest.raises(FTPProtocolError, match="Trailing"):
            parse_reply("200 ok\r\n200 again\r\n")
