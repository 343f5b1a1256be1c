"""Server reply parsing for the FTP client engine.

Provides the Reply value type and ReplyBuilder, which reassembles
single-line (``### text``) and multi-line (``###-text ... ### text``)
replies from raw control-channel lines.
"""

import re
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from ftpclient.ftp.exceptions import FTPProtocolError


REPLY_LINE_PATTERN = re.compile(r"^(\d{3})([ -]?)(.*)$")
QUOTED_PATH_PATTERN = re.compile(r'"((?:[^"]|"")*)"')


@dataclass(frozen=True)
class Reply:
    """A complete server reply."""
    code: int
    message: str
    is_multiline: bool = False
    lines: Tuple[str, ...] = ()
    preliminary: Tuple["Reply", ...] = ()

    @property
    def code_class(self) -> int:
        """First digit of the reply code (1-5)."""
        return self.code // 100

    @property
    def is_preliminary(self) -> bool:
        """1xx: a follow-up reply is expected."""
        return self.code_class == 1

    @property
    def is_success(self) -> bool:
        """2xx: command completed."""
        return self.code_class == 2

    @property
    def is_intermediate(self) -> bool:
        """3xx: more input needed."""
        return self.code_class == 3

    @property
    def is_transient(self) -> bool:
        """4xx: transient failure."""
        return self.code_class == 4

    @property
    def is_permanent(self) -> bool:
        """5xx: permanent failure."""
        return self.code_class == 5

    def folded(self, preliminary: Tuple["Reply", ...]) -> "Reply":
        """
        Return this reply with preceding 1xx replies folded into it.

        Args:
            preliminary: 1xx replies received before this one

        Returns:
            Reply carrying the raw lines of every folded reply
        """
        if not preliminary:
            return self
        lines: Tuple[str, ...] = ()
        for earlier in preliminary:
            lines += earlier.lines
        return replace(
            self,
            is_multiline=True,
            lines=lines + self.lines,
            preliminary=preliminary,
        )

    def quoted_path(self) -> Optional[str]:
        """
        Extract the quoted pathname from a 257 reply.

        Doubled quotes inside the name are collapsed as RFC 959 specifies.

        Returns:
            Path string, or None if the reply carries no quoted name
        """
        match = QUOTED_PATH_PATTERN.search(self.message)
        if match is None:
            return None
        return match.group(1).replace('""', '"')

    def __str__(self) -> str:
        return f"{self.code} {self.message}"


class ReplyBuilder:
    """
    Reassembles a reply from control-channel lines.

    Usage:
        builder = ReplyBuilder()
        for line in lines:
            reply = builder.feed(line)
            if reply is not None:
                break
    """

    def __init__(self):
        """Initialize an empty builder."""
        self._code: Optional[int] = None
        self._lines: list[str] = []
        self._texts: list[str] = []

    @property
    def in_progress(self) -> bool:
        """True once the first line of a multi-line reply was fed."""
        return self._code is not None

    def feed(self, line: str) -> Optional[Reply]:
        """
        Feed one line (without CRLF).

        Args:
            line: Decoded reply line

        Returns:
            Completed Reply, or None while a multi-line reply is open

        Raises:
            FTPProtocolError: If the first line is not a reply line
        """
        if self._code is None:
            return self._feed_first(line)

        self._lines.append(line)
        match = REPLY_LINE_PATTERN.match(line)
        if match and int(match.group(1)) == self._code and match.group(2) != "-":
            self._texts.append(match.group(3))
            return self._finish(multiline=True)

        # Continuation lines may repeat the code with a hyphen
        if match and int(match.group(1)) == self._code:
            self._texts.append(match.group(3))
        else:
            self._texts.append(line.lstrip())
        return None

    def _feed_first(self, line: str) -> Optional[Reply]:
        match = REPLY_LINE_PATTERN.match(line)
        if match is None or (match.group(2) == "" and match.group(3)):
            raise FTPProtocolError(f"Malformed reply line {line!r}")

        self._code = int(match.group(1))
        self._lines = [line]
        self._texts = [match.group(3)]
        if match.group(2) == "-":
            return None
        return self._finish(multiline=False)

    def _finish(self, multiline: bool) -> Reply:
        reply = Reply(
            code=self._code,
            message="\n".join(self._texts).strip(),
            is_multiline=multiline,
            lines=tuple(self._lines),
        )
        self._code = None
        self._lines = []
        self._texts = []
        return reply


def parse_reply(text: str) -> Reply:
    """
    Parse a complete reply from raw text.

    Args:
        text: One reply, lines separated by CRLF or LF

    Returns:
        Parsed Reply

    Raises:
        FTPProtocolError: If the text does not hold exactly one complete reply
    """
    builder = ReplyBuilder()
    lines = text.replace("\r\n", "\n").rstrip("\n").split("\n")
    for index, line in enumerate(lines):
        reply = builder.feed(line)
        if reply is not None:
            if index != len(lines) - 1:
                raise FTPProtocolError("Trailing data after reply")
            return reply
    raise FTPProtocolError("Incomplete reply")
