"""Command and Result types for the FTP client engine.

Each Command variant carries only the arguments its operation needs and
declares the Result variant a successful execution produces.
"""

import posixpath
from dataclasses import MISSING, dataclass, field, fields, replace
from typing import ClassVar, Optional, Tuple, Type

from ftpclient.ftp.exceptions import ErrorKind
from ftpclient.ftp.listing import DirectoryEntry
from ftpclient.ftp.reply import Reply


# ---------------------------------------------------------------- results

@dataclass(frozen=True)
class Result:
    """Base class of every value returned by Session.execute()."""

    @property
    def ok(self) -> bool:
        """True unless this is a Failure."""
        return True


@dataclass(frozen=True)
class Text(Result):
    """Textual result (e.g. the working directory)."""
    text: str


@dataclass(frozen=True)
class Bytes(Result):
    """Binary payload of a download."""
    data: bytes = field(repr=False)

    @property
    def size(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class Listing(Result):
    """Parsed directory listing."""
    entries: Tuple[DirectoryEntry, ...] = ()

    def names(self) -> list[str]:
        """Entry names in server order."""
        return [entry.name for entry in self.entries]

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self):
        return iter(self.entries)


@dataclass(frozen=True)
class Ack(Result):
    """Command completed with no payload."""
    reply: Optional[Reply] = None


@dataclass(frozen=True)
class Failure(Result):
    """Command failed; nothing is raised across the session boundary."""
    kind: ErrorKind
    detail: str = ""
    bytes_transferred: int = 0
    reply: Optional[Reply] = None

    @property
    def ok(self) -> bool:
        return False

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.detail}"


# --------------------------------------------------------------- commands

@dataclass(frozen=True)
class Command:
    """Base class of every operation a session can execute."""

    NAME: ClassVar[str] = ""
    result_type: ClassVar[Type[Result]] = Ack
    _path_fields: ClassVar[Tuple[str, ...]] = ()
    _optional_paths: ClassVar[Tuple[str, ...]] = ()

    def __post_init__(self):
        """Reject blank required paths."""
        for name in self._path_fields:
            if name in self._optional_paths:
                continue
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ValueError(f"{self.NAME} requires a non-empty {name}")

    def wire_lines(self) -> Tuple[str, ...]:
        """Control-channel command lines (without CRLF)."""
        raise NotImplementedError

    def resolved(self, current_directory: str) -> "Command":
        """
        Return a copy whose path arguments are absolute.

        Args:
            current_directory: Directory relative paths are joined to

        Returns:
            Command with normalised absolute paths
        """
        changes = {}
        for name in self._path_fields:
            value = getattr(self, name)
            if value:
                changes[name] = resolve_path(current_directory, value)
        return replace(self, **changes) if changes else self


@dataclass(frozen=True)
class ChangeDirectory(Command):
    path: str
    NAME: ClassVar[str] = "CD"
    _path_fields: ClassVar[Tuple[str, ...]] = ("path",)

    def wire_lines(self) -> Tuple[str, ...]:
        return (f"CWD {self.path}",)


@dataclass(frozen=True)
class Delete(Command):
    path: str
    NAME: ClassVar[str] = "DELETE"
    _path_fields: ClassVar[Tuple[str, ...]] = ("path",)

    def wire_lines(self) -> Tuple[str, ...]:
        return (f"DELE {self.path}",)


@dataclass(frozen=True)
class Get(Command):
    path: str
    NAME: ClassVar[str] = "GET"
    result_type: ClassVar[Type[Result]] = Bytes
    _path_fields: ClassVar[Tuple[str, ...]] = ("path",)

    def wire_lines(self) -> Tuple[str, ...]:
        return (f"RETR {self.path}",)


@dataclass(frozen=True)
class List(Command):
    path: Optional[str] = None
    NAME: ClassVar[str] = "LS"
    result_type: ClassVar[Type[Result]] = Listing
    _path_fields: ClassVar[Tuple[str, ...]] = ("path",)
    _optional_paths: ClassVar[Tuple[str, ...]] = ("path",)

    def wire_lines(self) -> Tuple[str, ...]:
        if self.path:
            return (f"LIST {self.path}",)
        return ("LIST",)


@dataclass(frozen=True)
class Mkdir(Command):
    path: str
    NAME: ClassVar[str] = "MKDIR"
    _path_fields: ClassVar[Tuple[str, ...]] = ("path",)

    def wire_lines(self) -> Tuple[str, ...]:
        return (f"MKD {self.path}",)


@dataclass(frozen=True)
class Put(Command):
    path: str
    data: bytes = field(default=b"", repr=False)
    NAME: ClassVar[str] = "PUT"
    _path_fields: ClassVar[Tuple[str, ...]] = ("path",)

    def wire_lines(self) -> Tuple[str, ...]:
        return (f"STOR {self.path}",)


@dataclass(frozen=True)
class PrintWorkingDirectory(Command):
    NAME: ClassVar[str] = "PWD"
    result_type: ClassVar[Type[Result]] = Text

    def wire_lines(self) -> Tuple[str, ...]:
        return ("PWD",)


@dataclass(frozen=True)
class Quit(Command):
    NAME: ClassVar[str] = "QUIT"

    def wire_lines(self) -> Tuple[str, ...]:
        return ("QUIT",)


@dataclass(frozen=True)
class Rmdir(Command):
    path: str
    NAME: ClassVar[str] = "RMDIR"
    _path_fields: ClassVar[Tuple[str, ...]] = ("path",)

    def wire_lines(self) -> Tuple[str, ...]:
        return (f"RMD {self.path}",)


@dataclass(frozen=True)
class Move(Command):
    source: str
    target: str
    NAME: ClassVar[str] = "MV"
    _path_fields: ClassVar[Tuple[str, ...]] = ("source", "target")

    def wire_lines(self) -> Tuple[str, ...]:
        return (f"RNFR {self.source}", f"RNTO {self.target}")


COMMAND_TYPES: Tuple[Type[Command], ...] = (
    ChangeDirectory,
    Delete,
    Get,
    List,
    Mkdir,
    Put,
    PrintWorkingDirectory,
    Quit,
    Rmdir,
    Move,
)

COMMANDS_BY_NAME = {command_type.NAME: command_type for command_type in COMMAND_TYPES}


def command_names() -> list[str]:
    """Sorted command names, as offered in a command picker."""
    return sorted(COMMANDS_BY_NAME)


def build_command(name: str, *args) -> Command:
    """
    Build a Command variant from a command name and its arguments.

    Args:
        name: One of command_names() (case-insensitive)
        *args: Positional arguments of that variant

    Returns:
        Command instance

    Raises:
        ValueError: If the name is unknown or the arguments do not fit
    """
    command_type = COMMANDS_BY_NAME.get(name.strip().upper())
    if command_type is None:
        raise ValueError(f"Unknown command: {name}")

    arg_fields = fields(command_type)
    required = [f for f in arg_fields if f.default is MISSING and f.default_factory is MISSING]
    if not len(required) <= len(args) <= len(arg_fields):
        raise ValueError(
            f"{command_type.NAME} expects {len(required)} argument(s), got {len(args)}"
        )
    return command_type(*args)


def resolve_path(current_directory: str, path: str) -> str:
    """
    Resolve a remote path against the current directory.

    Args:
        current_directory: Absolute remote directory
        path: Absolute or relative remote path

    Returns:
        Normalised absolute POSIX path
    """
    joined = posixpath.join(current_directory or "/", path)
    normalised = posixpath.normpath(joined)
    # normpath keeps a leading "//"
    if normalised.startswith("//"):
        normalised = "/" + normalised.lstrip("/")
    return normalised
