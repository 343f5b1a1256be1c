"""FTP-specific exceptions for the FTP client engine.

Custom exception hierarchy for FTP operations. Every error carries an
ErrorKind so the session layer can turn it into a Failure result.
"""

from enum import Enum


class ErrorKind(Enum):
    """Classification of a failed operation."""
    # Input validation
    INVALID_ADDRESS = "invalid_address"
    MISSING_FIELD = "missing_field"
    # Transport
    CONNECTION_REFUSED = "connection_refused"
    UNREACHABLE = "unreachable"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    CONNECTION_LOST = "connection_lost"
    # Authentication
    AUTH_REJECTED = "auth_rejected"
    # Command failures
    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    RENAME_INCOMPLETE = "rename_incomplete"
    PASSIVE_MODE_REJECTED = "passive_mode_rejected"
    ACTIVE_MODE_REJECTED = "active_mode_rejected"
    TRANSIENT = "transient"
    # Protocol / concurrency
    PROTOCOL_ERROR = "protocol_error"
    BUSY = "busy"


class FTPError(Exception):
    """Base exception for all FTP-related errors."""

    kind = ErrorKind.PROTOCOL_ERROR

    def __init__(self, message: str, original_error: Exception = None, reply=None):
        super().__init__(message)
        self.message = message
        self.original_error = original_error
        self.reply = reply
        self.bytes_transferred = 0

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message}: {self.original_error}"
        if self.reply is not None:
            return f"{self.message}: {self.reply}"
        return self.message


class FTPConnectionError(FTPError):
    """Failed to establish the control connection."""

    kind = ErrorKind.CONNECTION_REFUSED

    def __init__(self, host: str, port: int, original_error: Exception = None, reply=None):
        self.host = host
        self.port = port
        message = f"Failed to connect to {host}:{port}"
        super().__init__(message, original_error, reply)


class FTPUnreachableError(FTPConnectionError):
    """Host or network could not be reached."""

    kind = ErrorKind.UNREACHABLE


class FTPTimeoutError(FTPError):
    """FTP operation timed out."""

    kind = ErrorKind.TIMEOUT

    def __init__(self, operation: str = "Operation", timeout: float = 30):
        self.timeout = timeout
        message = f"{operation} timed out after {timeout} seconds"
        super().__init__(message)


class FTPCancelledError(FTPError):
    """Operation was interrupted by closing its socket."""

    kind = ErrorKind.CANCELLED

    def __init__(self, operation: str = "Operation"):
        super().__init__(f"{operation} was cancelled")


class FTPConnectionLostError(FTPError):
    """Control connection closed by the peer or reset."""

    kind = ErrorKind.CONNECTION_LOST

    def __init__(self, original_error: Exception = None, reply=None):
        super().__init__("Control connection lost", original_error, reply)


class FTPAuthenticationError(FTPError):
    """FTP authentication (login) failed."""

    kind = ErrorKind.AUTH_REJECTED

    def __init__(self, username: str, reply=None):
        self.username = username
        message = f"Authentication failed for user '{username}'"
        super().__init__(message, reply=reply)


class FTPPathError(FTPError):
    """Remote path does not exist or is unavailable."""

    kind = ErrorKind.NOT_FOUND

    def __init__(self, path: str, operation: str, reply=None):
        self.path = path
        self.operation = operation
        message = f"Failed to {operation} path '{path}'"
        super().__init__(message, reply=reply)


class FTPPermissionError(FTPError):
    """FTP permission denied for operation."""

    kind = ErrorKind.PERMISSION_DENIED

    def __init__(self, path: str, operation: str, reply=None):
        self.path = path
        self.operation = operation
        message = f"Permission denied: cannot {operation} '{path}'"
        super().__init__(message, reply=reply)


class FTPRenameIncompleteError(FTPError):
    """RNFR was accepted but RNTO was refused."""

    kind = ErrorKind.RENAME_INCOMPLETE

    def __init__(self, source: str, target: str, reply=None):
        self.source = source
        self.target = target
        message = f"Rename of '{source}' accepted but '{target}' was refused"
        super().__init__(message, reply=reply)


class FTPPassiveModeError(FTPError):
    """Server refused or botched passive mode."""

    kind = ErrorKind.PASSIVE_MODE_REJECTED

    def __init__(self, original_error: Exception = None, reply=None):
        super().__init__("Passive mode rejected", original_error, reply)


class FTPActiveModeError(FTPError):
    """Server refused the PORT command or never connected back."""

    kind = ErrorKind.ACTIVE_MODE_REJECTED

    def __init__(self, original_error: Exception = None, reply=None):
        super().__init__("Active mode rejected", original_error, reply)


class FTPTransientError(FTPError):
    """4xx reply: the caller may retry later."""

    kind = ErrorKind.TRANSIENT

    def __init__(self, operation: str, reply=None, original_error: Exception = None):
        self.operation = operation
        super().__init__(f"{operation} temporarily failed", original_error, reply)


class FTPProtocolError(FTPError):
    """Malformed or unexpected reply from the server."""

    kind = ErrorKind.PROTOCOL_ERROR

    def __init__(self, message: str = "Unexpected reply", reply=None, original_error: Exception = None):
        super().__init__(message, original_error, reply)

