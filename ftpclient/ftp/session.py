"""Session management for the FTP client engine.

Provides the SessionState enum, the Session class that callers drive one
command at a time, and the module-level connect/authenticate/execute/
disconnect functions front ends map their forms onto. Nothing raised
inside the engine crosses this boundary: every failure comes back as a
Failure result.
"""

import logging
import threading
from enum import Enum
from typing import Iterable, Optional, Union

from ftpclient.config.settings import ClientSettings
from ftpclient.ftp.commands import Ack, ChangeDirectory, Command, Failure, Quit, Result
from ftpclient.ftp.connection import ControlChannel, Credentials, Endpoint
from ftpclient.ftp.dispatcher import CommandDispatcher
from ftpclient.ftp.exceptions import (
    ErrorKind,
    FTPCancelledError,
    FTPError,
    FTPPathError,
    FTPPermissionError,
    FTPProtocolError,
    FTPTransientError,
)

logger = logging.getLogger("ftpclient.session")


class SessionState(Enum):
    """Lifecycle state of a session."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    AUTHENTICATING = "authenticating"
    READY = "ready"
    BUSY = "busy"
    DEGRADED = "degraded"
    CLOSING = "closing"
    CLOSED = "closed"


# Failures that leave the connection unusable until reconnect()
DEGRADING_KINDS = {ErrorKind.TIMEOUT, ErrorKind.CANCELLED}

# Setup steps after login that may fail without failing the login
NON_FATAL_SETUP_ERRORS = (FTPProtocolError, FTPPathError, FTPPermissionError, FTPTransientError)


class Session:
    """
    One logged-in conversation with an FTP server.

    At most one command is in flight per session; a second call while one
    runs fails fast with Failure(BUSY). execute() blocks on socket I/O, so
    callers that must stay responsive run it on a worker thread.

    Usage:
        session = Session(Endpoint("127.0.0.1", 2121))
        session.connect()
        session.authenticate(Credentials("anonymous", ""))
        listing = session.execute(List())
        session.disconnect()
    """

    def __init__(self, endpoint: Endpoint, settings: Optional[ClientSettings] = None):
        """
        Initialize a disconnected session.

        Args:
            endpoint: Server to talk to
            settings: Engine settings (defaults if omitted)
        """
        self._endpoint = endpoint
        self._settings = settings or ClientSettings()
        self._control: Optional[ControlChannel] = None
        self._dispatcher: Optional[CommandDispatcher] = None
        self._credentials: Optional[Credentials] = None
        self._state = SessionState.DISCONNECTED
        self._lock = threading.Lock()
        self._in_flight = False
        self._current_directory = "/"
        self._last_failure: Optional[Failure] = None

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def settings(self) -> ClientSettings:
        return self._settings

    @property
    def state(self) -> SessionState:
        """Current session state."""
        return self._state

    @property
    def is_ready(self) -> bool:
        """True if execute() would run a command now."""
        return self._state == SessionState.READY and not self._in_flight

    @property
    def current_directory(self) -> str:
        """Remote working directory relative paths are resolved against."""
        return self._current_directory

    @property
    def last_failure(self) -> Optional[Failure]:
        """Most recent failure, cleared by the next successful call."""
        return self._last_failure

    @property
    def welcome(self) -> Optional[str]:
        """Server greeting text."""
        if self._control is None or self._control.welcome is None:
            return None
        return self._control.welcome.message

    # -------------------------------------------------------------- lifecycle

    def connect(self) -> Result:
        """
        Open the control connection.

        Returns:
            Ack with the greeting, or Failure(CONNECTION_REFUSED |
            UNREACHABLE | TIMEOUT | BUSY | CANCELLED)
        """
        allowed = (SessionState.DISCONNECTED, SessionState.DEGRADED, SessionState.CLOSED)
        busy = self._enter(allowed, SessionState.CONNECTING)
        if busy is not None:
            return busy

        self._drop_connection()
        try:
            control = ControlChannel.connect(self._endpoint, self._settings)
        except FTPError as e:
            return self._fail(e, SessionState.DISCONNECTED)
        except Exception as e:
            return self._fail(self._unexpected(e), SessionState.DISCONNECTED)

        with self._lock:
            # disconnect() may have closed the session during the greeting
            closed = self._state == SessionState.CLOSED
            if not closed:
                self._control = control
        if closed:
            control.abort()
            return self._fail(FTPCancelledError("Connection"), SessionState.CLOSED)

        self._leave(SessionState.AUTHENTICATING)
        return Ack(control.welcome)

    def authenticate(self, credentials: Credentials) -> Result:
        """
        Log in and prepare the session for commands.

        After login the transfer type is set and the working directory
        is read; failures of those two steps are logged, not returned.

        Args:
            credentials: Login name and password

        Returns:
            Ack, or Failure(AUTH_REJECTED | BUSY | transport kinds)
        """
        busy = self._enter((SessionState.AUTHENTICATING,), SessionState.AUTHENTICATING)
        if busy is not None:
            return busy

        try:
            reply = self._control.authenticate(credentials.username, credentials.password)
            dispatcher = CommandDispatcher(self._control)
            self._prepare(dispatcher)
        except FTPError as e:
            return self._fail(e, SessionState.AUTHENTICATING)
        except Exception as e:
            return self._fail(self._unexpected(e), SessionState.DEGRADED)

        self._credentials = credentials
        self._dispatcher = dispatcher
        self._leave(SessionState.READY)
        logger.info(f"Session ready at {self._endpoint}, cwd {self._current_directory}")
        return Ack(reply)

    def execute(self, command: Command) -> Result:
        """
        Run one command.

        Relative paths in the command are resolved against
        current_directory before it is sent.

        Args:
            command: Command variant

        Returns:
            Result of the command's declared type, or Failure
        """
        if isinstance(command, Quit):
            return self._quit(command)

        busy = self._enter((SessionState.READY,), SessionState.BUSY)
        if busy is not None:
            return busy

        try:
            resolved = command.resolved(self._current_directory)
            result = self._dispatcher.dispatch(resolved)
        except FTPError as e:
            return self._fail(e, SessionState.READY)
        except Exception as e:
            return self._fail(self._unexpected(e), SessionState.DEGRADED)

        if isinstance(resolved, ChangeDirectory):
            self._current_directory = resolved.path
        self._leave(SessionState.READY)
        return result

    def execute_all(self, commands: Iterable[Command]) -> list[Result]:
        """Run commands in order, stopping after the first Failure."""
        results = []
        for command in commands:
            result = self.execute(command)
            results.append(result)
            if not result.ok:
                break
        return results

    def disconnect(self) -> Ack:
        """
        Close the session.

        A command in flight is cancelled first. The session ends CLOSED
        whether or not the server acknowledges QUIT.

        Returns:
            Ack carrying the reply to QUIT, if one arrived
        """
        with self._lock:
            if self._state in (SessionState.CLOSED, SessionState.DISCONNECTED):
                return Ack()
            in_flight = self._in_flight

        if in_flight:
            self.cancel()
            with self._lock:
                self._state = SessionState.CLOSED
            self._drop_connection()
            return Ack()

        return self._quit(Quit())

    def reconnect(self) -> Result:
        """
        Replace a degraded or closed connection and log in again.

        Returns:
            Ack, or the Failure of the connect or login step
        """
        result = self.connect()
        if not result.ok or self._credentials is None:
            return result
        return self.authenticate(self._credentials)

    def cancel(self) -> bool:
        """
        Interrupt the command in flight from another thread.

        The blocked command returns Failure(CANCELLED) and the session
        becomes DEGRADED.

        Returns:
            True if a command was in flight
        """
        with self._lock:
            if not self._in_flight:
                return False
            control, dispatcher = self._control, self._dispatcher

        logger.info("Cancelling command in flight")
        if dispatcher is not None:
            dispatcher.data_channels.abort()
        if control is not None:
            control.abort()
        return True

    # --------------------------------------------------------------- internals

    def _quit(self, command: Quit) -> Result:
        busy = self._enter((SessionState.READY, SessionState.AUTHENTICATING, SessionState.DEGRADED),
                           SessionState.CLOSING)
        if busy is not None:
            return busy

        result = Ack()
        try:
            if self._dispatcher is not None:
                result = self._dispatcher.dispatch(command)
            elif self._control is not None:
                result = Ack(self._control.close())
        except Exception:
            # The session closes whether or not QUIT went through
            logger.exception("QUIT failed")
        finally:
            self._drop_connection()
            self._leave(SessionState.CLOSED)
        logger.info(f"Session with {self._endpoint} closed")
        return result

    def _prepare(self, dispatcher: CommandDispatcher) -> None:
        try:
            dispatcher.set_transfer_type(self._settings.transfer_type)
        except NON_FATAL_SETUP_ERRORS as e:
            logger.warning(f"Could not set transfer type: {e}")

        try:
            self._current_directory = dispatcher.query_working_directory()
        except NON_FATAL_SETUP_ERRORS as e:
            logger.warning(f"Could not read working directory, assuming '/': {e}")
            self._current_directory = "/"

    def _enter(self, allowed, transient_state: SessionState) -> Optional[Failure]:
        with self._lock:
            if self._in_flight or self._state not in allowed:
                logger.debug(f"Rejecting call in state {self._state.value}")
                return Failure(ErrorKind.BUSY, f"Session is {self._state.value}")
            self._in_flight = True
            self._state = transient_state
            return None

    def _leave(self, state: SessionState) -> None:
        with self._lock:
            # disconnect() may have closed the session while the call ran
            if self._state != SessionState.CLOSED:
                self._state = state
            self._in_flight = False
        self._last_failure = None

    def _fail(self, error: FTPError, stable_state: SessionState) -> Failure:
        failure = Failure(
            kind=error.kind,
            detail=str(error),
            bytes_transferred=error.bytes_transferred,
            reply=error.reply,
        )

        if error.kind == ErrorKind.CONNECTION_LOST:
            next_state = SessionState.CLOSED
        elif error.kind in DEGRADING_KINDS:
            next_state = SessionState.DEGRADED
        else:
            next_state = stable_state

        if next_state in (SessionState.DEGRADED, SessionState.CLOSED):
            self._drop_connection()
        logger.warning(f"{failure} (session now {next_state.value})")

        with self._lock:
            if self._state != SessionState.CLOSED:
                self._state = next_state
            self._in_flight = False
        self._last_failure = failure
        return failure

    def _unexpected(self, error: Exception) -> FTPError:
        logger.exception(f"Unexpected error talking to {self._endpoint}")
        return FTPProtocolError(f"Unexpected error: {error!r}", original_error=error)

    def _drop_connection(self) -> None:
        control = self._control
        self._control = None
        self._dispatcher = None
        if control is not None and control.is_open:
            control.abort()

    def __enter__(self) -> "Session":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.disconnect()


def connect(endpoint: Endpoint, settings: Optional[ClientSettings] = None) -> Union[Session, Failure]:
    """
    Open a session to an endpoint.

    Returns:
        Session awaiting authenticate(), or Failure
    """
    session = Session(endpoint, settings)
    result = session.connect()
    if not result.ok:
        return result
    return session


def authenticate(session: Session, credentials: Credentials) -> Result:
    """Log a connected session in; Ack or Failure."""
    return session.authenticate(credentials)


def execute(session: Session, command: Command) -> Result:
    """Run one command on a ready session."""
    return session.execute(command)


def disconnect(session: Session) -> Ack:
    """Close a session."""
    return session.disconnect()
