"""Background execution helpers for the FTP client engine.

Session.execute() blocks on socket I/O. These helpers run it on a worker
thread and hand the Result back to the thread that owns the front end.
"""

import queue
import threading
from enum import Enum
from typing import Callable, Optional, Tuple

from ftpclient.ftp.commands import Command, Result
from ftpclient.ftp.session import Session


class TaskStatus(Enum):
    """Status of a background command."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"


class CommandTask:
    """
    Runs one session command in a background thread.

    Usage:
        task = CommandTask(session, Get("/pub/file.bin"))
        task.start()

        # In the front end's loop:
        if not task.is_running:
            result = task.get_result()

        # To interrupt a long transfer:
        task.cancel()
    """

    def __init__(
        self,
        session: Session,
        command: Command,
        on_complete: Optional[Callable[[Command, Result], None]] = None
    ):
        """
        Initialize a command task.

        Args:
            session: Session to execute on
            command: Command to execute
            on_complete: Callback when the command finishes (called from worker thread)
        """
        self._session = session
        self._command = command
        self._on_complete = on_complete

        self._thread: Optional[threading.Thread] = None
        self._result: Optional[Result] = None
        self._status = TaskStatus.PENDING

    @property
    def command(self) -> Command:
        return self._command

    @property
    def status(self) -> TaskStatus:
        """Current task status."""
        return self._status

    @property
    def is_running(self) -> bool:
        """True if the command is currently running."""
        return self._status == TaskStatus.RUNNING

    def start(self) -> None:
        """Start the background command."""
        if self._status != TaskStatus.PENDING:
            raise RuntimeError("Task already started")

        self._status = TaskStatus.RUNNING
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def cancel(self) -> bool:
        """
        Interrupt the running command by closing its sockets.

        Returns:
            True if a command was in flight on the session
        """
        return self._session.cancel()

    def _run(self) -> None:
        """Internal method that runs in the background thread."""
        # Session.execute() reports failures as results, it does not raise
        self._result = self._session.execute(self._command)
        self._status = TaskStatus.COMPLETED

        if self._on_complete:
            self._on_complete(self._command, self._result)

    def get_result(self, timeout: Optional[float] = None) -> Optional[Result]:
        """
        Wait for the command to finish and return its result.

        Args:
            timeout: Maximum time to wait (None = forever)

        Returns:
            Result, or None if the task was never started

        Raises:
            TimeoutError: If timeout expires before the command completes
        """
        if self._thread:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                raise TimeoutError("Command did not complete within timeout")

        return self._result


class ResultQueue:
    """
    Thread-safe queue for passing results from worker threads to a front end.

    Usage:
        results = ResultQueue()
        CommandTask(session, List(), on_complete=results.put).start()

        # In the front end's loop (main thread):
        for command, result in results.get_all():
            show(command, result)
    """

    def __init__(self):
        """Initialize the result queue."""
        self._queue: queue.Queue[Tuple[Command, Result]] = queue.Queue()

    def put(self, command: Command, result: Result) -> None:
        """Queue a finished command (thread-safe)."""
        self._queue.put((command, result))

    def get(self, timeout: Optional[float] = None) -> Optional[Tuple[Command, Result]]:
        """
        Get a single finished command.

        Args:
            timeout: Seconds to wait; None returns immediately

        Returns:
            Tuple of (command, result) or None if empty
        """
        try:
            if timeout is None:
                return self._queue.get_nowait()
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def get_all(self) -> list[Tuple[Command, Result]]:
        """Get all pending (command, result) pairs."""
        updates = []
        while True:
            try:
                updates.append(self._queue.get_nowait())
            except queue.Empty:
                break
        return updates
