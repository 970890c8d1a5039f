"""Process creation and reaping capability used by the pool.

The pool never calls OS process primitives directly. It talks to a
:class:`ProcessBackend`, so tests can substitute a scripted backend.
"""

from __future__ import annotations

import os
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class ExitStatus:
    """How a reaped child terminated."""

    code: Optional[int] = 0
    signal: Optional[int] = None
    core_dumped: bool = False

    @classmethod
    def from_wait_status(cls, status: int) -> "ExitStatus":
        """Decode a raw ``os.waitpid`` status word."""

        if os.WIFSIGNALED(status):
            return cls(
                code=None,
                signal=os.WTERMSIG(status),
                core_dumped=os.WCOREDUMP(status),
            )
        if os.WIFEXITED(status):
            return cls(code=os.WEXITSTATUS(status))
        if os.WIFSTOPPED(status):
            return cls(code=None, signal=os.WSTOPSIG(status))
        return cls(code=None)


class ProcessBackend(ABC):
    """Spawns child processes and observes their exit."""

    @abstractmethod
    def spawn(self) -> int:
        """Create a child process.

        Returns the child pid in the parent and 0 in the child.
        Raises OSError when no process could be created.
        """

    @abstractmethod
    def wait(self, pid: int, nonblocking: bool = True) -> Optional[int]:
        """Wait for child ``pid``.

        Returns ``pid`` once it has exited, or None if it is still running
        (non-blocking only). Raises ChildProcessError if ``pid`` is unknown.
        """

    @abstractmethod
    def exit_status(self) -> ExitStatus:
        """Exit status of the child most recently returned by :meth:`wait`."""


class OsProcessBackend(ProcessBackend):
    """Backend based on ``os.fork`` and ``os.waitpid``."""

    def __init__(self) -> None:
        self._last_status = ExitStatus()

    def spawn(self) -> int:
        # unflushed parent output would otherwise be written again by the child
        for stream in (sys.stdout, sys.stderr):
            try:
                stream.flush()
            except (AttributeError, ValueError, OSError):
                pass
        return os.fork()

    def wait(self, pid: int, nonblocking: bool = True) -> Optional[int]:
        flags = os.WNOHANG if nonblocking else 0
        waited_pid, status = os.waitpid(pid, flags)
        if waited_pid == 0:
            return None
        self._last_status = ExitStatus.from_wait_status(status)
        return waited_pid

    def exit_status(self) -> ExitStatus:
        return self._last_status
