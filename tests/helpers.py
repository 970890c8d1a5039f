import errno
import os
from typing import Dict, List, Optional, Set

import pytest

from forkpool import ExitStatus, ProcessBackend

posix_only = pytest.mark.skipif(not hasattr(os, "fork"), reason="requires os.fork")


class ScriptedBackend(ProcessBackend):
    """In-memory process backend; children exit when the test says so."""

    def __init__(self, pids):
        self._pids = list(pids)
        self.running: List[int] = []
        self.reaped: List[int] = []
        self.calls: List[tuple] = []
        self._exited: Dict[int, ExitStatus] = {}
        self._countdown: Dict[int, int] = {}
        self._pending_code: Dict[int, Optional[int]] = {}
        self._gone: Set[int] = set()
        self._last = ExitStatus()

    def exit(self, pid: int, code: Optional[int] = 0, signal=None, core_dumped=False):
        self._exited[pid] = ExitStatus(code, signal, core_dumped)

    def exit_after(self, pid: int, polls: int, code: int = 0):
        """Let ``pid`` exit once it has been polled ``polls`` times."""
        self._countdown[pid] = polls
        self._exited.pop(pid, None)
        self._pending_code[pid] = code

    def vanish(self, pid: int):
        self._gone.add(pid)

    def spawn(self) -> int:
        self.calls.append(("spawn",))
        if not self._pids:
            raise OSError(errno.EAGAIN, "Resource temporarily unavailable")
        pid = self._pids.pop(0)
        if pid:
            self.running.append(pid)
        return pid

    def wait(self, pid: int, nonblocking: bool = True) -> Optional[int]:
        self.calls.append(("wait", pid, nonblocking))
        if pid in self._gone or pid not in self.running:
            raise ChildProcessError(errno.ECHILD, "No child processes")
        if pid in self._countdown:
            self._countdown[pid] -= 1
            if self._countdown[pid] <= 0:
                del self._countdown[pid]
                self.exit(pid, self._pending_code.pop(pid))
        status = self._exited.pop(pid, None)
        if status is None:
            return None
        self.running.remove(pid)
        self.reaped.append(pid)
        self._last = status
        return pid

    def exit_status(self) -> ExitStatus:
        return self._last

    def spawn_count(self) -> int:
        return sum(1 for call in self.calls if call[0] == "spawn")


class ChildExited(Exception):
    def __init__(self, code):
        super().__init__(code)
        self.code = code
