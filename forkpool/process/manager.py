"""Parent-side pool controller: bounded forking, reaping and result pickup."""

from __future__ import annotations

import logging
import os
import sys
import tempfile
import time
import warnings
import weakref
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..exceptions import (
    AlreadyInChildError,
    OrphanedChildWarning,
    SerializationError,
    SpawnFailedError,
    UsedFinishWithSpawnBlockError,
)
from .backend import ExitStatus, OsProcessBackend, ProcessBackend
from .callbacks import CallbackDispatch, FinishReport
from .channel import NATIVE_BINARY, ResultChannel

TEMPDIR_ENV = "FORKPOOL_TEMPDIR"
SERIALIZE_AS_ENV = "FORKPOOL_SERIALIZE_AS"
BLOCKING_SLEEP_ENV = "FORKPOOL_BLOCKING_SLEEP"
DEFAULT_BLOCKING_SLEEP = 1.0


def _check_capacity(capacity: Any) -> int:
    if isinstance(capacity, bool) or not isinstance(capacity, int) or capacity < 0:
        raise ValueError(f"Capacity must be an integer >= 0, not {capacity!r}")
    return capacity


def _check_sleep(period: Any) -> float:
    period = float(period)
    if period <= 0:
        raise ValueError("Blocking sleep must be greater than 0.0")
    return period


def _exit_code(code: Any) -> int:
    if code is None:
        return 0
    if isinstance(code, int):
        return code
    return 1


def _hard_exit(code: int) -> None:
    # os._exit skips atexit handlers and buffered output
    for stream in (sys.stdout, sys.stderr):
        try:
            stream.flush()
        except Exception:
            pass
    os._exit(code)


def _purge_payloads(channel: ResultChannel, parent_pid: int) -> None:
    if os.getpid() != parent_pid:
        return
    channel.purge(parent_pid)


class ForkPool:
    """Runs at most ``capacity`` child processes at a time.

    Typical use::

        pool = ForkPool(4)
        for item in items:
            if pool.spawn(item):
                continue
            # child
            pool.finish(0, work(item))
        pool.wait_all_children()

    Capacity 0 is debug mode: nothing is forked and spawn/finish run
    synchronously in the calling process.
    """

    def __init__(
        self,
        capacity: int = 0,
        *,
        tempdir: Optional[str] = None,
        serialize_as: Optional[str] = None,
        serialize_type: Optional[str] = None,
        process_backend: Optional[ProcessBackend] = None,
        blocking_sleep: Optional[float] = None,
    ) -> None:
        self._logger = logging.getLogger(__name__)
        self._capacity = _check_capacity(capacity)
        if tempdir is None:
            tempdir = os.environ.get(TEMPDIR_ENV) or tempfile.gettempdir()
        if serialize_as is None:
            serialize_as = serialize_type
        if serialize_as is None:
            serialize_as = os.environ.get(SERIALIZE_AS_ENV, NATIVE_BINARY)
        if blocking_sleep is None:
            blocking_sleep = os.environ.get(BLOCKING_SLEEP_ENV, DEFAULT_BLOCKING_SLEEP)
        self.channel = ResultChannel(tempdir, serialize_as)
        self.callbacks = CallbackDispatch()
        self._backend = process_backend or OsProcessBackend()
        self._blocking_sleep = _check_sleep(blocking_sleep)
        self._children: Dict[int, Any] = {}
        self._is_child = False
        self._inline = False
        self.parent_pid = os.getpid()
        self._finalizer = weakref.finalize(
            self, _purge_payloads, self.channel, self.parent_pid
        )
        if not self._capacity:
            self._logger.info(
                "Zero processes have been specified; running in debug mode "
                "without forking (tempdir %s)",
                self.channel.tempdir,
            )

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} capacity={self._capacity} "
            f"running={len(self._children)} format={self.channel.format}>"
        )

    def __enter__(self) -> "ForkPool":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self._is_child:
            return
        try:
            if exc_type is None:
                self.wait_all_children()
        finally:
            self.close()

    # Configuration

    @property
    def capacity(self) -> int:
        return self._capacity

    def set_capacity(self, capacity: int) -> None:
        """Change the slot limit; running children are not affected.

        Leaving debug mode forgets an unfinished debug-mode record, since
        no process exists that could ever free its slot.
        """

        self._capacity = _check_capacity(capacity)
        if self._capacity and self.parent_pid in self._children:
            label = self._children.pop(self.parent_pid)
            self._logger.debug("Dropped unfinished debug-mode record %r", label)

    @property
    def blocking_sleep(self) -> float:
        """Best-effort interval between polls while waiting for a child.

        Must be greater than 0. There is no setting that turns the
        sleep-and-repoll wait off; waiting always polls the tracked children.
        """

        return self._blocking_sleep

    @blocking_sleep.setter
    def blocking_sleep(self, period: float) -> None:
        self._blocking_sleep = _check_sleep(period)

    def is_child(self) -> bool:
        return self._is_child

    def is_parent(self) -> bool:
        return not self._is_child

    def running_children(self) -> Tuple[int, ...]:
        """Pids not yet reaped, in spawn order."""

        return tuple(self._children)

    # Callback registration

    def on_start(self, handler: Optional[Callable[..., Any]]):
        """Call ``handler(pid, label)`` after each successful spawn."""

        self.callbacks.set_start(handler)
        return handler

    def on_finish(self, handler: Optional[Callable[..., Any]], pid: int = 0):
        """Call ``handler(pid, exit_code, label, signal, core_dumped, result)``
        when a child is reaped.

        With a nonzero ``pid`` the handler only applies to that child;
        pid 0 registers the default handler.
        """

        self.callbacks.set_finish(handler, pid)
        return handler

    def on_wait(
        self, handler: Optional[Callable[..., Any]], period: Optional[float] = None
    ):
        """Call ``handler()`` whenever the pool has to wait for a child.

        With a ``period``, waiting polls without blocking and the handler
        runs again every ``period`` seconds while children are outstanding.
        """

        self.callbacks.set_wait(handler, period)
        return handler

    # Lifecycle

    def spawn(
        self,
        label: Any = None,
        target: Optional[Callable[..., Any]] = None,
        *args: Any,
    ) -> int:
        """Start a child process labelled ``label``.

        Blocks while the pool is full. Returns the child pid in the parent
        and 0 in the child (and in debug mode). With a ``target``, the child
        runs ``target(*args)`` and exits; it never returns here.
        """

        if self._is_child:
            raise AlreadyInChildError()
        if target is None and args:
            raise ValueError("spawn() got arguments but no target")
        if target is not None and not callable(target):
            raise TypeError(f"Target must be callable, not {type(target).__name__}")

        while self._capacity and len(self._waitable()) >= self._capacity:
            self.callbacks.wait()
            self._reap_one(blocking=self.callbacks.wait_period is None)
        self.reap_available()

        if not self._capacity:
            return self._spawn_debug(label, target, args)

        try:
            pid = self._backend.spawn()
        except OSError as exc:
            raise SpawnFailedError(f"Cannot fork: {exc}") from exc
        if target is not None:
            self._inline = True

        if pid == 0:
            self._enter_child()
            if target is not None:
                self._run_target(target, args)
            return 0

        self._children[pid] = label
        self._logger.debug("Spawned child %s (%r)", pid, label)
        self.callbacks.start(pid, label)
        return pid

    def finish(self, exit_code: Optional[int] = 0, result: Any = None) -> None:
        """End the current child with ``exit_code``, handing ``result`` to the parent.

        In a child this never returns. In debug mode the finish handler runs
        immediately. In the parent of real children it does nothing.
        """

        if self._inline:
            raise UsedFinishWithSpawnBlockError()
        exit_code = _exit_code(exit_code)
        if self._is_child:
            if result is not None:
                pid = os.getpid()
                path = self.channel.path_for(self.parent_pid, pid)
                try:
                    self.channel.store(path, result)
                except SerializationError:
                    self._logger.exception("Unable to store result of child %s", pid)
                    _hard_exit(1)
            _hard_exit(exit_code)
        if not self._capacity:
            self._finish_debug(exit_code, result)

    def reap_available(self) -> List[int]:
        """Reap every child that has already exited, without blocking.

        Returns the reaped pids in reap order.
        """

        reaped = []
        while True:
            pid = self._reap_one(blocking=False)
            if not pid:
                return reaped
            reaped.append(pid)

    reap_finished_children = reap_available

    def wait_all_children(self) -> None:
        """Block until every child has been reaped."""

        while self._waitable():
            self.callbacks.wait()
            self._reap_one(blocking=self.callbacks.wait_period is None)

    def wait_for_capacity(self, n: int = 1) -> None:
        """Block until at least ``n`` slots are free."""

        if n > self._capacity:
            raise ValueError(
                f"Number of processes {n} is higher than the capacity {self._capacity}"
            )
        while self._capacity - len(self._waitable()) < n and self._waitable():
            self._reap_one(blocking=True)

    def close(self) -> None:
        """Remove leftover result payloads of this parent. Idempotent."""

        self._finalizer()

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    # Internals

    def _enter_child(self) -> None:
        # the child gets its own empty table and never purges the parent's payloads
        self._is_child = True
        self._children = {}
        self._finalizer.detach()

    def _run_target(self, target: Callable[..., Any], args: Tuple[Any, ...]) -> None:
        code = 1
        try:
            target(*args)
            code = 0
        except SystemExit as exc:
            code = _exit_code(exc.code)
        except BaseException:
            self._logger.exception("Target of child %s failed", os.getpid())
        finally:
            _hard_exit(code)

    def _spawn_debug(
        self, label: Any, target: Optional[Callable[..., Any]], args: Tuple[Any, ...]
    ) -> int:
        pid = os.getpid()
        self._children[pid] = label
        self.callbacks.start(pid, label)
        if target is not None:
            try:
                target(*args)
                code = 0
            except SystemExit as exc:
                code = _exit_code(exc.code)
            self._finish_debug(code, None)
        return 0

    def _finish_debug(self, exit_code: int, result: Any) -> None:
        # no real child exists; the caller's own pid stands in for it
        pid = os.getpid()
        label = self._children.get(pid)
        report = FinishReport(pid, exit_code, label, None, False, result)
        try:
            self.callbacks.finish(report)
        finally:
            self._children.pop(pid, None)

    def _waitable(self) -> List[int]:
        # excludes the debug-mode pseudo child, which is this process
        return [pid for pid in self._children if pid != self.parent_pid]

    def _reap_one(self, blocking: bool = False) -> int:
        while True:
            pid = self._poll_children()
            if pid or not blocking or not self._waitable():
                return pid
            time.sleep(self._blocking_sleep)

    def _poll_children(self) -> int:
        for pid in self._waitable():
            try:
                exited = self._backend.wait(pid, nonblocking=True)
            except ChildProcessError:
                self._drop_orphan(pid)
                continue
            if not exited:
                continue
            self._complete(pid, self._backend.exit_status())
            return pid
        return 0

    def _complete(self, pid: int, status: ExitStatus) -> None:
        label = self._children.pop(pid)
        path = self.channel.path_for(self.parent_pid, pid)
        result, error = self.channel.collect(path)
        if error is not None:
            self._logger.error("Result of child %s (%r) is lost: %s", pid, label, error)
        self._logger.debug(
            "Reaped child %s (%r): exit code %s, signal %s",
            pid,
            label,
            status.code,
            status.signal,
        )
        report = FinishReport(
            pid, status.code, label, status.signal, status.core_dumped, result
        )
        self.callbacks.finish(report)

    def _drop_orphan(self, pid: int) -> None:
        label = self._children.pop(pid, None)
        self.channel.discard(self.channel.path_for(self.parent_pid, pid))
        message = (
            f"Child process {pid} ({label!r}) disappeared; it may have been "
            "reaped outside of the pool"
        )
        self._logger.warning(message)
        warnings.warn(message, OrphanedChildWarning, stacklevel=4)
