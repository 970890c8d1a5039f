"""Lifecycle callbacks: start, finish and wait-for-slot."""

from __future__ import annotations

import time
from dataclasses import dataclass, fields
from numbers import Real
from typing import Any, Callable, Dict, Optional, Tuple

from .utils import call_with_arity


@dataclass(frozen=True)
class FinishReport:
    """Everything known about a child at the moment it is reaped.

    Finish handlers receive these fields positionally, in this order.
    """

    pid: int
    exit_code: Optional[int]
    label: Any
    signal: Optional[int]
    core_dumped: bool
    result: Any = None

    def as_args(self) -> Tuple[Any, ...]:
        return tuple(getattr(self, f.name) for f in fields(self))


class CallbackDispatch:
    """Holds at most one handler per lifecycle event.

    Finish handlers may also be registered for a specific pid; they fire
    once, for the next reap of that pid. The handler registered for pid 0
    is the default.
    """

    def __init__(self) -> None:
        self._on_start: Optional[Callable[..., Any]] = None
        self._on_finish: Dict[int, Callable[..., Any]] = {}
        self._on_wait: Optional[Callable[..., Any]] = None
        self.wait_period: Optional[float] = None

    def set_start(self, handler: Optional[Callable[..., Any]]) -> None:
        _check_callable(handler)
        self._on_start = handler

    def set_finish(self, handler: Optional[Callable[..., Any]], pid: int = 0) -> None:
        _check_callable(handler)
        if handler is None:
            self._on_finish.pop(pid, None)
        else:
            self._on_finish[pid] = handler

    def set_wait(
        self, handler: Optional[Callable[..., Any]], period: Optional[float] = None
    ) -> None:
        _check_callable(handler)
        if period is not None:
            if isinstance(period, bool) or not isinstance(period, Real):
                raise TypeError(f"Wait period must be a number, not {period!r}")
            if period <= 0:
                raise ValueError("Wait period must be greater than 0.0")
            period = float(period)
        self._on_wait = handler
        self.wait_period = period

    def start(self, pid: int, label: Any) -> None:
        if self._on_start is None:
            return
        call_with_arity(self._on_start, (pid, label))

    def finish(self, report: FinishReport) -> None:
        # a pid-specific handler is used once; the pid may be reused later
        handler = None
        if report.pid:
            handler = self._on_finish.pop(report.pid, None)
        if handler is None:
            handler = self._on_finish.get(0)
        if handler is None:
            return
        call_with_arity(handler, report.as_args())

    def wait(self) -> None:
        """Run the wait handler, then idle for the wait period if one is set."""

        if self._on_wait is not None:
            self._on_wait()
        if self.wait_period is not None:
            time.sleep(self.wait_period)


def _check_callable(handler: Any) -> None:
    if handler is not None and not callable(handler):
        raise TypeError(f"Handler must be callable, not {type(handler).__name__}")
