"""Process pool primitives: backend, result channel, callbacks and controller."""

from .backend import ExitStatus, OsProcessBackend, ProcessBackend
from .callbacks import CallbackDispatch, FinishReport
from .channel import NATIVE_BINARY, STRUCTURED_TEXT, ResultChannel
from .manager import ForkPool

__all__ = [
    "ExitStatus",
    "OsProcessBackend",
    "ProcessBackend",
    "CallbackDispatch",
    "FinishReport",
    "NATIVE_BINARY",
    "STRUCTURED_TEXT",
    "ResultChannel",
    "ForkPool",
]
