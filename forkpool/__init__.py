from .process import (
    ExitStatus,
    FinishReport,
    ForkPool,
    OsProcessBackend,
    ProcessBackend,
    ResultChannel,
)
from .exceptions import (
    AlreadyInChildError,
    DeserializationError,
    ForkPoolError,
    MissingTempDirError,
    OrphanedChildWarning,
    SerializationError,
    SpawnFailedError,
    UnknownSerializerError,
    UsedFinishWithSpawnBlockError,
)

__version__ = "0.1.0"

__all__ = [
    "ForkPool",
    "FinishReport",
    "ExitStatus",
    "ProcessBackend",
    "OsProcessBackend",
    "ResultChannel",
    "ForkPoolError",
    "AlreadyInChildError",
    "SpawnFailedError",
    "UsedFinishWithSpawnBlockError",
    "UnknownSerializerError",
    "MissingTempDirError",
    "SerializationError",
    "DeserializationError",
    "OrphanedChildWarning",
]
