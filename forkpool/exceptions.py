"""Exceptions raised by the fork pool."""


class ForkPoolError(RuntimeError):
    """Base class for fork pool related failures."""


class AlreadyInChildError(ForkPoolError):
    """spawn() was called from inside a spawned child."""

    def __init__(self, message=None):
        super().__init__(
            message or "Cannot spawn from a child process of the same pool"
        )


class SpawnFailedError(ForkPoolError):
    """The process backend could not create a child process."""


class UsedFinishWithSpawnBlockError(ForkPoolError):
    """finish() was used together with the inline spawn form."""

    def __init__(self, message=None):
        super().__init__(
            message
            or "Do not use finish() when spawning with a target; "
            "exit from the target instead"
        )


class UnknownSerializerError(ForkPoolError):
    """The requested serialization format is not supported."""


class MissingTempDirError(ForkPoolError):
    """The result payload directory does not exist."""


class SerializationError(ForkPoolError):
    """A child result could not be serialized."""


class DeserializationError(ForkPoolError):
    """A child result payload could not be read back."""


class OrphanedChildWarning(RuntimeWarning):
    """A tracked child was no longer known to the process backend."""
