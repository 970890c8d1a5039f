"""Result payloads passed from a child to its parent through the filesystem."""

from __future__ import annotations

import json
import logging
import os
import pickle
import tempfile
from typing import Any, Optional, Tuple

from ..exceptions import (
    DeserializationError,
    MissingTempDirError,
    SerializationError,
    UnknownSerializerError,
)

PAYLOAD_PREFIX = "PoolResult"

NATIVE_BINARY = "native-binary"
STRUCTURED_TEXT = "structured-text"

_ALIASES = {
    NATIVE_BINARY: NATIVE_BINARY,
    "pickle": NATIVE_BINARY,
    STRUCTURED_TEXT: STRUCTURED_TEXT,
    "json": STRUCTURED_TEXT,
}

_EXTENSIONS = {
    NATIVE_BINARY: "pickle",
    STRUCTURED_TEXT: "json",
}


def resolve_format(name: Any) -> str:
    """Map a user-supplied format name onto its canonical name."""

    if not isinstance(name, str):
        raise UnknownSerializerError(f"Unknown serialization format {name!r}")
    try:
        return _ALIASES[name.strip().lower()]
    except KeyError:
        raise UnknownSerializerError(
            f"Unknown serialization format {name!r}; "
            f"expected one of {sorted(_ALIASES)}"
        ) from None


def _dumps(fmt: str, value: Any) -> bytes:
    if fmt == NATIVE_BINARY:
        return pickle.dumps(value, protocol=pickle.HIGHEST_PROTOCOL)
    return json.dumps(value).encode()


def _loads(fmt: str, data: bytes) -> Any:
    if fmt == NATIVE_BINARY:
        return pickle.loads(data)
    return json.loads(data.decode())


class ResultChannel:
    """Stores and retrieves child results in a shared directory.

    Payload files are named ``PoolResult-<parent pid>-<child pid>.<ext>``,
    so children of the same parent never collide.
    """

    def __init__(self, tempdir: str, serialize_as: str = NATIVE_BINARY) -> None:
        if not os.path.isdir(tempdir):
            raise MissingTempDirError(
                f"{tempdir} doesn't exist or is not a directory"
            )
        self.tempdir = tempdir
        self.format = resolve_format(serialize_as)
        self._logger = logging.getLogger(__name__)

    @property
    def extension(self) -> str:
        return _EXTENSIONS[self.format]

    def path_for(self, parent_pid: int, child_pid: int) -> str:
        filename = f"{PAYLOAD_PREFIX}-{parent_pid}-{child_pid}.{self.extension}"
        return os.path.join(self.tempdir, filename)

    def store(self, path: str, value: Any) -> None:
        """Serialize ``value`` and write it atomically to ``path``."""

        try:
            data = _dumps(self.format, value)
        except Exception as exc:
            raise SerializationError(
                f"Cannot serialize {type(value).__name__} as {self.format}: {exc}"
            ) from exc
        target_dir = os.path.dirname(path) or "."
        try:
            tmp_fd, tmp_path = tempfile.mkstemp(
                prefix="." + os.path.basename(path) + "-", dir=target_dir
            )
        except OSError as exc:
            raise SerializationError(f"Cannot write {path}: {exc}") from exc
        try:
            with os.fdopen(tmp_fd, "wb") as f:
                f.write(data)
            os.replace(tmp_path, path)
        except OSError as exc:
            raise SerializationError(f"Cannot write {path}: {exc}") from exc
        finally:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)

    def retrieve(self, path: str) -> Optional[Any]:
        """Read back the value at ``path``; None if nothing was stored.

        The file is left in place; see :meth:`collect` for read-and-delete.
        """

        try:
            if os.path.getsize(path) == 0:
                return None
        except OSError:
            return None
        try:
            with open(path, "rb") as f:
                data = f.read()
            return _loads(self.format, data)
        except Exception as exc:
            raise DeserializationError(
                f"Error reading/deserializing {path}: {exc}"
            ) from exc

    def collect(self, path: str) -> Tuple[Optional[Any], Optional[Exception]]:
        """Retrieve the payload at ``path`` and always delete the file.

        Returns ``(value, error)``; a failed read gives ``(None, error)``.
        """

        value, error = None, None
        try:
            value = self.retrieve(path)
        except DeserializationError as exc:
            error = exc
        finally:
            self.discard(path)
        return value, error

    def discard(self, path: str) -> None:
        try:
            os.unlink(path)
        except FileNotFoundError:
            pass

    def purge(self, parent_pid: int) -> int:
        """Remove all leftover payloads of ``parent_pid``. Returns the count."""

        prefix = f"{PAYLOAD_PREFIX}-{parent_pid}-"
        removed = 0
        try:
            entries = os.listdir(self.tempdir)
        except OSError:
            return 0
        for filename in entries:
            if not filename.startswith(prefix):
                continue
            try:
                os.unlink(os.path.join(self.tempdir, filename))
            except OSError:
                continue
            removed += 1
        if removed:
            self._logger.debug(
                "Removed %d leftover payload(s) of parent %s", removed, parent_pid
            )
        return removed
