"""Object store collaborators: ``get(key) -> bytes`` and ``put(key, data)``."""

from __future__ import annotations

import re
import threading
from pathlib import Path
from typing import Protocol

from .errors import StorageError

_SAFE_KEY_RE = re.compile(r"^[A-Za-z0-9._-]+(?:/[A-Za-z0-9._-]+)*$")


class ObjectStore(Protocol):
    def get(self, key: str) -> bytes: ...

    def put(self, key: str, data: bytes) -> None: ...


def _check_key(key: str) -> str:
    if not _SAFE_KEY_RE.match(key) or ".." in key.split("/"):
        raise StorageError(f"invalid storage key {key!r}")
    return key


class InMemoryObjectStore:
    def __init__(self) -> None:
        self._objects: dict[str, bytes] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> bytes:
        with self._lock:
            try:
                return self._objects[key]
            except KeyError as e:
                raise StorageError(f"object {key!r} not found") from e

    def put(self, key: str, data: bytes) -> None:
        with self._lock:
            self._objects[_check_key(key)] = bytes(data)


class LocalObjectStore:
    """Store objects as files under ``root`` (created on first write)."""

    def __init__(self, root: Path) -> None:
        self._root = Path(root)

    def _path(self, key: str) -> Path:
        return self._root / _check_key(key)

    def get(self, key: str) -> bytes:
        try:
            return self._path(key).read_bytes()
        except OSError as e:
            raise StorageError(f"object {key!r} could not be read: {e.strerror or e}") from e

    def put(self, key: str, data: bytes) -> None:
        path = self._path(key)
        tmp = path.with_name(path.name + ".part")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            tmp.replace(path)
        except OSError as e:
            raise StorageError(f"object {key!r} could not be written: {e.strerror or e}") from e


__all__ = ["InMemoryObjectStore", "LocalObjectStore", "ObjectStore"]
