"""
Blob store backends.

FileBlobStore keeps one file per key under a root directory. Writes go to
a temp file first, then an atomic rename. MemoryBlobStore is the same
contract over a dict.
"""

import os
import threading
from pathlib import Path
from typing import Optional

from .base import BlobExistsError, BlobStore


class FileBlobStore(BlobStore):
    """Files under a root directory."""

    def __init__(self, root: Path):
        self.root = Path(root)

    def _path(self, key: str) -> Path:
        path = (self.root / key).resolve()
        if self.root.resolve() not in path.parents:
            raise ValueError(f"Key escapes store root: {key}")
        return path

    def read(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_bytes()

    def write(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        temp = path.with_name(path.name + ".tmp")
        with open(temp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        temp.replace(path)

    def create(self, key: str, data: bytes) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(path, "xb") as f:
                f.write(data)
        except FileExistsError as e:
            raise BlobExistsError(key) from e

    def exists(self, key: str) -> bool:
        return self._path(key).exists()

    def remove(self, key: str) -> bool:
        path = self._path(key)
        if not path.exists():
            return False
        path.unlink()
        return True

    def list(self, prefix: str = "") -> list[str]:
        base = self._path(prefix) if prefix else self.root
        if not base.is_dir():
            return []
        keys = []
        for path in base.rglob("*"):
            if path.is_file() and not path.name.endswith(".tmp"):
                keys.append(path.relative_to(self.root).as_posix())
        return sorted(keys)


class MemoryBlobStore(BlobStore):
    """Dict-backed store, for tests and ephemeral sessions."""

    def __init__(self):
        self._lock = threading.Lock()
        self._blobs: dict[str, bytes] = {}

    def read(self, key: str) -> Optional[bytes]:
        with self._lock:
            return self._blobs.get(key)

    def write(self, key: str, data: bytes) -> None:
        with self._lock:
            self._blobs[key] = bytes(data)

    def create(self, key: str, data: bytes) -> None:
        with self._lock:
            if key in self._blobs:
                raise BlobExistsError(key)
            self._blobs[key] = bytes(data)

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self._blobs

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._blobs.pop(key, None) is not None

    def list(self, prefix: str = "") -> list[str]:
        prefix = prefix.rstrip("/") + "/" if prefix else ""
        with self._lock:
            return sorted(k for k in self._blobs if k.startswith(prefix))
