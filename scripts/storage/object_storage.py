"""
Object storage interface and a local filesystem implementation.

Paths are '/'-separated keys relative to the storage root, the same shape a
bucket-style service uses ("uploads/2024/parks.zip.chunk.0").
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

from config.settings import config

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when an object storage operation fails."""


def parent_directory(path: str) -> str:
    """Directory part of an object key ('' for keys at the root)."""
    parent = str(PurePosixPath(path).parent)
    return "" if parent == "." else parent


class ObjectStorage(ABC):
    """Minimal bucket-style object store."""

    @abstractmethod
    def upload(self, path: str, data: bytes, resumable: bool = False) -> None:
        """Write ``data`` at ``path``, overwriting any existing object."""

    @abstractmethod
    def download(self, path: str) -> bytes:
        """Read the object at ``path``."""

    @abstractmethod
    def list(self, directory: str = "") -> list[str]:
        """Return the object names (not full paths) directly under ``directory``."""

    @abstractmethod
    def remove(self, paths: Iterable[str]) -> int:
        """Delete objects and return how many existed."""


class LocalObjectStorage(ObjectStorage):
    """Object storage backed by a directory on the local filesystem."""

    def __init__(self, root: str | Path | None = None):
        self.root = Path(root or config.STORAGE_ROOT).resolve()
        self.root.mkdir(parents=True, exist_ok=True)

    def _resolve(self, path: str) -> Path:
        resolved = (self.root / path.lstrip("/")).resolve()
        if resolved != self.root and self.root not in resolved.parents:
            raise StorageError(f"Path escapes storage root: {path}")
        return resolved

    def upload(self, path: str, data: bytes, resumable: bool = False) -> None:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            # Write then rename so a failed upload never leaves a partial object
            temp = target.with_name(f"{target.name}.partial")
            temp.write_bytes(data)
            temp.replace(target)
        except OSError as e:
            raise StorageError(f"Failed to upload {path}: {e}") from e
        logger.debug(f"Stored {len(data)} bytes at {path}")

    def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as e:
            raise StorageError(f"Object not found: {path}") from e
        except OSError as e:
            raise StorageError(f"Failed to download {path}: {e}") from e

    def list(self, directory: str = "") -> list[str]:
        target = self._resolve(directory) if directory else self.root
        if not target.is_dir():
            return []
        try:
            return sorted(
                entry.name
                for entry in target.iterdir()
                if entry.is_file() and not entry.name.endswith(".partial")
            )
        except OSError as e:
            raise StorageError(f"Failed to list {directory or '/'}: {e}") from e

    def remove(self, paths: Iterable[str]) -> int:
        removed = 0
        for path in paths:
            target = self._resolve(path)
            try:
                target.unlink()
                removed += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                raise StorageError(f"Failed to remove {path}: {e}") from e
        return removed

    def exists(self, path: str) -> bool:
        return self._resolve(path).is_file()
