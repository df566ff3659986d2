"""File storage for uploaded document blobs."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path

from claim_pipeline.engines.errors import StorageError

logger = logging.getLogger(__name__)


class Storage(ABC):
    """Blob storage contract used by intake and the extract step."""

    @abstractmethod
    def upload(self, path: str, data: bytes) -> str:
        """Store data under path and return the stored path."""

    @abstractmethod
    def download(self, path: str) -> bytes:
        """Return the bytes stored under path."""

    @abstractmethod
    def delete(self, path: str) -> None:
        """Remove the blob under path; missing blobs are ignored."""


class LocalFileStorage(Storage):
    """Stores blobs as files below a root directory.

    Paths are relative to the root (e.g. ``<claim_id>/<uuid>_scan.pdf``);
    anything that resolves outside the root is rejected.
    """

    def __init__(self, root: str | Path):
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def _resolve(self, path: str) -> Path:
        if not path or not path.strip():
            raise StorageError("Storage path is empty")
        target = (self._root / path).resolve()
        if target != self._root and self._root not in target.parents:
            raise StorageError(f"Storage path escapes root: {path}")
        return target

    def upload(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(data)
        except OSError as e:
            raise StorageError(f"Failed to store file {path}: {e}") from e
        logger.debug("Stored blob %s (%d bytes)", path, len(data))
        return path

    def download(self, path: str) -> bytes:
        target = self._resolve(path)
        try:
            return target.read_bytes()
        except FileNotFoundError as e:
            raise StorageError(f"File not found in storage: {path}") from e
        except OSError as e:
            raise StorageError(f"Failed to download file {path}: {e}") from e

    def delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to delete file {path}: {e}") from e
