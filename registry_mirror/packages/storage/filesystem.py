"""Filesystem storage driver.

Stores every path as a file below a root directory, using the same layout
as the registry's filesystem driver (e.g. <root>/docker/registry/v2/...).
"""

import asyncio
from pathlib import Path

import structlog

from .errors import PathNotFoundError, StorageDriverError
from .storage_types import StorageDriver

logger = structlog.stdlib.get_logger(__name__)


class FilesystemDriver(StorageDriver):
    def __init__(self, root_directory: str):
        self.root_directory = Path(root_directory)

    def _full_path(self, path: str) -> Path:
        if not path.startswith("/") or ".." in path.split("/"):
            raise StorageDriverError(path, f"invalid storage path: {path}")
        return self.root_directory / path.lstrip("/")

    async def get_content(self, path: str) -> bytes:
        full_path = self._full_path(path)
        try:
            return await asyncio.to_thread(full_path.read_bytes)
        except (FileNotFoundError, NotADirectoryError, IsADirectoryError):
            raise PathNotFoundError(path)
        except OSError as e:
            logger.error("Failed to read content", path=path, error=str(e))
            raise StorageDriverError(path, f"failed to read {path}: {e}") from e

    async def put_content(self, path: str, content: bytes) -> None:
        full_path = self._full_path(path)

        def write():
            full_path.parent.mkdir(parents=True, exist_ok=True)
            full_path.write_bytes(content)

        try:
            await asyncio.to_thread(write)
        except OSError as e:
            logger.error("Failed to write content", path=path, error=str(e))
            raise StorageDriverError(path, f"failed to write {path}: {e}") from e
