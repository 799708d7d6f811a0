"""Storage driver errors."""


class StorageDriverError(Exception):
    """Base exception for all storage driver errors."""

    def __init__(self, path: str, message: str = ""):
        self.path = path
        super().__init__(message or f"storage error: {path}")


class PathNotFoundError(StorageDriverError):
    """Raised when nothing is stored at the requested path."""

    def __init__(self, path: str):
        super().__init__(path, f"path not found: {path}")


class InvalidPathError(StorageDriverError):
    """Raised when a missing path cannot be imported from the upstream registry."""

    def __init__(self, path: str):
        super().__init__(path, f"invalid path: {path}")


class ImportFailedError(StorageDriverError):
    """Raised when importing an image from the upstream registry fails.

    Attributes:
        image: Upstream image reference that was being imported
        step: Transfer step that failed ("pull", "tag" or "push")
    """

    def __init__(self, path: str, image: str, step: str, cause: Exception):
        self.image = image
        self.step = step
        super().__init__(
            path, f"failed to import {image} from upstream ({step}): {cause}"
        )
