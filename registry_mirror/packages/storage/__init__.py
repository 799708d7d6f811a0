"""Storage drivers for the local registry content.

Importing this package registers the built-in storage middlewares.
"""

from . import middleware
from .ecr_mirror import ECRMirrorDriver
from .errors import (
    ImportFailedError,
    InvalidPathError,
    PathNotFoundError,
    StorageDriverError,
)
from .filesystem import FilesystemDriver
from .storage_types import StorageDriver
from .transfer import (
    DockerCLIImageTransfer,
    DockerImageTransfer,
    ImageTransfer,
    TransferError,
)

__all__ = [
    # Protocols
    "StorageDriver",
    "ImageTransfer",
    # Drivers
    "FilesystemDriver",
    "ECRMirrorDriver",
    # Transfers
    "DockerImageTransfer",
    "DockerCLIImageTransfer",
    # Errors
    "StorageDriverError",
    "PathNotFoundError",
    "InvalidPathError",
    "ImportFailedError",
    "TransferError",
    # Registry
    "middleware",
]
