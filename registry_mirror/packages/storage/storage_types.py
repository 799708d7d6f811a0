from abc import ABC, abstractmethod


class StorageDriver(ABC):
    """Key/value content store addressed by absolute paths.

    Implementations raise PathNotFoundError for missing paths and
    StorageDriverError for any other failure.
    """

    @abstractmethod
    async def get_content(self, path: str) -> bytes: ...

    @abstractmethod
    async def put_content(self, path: str, content: bytes) -> None: ...
