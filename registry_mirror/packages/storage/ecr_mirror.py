"""Storage middleware importing missing tags from an upstream ECR registry.

When the local registry looks up the current link of a tag it does not have,
the image is pulled from the upstream registry, tagged with the local
registry name and pushed to the local registry. The lookup is then retried
once against the base storage driver.
"""

import asyncio
from typing import Any, Mapping

import structlog

from registry_mirror.packages.registry_proxy import MissKeyMatch, match_import_key

from . import middleware
from .errors import ImportFailedError, InvalidPathError, StorageDriverError
from .storage_types import StorageDriver
from .transfer import ImageTransfer, TransferError

logger = structlog.stdlib.get_logger(__name__)


class ECRMirrorDriver(StorageDriver):
    """StorageDriver wrapper that lazily imports tags on read misses.

    Concurrent misses on the same repository and tag share a single import.
    """

    def __init__(
        self,
        base: StorageDriver,
        remote: str,
        local: str,
        transfer: ImageTransfer,
    ):
        """Initialize the mirror driver.

        Args:
            base: Storage driver holding the local registry content
            remote: Upstream registry host (e.g. "123456789012.dkr.ecr.us-west-2.amazonaws.com")
            local: Local registry host (e.g. "localhost:5000")
            transfer: Strategy used to pull, tag and push images
        """
        self.base = base
        self.remote = remote
        self.local = local
        self.transfer = transfer
        self._in_flight: dict[tuple[str, str], asyncio.Task] = {}

    async def get_content(self, path: str) -> bytes:
        try:
            return await self.base.get_content(path)
        except StorageDriverError as e:
            miss_error = e

        match = match_import_key(path)
        if match is None:
            raise InvalidPathError(path) from miss_error

        logger.info(
            "Tag not found locally, importing from upstream",
            repository=match.repository,
            tag=match.tag,
            error=str(miss_error),
        )
        await self._import(path, match)

        return await self.base.get_content(path)

    async def put_content(self, path: str, content: bytes) -> None:
        await self.base.put_content(path, content)

    async def _import(self, path: str, match: MissKeyMatch) -> None:
        key = (match.repository, match.tag)
        task = self._in_flight.get(key)
        if task is None or task.done():
            task = asyncio.ensure_future(self._pull_and_import(path, match))
            self._in_flight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))
        else:
            logger.debug(
                "Joining in-flight import",
                repository=match.repository,
                tag=match.tag,
            )

        # A cancelled waiter must not cancel the import other waiters share
        await asyncio.shield(task)

    def _forget(self, key: tuple[str, str], task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Mark the failure as retrieved when every waiter was cancelled
        if not task.cancelled():
            task.exception()

    async def _pull_and_import(self, path: str, match: MissKeyMatch) -> None:
        remote_image = f"{self.remote}/{match.repository}:{match.tag}"
        local_image = f"{self.local}/{match.repository}:{match.tag}"

        logger.info("Pulling image from upstream", image=remote_image)
        try:
            await self.transfer.pull(remote_image)
            await self.transfer.tag(remote_image, local_image)
            await self.transfer.push(local_image)
        except TransferError as e:
            logger.error(
                "Failed to import image",
                image=remote_image,
                step=e.step,
                error=str(e),
            )
            raise ImportFailedError(path, remote_image, e.step, e) from e

        logger.info(
            "Imported image into local registry",
            image=remote_image,
            local_image=local_image,
        )


def new_ecr_mirror(base: StorageDriver, options: Mapping[str, Any]) -> StorageDriver:
    """Build the "ecr" middleware from its options.

    Options:
        remote: Upstream registry host
        local: Local registry host
        transfer: ImageTransfer implementation (required)
    """
    transfer = options.get("transfer")
    if transfer is None:
        raise ValueError("ecr storage middleware requires a 'transfer' option")

    return ECRMirrorDriver(
        base=base,
        remote=str(options.get("remote", "")),
        local=str(options.get("local", "")),
        transfer=transfer,
    )


middleware.register("ecr", new_ecr_mirror)
