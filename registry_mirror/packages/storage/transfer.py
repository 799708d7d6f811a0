"""Image transfer strategies used to import images into the local registry.

An ImageTransfer moves an image between registries through a Docker
daemon: pull from the upstream registry, tag with the local registry name,
push to the local registry. Each operation is a single attempt.
"""

import asyncio
from typing import Any, Optional, Protocol

import aiodocker
import structlog
from starlette.concurrency import run_in_threadpool

from registry_mirror.packages.registry_proxy import CredentialStore, registry_host

logger = structlog.stdlib.get_logger(__name__)


class TransferError(Exception):
    """Raised when a pull, tag or push operation fails."""

    def __init__(self, step: str, image: str, message: str):
        self.step = step
        self.image = image
        super().__init__(f"{step} {image}: {message}")


class ImageTransfer(Protocol):
    async def pull(self, image: str) -> None: ...

    async def tag(self, image: str, new_image: str) -> None: ...

    async def push(self, image: str) -> None: ...


def split_image_reference(image: str) -> tuple[str, str]:
    """Split "host/repository:tag" into ("host/repository", "tag").

    A colon before the last "/" belongs to the registry port, in which case
    the tag defaults to "latest".
    """
    name, sep, tag = image.rpartition(":")
    if not sep or "/" in tag:
        return image, "latest"
    return name, tag


def _raise_on_stream_error(step: str, image: str, result: Any) -> None:
    # The Docker API reports pull/push failures inside the progress stream
    if not isinstance(result, list):
        return
    for entry in result:
        if isinstance(entry, dict) and entry.get("error"):
            raise TransferError(step, image, str(entry["error"]))


class DockerImageTransfer:
    """Image transfer through the Docker Engine API.

    When a credential store is given, its credentials are sent with pulls
    from the upstream registry host.
    """

    def __init__(
        self,
        credentials: Optional[CredentialStore] = None,
        upstream_url: str = "",
    ):
        self.credentials = credentials
        self.upstream_url = upstream_url
        self.upstream_host = registry_host(upstream_url) if upstream_url else ""

    async def _pull_auth(self, image: str) -> Optional[dict]:
        if self.credentials is None or not self.upstream_host:
            return None
        if registry_host(image) != self.upstream_host:
            return None

        username, password = await run_in_threadpool(
            self.credentials.basic, self.upstream_url
        )
        if not username or not password:
            logger.warning("Pulling without upstream credentials", image=image)
            return None
        return {
            "username": username,
            "password": password,
            "serveraddress": self.upstream_host,
        }

    async def pull(self, image: str) -> None:
        name, tag = split_image_reference(image)
        auth = await self._pull_auth(image)
        try:
            async with aiodocker.Docker() as docker:
                result = await docker.images.pull(from_image=name, tag=tag, auth=auth)
        except aiodocker.exceptions.DockerError as e:
            raise TransferError("pull", image, e.message) from e
        except (ValueError, OSError) as e:
            # No usable docker host or daemon unreachable
            raise TransferError("pull", image, str(e)) from e
        _raise_on_stream_error("pull", image, result)
        logger.info("Pulled image", image=image)

    async def tag(self, image: str, new_image: str) -> None:
        repo, tag = split_image_reference(new_image)
        try:
            async with aiodocker.Docker() as docker:
                await docker.images.tag(image, repo, tag=tag)
        except aiodocker.exceptions.DockerError as e:
            raise TransferError("tag", image, e.message) from e
        except (ValueError, OSError) as e:
            raise TransferError("tag", image, str(e)) from e
        logger.info("Tagged image", image=image, new_image=new_image)

    async def push(self, image: str) -> None:
        name, tag = split_image_reference(image)
        try:
            async with aiodocker.Docker() as docker:
                result = await docker.images.push(name, tag=tag)
        except aiodocker.exceptions.DockerError as e:
            raise TransferError("push", image, e.message) from e
        except (ValueError, OSError) as e:
            raise TransferError("push", image, str(e)) from e
        _raise_on_stream_error("push", image, result)
        logger.info("Pushed image", image=image)


class DockerCLIImageTransfer:
    """Image transfer through the docker command line client.

    Relies on the CLI's own login state for registry authentication.
    """

    def __init__(self, docker_binary: str = "docker"):
        self.docker_binary = docker_binary

    async def _run(self, step: str, image: str, *args: str) -> None:
        try:
            process = await asyncio.create_subprocess_exec(
                self.docker_binary,
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise TransferError(step, image, str(e)) from e

        stdout, stderr = await process.communicate()
        if process.returncode != 0:
            message = stderr.decode(errors="replace").strip()
            logger.error(
                "docker command failed",
                step=step,
                image=image,
                returncode=process.returncode,
                stderr=message,
            )
            raise TransferError(
                step, image, message or f"exit status {process.returncode}"
            )

        logger.debug(
            "docker command output",
            step=step,
            stdout=stdout.decode(errors="replace")[-1000:],
        )

    async def pull(self, image: str) -> None:
        await self._run("pull", image, "pull", image)
        logger.info("Pulled image", image=image)

    async def tag(self, image: str, new_image: str) -> None:
        await self._run("tag", image, "tag", image, new_image)
        logger.info("Tagged image", image=image, new_image=new_image)

    async def push(self, image: str) -> None:
        await self._run("push", image, "push", image)
        logger.info("Pushed image", image=image)
