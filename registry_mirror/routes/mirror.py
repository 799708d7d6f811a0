"""Mirror warm-up endpoint.

Reads a tag's current link through the storage stack, which imports the
image from the upstream registry if the local registry does not have it.
"""

import structlog
from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel

from registry_mirror.deps.registry import StorageDriverDep
from registry_mirror.packages.registry_proxy import tag_link_path
from registry_mirror.packages.storage import (
    ImportFailedError,
    InvalidPathError,
    PathNotFoundError,
    StorageDriverError,
)

logger = structlog.stdlib.get_logger(__name__)

router = APIRouter(prefix="/mirror", tags=["Mirror"])


class MirrorRequest(BaseModel):
    repository: str
    tag: str


class MirrorResponse(BaseModel):
    repository: str
    tag: str
    link: str


@router.post("", response_model=MirrorResponse)
async def mirror_tag(body: MirrorRequest, storage: StorageDriverDep):
    path = tag_link_path(body.repository, body.tag)
    logger.info("Mirror requested", repository=body.repository, tag=body.tag)

    try:
        content = await storage.get_content(path)
    except InvalidPathError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except ImportFailedError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    except PathNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except StorageDriverError as e:
        logger.error("Storage error while mirroring", path=path, error=str(e))
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e)
        )

    return MirrorResponse(
        repository=body.repository,
        tag=body.tag,
        link=content.decode().strip(),
    )
