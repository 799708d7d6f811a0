"""Docker Registry v2 API read proxy.

Forwards pull requests (manifests, blobs, tag lists) to the upstream
registry, authenticated with the upstream credential store.

See: https://docs.docker.com/registry/spec/api/
"""

from typing import Optional

import httpx
import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from registry_mirror.deps.registry import CredentialStoreDep, UpstreamConfigDep
from registry_mirror.packages.registry_proxy import proxy_request, registry_host

logger = structlog.stdlib.get_logger(__name__)

router = APIRouter(tags=["Docker Proxy"])


def docker_error_response(
    status_code: int,
    error_code: str,
    message: str,
    detail: Optional[str] = None,
) -> JSONResponse:
    """Create a Docker Registry v2 API compliant error response.

    See: https://docs.docker.com/registry/spec/api/#errors
    """
    error_obj = {
        "code": error_code,
        "message": message,
    }
    if detail:
        error_obj["detail"] = detail

    return JSONResponse(
        status_code=status_code,
        content={"errors": [error_obj]},
        headers={"Docker-Distribution-API-Version": "registry/2.0"},
    )


@router.get("/v2/")
async def registry_version_check():
    """Docker Registry API version check.

    No authentication is required for this endpoint per Docker spec.
    """
    logger.debug("Docker registry version check")

    return JSONResponse(
        status_code=200,
        content={},
        headers={"Docker-Distribution-API-Version": "registry/2.0"},
    )


@router.api_route("/v2/{path:path}", methods=["GET", "HEAD"])
async def proxy_upstream(
    request: Request,
    path: str,
    credentials: CredentialStoreDep,
    upstream: UpstreamConfigDep,
):
    """Forward a registry read request to the upstream registry.

    Args:
        path: Path below /v2/ (e.g., "packoff/cv/manifests/1.0.0")
        credentials: Upstream credential store, None for anonymous upstreams
        upstream: Upstream registry configuration
    """
    if not upstream.registry_url:
        return docker_error_response(
            status_code=503,
            error_code="UNAVAILABLE",
            message="No upstream registry configured",
        )

    host = registry_host(upstream.registry_url)
    scheme = "http" if upstream.registry_url.startswith("http://") else "https"
    target_url = f"{scheme}://{host}/v2/{path}"

    try:
        return await proxy_request(
            request=request,
            target_url=target_url,
            credentials=credentials,
            registry_host=host,
            proxy_url=upstream.public_api_url,
        )
    except httpx.HTTPError as e:
        return docker_error_response(
            status_code=502,
            error_code="UNAVAILABLE",
            message="Upstream registry request failed",
            detail=str(e),
        )
