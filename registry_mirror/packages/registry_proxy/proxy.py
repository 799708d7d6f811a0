"""Generic HTTP proxy utilities for Docker Registry API.

This module provides utility functions for forwarding registry read
requests upstream, authenticated with a CredentialStore.
No dependencies on registry_mirror.* modules to maintain independence.
"""

import base64
from typing import Optional

import httpx
import structlog
from fastapi import Request
from fastapi.responses import StreamingResponse
from starlette.background import BackgroundTask
from starlette.concurrency import run_in_threadpool

from .credentials import CredentialStore

logger = structlog.stdlib.get_logger(__name__)

FORWARDED_REQUEST_HEADERS = ["Accept", "Range", "If-None-Match"]
DROPPED_RESPONSE_HEADERS = [
    "connection",
    "keep-alive",
    "transfer-encoding",
    "content-encoding",
]


def basic_auth_header(username: str, password: str) -> Optional[str]:
    """Build a Basic Authorization header value.

    Returns:
        Authorization header value or None if the pair is incomplete
    """
    if not username or not password:
        return None

    credentials = f"{username}:{password}"
    encoded = base64.b64encode(credentials.encode()).decode()
    return f"Basic {encoded}"


def rewrite_location(value: str, registry_host: str, proxy_url: str) -> str:
    """Point an upstream URL back at this service."""
    # FROM: https://123456789012.dkr.ecr.us-west-2.amazonaws.com/v2/...
    # TO: http://localhost:8000/v2/...
    return value.replace(f"https://{registry_host}", proxy_url).replace(
        f"http://{registry_host}", proxy_url
    )


async def _close(response: httpx.Response, client: httpx.AsyncClient) -> None:
    await response.aclose()
    await client.aclose()


async def proxy_request(
    request: Request,
    target_url: str,
    credentials: Optional[CredentialStore] = None,
    registry_host: Optional[str] = None,
    proxy_url: Optional[str] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> StreamingResponse:
    """Proxy an HTTP request to a target URL with streaming support.

    The credential store is asked for basic credentials on every request.
    An empty pair means the request is forwarded without authentication and
    the upstream registry decides whether to reject it.

    Args:
        request: Original FastAPI request from client
        target_url: Full target URL to proxy to
        credentials: Optional credential store for the upstream registry
        registry_host: Optional registry hostname for Location rewriting
        proxy_url: Optional proxy URL for rewriting Location headers
        transport: Optional httpx transport (used by tests)

    Returns:
        StreamingResponse with the proxied response

    Raises:
        httpx.HTTPError: If the proxied request fails
    """
    headers = {
        "User-Agent": "registry-mirror-proxy",
    }

    if credentials is not None:
        # May block on the credential lock and the ECR call
        username, password = await run_in_threadpool(credentials.basic, target_url)
        auth_header = basic_auth_header(username, password)
        if auth_header:
            headers["Authorization"] = auth_header
        else:
            logger.warning(
                "No upstream credentials available, forwarding unauthenticated",
                target_url=target_url,
            )

    for header_name in FORWARDED_REQUEST_HEADERS:
        if header_name.lower() in request.headers:
            headers[header_name] = request.headers[header_name.lower()]

    logger.info(
        "Proxying request",
        method=request.method,
        target_url=target_url,
    )

    client = httpx.AsyncClient(
        timeout=httpx.Timeout(
            connect=30.0,
            read=1800.0,  # 30 minutes for large blob downloads
            write=30.0,
            pool=10.0,
        ),
        follow_redirects=True,
        transport=transport,
    )
    upstream_request = client.build_request(
        method=request.method,
        url=target_url,
        headers=headers,
        params=dict(request.query_params),
    )

    try:
        response = await client.send(upstream_request, stream=True)
    except httpx.TimeoutException as e:
        await client.aclose()
        logger.error(
            "Timeout while proxying request",
            error=str(e),
            target_url=target_url,
        )
        raise
    except httpx.HTTPError as e:
        await client.aclose()
        logger.error(
            "HTTP error while proxying request",
            error=str(e),
            target_url=target_url,
        )
        raise

    response_headers = {
        name: value
        for name, value in response.headers.items()
        if name.lower() not in DROPPED_RESPONSE_HEADERS
    }

    if registry_host and proxy_url:
        for header_name in ["location", "docker-upload-location"]:
            if header_name in response_headers:
                original_value = response_headers[header_name]
                rewritten_value = rewrite_location(
                    original_value, registry_host, proxy_url
                )
                if rewritten_value != original_value:
                    response_headers[header_name] = rewritten_value
                    logger.debug(
                        "Rewrote Location header",
                        header_name=header_name,
                        original=original_value,
                        rewritten=rewritten_value,
                    )

    response_headers["Docker-Distribution-API-Version"] = "registry/2.0"

    logger.info(
        "Proxy response received",
        status_code=response.status_code,
        target_url=target_url,
    )

    return StreamingResponse(
        content=response.aiter_bytes(chunk_size=65536),
        status_code=response.status_code,
        headers=response_headers,
        media_type=response.headers.get("content-type"),
        background=BackgroundTask(_close, response, client),
    )
