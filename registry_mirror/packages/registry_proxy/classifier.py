"""Recognition of ECR registry URLs and lazily importable storage keys.

Everything here is pure and stateless. Detection (`is_ecr_url`,
`match_import_key`) never raises, while `parse_ecr_url` raises so that a
misconfigured registry URL is reported at startup.
"""

import re
from typing import Optional
from urllib.parse import urlparse

from .types import MissKeyMatch, RegistryIdentity

ECR_HOST_PATTERN = re.compile(r"(\d+)\.dkr\.ecr\.([^.]+)\.amazonaws\.com")

# e.g. /docker/registry/v2/repositories/packoff/cv/_manifests/tags/1.0.0/current/link
STORAGE_ROOT = "/docker/registry/v2"
IMPORT_KEY_PATTERN = re.compile(
    r"/docker/registry/v2/repositories/(.+)/_manifests/tags/([^/]+)/current/link"
)


class InvalidRegistryURLError(ValueError):
    """Raised when a registry URL cannot be resolved to an ECR identity."""


def _url_host(registry_url: str) -> str:
    # Host with port, without user info
    return urlparse(registry_url).netloc.rpartition("@")[2]


def match_import_key(key: str) -> Optional[MissKeyMatch]:
    """Recover (repository, tag) from a "current tag link" key.

    Returns None for every other key shape, including truncated or extended
    variants of the expected path.
    """
    match = IMPORT_KEY_PATTERN.fullmatch(key)
    if match is None or len(match.groups()) != 2:
        return None
    repository, tag = match.groups()
    return MissKeyMatch(repository=repository, tag=tag)


def tag_link_path(repository: str, tag: str) -> str:
    """Build the storage key holding the current manifest link of a tag."""
    return f"{STORAGE_ROOT}/repositories/{repository}/_manifests/tags/{tag}/current/link"


def is_ecr_url(registry_url: str) -> bool:
    """Return True if the URL points at an AWS ECR registry."""
    try:
        host = _url_host(registry_url)
    except ValueError:
        return False
    return ECR_HOST_PATTERN.fullmatch(host) is not None


def parse_ecr_url(registry_url: str) -> RegistryIdentity:
    """Extract account ID and region from an ECR registry URL.

    Raises:
        InvalidRegistryURLError: If the URL is malformed or its host is not
            an ECR registry host
    """
    try:
        host = _url_host(registry_url)
    except ValueError as e:
        raise InvalidRegistryURLError(f"invalid registry URL: {e}") from e

    match = ECR_HOST_PATTERN.fullmatch(host)
    if match is None:
        raise InvalidRegistryURLError(
            f"URL does not match ECR registry pattern: {host}"
        )

    account_id, region = match.groups()
    return RegistryIdentity(account_id=account_id, region=region)


def registry_host(registry_url: str) -> str:
    """Extract the registry hostname from a registry URL.

    Accepts both "https://registry:5000" and bare "registry:5000/some/path".
    """
    if "://" in registry_url:
        registry_url = registry_url.split("://", 1)[1]

    if "/" in registry_url:
        return registry_url.split("/")[0]

    return registry_url
