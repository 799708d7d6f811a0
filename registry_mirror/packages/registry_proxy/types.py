"""Registry proxy types and data structures.

This module contains shared types used across the registry proxy package.
No dependencies on registry_mirror.* modules to maintain independence.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional


@dataclass
class RegistryConfig:
    """Configuration for the upstream registry we forward requests to.

    Attributes:
        registry_url: The base URL of the upstream registry (e.g.,
                     "https://123456789012.dkr.ecr.us-west-2.amazonaws.com")
        public_api_url: The public URL of this service, used for rewriting
                       Location headers (e.g., "http://localhost:8000")
    """

    registry_url: str
    public_api_url: str


@dataclass(frozen=True)
class RegistryIdentity:
    """ECR registry identity, e.g. ("123456789012", "us-west-2")."""

    account_id: str
    region: str


@dataclass(frozen=True)
class MissKeyMatch:
    """Repository and tag recovered from a "current tag link" storage key."""

    repository: str
    tag: str


@dataclass
class ECRAuthConfig:
    """Settings used to build ECR credentials.

    account_id and region are parsed from the registry URL when left empty.
    Static keys win over profile; with neither, the default AWS credential
    chain is used.
    """

    account_id: str = ""
    region: str = ""
    access_key_id: str = ""
    secret_access_key: str = ""
    session_token: str = ""
    profile: str = ""
    lifetime: Optional[timedelta] = None
