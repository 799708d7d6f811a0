"""Registry proxy package for upstream ECR registries.

This package provides URL/key classification, the ECR credential cache and
utilities for forwarding Docker Registry API requests upstream.
"""

from .classifier import (
    InvalidRegistryURLError,
    is_ecr_url,
    match_import_key,
    parse_ecr_url,
    registry_host,
    tag_link_path,
)
from .credentials import CredentialStore, ECRCredentials, configure_ecr_auth
from .proxy import basic_auth_header, proxy_request
from .types import ECRAuthConfig, MissKeyMatch, RegistryConfig, RegistryIdentity

__all__ = [
    # Protocol
    "CredentialStore",
    # Providers
    "ECRCredentials",
    "configure_ecr_auth",
    # Types
    "ECRAuthConfig",
    "MissKeyMatch",
    "RegistryConfig",
    "RegistryIdentity",
    # Classification
    "InvalidRegistryURLError",
    "is_ecr_url",
    "match_import_key",
    "parse_ecr_url",
    "registry_host",
    "tag_link_path",
    # Utilities
    "basic_auth_header",
    "proxy_request",
]
