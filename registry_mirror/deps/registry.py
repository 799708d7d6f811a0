"""Registry mirror dependencies.

Thin FastAPI wrappers around the factories so routes can have their
collaborators overridden in tests.
"""

from typing import Annotated, Optional

from fastapi import Depends

from registry_mirror.factories import (
    credential_store_factory,
    storage_driver_factory,
    upstream_registry_config,
)
from registry_mirror.packages.registry_proxy import CredentialStore, RegistryConfig
from registry_mirror.packages.storage import StorageDriver


def get_credential_store() -> Optional[CredentialStore]:
    return credential_store_factory()


def get_storage_driver() -> StorageDriver:
    return storage_driver_factory()


def get_upstream_config() -> RegistryConfig:
    return upstream_registry_config()


CredentialStoreDep = Annotated[Optional[CredentialStore], Depends(get_credential_store)]
StorageDriverDep = Annotated[StorageDriver, Depends(get_storage_driver)]
UpstreamConfigDep = Annotated[RegistryConfig, Depends(get_upstream_config)]
