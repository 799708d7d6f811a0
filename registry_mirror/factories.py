from functools import lru_cache
from typing import Optional

from registry_mirror.packages.registry_proxy import (
    CredentialStore,
    ECRAuthConfig,
    RegistryConfig,
    configure_ecr_auth,
    is_ecr_url,
    registry_host,
)
from registry_mirror.packages.storage import (
    DockerCLIImageTransfer,
    DockerImageTransfer,
    FilesystemDriver,
    ImageTransfer,
    StorageDriver,
    middleware,
)
from registry_mirror.settings import settings


def ecr_auth_config() -> ECRAuthConfig:
    return ECRAuthConfig(
        account_id=settings.ECR_ACCOUNT_ID,
        region=settings.ECR_REGION,
        access_key_id=settings.AWS_ACCESS_KEY_ID,
        secret_access_key=settings.AWS_SECRET_ACCESS_KEY,
        session_token=settings.AWS_SESSION_TOKEN,
        profile=settings.AWS_PROFILE,
        lifetime=settings.ECR_CREDENTIAL_LIFETIME,
    )


@lru_cache
def credential_store_factory() -> Optional[CredentialStore]:
    """Credential store for the upstream registry.

    Returns:
        ECRCredentials when the upstream registry is ECR, otherwise None

    Raises:
        InvalidRegistryURLError: If ECR settings cannot be resolved
    """
    if not settings.REMOTE_REGISTRY_URL:
        return None

    if not is_ecr_url(settings.REMOTE_REGISTRY_URL) and not (
        settings.ECR_ACCOUNT_ID and settings.ECR_REGION
    ):
        return None

    return configure_ecr_auth(ecr_auth_config(), settings.REMOTE_REGISTRY_URL)


@lru_cache
def upstream_registry_config() -> RegistryConfig:
    return RegistryConfig(
        registry_url=settings.REMOTE_REGISTRY_URL,
        public_api_url=settings.PUBLIC_API_URL,
    )


@lru_cache
def image_transfer_factory() -> ImageTransfer:
    if settings.IMAGE_TRANSFER_TYPE == "docker":
        return DockerImageTransfer(
            credentials=credential_store_factory(),
            upstream_url=settings.REMOTE_REGISTRY_URL,
        )
    elif settings.IMAGE_TRANSFER_TYPE == "docker_cli":
        return DockerCLIImageTransfer()
    else:
        raise ValueError(f"Invalid image transfer type: {settings.IMAGE_TRANSFER_TYPE}")


@lru_cache
def storage_driver_factory() -> StorageDriver:
    """Base filesystem driver wrapped in the configured middlewares."""
    driver: StorageDriver = FilesystemDriver(settings.STORAGE_ROOT_DIRECTORY)

    for name in settings.STORAGE_MIDDLEWARE:
        options = {}
        if name == "ecr":
            options = {
                "remote": registry_host(settings.REMOTE_REGISTRY_URL),
                "local": settings.LOCAL_REGISTRY_HOST,
                "transfer": image_transfer_factory(),
            }
        driver = middleware.get(name, driver, options)

    return driver
