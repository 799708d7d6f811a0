from datetime import timedelta
from typing import Literal, Optional

from pydantic import computed_field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from registry_mirror.utils.settings_utils import DockerSecretsSettingsSource


class GeneralConfig(BaseSettings):
    PUBLIC_API_URL: str = "http://localhost:8000"
    SENTRY_DSN: str = ""
    SENTRY_ENVIRONMENT: str = ""


class MirrorConfig(BaseSettings):
    REMOTE_REGISTRY_URL: str = ""
    """Upstream registry, e.g. https://123456789012.dkr.ecr.us-west-2.amazonaws.com"""

    LOCAL_REGISTRY_HOST: str = "localhost:5000"
    """Registry host that imported images are pushed to"""

    IMAGE_TRANSFER_TYPE: Literal["docker", "docker_cli"] = "docker"


class ECRConfig(BaseSettings):
    ECR_ACCOUNT_ID: str = ""
    ECR_REGION: str = ""
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_SESSION_TOKEN: str = ""
    AWS_PROFILE: str = ""

    ECR_CREDENTIAL_LIFETIME_SECONDS: Optional[int] = None
    """Fixed credential lifetime. When unset, credentials are refreshed one
    hour before the expiry reported by ECR.
    """

    @computed_field
    @property
    def ECR_CREDENTIAL_LIFETIME(self) -> Optional[timedelta]:
        if not self.ECR_CREDENTIAL_LIFETIME_SECONDS:
            return None
        return timedelta(seconds=self.ECR_CREDENTIAL_LIFETIME_SECONDS)


class StorageConfig(BaseSettings):
    STORAGE_ROOT_DIRECTORY: str = "/var/lib/registry"
    STORAGE_MIDDLEWARE: list[str] = []
    """Middlewares wrapping the base driver, innermost first, e.g. ["ecr"]"""


class Settings(
    GeneralConfig,
    MirrorConfig,
    ECRConfig,
    StorageConfig,
    BaseSettings,
):
    model_config = SettingsConfigDict(
        env_file=(".env", ".env.prod", ".env.test"),
        extra="allow",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """
        Define the priority order for settings sources.

        Priority (highest to lowest):
        1. Docker secrets from files (reads *_FILE env vars)
        2. Environment variables
        3. .env files
        4. Default values
        """
        return (
            init_settings,
            DockerSecretsSettingsSource(settings_cls),
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @model_validator(mode="after")
    def validate_ecr_middleware_requires_remote(self):
        """The ECR mirror middleware cannot import without an upstream registry"""
        if "ecr" in self.STORAGE_MIDDLEWARE and not self.REMOTE_REGISTRY_URL:
            raise ValueError(
                "STORAGE_MIDDLEWARE includes 'ecr' but REMOTE_REGISTRY_URL is not set. "
                "Set REMOTE_REGISTRY_URL or remove 'ecr' from STORAGE_MIDDLEWARE."
            )
        return self


settings = Settings()
