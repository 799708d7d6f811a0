import os
from pathlib import Path
from typing import Any

import structlog
from pydantic_settings import (
    PydanticBaseSettingsSource,
)

logger = structlog.stdlib.get_logger(__name__)


class DockerSecretsSettingsSource(PydanticBaseSettingsSource):
    """
    Custom settings source that reads Docker secrets from files.

    For any setting, if an environment variable <SETTING_NAME>_FILE exists,
    it will read the secret value from that file path.

    Example:
        If AWS_SECRET_ACCESS_KEY_FILE=/run/secrets/aws_secret_access_key
        Then AWS_SECRET_ACCESS_KEY will be read from that file
    """

    def get_field_value(
        self, field_name: str, field_info: Any
    ) -> tuple[Any, str, bool]:
        file_path = os.getenv(f"{field_name}_FILE")
        if not file_path:
            return None, field_name, False

        secret_file = Path(file_path)
        if not secret_file.is_file():
            logger.warning(
                "Secret file does not exist", setting=field_name, path=file_path
            )
            return None, field_name, False

        try:
            return secret_file.read_text().strip(), field_name, False
        except OSError as e:
            logger.warning(
                "Could not read secret file",
                setting=field_name,
                path=file_path,
                error=str(e),
            )
            return None, field_name, False

    def prepare_field_value(
        self, field_name: str, field: Any, value: Any, value_is_complex: bool
    ) -> Any:
        return value

    def __call__(self) -> dict[str, Any]:
        values: dict[str, Any] = {}

        for field_name, field_info in self.settings_cls.model_fields.items():
            field_value, field_key, _ = self.get_field_value(field_name, field_info)
            if field_value is not None:
                values[field_key] = field_value

        return values
