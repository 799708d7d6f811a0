"""Credential stores for authenticating against upstream registries.

This module provides the CredentialStore protocol consumed by the HTTP
layer and the ECR implementation, which exchanges AWS credentials for
short-lived registry credentials and caches them until shortly before
they expire.
"""

import base64
import threading
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Optional, Protocol

import boto3
import structlog
from botocore.exceptions import BotoCoreError, ClientError

from .classifier import InvalidRegistryURLError, parse_ecr_url
from .types import ECRAuthConfig

logger = structlog.stdlib.get_logger(__name__)

# Credentials are rotated this long before ECR says they expire, so that
# long running uploads do not race the real expiry.
EXPIRY_SAFETY_MARGIN = timedelta(hours=1)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class CredentialStore(Protocol):
    """Protocol for registry credential providers.

    Mirrors what an HTTP auth handler needs: basic credentials per registry
    URL, plus refresh token hooks for token based schemes.
    """

    def basic(self, url: str) -> tuple[str, str]:
        """Return (username, password) for the registry at url.

        An empty pair means no credentials are available and the request
        should be sent unauthenticated.
        """
        ...

    def refresh_token(self, url: str, service: str) -> str: ...

    def set_refresh_token(self, url: str, service: str, token: str) -> None: ...


class ECRCredentials:
    """Cached AWS ECR registry credentials.

    A single lock guards both the cache read and the token exchange, so the
    lock is held across the ECR call. Concurrent callers that find the cache
    stale therefore wait for one refresh instead of each issuing their own.
    """

    def __init__(
        self,
        ecr_client: Any,
        registry_id: str = "",
        lifetime: Optional[timedelta] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        """Initialize ECR credentials.

        Args:
            ecr_client: Boto3 ECR client instance
            registry_id: AWS account ID to scope the token to (optional)
            lifetime: Fixed credential lifetime overriding the token expiry
            now: Clock returning an aware datetime
        """
        self.ecr_client = ecr_client
        self.registry_id = registry_id
        self.lifetime = lifetime
        self._now = now

        self._lock = threading.Lock()
        self.username = ""
        self.password = ""
        self.expiry: Optional[datetime] = None

    def _is_valid(self, now: datetime) -> bool:
        if not self.username or not self.password:
            return False
        return self.expiry is not None and now < self.expiry

    def get_credential(self) -> tuple[str, str]:
        """Return a valid (username, password) pair, refreshing it if stale.

        Failures while talking to ECR are logged and reported as an empty
        pair rather than raised.
        """
        with self._lock:
            now = self._now()
            if self._is_valid(now):
                return self.username, self.password

            request: dict[str, Any] = {}
            if self.registry_id:
                request["registryIds"] = [self.registry_id]

            try:
                response = self.ecr_client.get_authorization_token(**request)
            except ClientError as e:
                logger.error(
                    "Failed to get ECR authorization token",
                    error_code=e.response["Error"]["Code"],
                    error_message=str(e),
                )
                return "", ""
            except BotoCoreError as e:
                logger.error("Failed to get ECR authorization token", error=str(e))
                return "", ""
            except Exception as e:
                logger.error("Unexpected error getting ECR token", error=str(e))
                return "", ""

            if not response.get("authorizationData"):
                logger.error("No authorization data returned from ECR")
                return "", ""

            auth_data = response["authorizationData"][0]
            token = auth_data.get("authorizationToken", "")
            expires_at = auth_data.get("expiresAt")

            try:
                decoded = base64.b64decode(token, validate=True).decode("utf-8")
            except ValueError as e:
                logger.error("Failed to decode ECR authorization token", error=str(e))
                return "", ""

            parts = decoded.split(":", 1)
            if len(parts) != 2:
                logger.error("Invalid ECR authorization token format")
                return "", ""

            if self.lifetime is not None and self.lifetime > timedelta(0):
                expiry = now + self.lifetime
            elif expires_at is not None:
                expiry = expires_at - EXPIRY_SAFETY_MARGIN
            else:
                # No stated expiry: usable for this call only
                expiry = now

            self.username, self.password = parts
            self.expiry = expiry

            logger.debug("ECR credentials refreshed", expires_at=expiry.isoformat())
            return self.username, self.password

    def basic(self, url: str) -> tuple[str, str]:
        return self.get_credential()

    def refresh_token(self, url: str, service: str) -> str:
        # ECR credentials are always minted fresh, there is no refresh token
        return ""

    def set_refresh_token(self, url: str, service: str, token: str) -> None:
        pass


def configure_ecr_auth(
    config: ECRAuthConfig,
    remote_url: str,
    session_factory: Callable[..., Any] = boto3.Session,
) -> ECRCredentials:
    """Create ECR credentials for the given configuration.

    Account ID and region fall back to the values encoded in remote_url.

    Args:
        config: ECR auth configuration
        remote_url: Upstream registry URL
        session_factory: Callable building a boto3 session

    Returns:
        ECRCredentials bound to the resolved registry identity

    Raises:
        InvalidRegistryURLError: If account ID or region are missing and
            remote_url is not an ECR registry URL
    """
    account_id = config.account_id
    region = config.region

    if not account_id or not region:
        try:
            identity = parse_ecr_url(remote_url)
        except InvalidRegistryURLError as e:
            raise InvalidRegistryURLError(
                f"failed to parse ECR URL {remote_url}: {e}"
            ) from e
        account_id = account_id or identity.account_id
        region = region or identity.region

    session_kwargs: dict[str, Any] = {"region_name": region}
    if config.access_key_id and config.secret_access_key:
        session_kwargs["aws_access_key_id"] = config.access_key_id
        session_kwargs["aws_secret_access_key"] = config.secret_access_key
        if config.session_token:
            session_kwargs["aws_session_token"] = config.session_token
    elif config.profile:
        session_kwargs["profile_name"] = config.profile

    session = session_factory(**session_kwargs)

    logger.info(
        "Configured ECR credentials",
        account_id=account_id,
        region=region,
        lifetime=config.lifetime.total_seconds() if config.lifetime else None,
    )

    return ECRCredentials(
        ecr_client=session.client("ecr"),
        registry_id=account_id,
        lifetime=config.lifetime,
    )
