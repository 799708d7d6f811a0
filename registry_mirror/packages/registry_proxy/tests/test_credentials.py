import base64
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from ..classifier import InvalidRegistryURLError
from ..credentials import ECRCredentials, configure_ecr_auth
from ..types import ECRAuthConfig

NOW = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)
REGISTRY_URL = "https://123456789012.dkr.ecr.us-west-2.amazonaws.com"


def _token(value: str) -> str:
    return base64.b64encode(value.encode()).decode()


def _token_response(
    value: str = "AWS:secretpass", expires_at: datetime = NOW + timedelta(hours=12)
) -> dict:
    return {
        "authorizationData": [
            {
                "authorizationToken": _token(value),
                "expiresAt": expires_at,
                "proxyEndpoint": REGISTRY_URL,
            }
        ]
    }


class Clock:
    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, delta: timedelta) -> None:
        self.now += delta


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def ecr_client() -> MagicMock:
    client = MagicMock()
    client.get_authorization_token.return_value = _token_response()
    return client


class TestGetCredential:
    def test_fetches_and_decodes_token(self, ecr_client: MagicMock, clock: Clock):
        credentials = ECRCredentials(ecr_client, registry_id="123456789012", now=clock)

        assert credentials.get_credential() == ("AWS", "secretpass")
        ecr_client.get_authorization_token.assert_called_once_with(
            registryIds=["123456789012"]
        )

    def test_no_registry_id(self, ecr_client: MagicMock, clock: Clock):
        credentials = ECRCredentials(ecr_client, now=clock)

        credentials.get_credential()

        ecr_client.get_authorization_token.assert_called_once_with()

    def test_password_may_contain_colons(self, ecr_client: MagicMock, clock: Clock):
        ecr_client.get_authorization_token.return_value = _token_response(
            "AWS:secretpass:with:colons"
        )
        credentials = ECRCredentials(ecr_client, now=clock)

        assert credentials.get_credential() == ("AWS", "secretpass:with:colons")

    def test_reuses_valid_credential(self, ecr_client: MagicMock, clock: Clock):
        credentials = ECRCredentials(ecr_client, now=clock)

        first = credentials.get_credential()
        expiry = credentials.expiry
        clock.advance(timedelta(hours=10))
        second = credentials.get_credential()

        assert first == second
        assert credentials.expiry == expiry
        ecr_client.get_authorization_token.assert_called_once()

    def test_expiry_is_one_hour_before_token_expiry(
        self, ecr_client: MagicMock, clock: Clock
    ):
        credentials = ECRCredentials(ecr_client, now=clock)

        credentials.get_credential()

        assert credentials.expiry == NOW + timedelta(hours=11)

    def test_refreshes_within_safety_margin(self, ecr_client: MagicMock, clock: Clock):
        credentials = ECRCredentials(ecr_client, now=clock)
        credentials.get_credential()

        ecr_client.get_authorization_token.return_value = _token_response(
            "AWS:rotated", expires_at=NOW + timedelta(hours=23)
        )
        clock.advance(timedelta(hours=11, minutes=1))

        assert credentials.get_credential() == ("AWS", "rotated")
        assert ecr_client.get_authorization_token.call_count == 2

    def test_lifetime_override(self, ecr_client: MagicMock, clock: Clock):
        credentials = ECRCredentials(
            ecr_client, lifetime=timedelta(minutes=30), now=clock
        )

        credentials.get_credential()
        assert credentials.expiry == NOW + timedelta(minutes=30)

        clock.advance(timedelta(minutes=29))
        credentials.get_credential()
        assert ecr_client.get_authorization_token.call_count == 1

        clock.advance(timedelta(minutes=2))
        credentials.get_credential()
        assert ecr_client.get_authorization_token.call_count == 2

    def test_non_positive_lifetime_uses_token_expiry(
        self, ecr_client: MagicMock, clock: Clock
    ):
        credentials = ECRCredentials(ecr_client, lifetime=timedelta(0), now=clock)

        credentials.get_credential()

        assert credentials.expiry == NOW + timedelta(hours=11)

    def test_empty_cached_credential_is_refreshed(
        self, ecr_client: MagicMock, clock: Clock
    ):
        credentials = ECRCredentials(
            ecr_client, lifetime=timedelta(hours=1), now=clock
        )
        credentials.username = ""
        credentials.password = "secret"
        credentials.expiry = NOW + timedelta(hours=1)

        assert credentials.get_credential() == ("AWS", "secretpass")
        ecr_client.get_authorization_token.assert_called_once()

    def test_basic_delegates_to_cache(self, ecr_client: MagicMock, clock: Clock):
        credentials = ECRCredentials(ecr_client, now=clock)

        assert credentials.basic(REGISTRY_URL) == ("AWS", "secretpass")
        assert credentials.basic(REGISTRY_URL + "/v2/") == ("AWS", "secretpass")
        ecr_client.get_authorization_token.assert_called_once()

    def test_refresh_token_hooks_are_noops(self, ecr_client: MagicMock):
        credentials = ECRCredentials(ecr_client)

        credentials.set_refresh_token(REGISTRY_URL, "ecr", "refresh")

        assert credentials.refresh_token(REGISTRY_URL, "ecr") == ""
        ecr_client.get_authorization_token.assert_not_called()


class TestGetCredentialFailures:
    def test_client_error(self, ecr_client: MagicMock, clock: Clock):
        ecr_client.get_authorization_token.side_effect = ClientError(
            {"Error": {"Code": "AccessDeniedException", "Message": "denied"}},
            "GetAuthorizationToken",
        )
        credentials = ECRCredentials(ecr_client, now=clock)

        assert credentials.get_credential() == ("", "")

    def test_connection_error(self, ecr_client: MagicMock, clock: Clock):
        ecr_client.get_authorization_token.side_effect = EndpointConnectionError(
            endpoint_url="https://api.ecr.us-west-2.amazonaws.com"
        )
        credentials = ECRCredentials(ecr_client, now=clock)

        assert credentials.get_credential() == ("", "")

    def test_empty_authorization_data(self, ecr_client: MagicMock, clock: Clock):
        ecr_client.get_authorization_token.return_value = {"authorizationData": []}
        credentials = ECRCredentials(ecr_client, now=clock)

        assert credentials.get_credential() == ("", "")

    def test_invalid_base64(self, ecr_client: MagicMock, clock: Clock):
        ecr_client.get_authorization_token.return_value = {
            "authorizationData": [
                {"authorizationToken": "not base64!", "expiresAt": NOW}
            ]
        }
        credentials = ECRCredentials(ecr_client, now=clock)

        assert credentials.get_credential() == ("", "")

    def test_non_ascii_token(self, ecr_client: MagicMock, clock: Clock):
        ecr_client.get_authorization_token.return_value = {
            "authorizationData": [
                {"authorizationToken": "QVdTOnNlY3JldA==\u00e9", "expiresAt": NOW}
            ]
        }
        credentials = ECRCredentials(ecr_client, now=clock)

        assert credentials.get_credential() == ("", "")

    def test_token_not_utf8(self, ecr_client: MagicMock, clock: Clock):
        ecr_client.get_authorization_token.return_value = {
            "authorizationData": [
                {
                    "authorizationToken": base64.b64encode(b"AWS:\xff\xfe").decode(),
                    "expiresAt": NOW,
                }
            ]
        }
        credentials = ECRCredentials(ecr_client, now=clock)

        assert credentials.get_credential() == ("", "")

    def test_token_without_colon(self, ecr_client: MagicMock, clock: Clock):
        ecr_client.get_authorization_token.return_value = _token_response("AWS")
        credentials = ECRCredentials(ecr_client, now=clock)

        assert credentials.get_credential() == ("", "")

    def test_failure_is_retried_on_next_call(
        self, ecr_client: MagicMock, clock: Clock
    ):
        ecr_client.get_authorization_token.side_effect = [
            {"authorizationData": []},
            _token_response(),
        ]
        credentials = ECRCredentials(ecr_client, now=clock)

        assert credentials.get_credential() == ("", "")
        assert credentials.get_credential() == ("AWS", "secretpass")

    def test_failure_keeps_previous_state(self, ecr_client: MagicMock, clock: Clock):
        credentials = ECRCredentials(ecr_client, now=clock)
        credentials.get_credential()
        expiry = credentials.expiry

        ecr_client.get_authorization_token.return_value = {"authorizationData": []}
        clock.advance(timedelta(hours=12))

        assert credentials.get_credential() == ("", "")
        assert credentials.expiry == expiry


class TestConcurrentRefresh:
    def test_single_exchange_for_concurrent_callers(self, clock: Clock):
        calls = 0
        calls_lock = threading.Lock()

        def get_authorization_token(**kwargs):
            nonlocal calls
            with calls_lock:
                calls += 1
            time.sleep(0.05)
            return _token_response()

        ecr_client = MagicMock()
        ecr_client.get_authorization_token.side_effect = get_authorization_token
        credentials = ECRCredentials(ecr_client, now=clock)

        start = threading.Barrier(16)

        def worker():
            start.wait()
            return credentials.get_credential()

        with ThreadPoolExecutor(max_workers=16) as executor:
            results = list(executor.map(lambda _: worker(), range(16)))

        assert calls == 1
        assert results == [("AWS", "secretpass")] * 16

    def test_single_exchange_after_expiry(self, ecr_client: MagicMock, clock: Clock):
        credentials = ECRCredentials(ecr_client, now=clock)
        credentials.get_credential()
        clock.advance(timedelta(hours=12))
        ecr_client.get_authorization_token.return_value = _token_response(
            expires_at=NOW + timedelta(hours=24)
        )

        with ThreadPoolExecutor(max_workers=8) as executor:
            list(executor.map(lambda _: credentials.get_credential(), range(32)))

        assert ecr_client.get_authorization_token.call_count == 2


class TestConfigureECRAuth:
    def test_identity_from_url(self):
        session_factory = MagicMock()

        credentials = configure_ecr_auth(
            ECRAuthConfig(), REGISTRY_URL, session_factory=session_factory
        )

        session_factory.assert_called_once_with(region_name="us-west-2")
        session_factory.return_value.client.assert_called_once_with("ecr")
        assert credentials.registry_id == "123456789012"
        assert credentials.ecr_client is session_factory.return_value.client.return_value
        assert credentials.lifetime is None

    def test_explicit_identity_wins(self):
        session_factory = MagicMock()

        credentials = configure_ecr_auth(
            ECRAuthConfig(account_id="999999999999", region="eu-west-1"),
            "https://registry-1.docker.io",
            session_factory=session_factory,
        )

        session_factory.assert_called_once_with(region_name="eu-west-1")
        assert credentials.registry_id == "999999999999"

    def test_partial_identity_filled_from_url(self):
        session_factory = MagicMock()

        credentials = configure_ecr_auth(
            ECRAuthConfig(region="eu-west-1"),
            REGISTRY_URL,
            session_factory=session_factory,
        )

        session_factory.assert_called_once_with(region_name="eu-west-1")
        assert credentials.registry_id == "123456789012"

    def test_static_keys(self):
        session_factory = MagicMock()

        configure_ecr_auth(
            ECRAuthConfig(
                access_key_id="AKIA",
                secret_access_key="secret",
                session_token="session",
                profile="ignored",
                lifetime=timedelta(hours=2),
            ),
            REGISTRY_URL,
            session_factory=session_factory,
        )

        session_factory.assert_called_once_with(
            region_name="us-west-2",
            aws_access_key_id="AKIA",
            aws_secret_access_key="secret",
            aws_session_token="session",
        )

    def test_profile(self):
        session_factory = MagicMock()

        configure_ecr_auth(
            ECRAuthConfig(profile="mirror"),
            REGISTRY_URL,
            session_factory=session_factory,
        )

        session_factory.assert_called_once_with(
            region_name="us-west-2", profile_name="mirror"
        )

    def test_lifetime_is_passed_through(self):
        credentials = configure_ecr_auth(
            ECRAuthConfig(lifetime=timedelta(hours=2)),
            REGISTRY_URL,
            session_factory=MagicMock(),
        )

        assert credentials.lifetime == timedelta(hours=2)

    def test_invalid_url(self):
        session_factory = MagicMock()

        with pytest.raises(InvalidRegistryURLError, match="registry-1.docker.io"):
            configure_ecr_auth(
                ECRAuthConfig(),
                "https://registry-1.docker.io",
                session_factory=session_factory,
            )

        session_factory.assert_not_called()
