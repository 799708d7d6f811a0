import sentry_sdk

from registry_mirror.packages.registry_proxy import registry_host
from registry_mirror.settings import settings


def init_sentry() -> bool:
    """Enable error reporting when a DSN is configured."""
    if not settings.SENTRY_DSN:
        return False

    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        traces_sample_rate=0.01,
        send_default_pii=False,
        environment=settings.SENTRY_ENVIRONMENT,
    )
    if settings.REMOTE_REGISTRY_URL:
        sentry_sdk.set_tag("remote_registry", registry_host(settings.REMOTE_REGISTRY_URL))
    sentry_sdk.set_tag("storage_middleware", ",".join(settings.STORAGE_MIDDLEWARE))
    return True
