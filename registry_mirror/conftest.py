import pytest
from httpx import ASGITransport, AsyncClient

from registry_mirror.factories import (
    credential_store_factory,
    image_transfer_factory,
    storage_driver_factory,
    upstream_registry_config,
)
from registry_mirror.main import app


@pytest.fixture(autouse=True)
def clear_factories():
    """Factories are cached per process; tests patch settings between them."""
    for factory in (
        credential_store_factory,
        image_transfer_factory,
        storage_driver_factory,
        upstream_registry_config,
    ):
        factory.cache_clear()
    yield
    app.dependency_overrides.clear()


@pytest.fixture
async def client():
    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://localhost"
    ) as client:
        yield client
