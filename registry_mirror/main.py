from contextlib import asynccontextmanager

import structlog
from fastapi import APIRouter, FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from registry_mirror.factories import credential_store_factory, storage_driver_factory
from registry_mirror.routes import docker_proxy, health, mirror
from registry_mirror.settings import settings
from registry_mirror.utils.logging import setup_logger
from registry_mirror.utils.sentry import init_sentry

logger = structlog.stdlib.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Resolve upstream identity and storage stack at startup
    credentials = credential_store_factory()
    storage_driver_factory()

    logger.info(
        "Registry mirror started",
        remote_registry=settings.REMOTE_REGISTRY_URL,
        local_registry=settings.LOCAL_REGISTRY_HOST,
        storage_middleware=settings.STORAGE_MIDDLEWARE,
        upstream_auth=credentials is not None,
    )

    yield


init_sentry()
app = FastAPI(lifespan=lifespan)
setup_logger(app)


api_router = APIRouter(prefix="/api")


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"title": "Validation error", "description": exc.errors()},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"title": "Internal Server Error", "description": str(exc)},
    )


api_router.include_router(health.router)
api_router.include_router(mirror.router)
app.include_router(api_router)
app.include_router(docker_proxy.router)
