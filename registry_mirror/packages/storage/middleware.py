"""Registry of named storage middlewares.

A middleware wraps a base StorageDriver and is constructed from a plain
options mapping, so the middleware stack can be described in configuration.
"""

from typing import Any, Callable, Mapping

import structlog

from .storage_types import StorageDriver

logger = structlog.stdlib.get_logger(__name__)

MiddlewareFactory = Callable[[StorageDriver, Mapping[str, Any]], StorageDriver]

_middlewares: dict[str, MiddlewareFactory] = {}


def register(name: str, factory: MiddlewareFactory) -> None:
    """Register a storage middleware under a unique name.

    Raises:
        ValueError: If a middleware with that name is already registered
    """
    if name in _middlewares:
        raise ValueError(f"storage middleware already registered: {name}")
    _middlewares[name] = factory
    logger.debug("Registered storage middleware", name=name)


def get(name: str, base: StorageDriver, options: Mapping[str, Any]) -> StorageDriver:
    """Wrap base with the middleware registered under name.

    Raises:
        ValueError: If no middleware with that name is registered
    """
    factory = _middlewares.get(name)
    if factory is None:
        raise ValueError(f"no storage middleware registered with name: {name}")
    return factory(base, options)
