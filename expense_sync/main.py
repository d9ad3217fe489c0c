"""expense-sync entry points.

Two things are assembled here:

* ``build_client`` wires the client-side synchronization engine (cache,
  reader, coordinator, upload protocol, expense service) together with its
  HTTP providers.  The CLI and any embedding UI use it.
* ``create_app`` builds the FastAPI reference backend that serves the
  expense API and a signed-URL object store for local development.

Running this module starts the reference backend under uvicorn.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import httpx
import structlog
import uvicorn
from fastapi import FastAPI

from expense_sync.api.middleware import (
    ErrorHandlingMiddleware,
    RequestLoggingMiddleware,
    configure_cors,
)
from expense_sync.api.routes import router as api_router
from expense_sync.api.routes import storage_router
from expense_sync.api.store import ExpenseStore
from expense_sync.cache.entity_cache import EntityCache
from expense_sync.config.loader import load_config
from expense_sync.config.settings import Settings
from expense_sync.providers.http.httpx_fetcher import HttpxFetcher
from expense_sync.providers.storage.signed_url_store import SignedUrlObjectStore
from expense_sync.services.expense_service import ExpenseService
from expense_sync.sync.mutation_coordinator import MutationCoordinator
from expense_sync.sync.query_reader import QueryReader
from expense_sync.sync.upload_protocol import UploadProtocol
from expense_sync.utils.errors import ConfigurationError
from expense_sync.utils.logging import configure_logging, get_logger

# ---------------------------------------------------------------------------
# Module-level settings & logging
# ---------------------------------------------------------------------------

settings = Settings()

configure_logging(
    log_level=settings.log_level,
    json_output=(settings.app_env == "production"),
)
_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Client engine
# ---------------------------------------------------------------------------


def build_client(
    custom_settings: Settings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
    storage_client: httpx.AsyncClient | None = None,
) -> dict[str, Any]:
    """Construct the client-side engine with injected dependencies.

    Parameters
    ----------
    custom_settings:
        Application settings.  Uses module-level ``settings`` if not provided.
    http_client:
        Client for the expense API.  Built from settings when omitted.
    storage_client:
        Client for signed-URL uploads.  Built from settings when omitted.

    Returns
    -------
    dict
        Component instances keyed by role name.

    Raises
    ------
    ConfigurationError
        ``api_base_url`` is not an absolute http(s) URL.
    """
    s = custom_settings or settings
    if not s.api_base_url.startswith(("http://", "https://")):
        raise ConfigurationError(
            f"API base URL must be an absolute http(s) URL, got {s.api_base_url!r}"
        )
    config = load_config(settings=s)
    cache_config = config.get("cache", {})

    cache = EntityCache(
        stale_seconds=float(cache_config.get("stale_seconds", s.cache_stale_seconds)),
        max_fresh_entries=int(cache_config.get("max_entries", s.cache_max_entries)),
    )
    reader = QueryReader(cache)
    coordinator = MutationCoordinator(cache, reader)

    fetcher = HttpxFetcher(settings=s, http_client=http_client)
    object_store = SignedUrlObjectStore(settings=s, http_client=storage_client)

    upload_protocol = UploadProtocol(
        fetcher=fetcher,
        object_store=object_store,
        coordinator=coordinator,
        sign_path=s.sign_path,
        expenses_path=s.expenses_path,
    )
    expense_service = ExpenseService(
        fetcher=fetcher,
        reader=reader,
        coordinator=coordinator,
        upload_protocol=upload_protocol,
        expenses_path=s.expenses_path,
    )

    _logger.debug("client_built", api_base_url=s.api_base_url)

    return {
        "cache": cache,
        "reader": reader,
        "coordinator": coordinator,
        "fetcher": fetcher,
        "object_store": object_store,
        "upload_protocol": upload_protocol,
        "expense_service": expense_service,
        "settings": s,
    }


async def close_client(components: dict[str, Any]) -> None:
    """Drop cached state and close the HTTP clients the engine owns."""
    components["cache"].clear()
    await components["fetcher"].aclose()
    await components["object_store"].aclose()


@asynccontextmanager
async def client_session(
    custom_settings: Settings | None = None,
    *,
    http_client: httpx.AsyncClient | None = None,
    storage_client: httpx.AsyncClient | None = None,
) -> AsyncIterator[dict[str, Any]]:
    """``build_client`` as an async context manager."""
    components = build_client(
        custom_settings,
        http_client=http_client,
        storage_client=storage_client,
    )
    try:
        yield components
    finally:
        await close_client(components)


# ---------------------------------------------------------------------------
# FastAPI application factory
# ---------------------------------------------------------------------------


def create_app(custom_settings: Settings | None = None) -> FastAPI:
    """Build and configure the reference backend."""
    s = custom_settings or settings
    application = FastAPI(
        title="expense-sync reference API",
        version="0.1.0",
        description=(
            "In-memory expense API with single-use signed upload URLs, "
            "for developing and testing the expense-sync client."
        ),
    )
    application.state.store = ExpenseStore(grant_ttl_seconds=float(s.storage_url_ttl_seconds))
    application.state.settings = s

    # -- Middleware (order matters: last added = first executed) --
    application.add_middleware(ErrorHandlingMiddleware)
    application.add_middleware(RequestLoggingMiddleware)
    configure_cors(application)

    # -- Routes --
    application.include_router(api_router)
    application.include_router(storage_router)

    return application


def main() -> None:
    """Serve the reference backend."""
    _logger.info("app_startup", host=settings.app_host, port=settings.app_port, environment=settings.app_env)
    uvicorn.run(
        "expense_sync.main:create_app",
        factory=True,
        host=settings.app_host,
        port=settings.app_port,
        reload=(settings.app_env == "development"),
    )


if __name__ == "__main__":
    main()
