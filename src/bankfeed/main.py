import asyncio
import logging
from contextlib import asynccontextmanager, suppress

import httpx
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import IntegrityError

from bankfeed.api.middleware.error_handler import (
    handle_bank_feed_error,
    handle_generic_error,
    handle_integrity_error,
    handle_validation_error,
)
from bankfeed.api.middleware.logging import RequestLoggingMiddleware, setup_logging
from bankfeed.api.v1 import router as v1_router
from bankfeed.api.v1.health import router as health_router
from bankfeed.config import Settings, get_settings
from bankfeed.core.exceptions import BankFeedError
from bankfeed.providers.monzo import MonzoClient
from bankfeed.services.oauth import OAuthFlowManager, OAuthStores
from bankfeed.services.progress import ImportProgressTracker
from bankfeed.services.sync import SyncLocks

logger = logging.getLogger(__name__)


async def sweep_expired_connections(app: FastAPI, interval_seconds: float) -> None:
    """Periodically drop expired OAuth states and pending connections."""
    settings: Settings = app.state.settings
    while True:
        await asyncio.sleep(interval_seconds)
        oauth = OAuthFlowManager(
            MonzoClient.from_settings(app.state.http_client, settings), app.state.oauth_stores
        )
        try:
            await oauth.sweep()
        except Exception:
            logger.exception("Pending connection sweep failed")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    sweeper = asyncio.create_task(
        sweep_expired_connections(app, app.state.settings.store_sweep_interval_seconds)
    )
    yield
    # Shutdown
    sweeper.cancel()
    with suppress(asyncio.CancelledError):
        await sweeper
    await app.state.http_client.aclose()


def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()
    setup_logging(settings.log_level)

    app = FastAPI(
        title="Bank Feed API",
        description="Bank transaction ingestion and rule-based categorization",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    # Per-instance state shared across requests
    app.state.settings = settings
    app.state.http_client = httpx.AsyncClient(timeout=settings.provider_request_timeout_seconds)
    app.state.progress_tracker = ImportProgressTracker(retention_seconds=settings.progress_retention_seconds)
    app.state.sync_locks = SyncLocks()
    app.state.oauth_stores = OAuthStores.from_settings(settings)

    # Add request logging middleware
    app.add_middleware(RequestLoggingMiddleware)

    # Register exception handlers (order matters - most specific first)
    app.add_exception_handler(BankFeedError, handle_bank_feed_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(IntegrityError, handle_integrity_error)
    app.add_exception_handler(Exception, handle_generic_error)

    # Register routers
    app.include_router(health_router)
    app.include_router(v1_router)

    return app


app = create_app()
