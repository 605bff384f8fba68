"""FastAPI application factory."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.concurrency import run_in_threadpool

from src.api.errors import register_exception_handlers
from src.api.middleware import QuotaMiddleware
from src.api.routes import router
from src.config import EngineConfig, load_engine_config
from src.settings import AppSettings, get_settings
from src.store import SearchStore


logger = structlog.get_logger()

API_TITLE = "Trendsearch API"
API_VERSION = "0.1.0"


def _migrate(settings: AppSettings) -> int:
    with SearchStore(settings.db_path) as store:
        return store.get_schema_version()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Apply pending migrations before serving."""
    settings: AppSettings = app.state.settings
    version = await run_in_threadpool(_migrate, settings)
    logger.info(
        "api_started",
        component="api",
        db_path=str(settings.db_path),
        schema_version=version,
    )
    yield
    logger.info("api_stopped", component="api")


def create_app(
    settings: AppSettings | None = None, config: EngineConfig | None = None
) -> FastAPI:
    """Build the HTTP application.

    Args:
        settings: Environment settings (read from the environment if omitted).
        config: Engine configuration (loaded from ``settings.config_path``
            if omitted).

    Returns:
        The configured application.
    """
    settings = settings or get_settings()
    config = config or load_engine_config(settings.config_path)

    app = FastAPI(title=API_TITLE, version=API_VERSION, lifespan=lifespan)
    app.state.settings = settings
    app.state.config = config

    register_exception_handlers(app)
    app.add_middleware(QuotaMiddleware)
    app.include_router(router)
    return app
