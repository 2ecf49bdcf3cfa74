import uvicorn
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.core.exceptions.base import register_exception_handlers
from src.api.core.middleware.logging import logging_middleware
from src.api.core.middleware.security import SecurityHeadersMiddleware
from src.api.router import api_router
from src.database.connection import AsyncSessionLocal, create_all_tables
from src.modules.providers.registry import ProviderRegistryService
from src.modules.scheduling.jobs import register_jobs
from src.modules.scheduling.scheduler import TaskScheduler
from src.redis.client import close_redis_pool
from src.utils.settings.app import AppSettings
from src.utils.settings.database import DatabaseSettings
from src.utils.settings.gateway import GatewaySettings
from src.utils.settings.scheduler import SchedulerSettings
from src.utils.logger import setup_logging


app_settings = AppSettings()
is_production = app_settings.is_production


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger = setup_logging(is_production, debug=app_settings.DEBUG)
    logger.info("Starting CreditGate API...")
    app_settings.validate_prod()

    if not hasattr(app.state, "session_factory"):
        app.state.session_factory = AsyncSessionLocal
    session_factory = app.state.session_factory

    if DatabaseSettings().DATABASE_AUTO_CREATE:
        await create_all_tables(session_factory.kw["bind"])

    async with session_factory() as db:
        await ProviderRegistryService(db).ensure_providers(
            GatewaySettings().GATEWAY_DEFAULT_PROVIDERS
        )

    scheduler = None
    if SchedulerSettings().SCHEDULER_ENABLED:
        scheduler = TaskScheduler.get_instance()
        register_jobs(scheduler, session_factory)
        scheduler.start()

    yield

    logger.info("Shutting down CreditGate API...")
    if scheduler is not None:
        scheduler.stop()
    await close_redis_pool()


app = FastAPI(
    title="CreditGate API",
    description="Credit-metered AI provider gateway with proxy pool and payments",
    version=app_settings.API_VERSION,
    lifespan=lifespan,
    docs_url=None if is_production else "/docs",
    redoc_url=None if is_production else "/redoc",
    openapi_url=None if is_production else "/openapi.json",
)

register_exception_handlers(app)

app.add_middleware(
    CORSMiddleware,
    allow_origins=app_settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(SecurityHeadersMiddleware, is_production=is_production)
app.middleware("http")(logging_middleware)

app.include_router(api_router)


def run_dev_server():
    """Run development server with auto-reload."""
    uvicorn.run(
        "src.main:app", host="0.0.0.0", port=8010, reload=True, access_log=False
    )


def run_prod_server():
    """Run production server."""
    uvicorn.run(
        "src.main:app", host="0.0.0.0", port=8010, reload=False, access_log=False
    )
