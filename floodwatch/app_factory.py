import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from floodwatch.core.config import Settings, get_settings
from floodwatch.db.session import init_models
from floodwatch.services.container import MonitoringServices, build_services

logger = logging.getLogger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI):
    services: MonitoringServices = app.state.services
    await init_models(services.engine)
    scheduler = None
    if services.settings.scheduler_enabled:
        scheduler = services.build_scheduler()
        scheduler.start()
        logger.info("Polling scheduler started")
    try:
        yield
    finally:
        if scheduler is not None:
            await scheduler.stop()
        await services.aclose()


def create_base_app(
    settings: Settings | None = None, services: MonitoringServices | None = None
) -> FastAPI:
    """
    Build a FastAPI application with shared middleware, services, and lifespan hooks.
    Routers are included on top of this base instance by the entry point.
    """
    if settings is None:
        settings = services.settings if services is not None else get_settings()
    app = FastAPI(title=settings.app_name, lifespan=_lifespan)
    app.state.services = services or build_services(settings)
    if settings.cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_methods=["GET", "POST"],
            allow_headers=["*"],
        )
    app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")
    return app
