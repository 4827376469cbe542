import logging

from fastapi import FastAPI

from floodwatch.app_factory import create_base_app
from floodwatch.core.config import Settings, get_settings
from floodwatch.routers.groups import ALL_ROUTERS
from floodwatch.services.container import MonitoringServices


def create_app(settings: Settings | None = None, services: MonitoringServices | None = None) -> FastAPI:
    if settings is None:
        settings = services.settings if services is not None else get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    app = create_base_app(settings, services)
    for router in ALL_ROUTERS:
        app.include_router(router)
    return app


app = create_app()
