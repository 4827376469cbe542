from fastapi import APIRouter

from . import health, live, telemetry

API_ROUTERS: tuple[APIRouter, ...] = (
    health.router,
    telemetry.router,
)

LIVE_ROUTERS: tuple[APIRouter, ...] = (live.router,)

ALL_ROUTERS: tuple[APIRouter, ...] = API_ROUTERS + LIVE_ROUTERS

__all__ = ["API_ROUTERS", "LIVE_ROUTERS", "ALL_ROUTERS"]
