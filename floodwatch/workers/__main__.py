"""Headless entry point: telemetry ingestion and alerting without the HTTP server."""

import asyncio
import logging
import signal

from floodwatch.core.config import get_settings
from floodwatch.db.session import init_models
from floodwatch.services.container import build_services


async def main():
    """Worker entry point."""
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    services = build_services(settings)
    await init_models(services.engine)
    scheduler = services.build_scheduler(include_broadcast=False)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:  # pragma: no cover - windows
            pass

    scheduler.start()
    try:
        await stop.wait()
    finally:
        await scheduler.stop()
        await services.aclose()


if __name__ == "__main__":
    asyncio.run(main())
