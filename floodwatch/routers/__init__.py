from . import health, live, telemetry

__all__ = [
    "health",
    "live",
    "telemetry",
]
