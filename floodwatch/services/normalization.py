"""Mapping of raw ThingSpeak feed entries onto the reading schema.

Field layout of a flood station channel:

    field1  water level
    field2  rain status
    field3  temperature
    field4  air pressure
    field5  waterfall level / alert indicator

Any value that is absent or cannot be parsed is kept as ``None``; nothing is
coerced to zero.
"""

from __future__ import annotations

import math
from typing import Any
from uuid import UUID

from floodwatch.schemas.telemetry import FeedEntry, LatestReading, Measurements, ReadingCreate


def parse_optional_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number


def parse_optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def extract_measurements(entry: FeedEntry) -> Measurements:
    return Measurements(
        water_level=parse_optional_float(entry.field1),
        rain_status=parse_optional_text(entry.field2),
        temperature=parse_optional_float(entry.field3),
        air_pressure=parse_optional_float(entry.field4),
        waterfall_level=parse_optional_float(entry.field5),
        latitude=parse_optional_float(entry.latitude),
        longitude=parse_optional_float(entry.longitude),
        elevation=parse_optional_float(entry.elevation),
        status=parse_optional_text(entry.status),
    )


def normalize_entry(device_id: UUID, raw: dict[str, Any]) -> ReadingCreate:
    """Build a storable reading from one provider entry.

    Raises ``pydantic.ValidationError`` when the entry has no usable
    ``entry_id`` or ``created_at``.
    """
    entry = FeedEntry.model_validate(raw)
    measurements = extract_measurements(entry)
    return ReadingCreate(
        device_id=device_id,
        entry_id=entry.entry_id,
        recorded_at=entry.created_at,
        **measurements.model_dump(),
    )


def to_latest_reading(raw: dict[str, Any]) -> LatestReading:
    entry = FeedEntry.model_validate(raw)
    return LatestReading(
        entry_id=entry.entry_id,
        created_at=entry.created_at,
        **extract_measurements(entry).model_dump(),
    )
