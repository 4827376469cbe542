from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class FeedEntry(BaseModel):
    """One entry of a ThingSpeak channel feed, as sent by the provider."""

    model_config = ConfigDict(extra="ignore")

    entry_id: int
    created_at: datetime
    field1: Any = None
    field2: Any = None
    field3: Any = None
    field4: Any = None
    field5: Any = None
    latitude: Any = None
    longitude: Any = None
    elevation: Any = None
    status: Any = None


class ChannelFeed(BaseModel):
    model_config = ConfigDict(extra="ignore")

    channel: dict[str, Any] | None = None
    # Entries stay raw so one bad entry does not invalidate the batch.
    feeds: list[dict[str, Any]] = Field(default_factory=list)


class Measurements(BaseModel):
    water_level: float | None = None
    rain_status: str | None = None
    temperature: float | None = None
    air_pressure: float | None = None
    waterfall_level: float | None = None
    latitude: float | None = None
    longitude: float | None = None
    elevation: float | None = None
    status: str | None = None


class ReadingCreate(Measurements):
    device_id: UUID
    entry_id: int
    recorded_at: datetime


class ReadingOut(ReadingCreate):
    model_config = ConfigDict(from_attributes=True)

    id: UUID


class LatestReading(Measurements):
    entry_id: int
    created_at: datetime


class DeviceSnapshot(BaseModel):
    device_id: UUID
    name: str
    latitude: float | None = None
    longitude: float | None = None
    latest_data: LatestReading | None = None
    error: str | None = None


class DeviceReadingsResponse(BaseModel):
    success: bool = True
    device_id: UUID
    data: list[ReadingOut]


class SnapshotResponse(BaseModel):
    success: bool = True
    devices: list[DeviceSnapshot]


class FieldFeedResponse(BaseModel):
    success: bool = True
    device: str
    field: int
    data: list[dict[str, Any]]


class ChannelStatusResponse(BaseModel):
    success: bool = True
    device: str
    status: dict[str, Any]
