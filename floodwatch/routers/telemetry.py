from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Path, status
from sqlalchemy.exc import SQLAlchemyError

from floodwatch.core.config import Settings
from floodwatch.deps import (
    get_app_settings,
    get_device_registry,
    get_publisher,
    get_reading_store,
    get_thingspeak_client,
)
from floodwatch.models.entities import Device
from floodwatch.schemas.telemetry import (
    ChannelStatusResponse,
    DeviceReadingsResponse,
    FieldFeedResponse,
    ReadingOut,
    SnapshotResponse,
)
from floodwatch.services.broadcast import LivePublisher
from floodwatch.services.repositories import DeviceRegistry, ReadingStore
from floodwatch.services.thingspeak import ThingSpeakClient, ThingSpeakError

router = APIRouter(prefix="/api/device", tags=["telemetry"])

FieldNumber = Annotated[int, Path(ge=1, le=8)]


async def _require_device(device_id: UUID, devices: DeviceRegistry) -> Device:
    try:
        device = await devices.get_device(device_id)
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to load device"
        ) from None
    if device is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Device not found")
    return device


def _rain_channel(settings: Settings) -> str:
    if not settings.rain_channel_id:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="Rainfall channel not configured"
        )
    return settings.rain_channel_id


def _provider_failure(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=detail)


@router.get("/latest", response_model=SnapshotResponse)
async def get_latest_device_data(publisher: LivePublisher = Depends(get_publisher)):
    """Latest provider entry for every device, read directly from ThingSpeak."""
    try:
        snapshots = await publisher.collect_snapshots()
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to load devices"
        ) from None
    if not snapshots:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No devices found")
    return SnapshotResponse(devices=snapshots)


@router.get("/rain")
async def get_rain_data(
    settings: Settings = Depends(get_app_settings),
    client: ThingSpeakClient = Depends(get_thingspeak_client),
):
    channel_id = _rain_channel(settings)
    try:
        feed = await client.get_feeds(
            channel_id, results=settings.rain_batch_size, api_key=settings.rain_api_key or None
        )
    except ThingSpeakError:
        raise _provider_failure("Failed to retrieve sensor data") from None
    return {"success": True, "data": feed.feeds}


@router.get("/rain/fields/{field}")
async def get_rain_field(
    field: FieldNumber,
    settings: Settings = Depends(get_app_settings),
    client: ThingSpeakClient = Depends(get_thingspeak_client),
):
    channel_id = _rain_channel(settings)
    try:
        feed = await client.get_field(
            channel_id, field, results=settings.rain_batch_size, api_key=settings.rain_api_key or None
        )
    except ThingSpeakError:
        raise _provider_failure("Failed to retrieve field data") from None
    return {"success": True, "field": field, "data": feed.feeds}


@router.get("/rain/channel-status")
async def get_rain_channel_status(
    settings: Settings = Depends(get_app_settings),
    client: ThingSpeakClient = Depends(get_thingspeak_client),
):
    channel_id = _rain_channel(settings)
    try:
        channel_status = await client.get_status(channel_id, api_key=settings.rain_api_key or None)
    except ThingSpeakError:
        raise _provider_failure("Failed to retrieve channel status") from None
    return {"success": True, "status": channel_status}


@router.get("/{device_id}/readings", response_model=DeviceReadingsResponse)
async def get_device_readings(
    device_id: UUID,
    store: ReadingStore = Depends(get_reading_store),
):
    """Stored readings of one device, newest first."""
    try:
        readings = await store.list_for_device(device_id)
    except SQLAlchemyError:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to retrieve readings"
        ) from None
    if not readings:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="No readings found for this device"
        )
    return DeviceReadingsResponse(
        device_id=device_id, data=[ReadingOut.model_validate(reading) for reading in readings]
    )


@router.get("/{device_id}/fields/{field}", response_model=FieldFeedResponse)
async def get_device_field(
    device_id: UUID,
    field: FieldNumber,
    devices: DeviceRegistry = Depends(get_device_registry),
    client: ThingSpeakClient = Depends(get_thingspeak_client),
    settings: Settings = Depends(get_app_settings),
):
    device = await _require_device(device_id, devices)
    try:
        feed = await client.get_field(device.channel_id, field, results=settings.fetch_batch_size)
    except ThingSpeakError:
        raise _provider_failure("Failed to retrieve field data") from None
    return FieldFeedResponse(device=device.name, field=field, data=feed.feeds)


@router.get("/{device_id}/channel-status", response_model=ChannelStatusResponse)
async def get_device_channel_status(
    device_id: UUID,
    devices: DeviceRegistry = Depends(get_device_registry),
    client: ThingSpeakClient = Depends(get_thingspeak_client),
):
    device = await _require_device(device_id, devices)
    try:
        channel_status = await client.get_status(device.channel_id)
    except ThingSpeakError:
        raise _provider_failure("Failed to retrieve channel status") from None
    return ChannelStatusResponse(device=device.name, status=channel_status)
