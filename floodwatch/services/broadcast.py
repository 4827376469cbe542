"""Live distribution of per-device snapshots to WebSocket subscribers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import WebSocket
from pydantic import ValidationError

from floodwatch.models.entities import Device
from floodwatch.schemas.telemetry import DeviceSnapshot
from floodwatch.services.normalization import to_latest_reading
from floodwatch.services.repositories import DeviceRegistry
from floodwatch.services.thingspeak import ThingSpeakClient, ThingSpeakError

logger = logging.getLogger(__name__)

DEVICE_DATA_EVENT = "deviceData"
NO_DATA = "No data available"
FETCH_FAILED = "Failed to fetch data"
MALFORMED_DATA = "Malformed data"


class ConnectionManager:
    """Tracks connected subscribers and fans messages out to them."""

    def __init__(self) -> None:
        self._connections: list[WebSocket] = []

    @property
    def count(self) -> int:
        return len(self._connections)

    async def connect(self, websocket: WebSocket) -> None:
        # Registered only once the handshake is done; sends before accept fail.
        await websocket.accept()
        self._connections.append(websocket)
        logger.info("Subscriber connected (%d active)", self.count)

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self._connections:
            self._connections.remove(websocket)
            logger.info("Subscriber disconnected (%d active)", self.count)

    async def broadcast(self, event: str, data: Any) -> int:
        """Send one message to every subscriber; returns how many received it."""
        connections = list(self._connections)
        if not connections:
            return 0
        message = {"event": event, "data": data}
        results = await asyncio.gather(
            *(websocket.send_json(message) for websocket in connections), return_exceptions=True
        )
        sent = 0
        for websocket, result in zip(connections, results):
            if isinstance(result, BaseException):
                logger.warning("Dropping subscriber after failed send: %s", result)
                self.disconnect(websocket)
            else:
                sent += 1
        return sent


class LivePublisher:
    """Reads the latest entry of every device straight from the provider and broadcasts it."""

    def __init__(
        self,
        client: ThingSpeakClient,
        devices: DeviceRegistry,
        connections: ConnectionManager,
        batch_size: int = 1,
    ) -> None:
        self.client = client
        self.devices = devices
        self.connections = connections
        self.batch_size = batch_size
        self.last_payload: list[dict[str, Any]] | None = None

    async def collect_snapshots(self) -> list[DeviceSnapshot]:
        devices = await self.devices.list_devices()
        results = await asyncio.gather(
            *(self._snapshot(device) for device in devices), return_exceptions=True
        )
        snapshots: list[DeviceSnapshot] = []
        for device, result in zip(devices, results):
            if isinstance(result, BaseException):
                logger.error("Unexpected error building snapshot for %s: %r", device.name, result)
                result = self._base_snapshot(device, error=FETCH_FAILED)
            snapshots.append(result)
        return snapshots

    def _base_snapshot(self, device: Device, **extra: Any) -> DeviceSnapshot:
        return DeviceSnapshot(
            device_id=device.id,
            name=device.name,
            latitude=device.latitude,
            longitude=device.longitude,
            **extra,
        )

    async def _snapshot(self, device: Device) -> DeviceSnapshot:
        try:
            feed = await self.client.get_feeds(device.channel_id, results=self.batch_size)
        except ThingSpeakError as exc:
            logger.warning("Live fetch for %s failed: %s", device.name, exc)
            return self._base_snapshot(device, error=FETCH_FAILED)

        if not feed.feeds:
            logger.info("No data available for %s", device.name)
            return self._base_snapshot(device, error=NO_DATA)

        # Feeds are ordered oldest first.
        try:
            latest = to_latest_reading(feed.feeds[-1])
        except ValidationError:
            logger.warning("Latest entry of %s is malformed", device.name)
            return self._base_snapshot(device, error=MALFORMED_DATA)
        return self._base_snapshot(device, latest_data=latest)

    async def run_cycle(self) -> list[DeviceSnapshot]:
        snapshots = await self.collect_snapshots()
        if not snapshots:
            logger.info("No devices registered, nothing to broadcast")
            return snapshots

        payload = [snapshot.model_dump(mode="json") for snapshot in snapshots]
        self.last_payload = payload
        sent = await self.connections.broadcast(DEVICE_DATA_EVENT, payload)
        logger.debug("Broadcast %d device snapshots to %d subscribers", len(payload), sent)
        return snapshots
