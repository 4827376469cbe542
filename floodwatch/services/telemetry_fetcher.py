"""Periodic ingestion of provider feeds into the reading store."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from uuid import UUID

from pydantic import ValidationError

from floodwatch.models.entities import Device
from floodwatch.services.normalization import normalize_entry
from floodwatch.services.repositories import DeviceRegistry, ReadingStore
from floodwatch.services.thingspeak import ThingSpeakClient, ThingSpeakError

log = logging.getLogger(__name__)


@dataclass
class DeviceIngestResult:
    device_id: UUID
    name: str
    received: int = 0
    stored: int = 0
    skipped: int = 0
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class FetchCycleResult:
    devices: list[DeviceIngestResult] = field(default_factory=list)

    @property
    def stored(self) -> int:
        return sum(item.stored for item in self.devices)

    @property
    def failed(self) -> list[DeviceIngestResult]:
        return [item for item in self.devices if not item.ok]


class TelemetryFetcher:
    """Pulls the latest entries of every registered channel and appends them."""

    def __init__(
        self,
        client: ThingSpeakClient,
        devices: DeviceRegistry,
        store: ReadingStore,
        batch_size: int = 10,
    ) -> None:
        self.client = client
        self.devices = devices
        self.store = store
        self.batch_size = batch_size

    async def run_cycle(self) -> FetchCycleResult:
        devices = await self.devices.list_devices()
        if not devices:
            log.info("No devices registered, nothing to fetch")
            return FetchCycleResult()

        outcomes = await asyncio.gather(
            *(self._ingest_device(device) for device in devices), return_exceptions=True
        )
        cycle = FetchCycleResult()
        for device, outcome in zip(devices, outcomes):
            if isinstance(outcome, BaseException):
                log.error("Unexpected error ingesting device %s: %r", device.name, outcome)
                outcome = DeviceIngestResult(device.id, device.name, error=repr(outcome))
            cycle.devices.append(outcome)

        log.info(
            "Fetch cycle complete: %d devices, %d readings stored, %d failures",
            len(cycle.devices),
            cycle.stored,
            len(cycle.failed),
        )
        return cycle

    async def _ingest_device(self, device: Device) -> DeviceIngestResult:
        result = DeviceIngestResult(device.id, device.name)
        try:
            feed = await self.client.get_feeds(device.channel_id, results=self.batch_size)
        except ThingSpeakError as exc:
            log.warning("Fetching channel %s for %s failed: %s", device.channel_id, device.name, exc)
            result.error = str(exc)
            return result

        result.received = len(feed.feeds)
        if not feed.feeds:
            log.info("No data available for %s", device.name)
            return result

        for raw in feed.feeds:
            try:
                record = normalize_entry(device.id, raw)
            except ValidationError as exc:
                result.skipped += 1
                log.warning("Skipping malformed entry from %s: %s", device.name, exc.errors()[0]["msg"])
                continue
            try:
                stored = await self.store.append(record)
            except Exception:
                log.exception("Failed to store entry %s for %s", record.entry_id, device.name)
                stored = False
            if stored:
                result.stored += 1
            else:
                result.skipped += 1

        log.debug(
            "%s: %d received, %d stored, %d skipped",
            device.name,
            result.received,
            result.stored,
            result.skipped,
        )
        return result
