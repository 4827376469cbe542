"""Test configuration and fixtures."""
from typing import Any, AsyncGenerator
from uuid import UUID, uuid4

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from floodwatch.core.config import Settings
from floodwatch.db.session import init_models
from floodwatch.models.entities import Device, Reading, User
from floodwatch.schemas.telemetry import ReadingCreate
from floodwatch.services.container import MonitoringServices, build_services

PROVIDER_URL = "https://api.thingspeak.test/channels"
RAIN_CHANNEL = "2831972"


def feed_entry(entry_id: int, **fields: Any) -> dict[str, Any]:
    """A provider feed entry with a deterministic timestamp."""
    entry = {"created_at": f"2024-05-01T10:{entry_id:02d}:00Z", "entry_id": entry_id}
    entry.update(fields)
    return entry


class FakeProvider:
    """In-process stand-in for the ThingSpeak channel API."""

    def __init__(self) -> None:
        self.feeds: dict[str, list[dict[str, Any]]] = {}
        self.failing: set[str] = set()
        self.timing_out: set[str] = set()
        self.requests: list[httpx.Request] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        # /channels/<id>/feeds.json | /channels/<id>/fields/<n>.json | /channels/<id>/status.json
        parts = request.url.path.strip("/").split("/")
        channel = parts[1]
        if channel in self.timing_out:
            raise httpx.ReadTimeout("provider too slow", request=request)
        if channel in self.failing:
            return httpx.Response(500, json={"error": "internal"})
        if channel not in self.feeds:
            return httpx.Response(200, json=-1)

        entries = self.feeds[channel]
        if "results" in request.url.params:
            entries = entries[-int(request.url.params["results"]):]
        info = {"id": channel, "name": f"channel {channel}"}

        if parts[2] == "feeds.json":
            return httpx.Response(200, json={"channel": info, "feeds": entries})
        if parts[2] == "fields":
            key = "field" + parts[3].split(".")[0]
            return httpx.Response(
                200,
                json={
                    "channel": info,
                    "feeds": [
                        {"created_at": e["created_at"], "entry_id": e["entry_id"], key: e.get(key)}
                        for e in entries
                    ],
                },
            )
        if parts[2] == "status.json":
            return httpx.Response(200, json={"channel": info, "feeds": []})
        return httpx.Response(404, json={"error": "not found"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class FakeDeviceRegistry:
    def __init__(self, devices: list[Device]) -> None:
        self.devices = devices

    async def list_devices(self) -> list[Device]:
        return list(self.devices)

    async def get_primary_device(self) -> Device | None:
        return self.devices[0] if self.devices else None

    async def get_device(self, device_id: UUID) -> Device | None:
        return next((d for d in self.devices if d.id == device_id), None)


class FakeUserRegistry:
    def __init__(self, users: list[User]) -> None:
        self.users = users

    async def list_users(self) -> list[User]:
        return list(self.users)


class FakeReadingStore:
    """Append-only list; entry ids in ``broken_entries`` fail to persist."""

    def __init__(self, broken_entries: set[int] | None = None) -> None:
        self.records: list[ReadingCreate] = []
        self.broken_entries = broken_entries or set()

    async def append(self, record: ReadingCreate) -> bool:
        if record.entry_id in self.broken_entries:
            raise RuntimeError(f"disk full while writing entry {record.entry_id}")
        self.records.append(record)
        return True

    async def latest_for_device(self, device_id: UUID) -> Reading | None:
        records = [r for r in self.records if r.device_id == device_id]
        if not records:
            return None
        latest = max(records, key=lambda r: r.recorded_at)
        return Reading(id=uuid4(), **latest.model_dump())

    def for_device(self, device_id: UUID) -> list[ReadingCreate]:
        return [r for r in self.records if r.device_id == device_id]


def make_device(name: str, channel_id: str, latitude: float = 6.9271, longitude: float = 79.8612) -> Device:
    return Device(id=uuid4(), name=name, channel_id=channel_id, latitude=latitude, longitude=longitude)


def make_user(
    username: str,
    latitude: float | None,
    longitude: float | None,
    email: str | None = None,
    phone_number: str | None = None,
) -> User:
    return User(
        id=uuid4(),
        username=username,
        email=email if email is not None else f"{username}@example.com",
        phone_number=phone_number,
        latitude=latitude,
        longitude=longitude,
    )


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        database_url="sqlite+aiosqlite:///:memory:",
        thingspeak_base_url=PROVIDER_URL,
        thingspeak_api_key="test-key",
        rain_channel_id=RAIN_CHANNEL,
        scheduler_enabled=False,
        sendgrid_api_key="",
        sms_api_key="",
        sms_user_id="",
    )


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest_asyncio.fixture
async def services(settings: Settings, provider: FakeProvider) -> AsyncGenerator[MonitoringServices, None]:
    """Fully wired services on an in-memory database and the fake provider."""
    services = build_services(settings, provider_transport=provider.transport())
    await init_models(services.engine)
    yield services
    await services.aclose()


@pytest_asyncio.fixture
async def db_session(services: MonitoringServices) -> AsyncGenerator[AsyncSession, None]:
    async with services.session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(services: MonitoringServices) -> AsyncGenerator[AsyncClient, None]:
    from main import create_app

    app = create_app(services=services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


@pytest_asyncio.fixture
async def station(db_session: AsyncSession, provider: FakeProvider) -> Device:
    """A registered flood station with three entries on the provider."""
    device = Device(name="Kelani Bridge", channel_id="100001", latitude=6.9271, longitude=79.8612)
    db_session.add(device)
    await db_session.commit()
    await db_session.refresh(device)
    provider.feeds["100001"] = [
        feed_entry(1, field1="1.2", field2="0", field3="28.5", field4="1009.1", field5="0"),
        feed_entry(2, field1="1.4", field2="1", field3="28.1", field4="1008.7", field5="0"),
        feed_entry(3, field1="1.9", field2="1", field3="27.6", field4="1008.2", field5="1"),
    ]
    return device
