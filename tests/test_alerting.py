from typing import AsyncGenerator
from uuid import uuid4

import pytest
import pytest_asyncio

from conftest import (
    PROVIDER_URL,
    FakeDeviceRegistry,
    FakeProvider,
    FakeReadingStore,
    feed_entry,
    make_device,
)
from floodwatch.services.alert_rules import IndicatorFieldRule, build_rules
from floodwatch.services.alerting import AlertEvaluator, AlertPipeline
from floodwatch.services.normalization import normalize_entry
from floodwatch.services.thingspeak import ThingSpeakClient

MESSAGE = "Flood warning near your area"


class RecordingNotifier:
    def __init__(self, notified: int = 1) -> None:
        self.calls: list[tuple[float, float, str]] = []
        self.notified = notified

    async def notify_nearby(self, latitude: float, longitude: float, message: str) -> int:
        self.calls.append((latitude, longitude, message))
        return self.notified


@pytest_asyncio.fixture
async def thingspeak(provider: FakeProvider) -> AsyncGenerator[ThingSpeakClient, None]:
    client = ThingSpeakClient(PROVIDER_URL, transport=provider.transport())
    yield client
    await client.close()


def pipeline(thingspeak, devices, notifier, store=None, rules=None):
    evaluator = AlertEvaluator(
        thingspeak, store or FakeReadingStore(), rules or [IndicatorFieldRule()], alert_field=5
    )
    return AlertPipeline(FakeDeviceRegistry(devices), evaluator, notifier, MESSAGE)


@pytest.mark.asyncio
async def test_latest_indicator_reads_last_entry_of_alert_field(provider, thingspeak):
    device = make_device("station", "11")
    provider.feeds["11"] = [feed_entry(1, field5="1"), feed_entry(2, field5="0")]
    evaluator = AlertEvaluator(thingspeak, FakeReadingStore(), [IndicatorFieldRule()])

    assert await evaluator.latest_indicator(device) == "0"
    request = provider.requests[-1]
    assert request.url.path == "/channels/11/fields/5.json"
    assert request.url.params["results"] == "1"


@pytest.mark.asyncio
async def test_active_indicator_notifies_around_the_device(provider, thingspeak):
    device = make_device("station", "11", latitude=7.0, longitude=80.0)
    provider.feeds["11"] = [feed_entry(1, field5="0"), feed_entry(2, field5="1")]
    notifier = RecordingNotifier(notified=3)

    outcome = await pipeline(thingspeak, [device], notifier).run_cycle()

    assert outcome.active
    assert outcome.notified == 3
    assert notifier.calls == [(7.0, 80.0, MESSAGE)]


@pytest.mark.parametrize("value", ["0", "2", "", None, "abc", "0.5"])
@pytest.mark.asyncio
async def test_inactive_indicator_sends_nothing(provider, thingspeak, value):
    device = make_device("station", "11")
    provider.feeds["11"] = [feed_entry(1, field5=value)]
    notifier = RecordingNotifier()

    outcome = await pipeline(thingspeak, [device], notifier).run_cycle()

    assert not outcome.active
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_no_device_skips_cycle(thingspeak, provider, caplog):
    notifier = RecordingNotifier()

    outcome = await pipeline(thingspeak, [], notifier).run_cycle()

    assert outcome.device_id is None
    assert notifier.calls == []
    assert provider.requests == []
    assert "No device found" in caplog.text


@pytest.mark.asyncio
async def test_provider_failure_means_no_alert(provider, thingspeak):
    device = make_device("station", "11")
    provider.failing.add("11")
    notifier = RecordingNotifier()

    outcome = await pipeline(thingspeak, [device], notifier).run_cycle()

    assert not outcome.active
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_empty_alert_field_means_no_alert(provider, thingspeak):
    device = make_device("station", "11")
    provider.feeds["11"] = []
    notifier = RecordingNotifier()

    outcome = await pipeline(thingspeak, [device], notifier).run_cycle()

    assert not outcome.active
    assert notifier.calls == []


@pytest.mark.asyncio
async def test_only_primary_device_is_evaluated(provider, thingspeak):
    primary = make_device("primary", "11")
    other = make_device("other", "22")
    provider.feeds["11"] = [feed_entry(1, field5="0")]
    provider.feeds["22"] = [feed_entry(1, field5="1")]
    notifier = RecordingNotifier()

    outcome = await pipeline(thingspeak, [primary, other], notifier).run_cycle()

    assert outcome.device_id == primary.id
    assert notifier.calls == []
    assert all("/22/" not in r.url.path for r in provider.requests)


@pytest.mark.asyncio
async def test_secondary_rules_extend_the_message(provider, thingspeak):
    device = make_device("Kelani Bridge", "11")
    provider.feeds["11"] = [feed_entry(1, field5="1")]
    store = FakeReadingStore()
    await store.append(normalize_entry(device.id, feed_entry(4, field1="2.5", field2="1")))
    notifier = RecordingNotifier()
    rules = build_rules(
        ["indicator_field", "water_level", "rain_status"],
        water_level_threshold=2.0,
        rain_status_threshold=1,
    )

    outcome = await pipeline(thingspeak, [device], notifier, store=store, rules=rules).run_cycle()

    assert [d.rule_name for d in outcome.decisions if d.active] == [
        "indicator_field",
        "water_level",
        "rain_status",
    ]
    assert notifier.calls[0][2] == "\n".join(
        [
            MESSAGE,
            "HIGH WATER LEVEL detected at Kelani Bridge! Level: 2.5 meters.",
            "It's RAINING at Kelani Bridge!",
        ]
    )


@pytest.mark.asyncio
async def test_reading_rules_skip_when_nothing_is_stored(provider, thingspeak):
    device = make_device("station", "11")
    store = FakeReadingStore()
    await store.append(normalize_entry(uuid4(), feed_entry(1, field1="9.0")))
    notifier = RecordingNotifier()
    rules = build_rules(["water_level"], water_level_threshold=1.0)

    outcome = await pipeline(thingspeak, [device], notifier, store=store, rules=rules).run_cycle()

    assert outcome.decisions == []
    assert notifier.calls == []
    assert provider.requests == []
