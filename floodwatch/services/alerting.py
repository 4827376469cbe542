"""Alert evaluation for the primary station and the notify pipeline around it."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Sequence
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError

from floodwatch.models.entities import Device, Reading
from floodwatch.services.alert_rules import AlertContext, AlertDecision, AlertRule
from floodwatch.services.notifications import ProximityNotifier
from floodwatch.services.repositories import DeviceRegistry, ReadingStore
from floodwatch.services.thingspeak import ThingSpeakClient, ThingSpeakError

log = logging.getLogger(__name__)


@dataclass
class AlertOutcome:
    device_id: UUID | None = None
    decisions: list[AlertDecision] = field(default_factory=list)
    notified: int = 0

    @property
    def active(self) -> bool:
        return any(decision.active for decision in self.decisions)


class AlertEvaluator:
    """Collects the inputs the configured rules need and runs them."""

    def __init__(
        self,
        client: ThingSpeakClient,
        store: ReadingStore,
        rules: Sequence[AlertRule],
        alert_field: int = 5,
    ) -> None:
        self.client = client
        self.store = store
        self.rules = list(rules)
        self.alert_field = alert_field

    async def evaluate(self, device: Device) -> list[AlertDecision]:
        ctx = AlertContext(device=device)
        if any(rule.needs_indicator for rule in self.rules):
            ctx.indicator = await self.latest_indicator(device)
        if any(rule.needs_reading for rule in self.rules):
            ctx.latest_reading = await self._latest_reading(device)

        decisions: list[AlertDecision] = []
        for rule in self.rules:
            if not rule.can_run(ctx):
                log.debug("Rule %s skipped (missing data)", rule.name)
                continue
            decision = rule.evaluate(ctx)
            log.debug("Rule %s: %s", decision.rule_name, decision.reason)
            decisions.append(decision)
        return decisions

    async def latest_indicator(self, device: Device) -> Any:
        """Most recent raw value of the alert field, ``None`` when unavailable."""
        try:
            feed = await self.client.get_field(device.channel_id, self.alert_field, results=1)
        except ThingSpeakError as exc:
            log.warning("Could not read field%d of %s: %s", self.alert_field, device.name, exc)
            return None
        if not feed.feeds:
            log.warning("No field%d data available for %s", self.alert_field, device.name)
            return None
        return feed.feeds[-1].get(f"field{self.alert_field}")

    async def _latest_reading(self, device: Device) -> Reading | None:
        try:
            return await self.store.latest_for_device(device.id)
        except SQLAlchemyError as exc:
            log.warning("Could not load latest reading of %s: %s", device.name, exc)
            return None


class AlertPipeline:
    """One alert cycle: evaluate the primary device, then notify nearby users."""

    def __init__(
        self,
        devices: DeviceRegistry,
        evaluator: AlertEvaluator,
        notifier: ProximityNotifier,
        message: str,
    ) -> None:
        self.devices = devices
        self.evaluator = evaluator
        self.notifier = notifier
        self.message = message

    def compose_message(self, decisions: Sequence[AlertDecision]) -> str:
        details = [decision.detail for decision in decisions if decision.active and decision.detail]
        return "\n".join([self.message, *details])

    async def run_cycle(self) -> AlertOutcome:
        device = await self.devices.get_primary_device()
        if device is None:
            log.warning("No device found, skipping alert check")
            return AlertOutcome()
        if not device.channel_id or device.latitude is None or device.longitude is None:
            log.warning("Device %s is missing its channel or location, skipping alert check", device.name)
            return AlertOutcome(device_id=device.id)

        outcome = AlertOutcome(device_id=device.id, decisions=await self.evaluator.evaluate(device))
        if not outcome.active:
            log.info("No alert needed for %s", device.name)
            return outcome

        log.warning(
            "Alert active for %s (%s), notifying nearby users",
            device.name,
            ", ".join(d.rule_name for d in outcome.decisions if d.active),
        )
        outcome.notified = await self.notifier.notify_nearby(
            device.latitude, device.longitude, self.compose_message(outcome.decisions)
        )
        return outcome
