"""Threshold rules deciding whether a flood alert is active.

Each rule is a self-contained class that:
1. Checks if it has the data it needs
2. Evaluates its condition against the latest data
3. Returns a decision with a human-readable reason

No state is kept between evaluations; a breach seen on consecutive cycles
fires on each of them.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable

from floodwatch.models.entities import Device, Reading
from floodwatch.models.enums import AlertRuleName


ALERT_ACTIVE_VALUE = 1

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def parse_indicator(raw: Any) -> int | None:
    """Integer value of a provider indicator field, ``None`` when unusable.

    Only the leading integer counts, so ``"1.5"`` and ``"1abc"`` read as 1.
    """
    if raw is None or isinstance(raw, bool):
        return None
    match = _LEADING_INT.match(str(raw))
    if match is None:
        return None
    return int(match.group(1))


def indicator_active(raw: Any) -> bool:
    return parse_indicator(raw) == ALERT_ACTIVE_VALUE


@dataclass
class AlertContext:
    """Data gathered for one evaluation cycle."""

    device: Device
    indicator: Any = None  # raw latest value of the alert field
    latest_reading: Reading | None = None


@dataclass
class AlertDecision:
    rule_name: str
    active: bool
    reason: str
    detail: str | None = None  # extra line for the alert message


class AlertRule(ABC):
    """Base class for all alert rules."""

    needs_indicator: bool = False
    needs_reading: bool = False

    @property
    @abstractmethod
    def name(self) -> str:
        """Rule name for logging and configuration."""

    @abstractmethod
    def can_run(self, ctx: AlertContext) -> bool:
        """Check if the rule has the data it needs."""

    @abstractmethod
    def evaluate(self, ctx: AlertContext) -> AlertDecision:
        """Decide whether this rule's condition is breached."""


class IndicatorFieldRule(AlertRule):
    """Fires when the dedicated indicator field reads exactly 1."""

    needs_indicator = True

    @property
    def name(self) -> str:
        return AlertRuleName.INDICATOR_FIELD.value

    def can_run(self, ctx: AlertContext) -> bool:
        # A missing indicator is a valid input meaning "no alert".
        return True

    def evaluate(self, ctx: AlertContext) -> AlertDecision:
        if indicator_active(ctx.indicator):
            return AlertDecision(self.name, True, "Indicator field is active")
        return AlertDecision(self.name, False, f"Indicator field is {ctx.indicator!r}")


class WaterLevelRule(AlertRule):
    """Fires when the latest stored water level reaches the threshold."""

    needs_reading = True

    def __init__(self, threshold: float) -> None:
        self.threshold = threshold

    @property
    def name(self) -> str:
        return AlertRuleName.WATER_LEVEL.value

    def can_run(self, ctx: AlertContext) -> bool:
        return ctx.latest_reading is not None and ctx.latest_reading.water_level is not None

    def evaluate(self, ctx: AlertContext) -> AlertDecision:
        level = ctx.latest_reading.water_level
        if level >= self.threshold:
            return AlertDecision(
                self.name,
                True,
                f"Water level {level} reached threshold {self.threshold}",
                detail=f"HIGH WATER LEVEL detected at {ctx.device.name}! Level: {level} meters.",
            )
        return AlertDecision(self.name, False, f"Water level {level} below threshold {self.threshold}")


class RainStatusRule(AlertRule):
    """Fires when the latest stored rain status matches the configured category."""

    needs_reading = True

    def __init__(self, threshold: int) -> None:
        self.threshold = threshold

    @property
    def name(self) -> str:
        return AlertRuleName.RAIN_STATUS.value

    def can_run(self, ctx: AlertContext) -> bool:
        return ctx.latest_reading is not None and ctx.latest_reading.rain_status is not None

    def evaluate(self, ctx: AlertContext) -> AlertDecision:
        status = ctx.latest_reading.rain_status
        if parse_indicator(status) == self.threshold:
            return AlertDecision(
                self.name,
                True,
                f"Rain status {status!r} matches {self.threshold}",
                detail=f"It's RAINING at {ctx.device.name}!",
            )
        return AlertDecision(self.name, False, f"Rain status {status!r} does not match {self.threshold}")


def build_rules(
    names: Iterable[str], water_level_threshold: float = 0.0, rain_status_threshold: int = 1
) -> list[AlertRule]:
    """Instantiate the configured rules, in configuration order."""
    rules: list[AlertRule] = []
    for name in names:
        rule_name = AlertRuleName(name)
        if rule_name is AlertRuleName.INDICATOR_FIELD:
            rules.append(IndicatorFieldRule())
        elif rule_name is AlertRuleName.WATER_LEVEL:
            rules.append(WaterLevelRule(water_level_threshold))
        elif rule_name is AlertRuleName.RAIN_STATUS:
            rules.append(RainStatusRule(rain_status_threshold))
    return rules
