from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, Protocol
from uuid import UUID

from floodwatch.models.entities import User
from floodwatch.models.enums import NotificationChannel
from floodwatch.services.geo import distance_km
from floodwatch.services.repositories import UserRegistry

logger = logging.getLogger(__name__)

# Absorbs rounding so a user exactly on the radius is still matched.
RADIUS_TOLERANCE_KM = 1e-6


class Sender(Protocol):
    channel: NotificationChannel

    def normalize_target(self, target: str) -> str: ...

    async def send(self, target: str, body: str) -> bool: ...


@dataclass
class Dispatch:
    user_id: UUID
    channel: NotificationChannel
    target: str
    message: str


def find_nearby_users(
    users: Iterable[User], latitude: float, longitude: float, radius_km: float
) -> list[User]:
    """Users with a known location within ``radius_km`` of the point, each once."""
    nearby: list[User] = []
    seen: set[UUID] = set()
    for user in users:
        if user.latitude is None or user.longitude is None or user.id in seen:
            continue
        distance = distance_km(latitude, longitude, user.latitude, user.longitude)
        if distance <= radius_km + RADIUS_TOLERANCE_KM:
            nearby.append(user)
            seen.add(user.id)
    return nearby


class ProximityNotifier:
    """Sends an alert to every user near a location over every enabled channel."""

    def __init__(self, users: UserRegistry, senders: Iterable[Sender], radius_km: float = 10.0) -> None:
        self.users = users
        self.senders = {sender.channel: sender for sender in senders}
        self.radius_km = radius_km

    def _resolve_channels(self, user: User) -> list[tuple[NotificationChannel, str]]:
        channels: list[tuple[NotificationChannel, str]] = []
        if NotificationChannel.EMAIL in self.senders and user.email:
            channels.append((NotificationChannel.EMAIL, user.email))
        if NotificationChannel.SMS in self.senders and user.phone_number:
            channels.append((NotificationChannel.SMS, user.phone_number))
        return channels

    def plan_dispatches(self, users: Iterable[User], message: str) -> list[Dispatch]:
        """One dispatch per user and channel, skipping addresses already planned."""
        dispatches: list[Dispatch] = []
        planned: set[tuple[NotificationChannel, str]] = set()
        for user in users:
            for channel, target in self._resolve_channels(user):
                key = (channel, self.senders[channel].normalize_target(target))
                if key in planned:
                    continue
                planned.add(key)
                dispatches.append(Dispatch(user.id, channel, target, message))
        return dispatches

    async def notify_nearby(
        self, latitude: float, longitude: float, message: str, radius_km: float | None = None
    ) -> int:
        """Notify users around the point; returns how many users got at least one message."""
        radius = self.radius_km if radius_km is None else radius_km
        users = await self.users.list_users()
        nearby = find_nearby_users(users, latitude, longitude, radius)
        if not nearby:
            logger.info("No users within %.1f km to notify", radius)
            return 0

        dispatches = self.plan_dispatches(nearby, message)
        if not dispatches:
            logger.warning("%d nearby users have no reachable contact channel", len(nearby))
            return 0

        # Every dispatch of the cycle is awaited as one batch; failures do not cancel siblings.
        outcomes = await asyncio.gather(
            *(self.senders[d.channel].send(d.target, d.message) for d in dispatches),
            return_exceptions=True,
        )
        delivered: set[UUID] = set()
        for dispatch, outcome in zip(dispatches, outcomes):
            if isinstance(outcome, BaseException):
                logger.error(
                    "Failed to send %s alert to user %s: %s",
                    dispatch.channel.value,
                    dispatch.user_id,
                    outcome,
                )
            elif outcome:
                delivered.add(dispatch.user_id)
            else:
                logger.warning(
                    "%s alert to user %s was not delivered", dispatch.channel.value, dispatch.user_id
                )

        logger.info(
            "Alert sent to %d of %d users within %.1f km (%d dispatches)",
            len(delivered),
            len(nearby),
            radius,
            len(dispatches),
        )
        return len(delivered)
