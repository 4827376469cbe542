"""Storage-backed registries and the append-only reading store."""
from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from floodwatch.models.entities import Device, Reading, User
from floodwatch.schemas.telemetry import ReadingCreate

logger = logging.getLogger(__name__)


class DeviceRegistry:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_devices(self) -> list[Device]:
        async with self._session_factory() as session:
            result = await session.execute(select(Device).order_by(Device.created_at, Device.name))
            return list(result.scalars().all())

    async def get_primary_device(self) -> Optional[Device]:
        """The device whose indicator drives proximity alerts (oldest registration)."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Device).order_by(Device.created_at, Device.name).limit(1)
            )
            return result.scalar_one_or_none()

    async def get_device(self, device_id: UUID) -> Optional[Device]:
        async with self._session_factory() as session:
            return await session.get(Device, device_id)


class UserRegistry:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def list_users(self) -> list[User]:
        async with self._session_factory() as session:
            result = await session.execute(select(User))
            return list(result.scalars().all())


class ReadingStore:
    """Append-only store keyed by device and provider entry id."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def append(self, record: ReadingCreate) -> bool:
        """Persist one reading; returns False if it was not stored."""
        async with self._session_factory() as session:
            session.add(Reading(**record.model_dump()))
            try:
                await session.commit()
            except IntegrityError:
                await session.rollback()
                logger.debug(
                    "Entry %s of device %s already stored", record.entry_id, record.device_id
                )
                return False
            except SQLAlchemyError as exc:
                await session.rollback()
                logger.error(
                    "Failed to store entry %s of device %s: %s",
                    record.entry_id,
                    record.device_id,
                    exc,
                )
                return False
        return True

    async def list_for_device(self, device_id: UUID, limit: int | None = None) -> list[Reading]:
        async with self._session_factory() as session:
            query = (
                select(Reading)
                .where(Reading.device_id == device_id)
                .order_by(Reading.recorded_at.desc(), Reading.entry_id.desc())
            )
            if limit is not None:
                query = query.limit(limit)
            result = await session.execute(query)
            return list(result.scalars().all())

    async def latest_for_device(self, device_id: UUID) -> Optional[Reading]:
        readings = await self.list_for_device(device_id, limit=1)
        return readings[0] if readings else None
