"""Composition root wiring storage, provider, transports and polling jobs."""
from __future__ import annotations

from dataclasses import dataclass

import httpx
from sendgrid import SendGridAPIClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from floodwatch.core.config import Settings
from floodwatch.db.session import build_engine, build_session_factory
from floodwatch.services.alert_rules import build_rules
from floodwatch.services.alerting import AlertEvaluator, AlertPipeline
from floodwatch.services.broadcast import ConnectionManager, LivePublisher
from floodwatch.services.notifications import ProximityNotifier
from floodwatch.services.repositories import DeviceRegistry, ReadingStore, UserRegistry
from floodwatch.services.telemetry_fetcher import TelemetryFetcher
from floodwatch.services.thingspeak import ThingSpeakClient
from floodwatch.services.transports import EmailSender, SmsSender
from floodwatch.workers.scheduler import PeriodicJob, PollingScheduler


@dataclass
class MonitoringServices:
    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    thingspeak: ThingSpeakClient
    sms: SmsSender
    devices: DeviceRegistry
    users: UserRegistry
    readings: ReadingStore
    notifier: ProximityNotifier
    fetcher: TelemetryFetcher
    alerts: AlertPipeline
    connections: ConnectionManager
    publisher: LivePublisher

    def build_scheduler(self, include_broadcast: bool = True) -> PollingScheduler:
        settings = self.settings
        jobs = [
            PeriodicJob("telemetry", settings.telemetry_interval_seconds, self.fetcher.run_cycle),
            PeriodicJob("alerts", settings.alert_interval_seconds, self.alerts.run_cycle),
        ]
        if include_broadcast:
            jobs.append(
                PeriodicJob("broadcast", settings.broadcast_interval_seconds, self.publisher.run_cycle)
            )
        return PollingScheduler(jobs, skip_overlapping=settings.skip_overlapping_cycles)

    async def aclose(self) -> None:
        await self.thingspeak.close()
        await self.sms.close()
        await self.engine.dispose()


def build_services(
    settings: Settings,
    provider_transport: httpx.AsyncBaseTransport | None = None,
    sms_transport: httpx.AsyncBaseTransport | None = None,
    sendgrid_client: SendGridAPIClient | None = None,
) -> MonitoringServices:
    engine = build_engine(settings.database_url)
    session_factory = build_session_factory(engine)

    thingspeak = ThingSpeakClient(
        settings.thingspeak_base_url,
        api_key=settings.thingspeak_api_key,
        timeout=settings.thingspeak_timeout_seconds,
        transport=provider_transport,
    )
    email = EmailSender(
        settings.sendgrid_api_key,
        from_email=settings.sendgrid_from_email,
        subject=settings.email_subject,
        client=sendgrid_client,
    )
    sms = SmsSender(
        settings.sms_gateway_url,
        user_id=settings.sms_user_id,
        api_key=settings.sms_api_key,
        sender_id=settings.sms_sender_id,
        country_code=settings.sms_country_code,
        transport=sms_transport,
    )
    senders = []
    if settings.email_enabled:
        senders.append(email)
    if settings.sms_enabled:
        senders.append(sms)

    devices = DeviceRegistry(session_factory)
    users = UserRegistry(session_factory)
    readings = ReadingStore(session_factory)
    notifier = ProximityNotifier(users, senders, radius_km=settings.alert_radius_km)
    evaluator = AlertEvaluator(
        thingspeak,
        readings,
        build_rules(
            settings.alert_rules,
            water_level_threshold=settings.water_level_threshold,
            rain_status_threshold=settings.rain_status_threshold,
        ),
        alert_field=settings.alert_field,
    )
    connections = ConnectionManager()

    return MonitoringServices(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        thingspeak=thingspeak,
        sms=sms,
        devices=devices,
        users=users,
        readings=readings,
        notifier=notifier,
        fetcher=TelemetryFetcher(thingspeak, devices, readings, batch_size=settings.fetch_batch_size),
        alerts=AlertPipeline(devices, evaluator, notifier, settings.alert_message),
        connections=connections,
        publisher=LivePublisher(
            thingspeak, devices, connections, batch_size=settings.broadcast_batch_size
        ),
    )
