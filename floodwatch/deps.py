from fastapi import Depends
from starlette.requests import HTTPConnection

from floodwatch.core.config import Settings
from floodwatch.services.broadcast import ConnectionManager, LivePublisher
from floodwatch.services.container import MonitoringServices
from floodwatch.services.repositories import DeviceRegistry, ReadingStore
from floodwatch.services.thingspeak import ThingSpeakClient


def get_services(connection: HTTPConnection) -> MonitoringServices:
    return connection.app.state.services


def get_app_settings(services: MonitoringServices = Depends(get_services)) -> Settings:
    return services.settings


def get_thingspeak_client(services: MonitoringServices = Depends(get_services)) -> ThingSpeakClient:
    return services.thingspeak


def get_device_registry(services: MonitoringServices = Depends(get_services)) -> DeviceRegistry:
    return services.devices


def get_reading_store(services: MonitoringServices = Depends(get_services)) -> ReadingStore:
    return services.readings


def get_publisher(services: MonitoringServices = Depends(get_services)) -> LivePublisher:
    return services.publisher


def get_connection_manager(services: MonitoringServices = Depends(get_services)) -> ConnectionManager:
    return services.connections
