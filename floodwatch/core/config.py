from functools import lru_cache
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    app_name: str = "Flood Monitoring Backend"
    environment: str = "dev"
    log_level: str = "INFO"
    database_url: str = "sqlite+aiosqlite:///./floodwatch.db"
    cors_origins: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["*"])

    # ThingSpeak provider
    thingspeak_base_url: str = "https://api.thingspeak.com/channels"
    thingspeak_api_key: str = ""
    thingspeak_timeout_seconds: float = 10.0
    fetch_batch_size: int = 10
    broadcast_batch_size: int = 1

    # Standalone rainfall station
    rain_channel_id: str = ""
    rain_api_key: str = ""
    rain_batch_size: int = 2

    # Timers
    scheduler_enabled: bool = True
    telemetry_interval_seconds: float = 20.0
    alert_interval_seconds: float = 20.0
    broadcast_interval_seconds: float = 5.0
    skip_overlapping_cycles: bool = True

    # Alerting
    alert_radius_km: float = 10.0
    alert_field: int = 5
    alert_rules: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["indicator_field"])
    water_level_threshold: float = 0.0
    rain_status_threshold: int = 1
    alert_message: str = (
        "Alert: Water level has increased significantly! "
        "Flood alert triggered. Please take necessary precautions."
    )

    # Email (SendGrid)
    email_enabled: bool = True
    sendgrid_api_key: str = ""
    sendgrid_from_email: str = "alerts@floodwatch.local"
    email_subject: str = "Flood alert"

    # SMS gateway (Notify.lk compatible)
    sms_enabled: bool = True
    sms_gateway_url: str = "https://app.notify.lk/api/v1/send"
    sms_user_id: str = ""
    sms_api_key: str = ""
    sms_sender_id: str = "NotifyDEMO"
    sms_country_code: str = "94"

    model_config = SettingsConfigDict(env_prefix="FLOODWATCH_", env_file=".env", extra="ignore")

    @field_validator("cors_origins", "alert_rules", mode="before")
    @classmethod
    def _split_list(cls, value: str | list[str] | None) -> list[str]:
        if value is None or value == "":
            return []
        if isinstance(value, list):
            return value
        return [item.strip() for item in value.split(",") if item.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
