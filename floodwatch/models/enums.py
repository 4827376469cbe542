from enum import Enum


class UserRole(str, Enum):
    ADMIN = "admin"
    USER = "user"


class NotificationChannel(str, Enum):
    EMAIL = "email"
    SMS = "sms"


class AlertRuleName(str, Enum):
    INDICATOR_FIELD = "indicator_field"
    WATER_LEVEL = "water_level"
    RAIN_STATUS = "rain_status"
