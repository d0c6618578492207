"""System-wide constants, configuration and event records."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any

from .errors import InvalidParameterError

SYSTEM_VERSION_MAJOR = 1
SYSTEM_VERSION_MINOR = 0
SYSTEM_VERSION_PATCH = 0

SCREEN_WIDTH = 800
SCREEN_HEIGHT = 480
SCREEN_BPP = 16

WIFI_SSID_MAX_LEN = 32
WIFI_PASS_MAX_LEN = 64
WIFI_RETRY_MAX = 5

WEB_SERVER_PORT = 80
WEB_SERVER_MAX_CLIENTS = 4

STORAGE_MOUNT_POINT = "/storage"
BACKUP_INTERVAL_MS = 30 * 60 * 1000

MAX_TERRARIUMS = 16
MAX_SENSORS_PER_TERRARIUM = 8
SENSOR_READ_INTERVAL_MS = 30000

MAX_ANIMALS = 100
MAX_SPECIES_NAME_LEN = 64
MAX_NOTES_LEN = 512

MAX_STOCK_ITEMS = 200
MAX_ITEM_NAME_LEN = 64

MAX_TRANSACTIONS = 500
MAX_CERTIFICATE_LEN = 1024

SESSION_TIMEOUT_MS = 60 * 60 * 1000
MAX_LOGIN_ATTEMPTS = 3
LOCKOUT_TIME_MS = 15 * 60 * 1000

HEAP_MONITOR_INTERVAL_MS = 60000
MIN_FREE_HEAP_SIZE = 100 * 1024

LOG_BUFFER_SIZE = 4096
MAX_LOG_FILES = 10

DEVICE_NAME_SIZE = 32
TIMEZONE_SIZE = 32
EVENT_DESCRIPTION_SIZE = 256
DEFAULT_DEVICE_NAME = "LizardB-ESP32"
DEFAULT_TIMEZONE = "CET-1CEST,M3.5.0,M10.5.0/3"
DEFAULT_LOG_LEVEL = 3

_UINT16_MAX = 0xFFFF
_UINT32_MAX = 0xFFFFFFFF
_UINT8_MAX = 0xFF


def version_string() -> str:
    """Return the system version as ``major.minor.patch``."""
    return f"{SYSTEM_VERSION_MAJOR}.{SYSTEM_VERSION_MINOR}.{SYSTEM_VERSION_PATCH}"


def _check_text(name: str, value: str, size: int) -> None:
    # Buffers of ``size`` bytes keep room for a terminator.
    if not isinstance(value, str):
        raise InvalidParameterError(f"{name} must be a string")
    if len(value) >= size:
        raise InvalidParameterError(f"{name} must be shorter than {size} characters")


def _check_range(name: str, value: int, upper: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool) or not 0 <= value <= upper:
        raise InvalidParameterError(f"{name} must be an integer in 0..{upper}")


class SystemState(Enum):
    """Lifecycle state of the application."""

    INIT = 0
    RUNNING = 1
    ERROR = 2
    MAINTENANCE = 3
    SHUTDOWN = 4


class EventType(IntEnum):
    """Kinds of events emitted across the system."""

    SYSTEM_STARTUP = 0
    SYSTEM_SHUTDOWN = 1
    SENSOR_READING = 2
    ALARM_TRIGGERED = 3
    ANIMAL_ADDED = 4
    ANIMAL_UPDATED = 5
    TRANSACTION_CREATED = 6
    STOCK_LOW = 7
    BACKUP_COMPLETED = 8
    USER_LOGIN = 9
    USER_LOGOUT = 10
    ERROR_OCCURRED = 11


@dataclass
class SystemEvent:
    """An event delivered to registered callbacks."""

    type: EventType
    description: str = ""
    source_id: int = 0
    data: Any = None
    timestamp: int = field(default_factory=lambda: int(time.time()))

    def __post_init__(self) -> None:
        _check_text("description", self.description, EVENT_DESCRIPTION_SIZE)


@dataclass
class SystemConfig:
    """Device configuration; the defaults are the factory settings."""

    device_name: str = DEFAULT_DEVICE_NAME
    wifi_ssid: str = ""
    wifi_password: str = ""
    wifi_enabled: bool = False
    web_server_enabled: bool = True
    web_server_port: int = WEB_SERVER_PORT
    backup_interval_ms: int = BACKUP_INTERVAL_MS
    sensor_read_interval_ms: int = SENSOR_READ_INTERVAL_MS
    auto_backup_enabled: bool = True
    regulatory_check_enabled: bool = True
    timezone: str = DEFAULT_TIMEZONE
    log_level: int = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        _check_text("device_name", self.device_name, DEVICE_NAME_SIZE)
        _check_text("wifi_ssid", self.wifi_ssid, WIFI_SSID_MAX_LEN)
        _check_text("wifi_password", self.wifi_password, WIFI_PASS_MAX_LEN)
        _check_text("timezone", self.timezone, TIMEZONE_SIZE)
        _check_range("web_server_port", self.web_server_port, _UINT16_MAX)
        _check_range("backup_interval_ms", self.backup_interval_ms, _UINT32_MAX)
        _check_range("sensor_read_interval_ms", self.sensor_read_interval_ms, _UINT32_MAX)
        _check_range("log_level", self.log_level, _UINT8_MAX)


@dataclass
class SystemInfo:
    """A snapshot of the running system."""

    state: SystemState = SystemState.INIT
    uptime_seconds: int = 0
    free_heap_size: int = 0
    min_free_heap_size: int = 0
    total_animals: int = 0
    total_terrariums: int = 0
    total_transactions: int = 0
    active_alarms: int = 0
    last_backup: int = 0
    version: str = field(default_factory=version_string)