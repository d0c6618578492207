from dataclasses import replace

import pytest

from lizardb.config import (
    BACKUP_INTERVAL_MS,
    DEFAULT_TIMEZONE,
    SENSOR_READ_INTERVAL_MS,
    WEB_SERVER_PORT,
    EventType,
    SystemConfig,
    SystemEvent,
    SystemInfo,
    SystemState,
    version_string,
)
from lizardb.errors import InvalidParameterError


def test_version_string_follows_version_constants():
    assert version_string() == "1.0.0"


def test_default_config_matches_factory_settings():
    config = SystemConfig()
    assert config.device_name == "LizardB-ESP32"
    assert config.wifi_ssid == ""
    assert config.wifi_enabled is False
    assert config.web_server_enabled is True
    assert config.web_server_port == WEB_SERVER_PORT
    assert config.backup_interval_ms == BACKUP_INTERVAL_MS
    assert config.sensor_read_interval_ms == SENSOR_READ_INTERVAL_MS
    assert config.auto_backup_enabled is True
    assert config.regulatory_check_enabled is True
    assert config.timezone == "CET-1CEST,M3.5.0,M10.5.0/3"
    assert config.log_level == 3


def test_config_replace_round_trip():
    password = "password"
    config = replace(SystemConfig(), wifi_ssid="lab-net", wifi_password=password)
    again = replace(config)
    assert again == config
    assert again.wifi_ssid == "lab-net"
    assert again.timezone == DEFAULT_TIMEZONE


def test_device_name_too_long_is_rejected():
    with pytest.raises(InvalidParameterError):
        SystemConfig(device_name="x" * 32)


def test_device_name_at_limit_is_accepted():
    config = SystemConfig(device_name="x" * 31)
    assert len(config.device_name) == 31


@pytest.mark.parametrize("port", [-1, 70000])
def test_port_out_of_range_is_rejected(port):
    with pytest.raises(InvalidParameterError):
        SystemConfig(web_server_port=port)


def test_ssid_too_long_is_rejected():
    with pytest.raises(InvalidParameterError):
        SystemConfig(wifi_ssid="s" * 32)


def test_log_level_out_of_range_is_rejected():
    with pytest.raises(InvalidParameterError):
        SystemConfig(log_level=256)


def test_system_info_defaults():
    info = SystemInfo()
    assert info.state is SystemState.INIT
    assert info.version == version_string()
    assert info.total_animals == 0


def test_event_keeps_its_fields():
    event = SystemEvent(EventType.BACKUP_COMPLETED, "Sauvegarde automatique", timestamp=42)
    assert event.type is EventType.BACKUP_COMPLETED
    assert event.description == "Sauvegarde automatique"
    assert event.timestamp == 42
    assert event.source_id == 0
    assert event.data is None


def test_event_description_too_long_is_rejected():
    with pytest.raises(InvalidParameterError):
        SystemEvent(EventType.SYSTEM_STARTUP, "d" * 256)


def test_event_types_follow_declaration_order():
    assert [e.name for e in EventType][:2] == ["SYSTEM_STARTUP", "SYSTEM_SHUTDOWN"]
    assert EventType(len(EventType) - 1) is EventType.ERROR_OCCURRED