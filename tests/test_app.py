import threading

import pytest

from lizardb.app import Application, main
from lizardb.config import EventType, SystemConfig, SystemEvent, SystemState
from lizardb.errors import InvalidParameterError, OperationTimeoutError
from lizardb.terrarium import Terrarium


@pytest.fixture
def app():
    application = Application(SystemConfig(auto_backup_enabled=False))
    application.init()
    yield application
    if application.state is not SystemState.SHUTDOWN:
        application.shutdown()


def test_initial_state_is_init():
    assert Application().state is SystemState.INIT


def test_init_sets_running(app):
    assert app.state is SystemState.RUNNING
    assert len(app.stock) == 0


def test_start_before_init_times_out():
    application = Application(start_timeout=0.01)
    with pytest.raises(OperationTimeoutError):
        application.start()


def test_start_emits_startup_event(app):
    seen = []
    app.register_event_callback(EventType.SYSTEM_STARTUP, seen.append)
    app.start()
    assert len(seen) == 1
    assert seen[0].type is EventType.SYSTEM_STARTUP
    assert app.terrariums.is_running


def test_shutdown_emits_event_and_stops(app):
    seen = []
    app.register_event_callback(EventType.SYSTEM_SHUTDOWN, seen.append)
    app.start()
    app.shutdown()
    assert app.state is SystemState.SHUTDOWN
    assert [e.type for e in seen] == [EventType.SYSTEM_SHUTDOWN]
    assert not app.terrariums.is_running


def test_callback_only_for_its_type(app):
    seen = []
    app.register_event_callback(EventType.STOCK_LOW, seen.append)
    app.emit_event(SystemEvent(EventType.USER_LOGIN, "login"))
    app.emit_event(SystemEvent(EventType.STOCK_LOW, "low"))
    assert [e.description for e in seen] == ["low"]


def test_register_none_removes_callback(app):
    seen = []
    app.register_event_callback(EventType.USER_LOGOUT, seen.append)
    app.register_event_callback(EventType.USER_LOGOUT, None)
    app.emit_event(SystemEvent(EventType.USER_LOGOUT, "bye"))
    assert seen == []


@pytest.mark.parametrize("event_type", [16, -1, 100])
def test_register_out_of_range_type(app, event_type):
    with pytest.raises(InvalidParameterError):
        app.register_event_callback(event_type, lambda e: None)


def test_highest_slot_is_accepted(app):
    seen = []
    app.register_event_callback(15, seen.append)
    event = SystemEvent(EventType.ERROR_OCCURRED, "x")
    app.emit_event(event)
    assert seen == []


def test_emit_none_raises(app):
    with pytest.raises(InvalidParameterError):
        app.emit_event(None)


def test_default_config():
    config = Application().get_config()
    assert config.device_name == "LizardB-ESP32"
    assert config.web_server_enabled is True
    assert config.timezone == "CET-1CEST,M3.5.0,M10.5.0/3"


def test_get_config_returns_copy(app):
    original_name = app.get_config().device_name
    config = app.get_config()
    config.device_name = "changed"
    assert config.device_name == "changed"
    assert app.get_config().device_name == original_name


def test_set_config_round_trip(app):
    config = SystemConfig(device_name="Vivarium", log_level=4)
    app.set_config(config)
    assert app.get_config() == config


def test_set_config_none_raises(app):
    with pytest.raises(InvalidParameterError):
        app.set_config(None)


def test_system_info_counts_and_version(app):
    app.terrariums.add(Terrarium(name="Gecko"))
    info = app.system_info()
    assert info.version == "1.0.0"
    assert info.state is SystemState.RUNNING
    assert info.total_terrariums == 1
    assert info.total_transactions == 0
    assert info.uptime_seconds >= 0
    assert info.min_free_heap_size <= info.free_heap_size or info.free_heap_size == 0


def test_backup_timer_emits_event():
    application = Application(SystemConfig(backup_interval_ms=20))
    fired = threading.Event()
    seen = []

    def on_backup(event):
        seen.append(event)
        fired.set()

    application.register_event_callback(EventType.BACKUP_COMPLETED, on_backup)
    application.init()
    try:
        assert fired.wait(2.0)
    finally:
        application.shutdown()
    assert seen[0].type is EventType.BACKUP_COMPLETED
    assert application.system_info().last_backup > 0


def test_main_runs_for_duration():
    assert main(["--duration", "0"]) == 0


def test_main_rejects_negative_duration():
    with pytest.raises(SystemExit):
        main(["--duration", "-1"])