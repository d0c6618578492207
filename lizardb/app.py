"""Application lifecycle: service start-up, event dispatch, backups and system status."""

from __future__ import annotations

import argparse
import logging
import os
import threading
import time
from dataclasses import replace
from typing import Callable, Optional

from .config import (
    MIN_FREE_HEAP_SIZE,
    EventType,
    SystemConfig,
    SystemEvent,
    SystemInfo,
    SystemState,
    version_string,
)
from .errors import InvalidParameterError, LizardError, OperationTimeoutError
from .security import SecurityManager
from .stock import StockManager
from .terrarium import TerrariumMonitor
from .transactions import TransactionManager

_log = logging.getLogger(__name__)

EventCallback = Callable[[SystemEvent], None]

MAX_EVENT_CALLBACKS = 16
START_TIMEOUT_SECONDS = 10.0
MEMORY_CHECK_INTERVAL_SECONDS = 1.0


def _free_memory() -> Optional[int]:
    """Return the free physical memory in bytes, or None where it cannot be read."""
    try:
        pages = os.sysconf("SC_AVPHYS_PAGES")
        page_size = os.sysconf("SC_PAGE_SIZE")
    except (AttributeError, ValueError, OSError):
        return None
    if pages < 0 or page_size < 0:
        return None
    return pages * page_size


class _PeriodicTimer:
    """Calls a function every ``interval`` seconds on a daemon thread."""

    def __init__(self, interval: float, action: Callable[[], None], name: str) -> None:
        self._interval = interval
        self._action = action
        self._stop = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    def _run(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                self._action()
            except Exception:  # a failing callback must not kill the timer
                _log.exception("periodic action failed")

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread.is_alive() and self._thread is not threading.current_thread():
            self._thread.join()


class Application:
    """Owns the services, the configuration and the event callbacks."""

    def __init__(
        self,
        config: Optional[SystemConfig] = None,
        start_timeout: float = START_TIMEOUT_SECONDS,
    ) -> None:
        self._initial_config = config
        self._config = replace(config) if config is not None else SystemConfig()
        self._start_timeout = start_timeout
        self._state = SystemState.INIT
        self._callbacks: list[Optional[EventCallback]] = [None] * MAX_EVENT_CALLBACKS
        self._init_complete = threading.Event()
        self._shutdown_requested = threading.Event()
        self._backup_timer: Optional[_PeriodicTimer] = None
        self._started_at = time.monotonic()
        self._last_backup = 0
        self._min_free_memory: Optional[int] = None
        self.stock: Optional[StockManager] = None
        self.terrariums: Optional[TerrariumMonitor] = None
        self.transactions: Optional[TransactionManager] = None
        self.security: Optional[SecurityManager] = None

    @property
    def state(self) -> SystemState:
        return self._state

    # --- lifecycle ------------------------------------------------------

    def _load_config(self) -> None:
        # Factory defaults unless a configuration was supplied.
        self._config = (
            replace(self._initial_config) if self._initial_config is not None else SystemConfig()
        )

    def _on_backup(self) -> None:
        self._last_backup = int(time.time())
        self.emit_event(SystemEvent(EventType.BACKUP_COMPLETED, "Automatic backup"))

    def _start_backup_timer(self) -> None:
        interval = self._config.backup_interval_ms / 1000
        if not self._config.auto_backup_enabled or interval <= 0:
            return
        self._backup_timer = _PeriodicTimer(interval, self._on_backup, "backup_timer")
        self._backup_timer.start()

    def init(self) -> None:
        """Load the configuration and bring up every service."""
        if self._init_complete.is_set():
            return
        _log.info("initialising application")
        self._load_config()
        self.stock = StockManager()
        interval = self._config.sensor_read_interval_ms / 1000
        self.terrariums = (
            TerrariumMonitor(interval=interval) if interval > 0 else TerrariumMonitor()
        )
        self.transactions = TransactionManager()
        self.security = SecurityManager()
        self._start_backup_timer()
        self._state = SystemState.RUNNING
        self._shutdown_requested.clear()
        self._init_complete.set()
        _log.info("application initialised")

    def start(self) -> None:
        """Start monitoring once initialisation has completed."""
        _log.info("starting application")
        if not self._init_complete.wait(self._start_timeout):
            raise OperationTimeoutError("initialisation did not complete")
        assert self.terrariums is not None
        self.terrariums.start()
        self.emit_event(SystemEvent(EventType.SYSTEM_STARTUP, "System started"))
        _log.info("application started")

    def shutdown(self) -> None:
        """Stop the timers and services and announce the shutdown."""
        _log.info("stopping application")
        self._state = SystemState.SHUTDOWN
        self._shutdown_requested.set()
        if self._backup_timer is not None:
            self._backup_timer.stop()
            self._backup_timer = None
        if self.terrariums is not None:
            self.terrariums.stop()
        self.emit_event(SystemEvent(EventType.SYSTEM_SHUTDOWN, "System stopped"))
        _log.info("application stopped")

    # --- events ---------------------------------------------------------

    def register_event_callback(self, event_type: int, callback: Optional[EventCallback]) -> None:
        """Set the callback for one event type; ``None`` removes it."""
        try:
            index = int(event_type)
        except (TypeError, ValueError):
            raise InvalidParameterError("event_type must be an integer") from None
        if not 0 <= index < MAX_EVENT_CALLBACKS:
            raise InvalidParameterError(f"event_type must be in 0..{MAX_EVENT_CALLBACKS - 1}")
        self._callbacks[index] = callback

    def emit_event(self, event: SystemEvent) -> None:
        """Log an event and pass it to the callback registered for its type."""
        if event is None:
            raise InvalidParameterError("event is required")
        _log.info("event: %s", event.description)
        index = int(event.type)
        if 0 <= index < MAX_EVENT_CALLBACKS:
            callback = self._callbacks[index]
            if callback is not None:
                callback(event)

    # --- status and configuration ---------------------------------------

    def _sample_memory(self) -> int:
        free = _free_memory()
        if free is None:
            return 0
        if self._min_free_memory is None or free < self._min_free_memory:
            self._min_free_memory = free
        return free

    def system_info(self) -> SystemInfo:
        """Return a snapshot of the running system."""
        free = self._sample_memory()
        return SystemInfo(
            state=self._state,
            uptime_seconds=int(time.monotonic() - self._started_at),
            free_heap_size=free,
            min_free_heap_size=self._min_free_memory or 0,
            total_animals=0,
            total_terrariums=len(self.terrariums) if self.terrariums is not None else 0,
            total_transactions=len(self.transactions) if self.transactions is not None else 0,
            active_alarms=(
                len(self.terrariums.active_alarms()) if self.terrariums is not None else 0
            ),
            last_backup=self._last_backup,
            version=version_string(),
        )

    def get_config(self) -> SystemConfig:
        """Return a copy of the current configuration."""
        return replace(self._config)

    def set_config(self, config: SystemConfig) -> None:
        """Replace the current configuration with a copy of ``config``."""
        if config is None:
            raise InvalidParameterError("config is required")
        self._config = replace(config)

    def check_memory(self) -> bool:
        """Warn when free memory falls below the minimum; return whether it is low."""
        free = _free_memory()
        if free is not None and free < MIN_FREE_HEAP_SIZE:
            _log.warning("low memory: %d bytes", free)
            return True
        return False

    def wait_for_shutdown(self, timeout: Optional[float] = None) -> bool:
        """Block until shutdown is requested or ``timeout`` elapses."""
        return self._shutdown_requested.wait(timeout)


def main(argv: Optional[list[str]] = None) -> int:
    """Start the application and supervise it until interrupted."""
    parser = argparse.ArgumentParser(prog="lizardb", description="Reptile breeding management")
    parser.add_argument(
        "--duration", type=float, default=None,
        help="stop after this many seconds instead of running until interrupted",
    )
    args = parser.parse_args(argv)
    if args.duration is not None and args.duration < 0:
        parser.error("--duration must not be negative")

    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    _log.info("=== Reptile breeding management system ===")
    _log.info("version: %s", version_string())

    app = Application()
    try:
        app.init()
    except LizardError as exc:
        _log.error("application initialisation failed: %s", exc)
        return 1
    try:
        app.start()
    except LizardError as exc:
        _log.error("application start failed: %s", exc)
        app.shutdown()
        return 1
    _log.info("system started")

    deadline = None if args.duration is None else time.monotonic() + args.duration
    try:
        while True:
            if deadline is not None:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                wait = min(MEMORY_CHECK_INTERVAL_SECONDS, remaining)
            else:
                wait = MEMORY_CHECK_INTERVAL_SECONDS
            if app.wait_for_shutdown(wait):
                break
            app.check_memory()
    except KeyboardInterrupt:
        pass
    finally:
        if app.state is not SystemState.SHUTDOWN:
            app.shutdown()
    return 0