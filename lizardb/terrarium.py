"""Terrarium registry, sensor readings, threshold alarms and equipment control."""

from __future__ import annotations

import copy
import logging
import threading
import time
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Callable

from .config import MAX_SENSORS_PER_TERRARIUM, MAX_TERRARIUMS, SENSOR_READ_INTERVAL_MS
from .errors import InvalidParameterError, NotFoundError, OutOfCapacityError

_log = logging.getLogger(__name__)

EQUIPMENT_FLAGS = {
    "heating": "heating_enabled",
    "lighting": "lighting_enabled",
    "humidifier": "humidifier_enabled",
}


class SensorType(IntEnum):
    """Quantity measured by a sensor."""

    TEMPERATURE = 0
    HUMIDITY = 1
    LIGHT = 2
    UV = 3
    PH = 4
    CO2 = 5


@dataclass
class Sensor:
    """A sensor fitted to a terrarium."""

    name: str = ""
    type: SensorType = SensorType.TEMPERATURE
    gpio_pin: int = 0
    current_value: float = 0.0
    min_threshold: float = 0.0
    max_threshold: float = 0.0
    alarm_enabled: bool = False
    last_reading: int = 0
    is_active: bool = True
    id: int = 0
    terrarium_id: int = 0

    def __post_init__(self) -> None:
        try:
            self.type = SensorType(self.type)
        except ValueError as exc:
            raise InvalidParameterError(str(exc)) from None


@dataclass
class Terrarium:
    """An enclosure with its sensors and equipment state."""

    name: str = ""
    description: str = ""
    animal_id: int = 0
    sensors: list[Sensor] = field(default_factory=list)
    heating_enabled: bool = False
    lighting_enabled: bool = False
    humidifier_enabled: bool = False
    id: int = 0
    created_at: int = 0
    updated_at: int = 0

    def __post_init__(self) -> None:
        if len(self.sensors) > MAX_SENSORS_PER_TERRARIUM:
            raise InvalidParameterError(
                f"a terrarium holds at most {MAX_SENSORS_PER_TERRARIUM} sensors"
            )

    @property
    def sensor_count(self) -> int:
        return len(self.sensors)


@dataclass
class Alarm:
    """A reading that left a sensor's allowed range."""

    id: int
    terrarium_id: int
    sensor_id: int
    sensor_type: SensorType
    trigger_value: float
    threshold_value: float
    triggered_at: int
    message: str = ""
    is_active: bool = True
    acknowledged: bool = False


@dataclass
class SensorReading:
    """One historical sensor value."""

    sensor_id: int
    timestamp: int
    value: float


@dataclass
class TerrariumStats:
    """Aggregated figures over all terrariums."""

    total_terrariums: int = 0
    active_sensors: int = 0
    active_alarms: int = 0
    total_readings_today: int = 0
    avg_temperature: float = 0.0
    avg_humidity: float = 0.0
    last_reading_time: int = 0


def _current_value(sensor: Sensor) -> float:
    return sensor.current_value


class TerrariumMonitor:
    """In-memory terrarium registry with a background polling thread."""

    def __init__(
        self,
        capacity: int = MAX_TERRARIUMS,
        interval: float = SENSOR_READ_INTERVAL_MS / 1000,
        reader: Callable[[Sensor], float] = _current_value,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if capacity < 0:
            raise InvalidParameterError("capacity must not be negative")
        if interval <= 0:
            raise InvalidParameterError("interval must be positive")
        self._capacity = capacity
        self._interval = interval
        self._reader = reader
        self._clock = clock
        self._lock = threading.RLock()
        self._terrariums: list[Terrarium] = []
        self._alarms: list[Alarm] = []
        self._readings: list[SensorReading] = []
        self._next_id = 1
        self._next_sensor_id = 1
        self._next_alarm_id = 1
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def __len__(self) -> int:
        return len(self._terrariums)

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _now(self) -> int:
        return int(self._clock())

    @staticmethod
    def _limit(max_count: int | None) -> int | None:
        if max_count is not None and max_count < 0:
            raise InvalidParameterError("max_count must not be negative")
        return max_count

    def _find(self, terrarium_id: int) -> Terrarium:
        for terrarium in self._terrariums:
            if terrarium.id == terrarium_id:
                return terrarium
        raise NotFoundError(f"no terrarium with id {terrarium_id}")

    def _find_sensor(self, sensor_id: int) -> Sensor:
        for terrarium in self._terrariums:
            for sensor in terrarium.sensors:
                if sensor.id == sensor_id:
                    return sensor
        raise NotFoundError(f"no sensor with id {sensor_id}")

    def _attach(self, terrarium: Terrarium, sensor: Sensor) -> Sensor:
        stored = replace(sensor, id=self._next_sensor_id, terrarium_id=terrarium.id)
        self._next_sensor_id += 1
        terrarium.sensors.append(stored)
        return stored

    # --- monitoring -----------------------------------------------------

    def _run(self) -> None:
        _log.info("monitoring task started")
        while True:
            self._poll()
            if self._stop.wait(self._interval):
                break
        _log.info("monitoring task stopped")

    def _poll(self) -> None:
        with self._lock:
            sensor_ids = [
                sensor.id
                for terrarium in self._terrariums
                for sensor in terrarium.sensors
                if sensor.is_active
            ]
        for sensor_id in sensor_ids:
            try:
                self.read_sensor(sensor_id)
            except NotFoundError:
                continue
            except Exception:  # a failing sensor must not stop the others
                _log.exception("reading sensor %d failed", sensor_id)

    def start(self) -> None:
        """Start polling every active sensor; does nothing if already running."""
        with self._lock:
            if self.is_running:
                return
            self._stop.clear()
            self._thread = threading.Thread(
                target=self._run, name="terrarium_monitor", daemon=True
            )
            self._thread.start()

    def stop(self) -> None:
        """Stop polling and wait for the thread to finish."""
        self._stop.set()
        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    # --- terrariums -----------------------------------------------------

    def add(self, terrarium: Terrarium) -> Terrarium:
        """Store ``terrarium`` with a fresh id and timestamps, and return it."""
        if terrarium is None:
            raise InvalidParameterError("terrarium is required")
        with self._lock:
            if len(self._terrariums) >= self._capacity:
                raise OutOfCapacityError("maximum number of terrariums reached")
            terrarium.id = self._next_id
            self._next_id += 1
            terrarium.created_at = self._now()
            terrarium.updated_at = terrarium.created_at
            stored = copy.deepcopy(terrarium)
            stored.sensors = []
            for sensor in terrarium.sensors:
                self._attach(stored, sensor)
            terrarium.sensors = [replace(s) for s in stored.sensors]
            self._terrariums.append(stored)
            return terrarium

    def update(self, terrarium: Terrarium) -> None:
        """Replace the stored terrarium that has ``terrarium.id``."""
        if terrarium is None:
            raise InvalidParameterError("terrarium is required")
        with self._lock:
            for index, stored in enumerate(self._terrariums):
                if stored.id == terrarium.id:
                    updated = copy.deepcopy(terrarium)
                    updated.updated_at = self._now()
                    self._terrariums[index] = updated
                    return
        raise NotFoundError(f"no terrarium with id {terrarium.id}")

    def delete(self, terrarium_id: int) -> None:
        """Remove a terrarium, keeping the order of the others."""
        with self._lock:
            self._terrariums.remove(self._find(terrarium_id))

    def get(self, terrarium_id: int) -> Terrarium:
        """Return a copy of the terrarium with ``terrarium_id``."""
        with self._lock:
            return copy.deepcopy(self._find(terrarium_id))

    def all(self, max_count: int | None = None) -> list[Terrarium]:
        """Return copies of the terrariums in insertion order, at most ``max_count``."""
        limit = self._limit(max_count)
        with self._lock:
            return [copy.deepcopy(t) for t in self._terrariums[:limit]]

    # --- sensors and alarms ---------------------------------------------

    def add_sensor(self, terrarium_id: int, sensor: Sensor) -> Sensor:
        """Fit ``sensor`` to a terrarium and return the stored copy with its id."""
        if sensor is None:
            raise InvalidParameterError("sensor is required")
        with self._lock:
            terrarium = self._find(terrarium_id)
            if len(terrarium.sensors) >= MAX_SENSORS_PER_TERRARIUM:
                raise OutOfCapacityError("maximum number of sensors reached")
            stored = self._attach(terrarium, sensor)
            terrarium.updated_at = self._now()
            return replace(stored)

    def read_sensor(self, sensor_id: int) -> float:
        """Take a reading, record it and raise an alarm if it is out of range."""
        with self._lock:
            sensor = self._find_sensor(sensor_id)
            value = float(self._reader(replace(sensor)))
            now = self._now()
            sensor.current_value = value
            sensor.last_reading = now
            self._readings.append(SensorReading(sensor.id, now, value))
            if sensor.alarm_enabled:
                self._check_thresholds(sensor, value, now)
            return value

    def _check_thresholds(self, sensor: Sensor, value: float, now: int) -> None:
        if value < sensor.min_threshold:
            threshold, direction = sensor.min_threshold, "below"
        elif value > sensor.max_threshold:
            threshold, direction = sensor.max_threshold, "above"
        else:
            return
        if any(a.sensor_id == sensor.id and a.is_active for a in self._alarms):
            return
        self._alarms.append(
            Alarm(
                id=self._next_alarm_id,
                terrarium_id=sensor.terrarium_id,
                sensor_id=sensor.id,
                sensor_type=sensor.type,
                trigger_value=value,
                threshold_value=threshold,
                triggered_at=now,
                message=f"{sensor.name or sensor.type.name}: {value:.2f} {direction} {threshold:.2f}",
            )
        )
        self._next_alarm_id += 1

    def active_alarms(self, max_count: int | None = None) -> list[Alarm]:
        """Return active, unacknowledged alarms, oldest first."""
        limit = self._limit(max_count)
        with self._lock:
            found = [replace(a) for a in self._alarms if a.is_active and not a.acknowledged]
        return found[:limit]

    def acknowledge_alarm(self, alarm_id: int) -> None:
        """Mark an alarm as acknowledged and no longer active."""
        with self._lock:
            for alarm in self._alarms:
                if alarm.id == alarm_id:
                    alarm.acknowledged = True
                    alarm.is_active = False
                    return
        raise NotFoundError(f"no alarm with id {alarm_id}")

    def stats(self) -> TerrariumStats:
        """Compute monitoring statistics."""
        with self._lock:
            now = self._now()
            today = time.localtime(now)[:3]
            sensors = [s for t in self._terrariums for s in t.sensors if s.is_active]
            temperatures = [
                s.current_value for s in sensors
                if s.type is SensorType.TEMPERATURE and s.last_reading
            ]
            humidities = [
                s.current_value for s in sensors
                if s.type is SensorType.HUMIDITY and s.last_reading
            ]
            return TerrariumStats(
                total_terrariums=len(self._terrariums),
                active_sensors=len(sensors),
                active_alarms=sum(1 for a in self._alarms if a.is_active),
                total_readings_today=sum(
                    1 for r in self._readings if time.localtime(r.timestamp)[:3] == today
                ),
                avg_temperature=sum(temperatures) / len(temperatures) if temperatures else 0.0,
                avg_humidity=sum(humidities) / len(humidities) if humidities else 0.0,
                last_reading_time=max((r.timestamp for r in self._readings), default=0),
            )

    def control_equipment(self, terrarium_id: int, equipment_type: str, enable: bool) -> None:
        """Switch heating, lighting or the humidifier of a terrarium on or off."""
        if equipment_type is None:
            raise InvalidParameterError("equipment_type is required")
        flag = EQUIPMENT_FLAGS.get(equipment_type.lower())
        if flag is None:
            raise InvalidParameterError(f"unknown equipment type {equipment_type!r}")
        with self._lock:
            terrarium = self._find(terrarium_id)
            setattr(terrarium, flag, bool(enable))
            terrarium.updated_at = self._now()
        _log.info("terrarium %d: %s = %s", terrarium_id, equipment_type, "ON" if enable else "OFF")