"""Temperature sensor discovery and classification."""

from dataclasses import dataclass

import psutil

CPU_SENSORS = ("coretemp", "k10temp", "cpu_thermal", "cpu-thermal", "cpu temperature")
SYSTEM_SENSORS = ("system", "board", "mobo", "ambient")
DISK_SENSORS = ("nvme", "drive", "hdd", "ssd", "disk")


@dataclass(frozen=True)
class SensorReading:
    """One temperature reading, keyed "<chip>_<label>" like "coretemp_package id 0"."""

    sensor_key: str
    temperature: float


def _matches(sensor: str, vocabulary: tuple[str, ...]) -> bool:
    lowered = sensor.lower()
    return any(word in lowered for word in vocabulary)


def is_cpu_temp(sensor: str) -> bool:
    return _matches(sensor, CPU_SENSORS)


def is_system_temp(sensor: str) -> bool:
    return _matches(sensor, SYSTEM_SENSORS)


def is_disk_temp(sensor: str) -> bool:
    return _matches(sensor, DISK_SENSORS)


def read_sensor_readings() -> list[SensorReading]:
    """Read every temperature sensor psutil exposes.

    Raises:
        AttributeError: psutil has no sensor support on this platform
        OSError: the sensor interface could not be read
    """
    temps = psutil.sensors_temperatures()
    readings: list[SensorReading] = []
    for chip, entries in (temps or {}).items():
        for index, entry in enumerate(entries):
            if entry.current is None:
                continue
            label = entry.label or str(index)
            readings.append(SensorReading(sensor_key=f"{chip}_{label}", temperature=float(entry.current)))
    return readings
