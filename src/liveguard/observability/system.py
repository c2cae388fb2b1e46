"""
System Usage
============

Process telemetry attached to inference results.

Thermal state mapping (hottest sensor wins):
    current >= critical           → critical
    current >= high               → serious
    current >= high - 10 °C       → fair
    otherwise                     → nominal
    no sensors on this platform   → unknown
"""

import logging
from typing import Any, Dict, Iterable, List, Optional

import psutil

from liveguard.models.result import SystemUsage


logger = logging.getLogger(__name__)


FAIR_MARGIN_C = 10.0

_SEVERITY = ["unknown", "nominal", "fair", "serious", "critical"]


def thermal_state(readings: Iterable[Any]) -> str:
    """
    Classify temperature readings into a coarse thermal state.

    Args:
        readings: Objects with `current`, `high` and `critical` attributes
            (psutil `shwtemp` entries); `high`/`critical` may be None

    Returns:
        One of unknown, nominal, fair, serious, critical
    """
    worst = "unknown"
    for reading in readings:
        current = reading.current
        if current is None:
            continue

        if reading.critical and current >= reading.critical:
            state = "critical"
        elif reading.high and current >= reading.high:
            state = "serious"
        elif reading.high and current >= reading.high - FAIR_MARGIN_C:
            state = "fair"
        else:
            state = "nominal"

        if _SEVERITY.index(state) > _SEVERITY.index(worst):
            worst = state
    return worst


class SystemMonitor:
    """
    Samples memory, CPU and thermal state of the current process.

    Example:
        monitor = SystemMonitor()
        usage = monitor.sample()
        print(f"{usage.memory_mb:.0f} MB, {usage.thermal_state}")
    """

    def __init__(self, pid: Optional[int] = None) -> None:
        self._process = psutil.Process(pid)
        # Primes cpu_percent so the first sample covers a real interval
        self._process.cpu_percent(interval=None)

    def sample(self) -> SystemUsage:
        rss = self._process.memory_info().rss
        return SystemUsage(
            memory_mb=rss / (1024 * 1024),
            cpu_percent=self._process.cpu_percent(interval=None),
            thermal_state=thermal_state(self._temperature_readings()),
        )

    @staticmethod
    def _temperature_readings() -> List[Any]:
        sensors = getattr(psutil, "sensors_temperatures", None)
        if sensors is None:
            return []
        groups: Dict[str, List[Any]] = sensors()
        return [reading for entries in groups.values() for reading in entries]
