"""
Observability Module
====================

Performance statistics and process telemetry for liveguard streams.

DESIGN RULES:
    - Does NOT import scheduler logic
    - Does NOT influence decisions
"""

from liveguard.observability.stats import PerformanceSnapshot, PerformanceTracker
from liveguard.observability.system import SystemMonitor, thermal_state

__all__ = [
    "PerformanceTracker",
    "PerformanceSnapshot",
    "SystemMonitor",
    "thermal_state",
]
