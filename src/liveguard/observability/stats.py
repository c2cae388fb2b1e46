"""
Performance Tracker
===================

Per-stream latency and throughput statistics.

Observability ONLY. Nothing here influences scoring or scheduling.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PerformanceSnapshot:
    """Stats over the current reporting window."""

    frames: int
    avg_latency_ms: float
    fps: float
    inference_count: int
    avg_inference_ms: float


class PerformanceTracker:
    """
    Tracks frame latency and logs a summary every `interval_sec`.

    Example:
        tracker = PerformanceTracker(interval_sec=5.0)
        tracker.record_frame(latency_ms=3.2)
    """

    def __init__(
        self,
        interval_sec: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        name: str = "stream",
    ) -> None:
        self.interval_sec = interval_sec
        self.name = name
        self._clock = clock
        self._lock = threading.Lock()

        self._total_frames = 0
        self._total_inferences = 0
        self._last_snapshot: Optional[PerformanceSnapshot] = None
        self._reset_window(self._clock())

    def _reset_window(self, now: float) -> None:
        self._window_start = now
        self._window_frames = 0
        self._window_latency_ms = 0.0
        self._window_inferences = 0
        self._window_inference_ms = 0.0

    def record_frame(self, latency_ms: float) -> Optional[PerformanceSnapshot]:
        """
        Record one processed frame.

        Returns:
            Snapshot if a reporting window just closed, else None
        """
        with self._lock:
            self._total_frames += 1
            self._window_frames += 1
            self._window_latency_ms += latency_ms
            return self._maybe_report()

    def record_inference(self, latency_ms: float) -> None:
        """Record one completed classifier call."""
        with self._lock:
            self._total_inferences += 1
            self._window_inferences += 1
            self._window_inference_ms += latency_ms

    def _maybe_report(self) -> Optional[PerformanceSnapshot]:
        now = self._clock()
        elapsed = now - self._window_start
        if elapsed < self.interval_sec:
            return None

        frames = self._window_frames
        snapshot = PerformanceSnapshot(
            frames=frames,
            avg_latency_ms=self._window_latency_ms / frames if frames else 0.0,
            fps=frames / elapsed if elapsed > 0 else 0.0,
            inference_count=self._window_inferences,
            avg_inference_ms=(
                self._window_inference_ms / self._window_inferences
                if self._window_inferences
                else 0.0
            ),
        )

        logger.info(
            f"Performance [{self.name}]: avg={snapshot.avg_latency_ms:.2f}ms, "
            f"fps={snapshot.fps:.1f}, inferences={snapshot.inference_count}, "
            f"avg_inference={snapshot.avg_inference_ms:.1f}ms"
        )

        self._last_snapshot = snapshot
        self._reset_window(now)
        return snapshot

    def reset(self) -> None:
        with self._lock:
            self._total_frames = 0
            self._total_inferences = 0
            self._last_snapshot = None
            self._reset_window(self._clock())

    def metrics(self) -> dict:
        """Get cumulative counters and the last closed window."""
        with self._lock:
            last = self._last_snapshot
            return {
                "total_frames": self._total_frames,
                "total_inferences": self._total_inferences,
                "avg_latency_ms": last.avg_latency_ms if last else None,
                "fps": last.fps if last else None,
                "avg_inference_ms": last.avg_inference_ms if last else None,
            }
