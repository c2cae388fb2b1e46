"""
Test Configuration
==================

Pytest fixtures and test configuration for LiveGuard.
"""

import numpy as np
import pytest

from liveguard.config import PipelineConfig, ProcessingMode, Settings
from liveguard.stream.frame import NormalizedFrame


FRAME_SIZE = 224


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture
def rng():
    """Seeded random generator."""
    return np.random.default_rng(1234)


@pytest.fixture
def make_frame(rng):
    """
    Factory for NormalizedFrames.

    kind="noise" gives broadband content (spectral score pinned at the top
    of the scale), kind="zeros" gives an empty spectrum (score 0).
    """

    def _make(frame_id=None, kind="noise", size=FRAME_SIZE, timestamp=None):
        if kind == "noise":
            pixels = rng.random((size, size, 3), dtype=np.float32)
        elif kind == "zeros":
            pixels = np.zeros((size, size, 3), dtype=np.float32)
        else:
            pixels = np.full((size, size, 3), float(kind), dtype=np.float32)
        return NormalizedFrame(pixels=pixels, frame_id=frame_id, timestamp=timestamp)

    return _make


@pytest.fixture
def tiny_frame():
    """Small frame for buffer tests (no spectral work)."""

    def _make(frame_id):
        return NormalizedFrame(
            pixels=np.full((2, 2, 3), 0.5, dtype=np.float32),
            frame_id=frame_id,
        )

    return _make


@pytest.fixture
def clock():
    """Manually advanced clock."""
    return FakeClock()


@pytest.fixture
def settings():
    """Default (continuous mode) settings."""
    return Settings()


@pytest.fixture
def discrete_settings():
    """Discrete mode settings (DRAIN_ON_FULL + STREAK)."""
    return Settings(pipeline=PipelineConfig(mode=ProcessingMode.DISCRETE))


@pytest.fixture
def sample_image(rng):
    """Raw RGB uint8 camera image."""
    return rng.integers(0, 256, size=(240, 320, 3), dtype=np.uint8)
