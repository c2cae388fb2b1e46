"""
Spectral Module
===============

Frequency-domain liveness scoring.

This module provides:
    - SpectralScorer: 2-D FFT high-frequency energy score in [0, 10]
    - extract_luma: RGB → luma conversion for the scorer
    - Input errors raised on malformed frames
"""

from liveguard.spectral.errors import (
    FrameTooLargeError,
    InvalidFrameError,
    SpectralInputError,
    UnsupportedBufferSizeError,
)
from liveguard.spectral.luma import extract_luma, rgb_to_luma
from liveguard.spectral.scorer import SpectralScorer, is_power_of_two

__all__ = [
    "SpectralScorer",
    "is_power_of_two",
    "extract_luma",
    "rgb_to_luma",
    "SpectralInputError",
    "InvalidFrameError",
    "FrameTooLargeError",
    "UnsupportedBufferSizeError",
]
