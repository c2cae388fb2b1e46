"""
Normalized Frame
================

Internal frame representation consumed by the scoring core.

This module defines the typed NormalizedFrame class that is produced by the
preprocessing collaborator and passed through the buffer to the classifier.

Design Rules:
    - This is the ONLY frame format accepted by the pipeline
    - Pixels are float32, channel-last (H, W, 3), values in [0, 1]
    - Immutable: the pixel array is made read-only on construction
"""

from dataclasses import dataclass, field
from typing import Optional

import numpy as np


@dataclass(frozen=True, slots=True)
class NormalizedFrame:
    """
    Cropped, resized and normalized face frame.

    It is immutable (frozen, read-only pixels) so a batch snapshot can be
    handed to the classifier while the producer keeps pushing new frames.

    Attributes:
        pixels: float32 array of shape (H, W, 3) with values in [0, 1]
        frame_id: Optional monotonically increasing frame counter
        timestamp: Optional capture timestamp (seconds)
    """

    pixels: np.ndarray = field(repr=False)
    frame_id: Optional[int] = None
    timestamp: Optional[float] = None

    def __post_init__(self) -> None:
        """Validate and freeze the pixel array."""
        pixels = np.asarray(self.pixels, dtype=np.float32)

        if pixels.ndim != 3 or pixels.shape[2] != 3:
            raise ValueError(f"pixels must have shape (H, W, 3), got {pixels.shape}")
        if pixels.shape[0] < 1 or pixels.shape[1] < 1:
            raise ValueError(f"pixels must be non-empty, got {pixels.shape}")
        if not np.all(np.isfinite(pixels)):
            raise ValueError("pixels must be finite")
        if pixels.min() < 0.0 or pixels.max() > 1.0:
            raise ValueError("pixels must be normalized to [0, 1]")

        if pixels is self.pixels:
            pixels = pixels.copy()
        pixels.setflags(write=False)
        object.__setattr__(self, "pixels", pixels)

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def shape(self) -> tuple:
        return tuple(self.pixels.shape)

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixels."""
        return (
            f"NormalizedFrame(frame_id={self.frame_id}, "
            f"shape={self.shape}, "
            f"timestamp={self.timestamp})"
        )
