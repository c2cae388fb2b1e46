"""
Luma Extraction
===============

Converts normalized RGB frames into the single-channel image the spectral
scorer consumes.

Uses ITU-R BT.601 weights via OpenCV (Y = 0.299 R + 0.587 G + 0.114 B).
"""

import cv2
import numpy as np

from liveguard.stream.frame import NormalizedFrame
from liveguard.spectral.errors import InvalidFrameError


def extract_luma(frame: NormalizedFrame) -> np.ndarray:
    """
    Extract the luma plane of a normalized RGB frame.

    Args:
        frame: Normalized (H, W, 3) frame, channel order RGB

    Returns:
        float32 array of shape (H, W), values in [0, 1]
    """
    return rgb_to_luma(frame.pixels)


def rgb_to_luma(pixels: np.ndarray) -> np.ndarray:
    """
    Convert an (H, W, 3) RGB float array to (H, W) luma.

    Raises:
        InvalidFrameError: If the array is not 3-channel
    """
    if pixels.ndim != 3 or pixels.shape[2] != 3:
        raise InvalidFrameError(f"Expected (H, W, 3) RGB pixels, got {pixels.shape}")

    # Writable C-contiguous copy; frame pixels are read-only
    rgb = np.array(pixels, dtype=np.float32, order="C")
    return cv2.cvtColor(rgb, cv2.COLOR_RGB2GRAY)
