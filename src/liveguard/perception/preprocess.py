"""
Face Preprocessing
==================

Turns a located face into the NormalizedFrame the scoring core consumes.

Steps:
    1. Expand the box by `padding` of its size on every side
    2. Intersect with the image bounds
    3. Resize the crop to target_size × target_size
    4. Scale to float32 in [0, 1]

Each failing step maps to one SkipReason.
"""

import logging
from typing import Optional, Protocol

import cv2
import numpy as np

from liveguard.config import PreprocessConfig
from liveguard.models.reason_codes import SkipReason
from liveguard.perception.face import BoundingBox
from liveguard.stream.frame import NormalizedFrame


logger = logging.getLogger(__name__)


class PreprocessError(Exception):
    """Preprocessing could not produce a frame."""

    def __init__(self, reason: SkipReason, message: str = "") -> None:
        self.reason = reason
        super().__init__(message or reason.value)


class Preprocessor(Protocol):
    """Protocol for crop/resize/normalize backends."""

    def crop_resize_normalize(
        self,
        image: np.ndarray,
        box: BoundingBox,
        frame_id: Optional[int] = None,
        timestamp: Optional[float] = None,
    ) -> NormalizedFrame:
        """
        Produce a normalized face frame.

        Raises:
            PreprocessError: With the reason of the failed step
        """
        ...


class FaceCropPreprocessor:
    """
    Padded face crop resized with OpenCV.

    Attributes:
        padding: Fraction of the box size added on each side
        target_size: Output side length in pixels
    """

    def __init__(self, config: Optional[PreprocessConfig] = None) -> None:
        config = config or PreprocessConfig()
        self.padding = config.padding
        self.target_size = config.target_size

    def crop_resize_normalize(
        self,
        image: np.ndarray,
        box: BoundingBox,
        frame_id: Optional[int] = None,
        timestamp: Optional[float] = None,
    ) -> NormalizedFrame:
        crop = self.crop(image, box)

        try:
            resized = cv2.resize(
                crop,
                (self.target_size, self.target_size),
                interpolation=cv2.INTER_LINEAR,
            )
        except cv2.error as e:
            raise PreprocessError(SkipReason.RESIZE_FAILED, str(e)) from e

        if resized is None or resized.shape[:2] != (self.target_size, self.target_size):
            raise PreprocessError(SkipReason.RESIZE_FAILED)

        try:
            pixels = resized.astype(np.float32) / 255.0
            return NormalizedFrame(pixels=pixels, frame_id=frame_id, timestamp=timestamp)
        except ValueError as e:
            raise PreprocessError(SkipReason.NORMALIZATION_FAILED, str(e)) from e

    def crop(self, image: np.ndarray, box: BoundingBox) -> np.ndarray:
        """
        Cut the padded box out of the image.

        Raises:
            PreprocessError: CROP_FAILED if the image or the crop is empty
        """
        if image is None or image.ndim != 3 or image.shape[2] != 3:
            raise PreprocessError(SkipReason.CROP_FAILED, "expected an (H, W, 3) image")

        img_h, img_w = image.shape[:2]

        bw = box.width * img_w
        bh = box.height * img_h
        pad_x = bw * self.padding
        pad_y = bh * self.padding

        x0 = max(0, int(box.x * img_w - pad_x))
        y0 = max(0, int(box.y * img_h - pad_y))
        x1 = min(img_w, int(box.x * img_w + bw + pad_x))
        y1 = min(img_h, int(box.y * img_h + bh + pad_y))

        if x1 <= x0 or y1 <= y0:
            raise PreprocessError(SkipReason.CROP_FAILED, "empty crop region")

        return image[y0:y1, x0:x1]
