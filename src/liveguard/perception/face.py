"""
Face Location
=============

Black-box face locator interface for the preprocessing stage.

Interface:
    FaceLocator.locate(image) -> Optional[BoundingBox]

Implementations:
    - HaarCascadeFaceLocator: OpenCV frontal-face cascade, largest face wins
    - StaticFaceLocator: Fixed box or None (for testing)

Design Rules:
    - Locators are STATELESS (each call is independent)
    - Image is an RGB uint8 numpy array (H, W, 3)
    - Boxes are normalized to [0, 1] with a top-left origin
"""

import logging
from typing import Optional, Protocol

import cv2
import numpy as np
from pydantic import BaseModel, Field, model_validator


logger = logging.getLogger(__name__)


class BoundingBox(BaseModel):
    """
    Normalized face bounding box.

    Attributes:
        x: Left edge as a fraction of image width
        y: Top edge as a fraction of image height
        width: Box width as a fraction of image width
        height: Box height as a fraction of image height
    """

    x: float = Field(..., ge=0.0, le=1.0)
    y: float = Field(..., ge=0.0, le=1.0)
    width: float = Field(..., gt=0.0, le=1.0)
    height: float = Field(..., gt=0.0, le=1.0)

    @model_validator(mode="after")
    def _check_inside(self) -> "BoundingBox":
        # Small tolerance for float rounding on edge-touching boxes
        if self.x + self.width > 1.0 + 1e-6 or self.y + self.height > 1.0 + 1e-6:
            raise ValueError("bounding box must lie inside the unit square")
        return self

    @property
    def area(self) -> float:
        return self.width * self.height

    @classmethod
    def from_pixels(
        cls,
        x: int,
        y: int,
        w: int,
        h: int,
        image_width: int,
        image_height: int,
    ) -> "BoundingBox":
        """Build a normalized box from pixel coordinates."""
        return cls(
            x=x / image_width,
            y=y / image_height,
            width=min(w / image_width, 1.0 - x / image_width),
            height=min(h / image_height, 1.0 - y / image_height),
        )


class FaceLocator(Protocol):
    """
    Protocol for face detection backends.

    Note:
        This is a Protocol (structural typing), not an abstract base class.
        Any class with a matching `locate` method can be used.
    """

    def locate(self, image: np.ndarray) -> Optional[BoundingBox]:
        """
        Find the primary face.

        Args:
            image: RGB uint8 array (H, W, 3)

        Returns:
            BoundingBox of the largest face, or None if no face found
        """
        ...


class HaarCascadeFaceLocator:
    """
    Face locator backed by OpenCV's Haar cascade.

    When several faces are found the one with the largest area is
    returned.
    """

    def __init__(
        self,
        cascade_path: Optional[str] = None,
        scale_factor: float = 1.1,
        min_neighbors: int = 5,
        min_size: int = 40,
    ) -> None:
        """
        Initialize cascade locator.

        Args:
            cascade_path: Cascade XML (defaults to the bundled frontal-face model)
            scale_factor: Image pyramid scale step
            min_neighbors: Detection quality threshold
            min_size: Minimum face side in pixels

        Raises:
            RuntimeError: If the cascade file cannot be loaded
        """
        if cascade_path is None:
            cascade_path = cv2.data.haarcascades + "haarcascade_frontalface_default.xml"

        self._cascade = cv2.CascadeClassifier(cascade_path)
        if self._cascade.empty():
            raise RuntimeError(f"Failed to load face cascade: {cascade_path}")

        self.scale_factor = scale_factor
        self.min_neighbors = min_neighbors
        self.min_size = min_size

        logger.info(f"HaarCascadeFaceLocator initialized: {cascade_path}")

    def locate(self, image: np.ndarray) -> Optional[BoundingBox]:
        if image.ndim == 3:
            gray = cv2.cvtColor(image, cv2.COLOR_RGB2GRAY)
        else:
            gray = image

        faces = self._cascade.detectMultiScale(
            gray,
            scaleFactor=self.scale_factor,
            minNeighbors=self.min_neighbors,
            minSize=(self.min_size, self.min_size),
        )

        if len(faces) == 0:
            return None

        x, y, w, h = max(faces, key=lambda f: int(f[2]) * int(f[3]))
        height, width = gray.shape[:2]

        logger.debug(f"Located {len(faces)} face(s), largest {w}x{h} at ({x}, {y})")
        return BoundingBox.from_pixels(int(x), int(y), int(w), int(h), width, height)


class StaticFaceLocator:
    """
    Deterministic locator for testing.

    Returns the same box (or None) for every image.
    """

    def __init__(self, box: Optional[BoundingBox] = None) -> None:
        self.box = box
        self.call_count = 0

    def locate(self, image: np.ndarray) -> Optional[BoundingBox]:
        self.call_count += 1
        return self.box
