"""
Perception Module
=================

Face location and preprocessing ahead of the scoring core.

Both stages are pluggable black boxes. The pipeline consumes ONLY their
outputs (a BoundingBox, then a NormalizedFrame).

Components:
    - FaceLocator: Protocol for face detection
    - HaarCascadeFaceLocator: OpenCV cascade implementation
    - StaticFaceLocator: Deterministic locator for testing
    - Preprocessor: Protocol for crop/resize/normalize
    - FaceCropPreprocessor: Padded crop + cv2.resize
"""

from liveguard.perception.face import (
    BoundingBox,
    FaceLocator,
    HaarCascadeFaceLocator,
    StaticFaceLocator,
)
from liveguard.perception.preprocess import (
    FaceCropPreprocessor,
    PreprocessError,
    Preprocessor,
)

__all__ = [
    "BoundingBox",
    "FaceLocator",
    "HaarCascadeFaceLocator",
    "StaticFaceLocator",
    "Preprocessor",
    "FaceCropPreprocessor",
    "PreprocessError",
]
