"""
Inference Module
================

Pluggable classifier abstraction.

Components:
    - Classifier: Protocol for deepfake classifiers
    - MockClassifier: Deterministic mock for testing
    - stack_frames: Buffer snapshot → batch array
"""

from liveguard.inference.classifier import (
    Classifier,
    ClassifierError,
    MockClassifier,
    stack_frames,
)

__all__ = [
    "Classifier",
    "ClassifierError",
    "MockClassifier",
    "stack_frames",
]
