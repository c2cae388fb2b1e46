"""
Pipeline Module
===============

Per-stream orchestration of the scoring core.

This module provides:
    - FrameProcessingPipeline: Synchronous per-frame processing
    - StreamSession: Classification on a background worker
    - build_pipeline: Factory from Settings
"""

from liveguard.pipeline.factory import build_pipeline
from liveguard.pipeline.pipeline import FrameProcessingPipeline, FrameStep, InferenceJob
from liveguard.pipeline.session import ResultSink, StreamSession

__all__ = [
    "FrameProcessingPipeline",
    "FrameStep",
    "InferenceJob",
    "StreamSession",
    "ResultSink",
    "build_pipeline",
]
