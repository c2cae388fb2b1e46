"""
LiveGuard
=========

On-device liveness and deepfake risk scoring for live video streams.

This package scores every incoming face frame with a cheap frequency-domain
liveness signal and decides, frame by frame, whether the expensive batch
classifier is due. Classifier results are fused with the spectral score into
a danger score, and a hysteretic security override forces maximum vigilance
once the classifier suspects a synthetic face.

Components:
    - spectral: 2-D FFT liveness scorer
    - stream: Normalized frames and the rolling frame buffer
    - scheduler: Danger fusion, override hysteresis, adaptive cadence
    - perception: Face location and crop preprocessing
    - inference: Classifier protocol and mock
    - pipeline: Per-stream orchestration

Example:
    from liveguard import MockClassifier, build_pipeline

    pipeline = build_pipeline(MockClassifier([0.2]))
    result = pipeline.process_frame(frame)
"""

__version__ = "0.1.0"
__author__ = "LiveGuard Project"

from liveguard.inference import Classifier, MockClassifier
from liveguard.models import ResultRecord
from liveguard.pipeline import FrameProcessingPipeline, StreamSession, build_pipeline
from liveguard.stream import NormalizedFrame

__all__ = [
    "__version__",
    "Classifier",
    "MockClassifier",
    "ResultRecord",
    "FrameProcessingPipeline",
    "StreamSession",
    "build_pipeline",
    "NormalizedFrame",
]
