"""
Pipeline Factory
================

Builds a configured FrameProcessingPipeline from Settings.
"""

import logging
import time
from typing import Callable, Optional

from liveguard.config import Settings, load_config
from liveguard.inference.classifier import Classifier
from liveguard.perception.face import FaceLocator
from liveguard.perception.preprocess import Preprocessor
from liveguard.pipeline.pipeline import FrameProcessingPipeline


logger = logging.getLogger(__name__)


def build_pipeline(
    classifier: Classifier,
    settings: Optional[Settings] = None,
    locator: Optional[FaceLocator] = None,
    preprocessor: Optional[Preprocessor] = None,
    clock: Callable[[], float] = time.monotonic,
) -> FrameProcessingPipeline:
    """
    Create a pipeline for one stream.

    Args:
        classifier: Batch classifier
        settings: Configuration (loaded from config.yaml/env if None)
        locator: Face locator for raw images
        preprocessor: Crop/resize/normalize stage for raw images
        clock: Monotonic time source

    Returns:
        Configured FrameProcessingPipeline
    """
    if settings is None:
        settings = load_config()

    logger.info(
        f"Building pipeline: mode={settings.pipeline.mode.value}, "
        f"buffer_policy={settings.effective_buffer_policy.value}, "
        f"interval_policy={settings.effective_interval_policy.value}"
    )

    return FrameProcessingPipeline(
        classifier=classifier,
        settings=settings,
        locator=locator,
        preprocessor=preprocessor,
        clock=clock,
    )
