"""
Reason Codes
============

Fixed sets of machine-readable codes attached to pipeline results.

Rules:
    - No free-text explanations in control fields
    - One clear cause per code
"""

from enum import Enum


class IntervalReason(str, Enum):
    """
    Why the scheduler picked the current inference interval.

    Attributes:
        ULTRA_SAFE: Good spectrum and confident-real history (max throttle)
        SAFE: Acceptable spectrum and mostly-real history
        DANGER: Poor spectrum or classifier suspects a fake
        UNCERTAIN: Baseline monitoring
        OVERRIDE: Security override forces maximum vigilance
    """

    ULTRA_SAFE = "ULTRA_SAFE"
    SAFE = "SAFE"
    DANGER = "DANGER"
    UNCERTAIN = "UNCERTAIN"
    OVERRIDE = "OVERRIDE"


class SkipReason(str, Enum):
    """
    Why a frame never reached the scoring core.

    Skipping is the expected steady-state outcome, not an error.
    """

    NO_FACE = "no_face"
    CROP_FAILED = "crop_failed"
    RESIZE_FAILED = "resize_failed"
    NORMALIZATION_FAILED = "normalization_failed"


class ErrorKind(str, Enum):
    """
    Error taxonomy for failed processing steps.

    Attributes:
        INPUT: Precondition violation (malformed frame); never retried
        COLLABORATOR: Classifier/locator failure; transient
        TIMEOUT: Classifier exceeded the configured timeout; transient
        STALE: Classification outlived a stream reset; result discarded
    """

    INPUT = "input"
    COLLABORATOR = "collaborator"
    TIMEOUT = "timeout"
    STALE = "stale"
