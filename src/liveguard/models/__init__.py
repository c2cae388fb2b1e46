"""
Data Models
===========

Typed state and output models for LiveGuard.

Models:
    State:
        - StreamPhase: COLLECTING, STEADY, OVERRIDDEN
        - SpectralState: Spectral score history
        - FusionState: Classifier history, override, streak

    Output:
        - CollectingResult, SkippedResult, InferenceResult, ErrorResult
        - ResultRecord: Tagged union of the above
        - Timings: Stage latencies
        - SystemUsage: Process telemetry on inference results

    Codes:
        - IntervalReason, SkipReason, ErrorKind
"""

from liveguard.models.reason_codes import ErrorKind, IntervalReason, SkipReason
from liveguard.models.state import FusionState, SpectralState, StreamPhase
from liveguard.models.result import (
    CollectingResult,
    ErrorResult,
    InferenceResult,
    ResultRecord,
    SkippedResult,
    SystemUsage,
    Timings,
)

__all__ = [
    # Codes
    "ErrorKind",
    "IntervalReason",
    "SkipReason",
    # State
    "StreamPhase",
    "SpectralState",
    "FusionState",
    # Output
    "CollectingResult",
    "SkippedResult",
    "InferenceResult",
    "ErrorResult",
    "ResultRecord",
    "SystemUsage",
    "Timings",
]
