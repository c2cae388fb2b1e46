"""
Result Records
==============

This module defines the output contract of one processing step.

A ResultRecord is a tagged variant discriminated on `status`:

    {"status": "collecting", "count": 12, "fft_score": 6.1, ...}
    {"status": "skipped",    "reason": "no_face"}
    {"status": "inference",  "danger_score": 20.0, "ai_component": 18.0, ...}
    {"status": "error",      "message": "Inference failed", "kind": "collaborator"}

Design Rules:
    - The core holds no reference to a record after emission
    - All records serialize with model_dump(mode="json")
"""

from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field

from liveguard.models.reason_codes import ErrorKind, IntervalReason, SkipReason
from liveguard.models.state import StreamPhase


class Timings(BaseModel):
    """
    Stage latencies of one processing step, in milliseconds.

    Stages that did not run are None.
    """

    detection_ms: Optional[float] = Field(default=None, ge=0.0)
    preprocess_ms: Optional[float] = Field(default=None, ge=0.0)
    spectral_ms: Optional[float] = Field(default=None, ge=0.0)
    inference_ms: Optional[float] = Field(default=None, ge=0.0)
    total_ms: Optional[float] = Field(default=None, ge=0.0)


class SystemUsage(BaseModel):
    """
    Process telemetry sampled when a classification completes.

    Attributes:
        memory_mb: Resident set size of this process
        cpu_percent: Process CPU use since the previous sample
        thermal_state: nominal, fair, serious, critical or unknown
    """

    memory_mb: float = Field(..., ge=0.0)
    cpu_percent: Optional[float] = Field(default=None, ge=0.0)
    thermal_state: str = "unknown"


class CollectingResult(BaseModel):
    """
    Status-only result: frame buffered, no classification this step.

    Attributes:
        count: Frames currently buffered
        fft_score: Spectral liveness score of this frame [0, 10]
        fft_variance: Variance of the spectral history
        is_penalized: Static-spectrum flag
        interval: Interval decided for this frame (seconds)
        interval_reason: Why that interval was chosen
        phase: Stream phase
        inference_pending: A classification is in flight
        last_danger_score: Danger score of the last classification, if any
    """

    status: Literal["collecting"] = "collecting"
    count: int = Field(..., ge=0)
    fft_score: float = Field(..., ge=0.0, le=10.0)
    fft_variance: float = Field(..., ge=0.0)
    is_penalized: bool = False
    interval: float = Field(..., gt=0.0)
    interval_reason: IntervalReason
    phase: StreamPhase
    inference_pending: bool = False
    last_danger_score: Optional[float] = Field(default=None, ge=0.0, le=100.0)
    timings: Timings = Field(default_factory=Timings)


class SkippedResult(BaseModel):
    """Frame skipped before reaching the core (not an error)."""

    status: Literal["skipped"] = "skipped"
    reason: SkipReason
    timings: Timings = Field(default_factory=Timings)


class InferenceResult(BaseModel):
    """
    Completed classification fused with the spectral score.

    Attributes:
        danger_score: Fused danger in [0, 100], higher = more likely synthetic
        ai_component: fake_probability × AI weight
        fft_component: max spectral score − fft_score
        fft_score: Spectral score used for the fusion
        fake_probability: Clamped classifier output
        real_probability: 1 − fake_probability
        interval: Interval chosen for the next classification
        override_active: Override state after this classification
        consecutive_real_count: Streak after this classification
        system_usage: Process telemetry (None when disabled)
    """

    status: Literal["inference"] = "inference"
    danger_score: float = Field(..., ge=0.0, le=100.0)
    ai_component: float = Field(..., ge=0.0)
    fft_component: float = Field(..., ge=0.0)
    fft_score: float = Field(..., ge=0.0, le=10.0)
    fft_variance: float = Field(..., ge=0.0)
    is_penalized: bool = False
    fake_probability: float = Field(..., ge=0.0, le=1.0)
    real_probability: float = Field(..., ge=0.0, le=1.0)
    interval: float = Field(..., gt=0.0)
    interval_reason: IntervalReason
    override_active: bool
    consecutive_real_count: int = Field(..., ge=0)
    phase: StreamPhase
    timings: Timings = Field(default_factory=Timings)
    system_usage: Optional[SystemUsage] = None


class ErrorResult(BaseModel):
    """Failed processing step; fusion and spectral history untouched."""

    status: Literal["error"] = "error"
    message: str
    kind: ErrorKind
    timings: Timings = Field(default_factory=Timings)


ResultRecord = Annotated[
    Union[CollectingResult, SkippedResult, InferenceResult, ErrorResult],
    Field(discriminator="status"),
]
