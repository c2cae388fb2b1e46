"""
Stream State Models
===================

Per-stream state owned by exactly one FrameProcessingPipeline.

Core Concepts:
    - StreamPhase: COLLECTING → STEADY ⇄ OVERRIDDEN
    - SpectralState: Rolling history of aligned spectral scores
    - FusionState: Classifier history driving the schedule and override

Transitions:
    COLLECTING → STEADY:     buffer full for the first time
    STEADY → OVERRIDDEN:     real probability < trip threshold (0.7)
    OVERRIDDEN → STEADY:     real probability > clear threshold (0.9)
    any → COLLECTING:        stream reset only

Example:
    from liveguard.models.state import FusionState

    state = FusionState()
    assert state.last_real_probability == 1.0
"""

from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Deque, Optional

from pydantic import BaseModel, Field


class StreamPhase(str, Enum):
    """
    Discrete phases of a stream session.

    Attributes:
        COLLECTING: Buffer not yet full for the first time
        STEADY: Normal risk-adjusted cadence
        OVERRIDDEN: Interval forced to the minimum
    """

    COLLECTING = "COLLECTING"
    STEADY = "STEADY"
    OVERRIDDEN = "OVERRIDDEN"


@dataclass
class SpectralState:
    """
    Mutable spectral history of one stream.

    Mutated only by SpectralScorer.

    Attributes:
        history: Last `window` aligned scores (FIFO)
        current_score: Latest aligned (calibrated) spectral energy
        current_confidence: Latest score mapped onto [0, 10]
        current_variance: Population variance of the history
        is_penalized: Static, over-smooth high-frequency signature detected
    """

    window: int = 20
    history: Deque[float] = field(default_factory=deque)
    current_score: float = 0.0
    current_confidence: float = 0.0
    current_variance: float = 0.0
    is_penalized: bool = False

    def __post_init__(self) -> None:
        self.history = deque(self.history, maxlen=self.window)

    @property
    def history_mean(self) -> float:
        if not self.history:
            return 0.0
        return sum(self.history) / len(self.history)


class FusionState(BaseModel):
    """
    Classifier-driven state of one stream.

    Updated copy-on-write after every completed classification, and
    never by the per-frame spectral path.

    Attributes:
        last_real_probability: Real probability of the last classification
        inference_interval: Interval chosen after the last classification
        last_inference_timestamp: When the last classification completed
        override_active: Hysteretic security override
        consecutive_real_count: Streak of confident-real classifications
        total_classifications: Completed classifications
        last_danger_score: Danger score of the last classification
    """

    last_real_probability: float = Field(
        default=1.0,
        ge=0.0,
        le=1.0,
        description="Optimistic prior until the first classification",
    )

    inference_interval: float = Field(
        default=1.25,
        gt=0.0,
        description="Seconds between classifications chosen at the last update",
    )

    last_inference_timestamp: Optional[float] = Field(
        default=None,
        description="Timestamp of the last classification (None = never)",
    )

    override_active: bool = Field(
        default=False,
        description="Interval forced to the minimum",
    )

    consecutive_real_count: int = Field(
        default=0,
        ge=0,
        description="Consecutive classifications above the streak threshold",
    )

    total_classifications: int = Field(
        default=0,
        ge=0,
        description="Total completed classifications",
    )

    last_danger_score: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=100.0,
        description="Danger score of the last classification",
    )
