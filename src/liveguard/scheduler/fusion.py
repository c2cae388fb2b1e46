"""
Danger Fusion
=============

Weighted fusion of the classifier's fake probability and the spectral
liveness score into a single danger score.

Formula:
    fake      = clamp(classifier_output, 0, 1)
    ai        = fake × ai_weight                        (90 points)
    fft       = (max_score − fft_score) × fft_weight / max_score   (10 points)
    danger    = ai + fft                                ∈ [0, 100]

The classifier is the primary signal; the spectral score is a fast
corroborating signal, not a replacement.
"""

import math
from dataclasses import dataclass

from liveguard.config import FusionConfig


@dataclass(frozen=True)
class FusionWeights:
    """Point budget of the two signals (sums to 100)."""

    ai_weight: float = 90.0
    fft_weight: float = 10.0
    max_fft_score: float = 10.0

    @classmethod
    def from_config(cls, config: FusionConfig, max_fft_score: float = 10.0) -> "FusionWeights":
        return cls(
            ai_weight=config.ai_weight,
            fft_weight=config.fft_weight,
            max_fft_score=max_fft_score,
        )


@dataclass(frozen=True)
class FusedScore:
    """Danger score and its components."""

    fake_probability: float
    real_probability: float
    ai_component: float
    fft_component: float
    danger_score: float

    def to_dict(self) -> dict:
        """Export as dictionary for logging/serialization."""
        return {
            "fake_probability": round(self.fake_probability, 4),
            "ai_component": round(self.ai_component, 3),
            "fft_component": round(self.fft_component, 3),
            "danger_score": round(self.danger_score, 3),
        }


def clamp_probability(value: float) -> float:
    """
    Clamp a classifier output to [0, 1].

    Raises:
        ValueError: If the value is NaN or infinite
    """
    value = float(value)
    if not math.isfinite(value):
        raise ValueError(f"Classifier output must be finite, got {value}")
    return max(0.0, min(1.0, value))


def fuse_scores(
    classifier_output: float,
    fft_score: float,
    weights: FusionWeights = FusionWeights(),
) -> FusedScore:
    """
    Fuse a classifier output with a spectral score.

    Args:
        classifier_output: Fake probability estimate (clamped here)
        fft_score: Spectral liveness score [0, max_fft_score]
        weights: Point budget

    Returns:
        FusedScore with components and total
    """
    fake = clamp_probability(classifier_output)
    real = 1.0 - fake

    fft_score = max(0.0, min(weights.max_fft_score, float(fft_score)))

    ai_component = fake * weights.ai_weight
    fft_component = (
        (weights.max_fft_score - fft_score) * weights.fft_weight / weights.max_fft_score
    )

    return FusedScore(
        fake_probability=fake,
        real_probability=real,
        ai_component=ai_component,
        fft_component=fft_component,
        danger_score=ai_component + fft_component,
    )
