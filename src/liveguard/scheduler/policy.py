"""
Interval Policy
===============

Deterministic inference scheduling with a hysteretic security override.

This module implements the rules that decide how long to wait before the
next classification, and when the override engages or releases.

Key Features:
    - Two selectable interval tables (single-sample and streak-based)
    - Override forces maximum vigilance regardless of the table
    - Asymmetric trip/clear thresholds (hysteresis)
    - Configurable from config.yaml
    - Machine-readable interval reasons

Interval Rules (first match wins, override applied last):
    SINGLE_SAMPLE:
        fft >= 5.0 AND last_real >= 0.7  -> 10.0s  ULTRA_SAFE
        fft >= 4.0 AND last_real >= 0.6  ->  5.0s  SAFE
        fft <  3.0 OR  last_real <  0.4  ->  0.5s  DANGER
        otherwise                        ->  1.25s UNCERTAIN
    STREAK:
        fft >= 5.0 AND streak >= 5       -> 10.0s  ULTRA_SAFE
        fft >= 4.0 AND streak >= 2       ->  5.0s  SAFE
        DANGER / UNCERTAIN as above
    override_active                      ->  0.5s  OVERRIDE

Override Rules:
    trip:  real < 0.7
    clear: real > 0.9
    A single result between the two never changes the override.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from liveguard.config import IntervalPolicy, SchedulerConfig
from liveguard.models.reason_codes import IntervalReason
from liveguard.models.state import FusionState


logger = logging.getLogger(__name__)


@dataclass
class IntervalThresholds:
    """
    Thresholds and durations of the interval tables.

    Loaded from configuration file.
    """

    # Single-sample / shared thresholds
    ultra_safe_fft: float = 5.0
    ultra_safe_real: float = 0.7
    safe_fft: float = 4.0
    safe_real: float = 0.6
    danger_fft: float = 3.0
    danger_real: float = 0.4

    # Streak policy
    ultra_safe_streak: int = 5
    safe_streak: int = 2

    # Durations (seconds)
    max_throttle_interval: float = 10.0
    reduced_interval: float = 5.0
    baseline_interval: float = 1.25
    vigilance_interval: float = 0.5

    @classmethod
    def from_config(cls, config: SchedulerConfig) -> "IntervalThresholds":
        return cls(
            ultra_safe_fft=config.ultra_safe_fft,
            ultra_safe_real=config.ultra_safe_real,
            safe_fft=config.safe_fft,
            safe_real=config.safe_real,
            danger_fft=config.danger_fft,
            danger_real=config.danger_real,
            ultra_safe_streak=config.ultra_safe_streak,
            safe_streak=config.safe_streak,
            max_throttle_interval=config.max_throttle_interval,
            reduced_interval=config.reduced_interval,
            baseline_interval=config.baseline_interval,
            vigilance_interval=config.vigilance_interval,
        )


@dataclass
class HysteresisThresholds:
    """
    Override trip/clear band and streak threshold.

    The clear threshold is strictly above the trip threshold to prevent
    the override from flapping near the boundary.
    """

    trip_real: float = 0.7
    clear_real: float = 0.9
    streak_real: float = 0.7

    def __post_init__(self) -> None:
        if self.clear_real <= self.trip_real:
            raise ValueError("clear_real must be strictly above trip_real")

    @classmethod
    def from_config(cls, config: SchedulerConfig) -> "HysteresisThresholds":
        return cls(
            trip_real=config.override_trip_real,
            clear_real=config.override_clear_real,
            streak_real=config.streak_real,
        )


@dataclass(frozen=True)
class IntervalDecision:
    """Result of an interval evaluation."""

    interval: float
    reason: IntervalReason

    def __repr__(self) -> str:
        return f"IntervalDecision({self.interval}s, {self.reason.value})"


class IntervalScheduler:
    """
    Risk-adjusted inference interval policy.

    Pure: evaluating an interval never mutates FusionState.
    """

    def __init__(
        self,
        thresholds: Optional[IntervalThresholds] = None,
        policy: IntervalPolicy = IntervalPolicy.SINGLE_SAMPLE,
    ) -> None:
        """
        Initialize interval scheduler.

        Args:
            thresholds: Table thresholds and durations (defaults if None)
            policy: Which interval table to apply
        """
        self.thresholds = thresholds or IntervalThresholds()
        self.policy = IntervalPolicy(policy)
        logger.info(
            f"IntervalScheduler initialized: policy={self.policy.value}, "
            f"intervals=[{self.thresholds.vigilance_interval}, "
            f"{self.thresholds.baseline_interval}, "
            f"{self.thresholds.reduced_interval}, "
            f"{self.thresholds.max_throttle_interval}]s"
        )

    def decide(
        self,
        fft_score: float,
        last_real_probability: float,
        override_active: bool,
        consecutive_real_count: int = 0,
    ) -> IntervalDecision:
        """
        Evaluate the active interval table.

        Args:
            fft_score: Current spectral score [0, 10]
            last_real_probability: Real probability of the last classification
            override_active: Security override state
            consecutive_real_count: Confident-real streak (STREAK policy)

        Returns:
            IntervalDecision with the interval and its reason
        """
        th = self.thresholds

        if override_active:
            return IntervalDecision(th.vigilance_interval, IntervalReason.OVERRIDE)

        if self.policy == IntervalPolicy.STREAK:
            ultra_safe = (
                fft_score >= th.ultra_safe_fft
                and consecutive_real_count >= th.ultra_safe_streak
            )
            safe = fft_score >= th.safe_fft and consecutive_real_count >= th.safe_streak
        else:
            ultra_safe = (
                fft_score >= th.ultra_safe_fft
                and last_real_probability >= th.ultra_safe_real
            )
            safe = fft_score >= th.safe_fft and last_real_probability >= th.safe_real

        if ultra_safe:
            return IntervalDecision(th.max_throttle_interval, IntervalReason.ULTRA_SAFE)
        if safe:
            return IntervalDecision(th.reduced_interval, IntervalReason.SAFE)
        if fft_score < th.danger_fft or last_real_probability < th.danger_real:
            return IntervalDecision(th.vigilance_interval, IntervalReason.DANGER)
        return IntervalDecision(th.baseline_interval, IntervalReason.UNCERTAIN)

    def decide_for_state(self, fft_score: float, state: FusionState) -> IntervalDecision:
        """Evaluate the table against a FusionState."""
        return self.decide(
            fft_score,
            state.last_real_probability,
            state.override_active,
            state.consecutive_real_count,
        )

    @staticmethod
    def is_due(
        now: float,
        last_inference_timestamp: Optional[float],
        interval: float,
    ) -> bool:
        """Whether at least `interval` seconds passed since the last classification."""
        if last_inference_timestamp is None:
            return True
        return (now - last_inference_timestamp) >= interval


def apply_hysteresis(
    real_probability: float,
    override_active: bool,
    consecutive_real_count: int,
    thresholds: HysteresisThresholds,
) -> Tuple[bool, int]:
    """
    Advance the override and streak after a classification.

    Args:
        real_probability: 1 − clamped fake probability
        override_active: Override state before this classification
        consecutive_real_count: Streak before this classification
        thresholds: Trip/clear band

    Returns:
        Tuple of (new_override_active, new_consecutive_real_count)
    """
    if real_probability < thresholds.trip_real:
        new_override = True
    elif real_probability > thresholds.clear_real:
        new_override = False
    else:
        # Inside the band: hold
        new_override = override_active

    if real_probability > thresholds.streak_real:
        new_streak = consecutive_real_count + 1
    else:
        new_streak = 0

    return new_override, new_streak
