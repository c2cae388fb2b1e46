"""
Scheduler Module
================

Classifier fusion, security override and adaptive inference cadence.

This module provides:
    - FusionScheduler: LangGraph fuse → hysteresis → schedule machine
    - IntervalScheduler: Pure interval tables
    - fuse_scores: Danger score fusion
"""

from liveguard.scheduler.fusion import (
    FusedScore,
    FusionWeights,
    clamp_probability,
    fuse_scores,
)
from liveguard.scheduler.graph import (
    FusionOutcome,
    FusionScheduler,
    create_fusion_scheduler,
)
from liveguard.scheduler.policy import (
    HysteresisThresholds,
    IntervalDecision,
    IntervalScheduler,
    IntervalThresholds,
    apply_hysteresis,
)

__all__ = [
    "FusionScheduler",
    "FusionOutcome",
    "create_fusion_scheduler",
    "IntervalScheduler",
    "IntervalDecision",
    "IntervalThresholds",
    "HysteresisThresholds",
    "apply_hysteresis",
    "FusionWeights",
    "FusedScore",
    "fuse_scores",
    "clamp_probability",
]
