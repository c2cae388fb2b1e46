"""
Fusion Scheduler Graph
======================

LangGraph state machine that folds a completed classification into the
stream's FusionState.

LangGraph is used for CONTROL FLOW only. No model calls happen here; the
classifier result arrives already computed.

Graph Structure:
    START → fuse → hysteresis → schedule → END

    fuse:       clamp classifier output, compute danger score
    hysteresis: advance override and confident-real streak
    schedule:   pick the next interval from the updated state

Design Philosophy:
    - Deterministic transitions
    - Copy-on-write FusionState (a failed update leaves it untouched)
    - Interval evaluation on the fast path is pure
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, TypedDict

from langgraph.graph import StateGraph, END

from liveguard.config import FusionConfig, IntervalPolicy, SchedulerConfig
from liveguard.models.state import FusionState
from liveguard.scheduler.fusion import FusedScore, FusionWeights, fuse_scores
from liveguard.scheduler.policy import (
    HysteresisThresholds,
    IntervalDecision,
    IntervalScheduler,
    IntervalThresholds,
    apply_hysteresis,
)


logger = logging.getLogger(__name__)


class FusionGraphState(TypedDict):
    """
    State passed through the fusion graph.

    Attributes:
        fusion_state: Persistent FusionState before this classification
        classifier_output: Raw fake probability from the classifier
        fft_score: Spectral score at the time of the classification
        timestamp: Completion time of the classification
        fused: Danger score and components (written by fuse)
        decision: Next interval (written by schedule)
    """

    fusion_state: FusionState
    classifier_output: float
    fft_score: float
    timestamp: float
    fused: Optional[FusedScore]
    decision: Optional[IntervalDecision]


@dataclass(frozen=True)
class FusionOutcome:
    """Everything one classification produced."""

    fused: FusedScore
    decision: IntervalDecision
    state: FusionState
    override_changed: bool

    @property
    def danger_score(self) -> float:
        return self.fused.danger_score


class FusionScheduler:
    """
    Owns a stream's FusionState and decides inference cadence.

    Fast path (every frame):
        decide_interval() / is_due() read the state without mutating it.

    Slow path (after a classification):
        update() runs the fuse → hysteresis → schedule graph and commits
        the new state only if every node succeeded.

    Example:
        scheduler = FusionScheduler()
        if scheduler.is_due(now, scheduler.decide_interval(fft).interval):
            outcome = scheduler.update(fake_probability, fft, now)
    """

    def __init__(
        self,
        scheduler_config: Optional[SchedulerConfig] = None,
        fusion_config: Optional[FusionConfig] = None,
        interval_policy: IntervalPolicy = IntervalPolicy.SINGLE_SAMPLE,
        max_fft_score: float = 10.0,
        log_every_n_updates: int = 10,
    ) -> None:
        """
        Initialize the fusion scheduler.

        Args:
            scheduler_config: Interval and hysteresis thresholds
            fusion_config: Danger score weights
            interval_policy: Interval table to apply
            max_fft_score: Upper bound of the spectral score
            log_every_n_updates: Log state every N classifications
        """
        scheduler_config = scheduler_config or SchedulerConfig()
        fusion_config = fusion_config or FusionConfig()

        self.thresholds = IntervalThresholds.from_config(scheduler_config)
        self.hysteresis = HysteresisThresholds.from_config(scheduler_config)
        self.weights = FusionWeights.from_config(fusion_config, max_fft_score)
        self.policy = IntervalScheduler(self.thresholds, interval_policy)
        self.log_every_n_updates = log_every_n_updates

        self._graph = self._build_graph()
        self._state = self._initial_state()

        logger.info(
            f"FusionScheduler initialized: policy={self.policy.policy.value}, "
            f"override=[trip<{self.hysteresis.trip_real}, "
            f"clear>{self.hysteresis.clear_real}], "
            f"weights=[ai={self.weights.ai_weight}, fft={self.weights.fft_weight}]"
        )

    def _initial_state(self) -> FusionState:
        return FusionState(inference_interval=self.thresholds.baseline_interval)

    def _build_graph(self) -> StateGraph:
        """Build the LangGraph workflow."""
        workflow = StateGraph(FusionGraphState)

        workflow.add_node("fuse", self._fuse_node)
        workflow.add_node("hysteresis", self._hysteresis_node)
        workflow.add_node("schedule", self._schedule_node)

        workflow.set_entry_point("fuse")
        workflow.add_edge("fuse", "hysteresis")
        workflow.add_edge("hysteresis", "schedule")
        workflow.add_edge("schedule", END)

        return workflow.compile()

    # -------------------------------------------------------------------------
    # Graph nodes
    # -------------------------------------------------------------------------

    def _fuse_node(self, state: FusionGraphState) -> Dict[str, Any]:
        fused = fuse_scores(state["classifier_output"], state["fft_score"], self.weights)
        fusion_state = state["fusion_state"].model_copy(
            update={
                "last_real_probability": fused.real_probability,
                "last_inference_timestamp": state["timestamp"],
                "last_danger_score": fused.danger_score,
                "total_classifications": state["fusion_state"].total_classifications + 1,
            }
        )
        return {"fused": fused, "fusion_state": fusion_state}

    def _hysteresis_node(self, state: FusionGraphState) -> Dict[str, Any]:
        fusion_state = state["fusion_state"]
        override, streak = apply_hysteresis(
            fusion_state.last_real_probability,
            fusion_state.override_active,
            fusion_state.consecutive_real_count,
            self.hysteresis,
        )
        return {
            "fusion_state": fusion_state.model_copy(
                update={"override_active": override, "consecutive_real_count": streak}
            )
        }

    def _schedule_node(self, state: FusionGraphState) -> Dict[str, Any]:
        fusion_state = state["fusion_state"]
        decision = self.policy.decide_for_state(state["fft_score"], fusion_state)
        return {
            "decision": decision,
            "fusion_state": fusion_state.model_copy(
                update={"inference_interval": decision.interval}
            ),
        }

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def decide_interval(
        self,
        fft_score: float,
        last_real_probability: Optional[float] = None,
        override_active: Optional[bool] = None,
    ) -> IntervalDecision:
        """
        Evaluate the interval table without mutating state.

        Args:
            fft_score: Current spectral score
            last_real_probability: Override the stored value (for what-if checks)
            override_active: Override the stored value (for what-if checks)

        Returns:
            IntervalDecision
        """
        state = self._state
        return self.policy.decide(
            fft_score,
            state.last_real_probability if last_real_probability is None else last_real_probability,
            state.override_active if override_active is None else override_active,
            state.consecutive_real_count,
        )

    def is_due(self, now: float, interval: float) -> bool:
        """Whether a classification is due at `now` for the given interval."""
        return IntervalScheduler.is_due(now, self._state.last_inference_timestamp, interval)

    def update(
        self,
        fake_probability: float,
        fft_score: float,
        timestamp: float,
    ) -> FusionOutcome:
        """
        Fold a completed classification into the state.

        Args:
            fake_probability: Raw classifier output (clamped to [0, 1])
            fft_score: Spectral score of the frame that triggered inference
            timestamp: Completion time of the classification

        Returns:
            FusionOutcome with danger score, next interval and new state

        Raises:
            ValueError: If the classifier output is not finite (state unchanged)
        """
        previous = self._state

        result = self._graph.invoke(
            {
                "fusion_state": previous,
                "classifier_output": fake_probability,
                "fft_score": fft_score,
                "timestamp": timestamp,
                "fused": None,
                "decision": None,
            }
        )

        new_state: FusionState = result["fusion_state"]
        override_changed = new_state.override_active != previous.override_active
        self._state = new_state

        if override_changed:
            logger.warning(
                f"OVERRIDE {'ENGAGED' if new_state.override_active else 'RELEASED'}: "
                f"real={new_state.last_real_probability:.3f}, "
                f"interval={result['decision'].interval}s"
            )

        if new_state.total_classifications % self.log_every_n_updates == 0:
            logger.info(
                f"Fusion [update {new_state.total_classifications}]: "
                f"danger={result['fused'].danger_score:.1f}, "
                f"interval={result['decision'].interval}s, "
                f"reason={result['decision'].reason.value}, "
                f"streak={new_state.consecutive_real_count}"
            )

        return FusionOutcome(
            fused=result["fused"],
            decision=result["decision"],
            state=new_state,
            override_changed=override_changed,
        )

    @property
    def state(self) -> FusionState:
        """Current FusionState (immutable snapshot)."""
        return self._state

    def reset(self) -> None:
        """Reset to the initial FusionState."""
        self._state = self._initial_state()
        logger.info("FusionScheduler reset")

    def get_metrics(self) -> Dict[str, Any]:
        """Get scheduler metrics for observability."""
        state = self._state
        return {
            "policy": self.policy.policy.value,
            "inference_interval": state.inference_interval,
            "override_active": state.override_active,
            "consecutive_real_count": state.consecutive_real_count,
            "last_real_probability": state.last_real_probability,
            "last_danger_score": state.last_danger_score,
            "total_classifications": state.total_classifications,
        }


def create_fusion_scheduler(settings) -> FusionScheduler:
    """
    Create a FusionScheduler from Settings.

    Args:
        settings: Loaded liveguard Settings

    Returns:
        Configured FusionScheduler
    """
    return FusionScheduler(
        scheduler_config=settings.scheduler,
        fusion_config=settings.fusion,
        interval_policy=settings.effective_interval_policy,
        max_fft_score=settings.spectral.max_confidence,
    )
