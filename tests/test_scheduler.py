"""
Scheduler Tests
===============

Interval tables, danger fusion, override hysteresis and the LangGraph
update flow.
"""

import pytest

from liveguard.config import FusionConfig, IntervalPolicy, SchedulerConfig
from liveguard.models import FusionState, IntervalReason
from liveguard.scheduler import (
    FusionScheduler,
    FusionWeights,
    HysteresisThresholds,
    IntervalScheduler,
    apply_hysteresis,
    clamp_probability,
    fuse_scores,
)


class TestSingleSamplePolicy:
    """Interval table driven by the last classification alone."""

    @pytest.mark.parametrize(
        "fft, real, interval, reason",
        [
            (6.0, 0.8, 10.0, IntervalReason.ULTRA_SAFE),
            (5.0, 0.7, 10.0, IntervalReason.ULTRA_SAFE),
            (4.5, 0.65, 5.0, IntervalReason.SAFE),
            (6.0, 0.65, 5.0, IntervalReason.SAFE),
            (2.9, 0.95, 0.5, IntervalReason.DANGER),
            (4.5, 0.3, 0.5, IntervalReason.DANGER),
            (3.5, 0.5, 1.25, IntervalReason.UNCERTAIN),
            (4.5, 0.5, 1.25, IntervalReason.UNCERTAIN),
        ],
    )
    def test_interval_table(self, fft, real, interval, reason):
        policy = IntervalScheduler(policy=IntervalPolicy.SINGLE_SAMPLE)
        decision = policy.decide(fft, real, override_active=False)
        assert decision.interval == interval
        assert decision.reason == reason

    def test_override_forces_vigilance(self):
        policy = IntervalScheduler()
        decision = policy.decide(9.0, 0.99, override_active=True)
        assert decision.interval == 0.5
        assert decision.reason == IntervalReason.OVERRIDE

    def test_is_due(self):
        assert IntervalScheduler.is_due(0.0, None, 10.0)
        assert not IntervalScheduler.is_due(5.0, 1.0, 10.0)
        assert IntervalScheduler.is_due(11.0, 1.0, 10.0)


class TestStreakPolicy:
    """Throttling requires consecutive confident-real classifications."""

    def test_high_real_without_streak_is_not_throttled(self):
        policy = IntervalScheduler(policy=IntervalPolicy.STREAK)
        decision = policy.decide(9.0, 0.99, override_active=False, consecutive_real_count=0)
        assert decision.reason == IntervalReason.UNCERTAIN

    def test_streak_thresholds(self):
        policy = IntervalScheduler(policy=IntervalPolicy.STREAK)
        assert policy.decide(9.0, 0.95, False, 2).reason == IntervalReason.SAFE
        assert policy.decide(9.0, 0.95, False, 4).reason == IntervalReason.SAFE
        assert policy.decide(9.0, 0.95, False, 5).reason == IntervalReason.ULTRA_SAFE
        assert policy.decide(4.5, 0.95, False, 9).reason == IntervalReason.SAFE

    def test_danger_still_applies(self):
        policy = IntervalScheduler(policy=IntervalPolicy.STREAK)
        assert policy.decide(2.0, 0.95, False, 9).reason == IntervalReason.DANGER


class TestFusion:
    """Danger score arithmetic."""

    def test_reference_values(self):
        fused = fuse_scores(0.2, 8.0)
        assert fused.ai_component == pytest.approx(18.0)
        assert fused.fft_component == pytest.approx(2.0)
        assert fused.danger_score == pytest.approx(20.0)
        assert fused.real_probability == pytest.approx(0.8)

    def test_bounds(self):
        assert fuse_scores(0.0, 10.0).danger_score == pytest.approx(0.0)
        assert fuse_scores(1.0, 0.0).danger_score == pytest.approx(100.0)

    def test_output_is_clamped(self):
        assert fuse_scores(1.7, 10.0).fake_probability == 1.0
        assert fuse_scores(-0.3, 10.0).fake_probability == 0.0

    def test_non_finite_rejected(self):
        with pytest.raises(ValueError):
            clamp_probability(float("nan"))
        with pytest.raises(ValueError):
            clamp_probability(float("inf"))

    def test_custom_weights(self):
        weights = FusionWeights.from_config(FusionConfig(ai_weight=80.0, fft_weight=20.0))
        fused = fuse_scores(0.5, 5.0, weights)
        assert fused.danger_score == pytest.approx(50.0)


class TestHysteresis:
    """Override trip/clear band and streak."""

    def test_trip_hold_clear(self):
        th = HysteresisThresholds()
        override, streak = apply_hysteresis(0.5, False, 3, th)
        assert override is True and streak == 0

        override, streak = apply_hysteresis(0.8, override, streak, th)
        assert override is True and streak == 1

        override, streak = apply_hysteresis(0.95, override, streak, th)
        assert override is False and streak == 2

    def test_band_does_not_trip(self):
        override, _ = apply_hysteresis(0.8, False, 0, HysteresisThresholds())
        assert override is False

    def test_invalid_band(self):
        with pytest.raises(ValueError):
            HysteresisThresholds(trip_real=0.9, clear_real=0.8)


class TestFusionScheduler:
    """LangGraph fuse → hysteresis → schedule flow."""

    def test_initial_state(self):
        scheduler = FusionScheduler()
        state = scheduler.state
        assert state.last_real_probability == 1.0
        assert state.inference_interval == 1.25
        assert state.last_inference_timestamp is None
        assert state.override_active is False

    def test_first_batch_is_due_immediately(self):
        scheduler = FusionScheduler()
        decision = scheduler.decide_interval(9.0)
        assert scheduler.is_due(0.0, decision.interval)

    def test_decide_interval_does_not_mutate(self):
        scheduler = FusionScheduler()
        before = scheduler.state
        scheduler.decide_interval(0.0)
        scheduler.decide_interval(9.0, last_real_probability=0.1, override_active=True)
        assert scheduler.state == before

    def test_update_reference_case(self):
        scheduler = FusionScheduler()
        outcome = scheduler.update(0.2, 8.0, timestamp=12.0)

        assert outcome.danger_score == pytest.approx(20.0)
        assert outcome.fused.ai_component == pytest.approx(18.0)
        assert outcome.state.last_real_probability == pytest.approx(0.8)
        assert outcome.state.last_inference_timestamp == 12.0
        assert outcome.state.override_active is False
        assert outcome.state.consecutive_real_count == 1
        assert outcome.decision.reason == IntervalReason.ULTRA_SAFE
        assert scheduler.state.inference_interval == 10.0
        assert scheduler.state.total_classifications == 1

    def test_override_sequence(self):
        scheduler = FusionScheduler()

        outcome = scheduler.update(0.5, 9.0, timestamp=1.0)
        assert outcome.state.override_active is True
        assert outcome.override_changed is True
        assert outcome.decision.interval == 0.5
        assert outcome.decision.reason == IntervalReason.OVERRIDE

        outcome = scheduler.update(0.2, 9.0, timestamp=2.0)
        assert outcome.state.override_active is True
        assert outcome.override_changed is False
        assert outcome.decision.interval == 0.5

        outcome = scheduler.update(0.05, 9.0, timestamp=3.0)
        assert outcome.state.override_active is False
        assert outcome.override_changed is True
        assert outcome.decision.interval == 10.0

    def test_fast_path_uses_stored_override(self):
        scheduler = FusionScheduler()
        scheduler.update(0.5, 9.0, timestamp=1.0)
        decision = scheduler.decide_interval(9.0)
        assert decision.reason == IntervalReason.OVERRIDE

    def test_streak_policy_progression(self):
        scheduler = FusionScheduler(interval_policy=IntervalPolicy.STREAK)
        reasons = [
            scheduler.update(0.05, 9.0, timestamp=float(t)).decision.reason
            for t in range(5)
        ]
        assert reasons == [
            IntervalReason.UNCERTAIN,
            IntervalReason.SAFE,
            IntervalReason.SAFE,
            IntervalReason.SAFE,
            IntervalReason.ULTRA_SAFE,
        ]

    def test_streak_resets_on_doubt(self):
        scheduler = FusionScheduler()
        scheduler.update(0.05, 9.0, timestamp=1.0)
        scheduler.update(0.05, 9.0, timestamp=2.0)
        assert scheduler.state.consecutive_real_count == 2
        scheduler.update(0.35, 9.0, timestamp=3.0)
        assert scheduler.state.consecutive_real_count == 0

    def test_non_finite_output_leaves_state_untouched(self):
        scheduler = FusionScheduler()
        scheduler.update(0.1, 9.0, timestamp=1.0)
        before = scheduler.state

        with pytest.raises(ValueError):
            scheduler.update(float("nan"), 9.0, timestamp=2.0)
        assert scheduler.state == before

    def test_configured_thresholds(self):
        config = SchedulerConfig(override_trip_real=0.5, override_clear_real=0.6)
        scheduler = FusionScheduler(scheduler_config=config)
        outcome = scheduler.update(0.45, 9.0, timestamp=1.0)
        assert outcome.state.override_active is False

    def test_reset(self):
        scheduler = FusionScheduler()
        scheduler.update(0.9, 9.0, timestamp=1.0)
        scheduler.reset()
        assert scheduler.state == FusionState(inference_interval=1.25)
        assert scheduler.get_metrics()["total_classifications"] == 0
