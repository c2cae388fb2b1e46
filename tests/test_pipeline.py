"""
Pipeline Tests
==============

End-to-end behavior of FrameProcessingPipeline: collecting phase, the first
classification, interval adherence, failure isolation, timeout,
single-flight and the discrete mode.
"""

import threading
import time

import numpy as np
import pytest

from liveguard.config import ObservabilityConfig, PipelineConfig, Settings
from liveguard.inference import MockClassifier
from liveguard.models import (
    CollectingResult,
    ErrorKind,
    ErrorResult,
    FusionState,
    InferenceResult,
    IntervalReason,
    SkippedResult,
    SkipReason,
    StreamPhase,
)
from liveguard.perception import BoundingBox, StaticFaceLocator
from liveguard.pipeline import FrameProcessingPipeline, build_pipeline


FPS = 30.0
CAPACITY = 20


def _feed(pipeline, make_frame, count, start_index=0, step=1 / FPS):
    results = []
    for i in range(start_index, start_index + count):
        results.append(pipeline.process_frame(make_frame(frame_id=i), timestamp=i * step))
    return results


def _wait_until_idle(pipeline, timeout=5.0):
    deadline = time.monotonic() + timeout
    while pipeline.inference_in_flight and time.monotonic() < deadline:
        time.sleep(0.01)
    assert not pipeline.inference_in_flight


class TestContinuousMode:
    """ROLLING buffer, SINGLE_SAMPLE interval policy."""

    def test_first_classification_on_full_buffer(self, make_frame):
        classifier = MockClassifier([0.2])
        pipeline = FrameProcessingPipeline(classifier)

        results = _feed(pipeline, make_frame, 25)

        for i, result in enumerate(results[:19]):
            assert isinstance(result, CollectingResult)
            assert result.count == i + 1
            assert result.phase == StreamPhase.COLLECTING
            assert 0.0 <= result.fft_score <= 10.0

        inference = results[19]
        assert isinstance(inference, InferenceResult)
        assert inference.fft_score == pytest.approx(10.0)
        assert inference.danger_score == pytest.approx(18.0)
        assert inference.ai_component == pytest.approx(18.0)
        assert inference.fft_component == pytest.approx(0.0)
        assert inference.interval == 10.0
        assert inference.interval_reason == IntervalReason.ULTRA_SAFE
        assert inference.phase == StreamPhase.STEADY
        assert inference.timings.inference_ms is not None

        # Interval respected: no second call within 10 s
        for result in results[20:]:
            assert isinstance(result, CollectingResult)
            assert result.count == CAPACITY
            assert result.last_danger_score == pytest.approx(18.0)
        assert classifier.call_count == 1
        assert classifier.batch_shapes == [(CAPACITY, 224, 224, 3)]

    def test_next_classification_after_interval(self, make_frame):
        classifier = MockClassifier([0.2])
        pipeline = FrameProcessingPipeline(classifier)
        _feed(pipeline, make_frame, CAPACITY)

        early = pipeline.process_frame(make_frame(frame_id=100), timestamp=5.0)
        assert isinstance(early, CollectingResult)

        late = pipeline.process_frame(make_frame(frame_id=101), timestamp=11.0)
        assert isinstance(late, InferenceResult)
        assert classifier.call_count == 2

    def test_zero_spectrum_forces_vigilance(self, make_frame):
        pipeline = FrameProcessingPipeline(MockClassifier([0.0]))
        result = pipeline.process_frame(make_frame(kind="zeros"), timestamp=0.0)
        assert result.fft_score == 0.0
        assert result.interval == 0.5
        assert result.interval_reason == IntervalReason.DANGER

    def test_override_engages(self, make_frame):
        pipeline = FrameProcessingPipeline(MockClassifier([0.5]))
        results = _feed(pipeline, make_frame, CAPACITY + 1)

        inference = results[CAPACITY - 1]
        assert isinstance(inference, InferenceResult)
        assert inference.override_active is True
        assert inference.interval == 0.5
        assert inference.interval_reason == IntervalReason.OVERRIDE
        assert inference.phase == StreamPhase.OVERRIDDEN
        assert pipeline.phase == StreamPhase.OVERRIDDEN

        follow_up = results[CAPACITY]
        assert follow_up.interval_reason == IntervalReason.OVERRIDE

    def test_classifier_output_is_clamped(self, make_frame):
        pipeline = FrameProcessingPipeline(MockClassifier([1.4]))
        result = _feed(pipeline, make_frame, CAPACITY)[-1]
        assert result.fake_probability == 1.0
        assert result.danger_score == pytest.approx(90.0)


class TestFailureIsolation:
    """Classifier failures never mutate fusion state."""

    def test_classifier_error(self, make_frame):
        classifier = MockClassifier([0.2], fail_on_calls=[1])
        pipeline = FrameProcessingPipeline(classifier)

        results = _feed(pipeline, make_frame, CAPACITY)
        error = results[-1]
        assert isinstance(error, ErrorResult)
        assert error.kind == ErrorKind.COLLABORATOR
        assert pipeline.scheduler.state == FusionState()
        assert not pipeline.inference_in_flight

        # Still due on the next frame
        retry = pipeline.process_frame(make_frame(frame_id=CAPACITY), timestamp=1.0)
        assert isinstance(retry, InferenceResult)
        assert classifier.call_count == 2

    def test_classifier_error_keeps_override_and_streak(self, make_frame):
        classifier = MockClassifier([0.5, 0.2, 0.2], fail_on_calls=[3])
        pipeline = FrameProcessingPipeline(classifier)

        tripped = _feed(pipeline, make_frame, CAPACITY)[-1]
        assert isinstance(tripped, InferenceResult)
        assert tripped.override_active is True

        # real 0.8: inside the band, override holds and the streak starts
        streak = pipeline.process_frame(make_frame(frame_id=CAPACITY), timestamp=1.2)
        assert isinstance(streak, InferenceResult)
        assert streak.override_active is True
        assert streak.consecutive_real_count == 1

        before = pipeline.scheduler.state
        error = pipeline.process_frame(make_frame(frame_id=CAPACITY + 1), timestamp=1.8)
        assert isinstance(error, ErrorResult)
        assert error.kind == ErrorKind.COLLABORATOR
        assert classifier.call_count == 3

        after = pipeline.scheduler.state
        assert after == before
        assert after.override_active is True
        assert after.consecutive_real_count == 1
        assert after.last_real_probability == pytest.approx(0.8)
        assert pipeline.phase == StreamPhase.OVERRIDDEN

    def test_non_finite_output(self, make_frame):
        pipeline = FrameProcessingPipeline(MockClassifier([float("nan")]))
        error = _feed(pipeline, make_frame, CAPACITY)[-1]
        assert isinstance(error, ErrorResult)
        assert error.kind == ErrorKind.COLLABORATOR
        assert pipeline.scheduler.state.total_classifications == 0

    def test_malformed_frame(self):
        pipeline = FrameProcessingPipeline(MockClassifier())
        result = pipeline.process_frame(np.zeros((224, 224, 3)), timestamp=0.0)
        assert isinstance(result, ErrorResult)
        assert result.kind == ErrorKind.INPUT
        assert len(pipeline.buffer) == 0

    def test_frame_too_large_for_fft(self, make_frame):
        settings = Settings(pipeline=PipelineConfig(frame_size=300))
        pipeline = FrameProcessingPipeline(MockClassifier(), settings=settings)
        result = pipeline.process_frame(make_frame(kind="zeros", size=300), timestamp=0.0)
        assert isinstance(result, ErrorResult)
        assert result.kind == ErrorKind.INPUT
        assert len(pipeline.buffer) == 0
        assert pipeline.scorer.frame_count == 1

    def test_frame_size_mismatch(self, make_frame):
        pipeline = FrameProcessingPipeline(MockClassifier())
        pipeline.process_frame(make_frame(frame_id=0), timestamp=0.0)

        result = pipeline.process_frame(make_frame(frame_id=1, size=128), timestamp=0.1)
        assert isinstance(result, ErrorResult)
        assert result.kind == ErrorKind.INPUT
        assert "128x128" in result.message
        assert len(pipeline.buffer) == 1
        assert pipeline.scorer.frame_count == 1

    def test_error_counter_is_thread_safe(self):
        pipeline = FrameProcessingPipeline(MockClassifier())
        bad_frame = np.zeros((224, 224, 3))
        workers, per_worker = 4, 250

        def produce():
            for _ in range(per_worker):
                pipeline.process_frame(bad_frame, timestamp=0.0)

        threads = [threading.Thread(target=produce) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert pipeline.get_metrics()["errors"] == workers * per_worker

    def test_timeout(self, make_frame):
        settings = Settings(pipeline=PipelineConfig(classifier_timeout_sec=0.05))
        classifier = MockClassifier([0.2])
        release = classifier.hold()
        pipeline = FrameProcessingPipeline(classifier, settings=settings)

        try:
            error = _feed(pipeline, make_frame, CAPACITY)[-1]
            assert isinstance(error, ErrorResult)
            assert error.kind == ErrorKind.TIMEOUT
            assert pipeline.scheduler.state.last_inference_timestamp is None

            # The stuck call still holds the single-flight guard
            assert pipeline.inference_in_flight
            pending = pipeline.process_frame(make_frame(frame_id=CAPACITY), timestamp=1.0)
            assert isinstance(pending, CollectingResult)
            assert pending.inference_pending is True
            assert classifier.call_count == 1

            release.set()
            _wait_until_idle(pipeline)

            result = pipeline.process_frame(make_frame(frame_id=CAPACITY + 1), timestamp=2.0)
            assert isinstance(result, InferenceResult)
            assert classifier.call_count == 2
        finally:
            release.set()
            pipeline.close()


class TestSingleFlight:
    """At most one classification in flight."""

    def test_due_is_suppressed_while_in_flight(self, make_frame):
        classifier = MockClassifier([0.2])
        pipeline = FrameProcessingPipeline(classifier)

        steps = [
            pipeline.score_frame(make_frame(frame_id=i), timestamp=i / FPS)
            for i in range(CAPACITY)
        ]
        job = steps[-1].job
        assert job is not None
        assert steps[-1].result.inference_pending is True

        # Frames keep flowing while the classification is outstanding
        suppressed = pipeline.score_frame(make_frame(frame_id=CAPACITY), timestamp=1.0)
        assert suppressed.job is None
        assert suppressed.result.inference_pending is True
        assert suppressed.result.count == CAPACITY

        result = pipeline.run_inference(job)
        assert isinstance(result, InferenceResult)
        assert not pipeline.inference_in_flight
        assert pipeline.get_metrics()["suppressed_due"] == 1
        assert classifier.call_count == 1


class TestDiscreteMode:
    """DRAIN_ON_FULL buffer, STREAK interval policy."""

    def test_batches_are_disjoint(self, make_frame, discrete_settings):
        classifier = MockClassifier([0.05])
        pipeline = build_pipeline(classifier, settings=discrete_settings)

        results = _feed(pipeline, make_frame, 2 * CAPACITY, step=0.1)

        first = results[CAPACITY - 1]
        assert isinstance(first, InferenceResult)
        # One confident-real result is not enough to throttle
        assert first.interval_reason == IntervalReason.UNCERTAIN
        assert first.consecutive_real_count == 1

        counts = [r.count for r in results[CAPACITY:2 * CAPACITY - 1]]
        assert counts == list(range(1, CAPACITY))

        second = results[2 * CAPACITY - 1]
        assert isinstance(second, InferenceResult)
        assert second.interval_reason == IntervalReason.SAFE
        assert classifier.call_count == 2
        assert pipeline.buffer.metrics()["drained_batches"] == 2


class TestProcessImage:
    """Locator and preprocessing ahead of the core."""

    def test_no_face_is_skipped(self, sample_image):
        pipeline = FrameProcessingPipeline(MockClassifier(), locator=StaticFaceLocator(None))
        result = pipeline.process_image(sample_image, timestamp=0.0)
        assert isinstance(result, SkippedResult)
        assert result.reason == SkipReason.NO_FACE
        assert len(pipeline.buffer) == 0

    def test_face_is_scored(self, sample_image):
        box = BoundingBox(x=0.25, y=0.25, width=0.5, height=0.5)
        pipeline = FrameProcessingPipeline(MockClassifier(), locator=StaticFaceLocator(box))
        result = pipeline.process_image(sample_image, timestamp=0.0)
        assert isinstance(result, CollectingResult)
        assert result.count == 1
        assert result.timings.detection_ms is not None
        assert result.timings.preprocess_ms is not None
        assert result.timings.spectral_ms is not None

    def test_locator_failure(self, sample_image):
        class BrokenLocator:
            def locate(self, image):
                raise RuntimeError("camera unplugged")

        pipeline = FrameProcessingPipeline(MockClassifier(), locator=BrokenLocator())
        result = pipeline.process_image(sample_image, timestamp=0.0)
        assert isinstance(result, ErrorResult)
        assert result.kind == ErrorKind.COLLABORATOR

    def test_crop_failure_is_skipped(self):
        box = BoundingBox(x=0.25, y=0.25, width=0.5, height=0.5)
        pipeline = FrameProcessingPipeline(MockClassifier(), locator=StaticFaceLocator(box))
        result = pipeline.process_image(np.zeros((10, 10), dtype=np.uint8), timestamp=0.0)
        assert isinstance(result, SkippedResult)
        assert result.reason == SkipReason.CROP_FAILED


class TestLifecycle:
    """Reset and metrics."""

    def test_reset(self, make_frame):
        pipeline = FrameProcessingPipeline(MockClassifier([0.5]))
        _feed(pipeline, make_frame, CAPACITY)
        assert pipeline.phase == StreamPhase.OVERRIDDEN

        pipeline.reset()
        assert pipeline.phase == StreamPhase.COLLECTING
        assert len(pipeline.buffer) == 0
        assert pipeline.scorer.frame_count == 0
        assert pipeline.scheduler.state.override_active is False
        assert pipeline.scheduler.state.last_inference_timestamp is None

    def test_job_from_before_reset_is_discarded(self, make_frame):
        classifier = MockClassifier([0.5])
        pipeline = FrameProcessingPipeline(classifier)
        steps = [
            pipeline.score_frame(make_frame(frame_id=i), timestamp=i / FPS)
            for i in range(CAPACITY)
        ]
        job = steps[-1].job
        assert job is not None

        pipeline.reset()
        fresh = pipeline.scheduler.state

        result = pipeline.run_inference(job)
        assert isinstance(result, ErrorResult)
        assert result.kind == ErrorKind.STALE
        assert classifier.call_count == 0
        assert pipeline.scheduler.state == fresh
        assert pipeline.phase == StreamPhase.COLLECTING
        assert not pipeline.inference_in_flight
        assert pipeline.get_metrics()["stale_discarded"] == 1

    def test_reset_during_classification_discards_result(self, make_frame):
        classifier = MockClassifier([0.5])
        release = classifier.hold()
        pipeline = FrameProcessingPipeline(classifier)
        steps = [
            pipeline.score_frame(make_frame(frame_id=i), timestamp=i / FPS)
            for i in range(CAPACITY)
        ]
        job = steps[-1].job
        results = []
        worker = threading.Thread(target=lambda: results.append(pipeline.run_inference(job)))

        try:
            worker.start()
            deadline = time.monotonic() + 5.0
            while classifier.call_count == 0 and time.monotonic() < deadline:
                time.sleep(0.01)
            assert classifier.call_count == 1

            pipeline.reset()
            fresh = pipeline.scheduler.state
        finally:
            release.set()
            worker.join(timeout=5.0)

        assert results[0].kind == ErrorKind.STALE
        assert pipeline.scheduler.state == fresh
        assert pipeline.scheduler.state.override_active is False
        assert pipeline.scheduler.state.last_inference_timestamp is None
        assert not pipeline.inference_in_flight

        # The new session classifies normally once its buffer fills
        after = _feed(pipeline, make_frame, CAPACITY, start_index=100)[-1]
        assert isinstance(after, InferenceResult)
        assert classifier.call_count == 2

    def test_abandon_releases_guard(self, make_frame):
        pipeline = FrameProcessingPipeline(MockClassifier([0.2]))
        steps = [
            pipeline.score_frame(make_frame(frame_id=i), timestamp=i / FPS)
            for i in range(CAPACITY)
        ]
        pipeline.abandon(steps[-1].job)
        assert not pipeline.inference_in_flight

        retry = pipeline.score_frame(make_frame(frame_id=CAPACITY), timestamp=1.0)
        assert retry.job is not None

    def test_system_usage_attached(self, make_frame):
        result = _feed(FrameProcessingPipeline(MockClassifier([0.2])), make_frame, CAPACITY)[-1]
        assert isinstance(result, InferenceResult)
        assert result.system_usage is not None
        assert result.system_usage.memory_mb > 0.0
        assert result.system_usage.thermal_state in {
            "unknown", "nominal", "fair", "serious", "critical"
        }

    def test_system_usage_disabled(self, make_frame):
        settings = Settings(observability=ObservabilityConfig(system_usage=False))
        pipeline = FrameProcessingPipeline(MockClassifier([0.2]), settings=settings)
        result = _feed(pipeline, make_frame, CAPACITY)[-1]
        assert isinstance(result, InferenceResult)
        assert result.system_usage is None

    def test_metrics(self, make_frame):
        pipeline = FrameProcessingPipeline(MockClassifier([0.2]))
        _feed(pipeline, make_frame, CAPACITY)
        metrics = pipeline.get_metrics()
        assert metrics["phase"] == StreamPhase.STEADY.value
        assert metrics["frames_processed"] == CAPACITY
        assert metrics["buffer"]["size"] == CAPACITY
        assert metrics["fusion"]["total_classifications"] == 1
        assert metrics["performance"]["total_inferences"] == 1

    def test_results_serialize(self, make_frame):
        pipeline = FrameProcessingPipeline(MockClassifier([0.2]))
        result = _feed(pipeline, make_frame, CAPACITY)[-1]
        data = result.model_dump(mode="json")
        assert data["status"] == "inference"
        assert data["interval_reason"] == "ULTRA_SAFE"
