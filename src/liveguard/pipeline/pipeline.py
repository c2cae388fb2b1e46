"""
Frame Processing Pipeline
=========================

Per-stream orchestration of the scoring core.

Processing Flow (per frame):
    1. NormalizedFrame → luma → SpectralScorer      (every frame, cheap)
    2. push into RollingFrameBuffer                 (every frame)
    3. FusionScheduler.decide_interval()            (pure)
    4. if due AND buffer full AND nothing in flight:
           snapshot → Classifier.predict(batch)     (expensive)
           → FusionScheduler.update()
           → InferenceResult
       else:
           → CollectingResult

Concurrency:
    - Spectral and fusion state serialize through one RLock per pipeline
    - The lock is released before the classifier runs
    - At most one classification in flight (non-blocking guard); a due
      decision while one is outstanding is suppressed, not queued

Failure Semantics:
    - Malformed frame          → ErrorResult(kind=input), never retried
    - Classifier raises        → ErrorResult(kind=collaborator)
    - Classifier times out     → ErrorResult(kind=timeout)
    - Reset while in flight    → ErrorResult(kind=stale), result discarded
    In every failure case FusionState is left untouched.
"""

import concurrent.futures
import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from liveguard.config import Settings
from liveguard.inference.classifier import Classifier, stack_frames
from liveguard.models.reason_codes import ErrorKind, SkipReason
from liveguard.models.result import (
    CollectingResult,
    ErrorResult,
    InferenceResult,
    ResultRecord,
    SkippedResult,
    Timings,
)
from liveguard.models.state import StreamPhase
from liveguard.observability.stats import PerformanceTracker
from liveguard.observability.system import SystemMonitor
from liveguard.perception.face import FaceLocator, HaarCascadeFaceLocator
from liveguard.perception.preprocess import (
    FaceCropPreprocessor,
    PreprocessError,
    Preprocessor,
)
from liveguard.scheduler.graph import FusionScheduler, create_fusion_scheduler
from liveguard.spectral.errors import SpectralInputError
from liveguard.spectral.luma import extract_luma
from liveguard.spectral.scorer import SpectralScorer
from liveguard.stream.buffer import RollingFrameBuffer
from liveguard.stream.frame import NormalizedFrame


logger = logging.getLogger(__name__)


def _elapsed_ms(start: float) -> float:
    return (time.perf_counter() - start) * 1000


class _ReleaseOnce:
    """Releases a lock exactly once, from whichever thread gets there first."""

    def __init__(self, lock: threading.Lock) -> None:
        self._lock = lock
        self._guard = threading.Lock()
        self._done = False

    def __call__(self, _future: Any = None) -> None:
        with self._guard:
            if self._done:
                return
            self._done = True
        self._lock.release()


@dataclass
class InferenceJob:
    """
    A due classification captured on the fast path.

    Holds everything run_inference() needs so the slow path never touches
    the buffer or the spectral state.
    """

    frames: List[NormalizedFrame]
    fft_score: float
    fft_variance: float
    is_penalized: bool
    timestamp: float
    started_at: float
    timings: Timings = field(default_factory=Timings)
    generation: int = 0


@dataclass
class FrameStep:
    """Outcome of the fast path for one frame."""

    result: ResultRecord
    job: Optional[InferenceJob] = None


class FrameProcessingPipeline:
    """
    Scoring core for one stream.

    Owns exactly one SpectralScorer, RollingFrameBuffer and FusionScheduler.
    Not shared across streams.

    Example:
        pipeline = FrameProcessingPipeline(classifier=MockClassifier([0.2]))

        for frame in frames:
            result = pipeline.process_frame(frame)
            if result.status == "inference":
                print(f"Danger: {result.danger_score:.1f}")
    """

    def __init__(
        self,
        classifier: Classifier,
        settings: Optional[Settings] = None,
        locator: Optional[FaceLocator] = None,
        preprocessor: Optional[Preprocessor] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """
        Initialize the pipeline.

        Args:
            classifier: Batch classifier (fake probability)
            settings: Configuration (defaults if None)
            locator: Face locator for process_image (Haar cascade if None)
            preprocessor: Crop/resize/normalize stage for process_image
            clock: Monotonic time source in seconds
        """
        self.settings = settings or Settings()
        self.classifier = classifier
        self._clock = clock

        cfg = self.settings
        self.scorer = SpectralScorer(
            cfg.spectral,
            log_every_n_frames=cfg.pipeline.log_every_n_frames,
        )
        self.buffer = RollingFrameBuffer(
            capacity=cfg.buffer.capacity,
            policy=cfg.effective_buffer_policy,
        )
        self.scheduler: FusionScheduler = create_fusion_scheduler(cfg)
        self.tracker = PerformanceTracker(
            interval_sec=cfg.observability.stats_interval_sec,
            clock=clock,
        )

        self.system_monitor: Optional[SystemMonitor] = None
        if cfg.observability.system_usage:
            self.system_monitor = SystemMonitor()

        self._locator = locator
        self.preprocessor = preprocessor or FaceCropPreprocessor(cfg.preprocess)
        self.frame_size = cfg.pipeline.frame_size

        self.classifier_timeout_sec = cfg.pipeline.classifier_timeout_sec
        self._executor: Optional[concurrent.futures.ThreadPoolExecutor] = None
        if self.classifier_timeout_sec is not None:
            self._executor = concurrent.futures.ThreadPoolExecutor(
                max_workers=1,
                thread_name_prefix="liveguard-classifier",
            )

        self._state_lock = threading.RLock()
        self._inflight = threading.Lock()

        self._primed = False
        # Bumped by reset(); jobs from an older generation are discarded
        self._generation = 0
        self._frame_count = 0
        self._image_count = 0
        self._error_count = 0
        self._skip_count = 0
        self._suppressed_count = 0
        self._stale_count = 0

        logger.info(
            f"FrameProcessingPipeline initialized: mode={cfg.pipeline.mode.value}, "
            f"buffer={self.buffer.policy.value}x{self.buffer.capacity}, "
            f"interval_policy={cfg.effective_interval_policy.value}, "
            f"timeout={self.classifier_timeout_sec}"
        )

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def process_frame(
        self,
        frame: NormalizedFrame,
        timestamp: Optional[float] = None,
    ) -> ResultRecord:
        """
        Process one normalized frame end to end.

        Runs the classifier inline when due, so this call can block for the
        classifier's latency (bounded by classifier_timeout_sec if set).

        Args:
            frame: Normalized face frame
            timestamp: Clock reading for this frame (defaults to clock())

        Returns:
            CollectingResult, InferenceResult or ErrorResult
        """
        step = self.score_frame(frame, timestamp)
        if step.job is None:
            return step.result
        return self.run_inference(step.job)

    def process_image(
        self,
        image: np.ndarray,
        timestamp: Optional[float] = None,
    ) -> ResultRecord:
        """
        Locate, crop and normalize a raw RGB image, then process it.

        Args:
            image: RGB uint8 array (H, W, 3)
            timestamp: Clock reading for this frame (defaults to clock())

        Returns:
            SkippedResult when no usable face was found, otherwise as
            process_frame()
        """
        step = self.score_image(image, timestamp)
        if step.job is None:
            return step.result
        return self.run_inference(step.job)

    def score_image(
        self,
        image: np.ndarray,
        timestamp: Optional[float] = None,
    ) -> FrameStep:
        """Fast path for a raw image: locate, preprocess, score."""
        start = time.perf_counter()
        now = self._clock() if timestamp is None else timestamp
        with self._state_lock:
            self._image_count += 1
            image_index = self._image_count

        try:
            box = self.locator.locate(image)
        except Exception as e:
            self._count_error()
            logger.error(f"Face locator error (image={image_index}): {e}")
            return FrameStep(
                ErrorResult(
                    message=f"Face locator failed: {e}",
                    kind=ErrorKind.COLLABORATOR,
                    timings=Timings(total_ms=_elapsed_ms(start)),
                )
            )
        detection_ms = _elapsed_ms(start)

        if box is None:
            return self._skip(
                SkipReason.NO_FACE,
                Timings(detection_ms=detection_ms, total_ms=detection_ms),
            )

        crop_start = time.perf_counter()
        try:
            frame = self.preprocessor.crop_resize_normalize(
                image, box, frame_id=image_index, timestamp=now
            )
        except PreprocessError as e:
            return self._skip(
                e.reason,
                Timings(
                    detection_ms=detection_ms,
                    preprocess_ms=_elapsed_ms(crop_start),
                    total_ms=_elapsed_ms(start),
                ),
            )
        except Exception as e:
            self._count_error()
            logger.error(f"Preprocessor error (image={image_index}): {e}")
            return FrameStep(
                ErrorResult(
                    message=f"Preprocessing failed: {e}",
                    kind=ErrorKind.COLLABORATOR,
                    timings=Timings(detection_ms=detection_ms, total_ms=_elapsed_ms(start)),
                )
            )

        timings = Timings(detection_ms=detection_ms, preprocess_ms=_elapsed_ms(crop_start))
        return self._score(frame, now, start, timings)

    def score_frame(
        self,
        frame: NormalizedFrame,
        timestamp: Optional[float] = None,
    ) -> FrameStep:
        """
        Fast path: spectral score, buffer push and due check.

        Never calls the classifier. If a classification is due, the returned
        step carries an InferenceJob and the single-flight guard is held
        until run_inference() completes.
        """
        start = time.perf_counter()
        now = self._clock() if timestamp is None else timestamp
        return self._score(frame, now, start, Timings())

    def run_inference(self, job: InferenceJob) -> ResultRecord:
        """
        Slow path: classify a captured batch and fold the result in.

        Releases the single-flight guard acquired by score_frame(). A job
        captured before the last reset() is discarded, before or after the
        classifier runs, and never reaches the fusion state.
        """
        infer_start = time.perf_counter()

        if self._is_stale(job):
            self._inflight.release()
            return self._stale(job)

        try:
            batch = stack_frames(job.frames)
        except ValueError as e:
            self._inflight.release()
            return self._error(f"Cannot build batch: {e}", ErrorKind.INPUT, job)

        try:
            output = self._call_classifier(batch)
        except concurrent.futures.TimeoutError:
            logger.error(
                f"Classifier timed out after {self.classifier_timeout_sec}s "
                f"(batch={len(job.frames)})"
            )
            return self._error("Inference timed out", ErrorKind.TIMEOUT, job)
        except Exception as e:
            logger.error(f"Classifier error: {e}")
            return self._error(f"Inference failed: {e}", ErrorKind.COLLABORATOR, job)

        inference_ms = _elapsed_ms(infer_start)

        try:
            fake_probability = float(output)
        except (TypeError, ValueError):
            fake_probability = math.nan
        if not math.isfinite(fake_probability):
            logger.error(f"Rejected classifier output: {output!r}")
            return self._error(
                f"Inference failed: non-finite classifier output {output!r}",
                ErrorKind.COLLABORATOR,
                job,
            )

        with self._state_lock:
            if self._is_stale(job):
                return self._stale(job)
            outcome = self.scheduler.update(fake_probability, job.fft_score, job.timestamp)
            phase = self._phase()

        self.tracker.record_inference(inference_ms)
        timings = job.timings.model_copy(
            update={"inference_ms": inference_ms, "total_ms": _elapsed_ms(job.started_at)}
        )
        system_usage = None
        if self.system_monitor is not None:
            system_usage = self.system_monitor.sample()

        fused = outcome.fused
        return InferenceResult(
            danger_score=fused.danger_score,
            ai_component=fused.ai_component,
            fft_component=fused.fft_component,
            fft_score=job.fft_score,
            fft_variance=job.fft_variance,
            is_penalized=job.is_penalized,
            fake_probability=fused.fake_probability,
            real_probability=fused.real_probability,
            interval=outcome.decision.interval,
            interval_reason=outcome.decision.reason,
            override_active=outcome.state.override_active,
            consecutive_real_count=outcome.state.consecutive_real_count,
            phase=phase,
            timings=timings,
            system_usage=system_usage,
        )

    def abandon(self, job: InferenceJob) -> None:
        """
        Give up a job returned by score_frame() without running it.

        Releases the single-flight guard so later due frames can classify.
        Call at most once per job, and never for a job passed to
        run_inference().
        """
        self._inflight.release()
        logger.warning(f"Inference job abandoned (batch={len(job.frames)})")

    def reset(self) -> None:
        """
        Reset the stream: buffer, spectral and fusion state.

        A classification in flight during reset is discarded when it
        completes (ErrorResult with kind=stale).
        """
        with self._state_lock:
            self._generation += 1
            self.buffer.clear()
            self.scorer.reset()
            self.scheduler.reset()
            self.tracker.reset()
            self._primed = False
            self._frame_count = 0
            self._image_count = 0
            self._error_count = 0
            self._skip_count = 0
            self._suppressed_count = 0
            self._stale_count = 0
        logger.info("FrameProcessingPipeline reset")

    def close(self) -> None:
        """Release the timeout worker, if any."""
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def locator(self) -> FaceLocator:
        """Face locator (Haar cascade created on first use)."""
        if self._locator is None:
            self._locator = HaarCascadeFaceLocator()
        return self._locator

    @property
    def phase(self) -> StreamPhase:
        with self._state_lock:
            return self._phase()

    @property
    def inference_in_flight(self) -> bool:
        return self._inflight.locked()

    @property
    def frame_count(self) -> int:
        return self._frame_count

    def get_metrics(self) -> Dict[str, Any]:
        """Get pipeline metrics for observability."""
        with self._state_lock:
            return {
                "phase": self._phase().value,
                "frames_processed": self._frame_count,
                "images_processed": self._image_count,
                "skipped": self._skip_count,
                "errors": self._error_count,
                "suppressed_due": self._suppressed_count,
                "stale_discarded": self._stale_count,
                "inference_in_flight": self._inflight.locked(),
                "buffer": self.buffer.metrics(),
                "spectral": self.scorer.get_metrics(),
                "fusion": self.scheduler.get_metrics(),
                "performance": self.tracker.metrics(),
            }

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _phase(self) -> StreamPhase:
        if not self._primed:
            return StreamPhase.COLLECTING
        if self.scheduler.state.override_active:
            return StreamPhase.OVERRIDDEN
        return StreamPhase.STEADY

    def _score(
        self,
        frame: NormalizedFrame,
        now: float,
        start: float,
        timings: Timings,
    ) -> FrameStep:
        if not isinstance(frame, NormalizedFrame):
            self._count_error()
            return FrameStep(
                ErrorResult(
                    message=f"Expected NormalizedFrame, got {type(frame).__name__}",
                    kind=ErrorKind.INPUT,
                    timings=timings,
                )
            )

        # Batches must stack, so every buffered frame has the configured size
        if (frame.height, frame.width) != (self.frame_size, self.frame_size):
            self._count_error()
            logger.warning(
                f"Rejected frame {frame.frame_id}: {frame.width}x{frame.height}, "
                f"expected {self.frame_size}x{self.frame_size}"
            )
            return FrameStep(
                ErrorResult(
                    message=(
                        f"Frame is {frame.width}x{frame.height}, "
                        f"expected {self.frame_size}x{self.frame_size}"
                    ),
                    kind=ErrorKind.INPUT,
                    timings=timings.model_copy(update={"total_ms": _elapsed_ms(start)}),
                )
            )

        job: Optional[InferenceJob] = None

        with self._state_lock:
            self._frame_count += 1
            spectral_start = time.perf_counter()
            try:
                fft_score = self.scorer.process(extract_luma(frame))
            except SpectralInputError as e:
                self._error_count += 1
                logger.warning(f"Rejected frame {frame.frame_id}: {e}")
                return FrameStep(
                    ErrorResult(
                        message=str(e),
                        kind=ErrorKind.INPUT,
                        timings=timings.model_copy(update={"total_ms": _elapsed_ms(start)}),
                    )
                )
            timings = timings.model_copy(update={"spectral_ms": _elapsed_ms(spectral_start)})

            count = self.buffer.push(frame)
            is_full = count >= self.buffer.capacity
            if is_full and not self._primed:
                self._primed = True
                logger.info(f"Buffer primed after {self._frame_count} frames")

            decision = self.scheduler.decide_interval(fft_score)
            due = is_full and self.scheduler.is_due(now, decision.interval)

            if due:
                if self._inflight.acquire(blocking=False):
                    job = InferenceJob(
                        frames=self.buffer.snapshot_and_maybe_clear(),
                        fft_score=fft_score,
                        fft_variance=self.scorer.current_variance,
                        is_penalized=self.scorer.is_penalized,
                        timestamp=now,
                        started_at=start,
                        timings=timings,
                        generation=self._generation,
                    )
                else:
                    self._suppressed_count += 1
                    logger.debug("Inference due but one is in flight, suppressed")

            result = CollectingResult(
                count=count,
                fft_score=fft_score,
                fft_variance=self.scorer.current_variance,
                is_penalized=self.scorer.is_penalized,
                interval=decision.interval,
                interval_reason=decision.reason,
                phase=self._phase(),
                inference_pending=self._inflight.locked(),
                last_danger_score=self.scheduler.state.last_danger_score,
                timings=timings.model_copy(update={"total_ms": _elapsed_ms(start)}),
            )

        self.tracker.record_frame(_elapsed_ms(start))
        return FrameStep(result, job)

    def _call_classifier(self, batch: np.ndarray) -> float:
        """Run the classifier, releasing the single-flight guard when it finishes."""
        if self._executor is None:
            try:
                return self.classifier.predict(batch)
            finally:
                self._inflight.release()

        release = _ReleaseOnce(self._inflight)
        try:
            future = self._executor.submit(self.classifier.predict, batch)
        except RuntimeError:
            release()
            raise

        # A timed-out call keeps the guard until it actually returns
        future.add_done_callback(release)
        try:
            output = future.result(timeout=self.classifier_timeout_sec)
        except concurrent.futures.TimeoutError:
            raise
        except Exception:
            release()
            raise
        release()
        return output

    def _is_stale(self, job: InferenceJob) -> bool:
        with self._state_lock:
            return job.generation != self._generation

    def _count_error(self) -> None:
        with self._state_lock:
            self._error_count += 1

    def _skip(self, reason: SkipReason, timings: Timings) -> FrameStep:
        with self._state_lock:
            self._skip_count += 1
        logger.debug(f"Frame skipped: {reason.value}")
        return FrameStep(SkippedResult(reason=reason, timings=timings))

    def _stale(self, job: InferenceJob) -> ErrorResult:
        with self._state_lock:
            self._stale_count += 1
        logger.info(
            f"Discarded classification from before reset "
            f"(generation={job.generation}, batch={len(job.frames)})"
        )
        return ErrorResult(
            message="Stream was reset while the classification was in flight",
            kind=ErrorKind.STALE,
            timings=job.timings.model_copy(update={"total_ms": _elapsed_ms(job.started_at)}),
        )

    def _error(self, message: str, kind: ErrorKind, job: InferenceJob) -> ErrorResult:
        self._count_error()
        return ErrorResult(
            message=message,
            kind=kind,
            timings=job.timings.model_copy(update={"total_ms": _elapsed_ms(job.started_at)}),
        )
