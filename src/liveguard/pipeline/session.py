"""
Stream Session
==============

Background variant of the pipeline: the producer thread never waits for
the classifier.

    producer ── feed(frame) ──► fast path (spectral + buffer + due check)
                                   │
                                   └─ due ─► worker thread ─► classifier
                                                              │
                                   result_sink(record) ◄──────┘

feed() returns the fast-path CollectingResult immediately. Completed
InferenceResult / ErrorResult records are delivered to the result sink on
the worker thread.
"""

import concurrent.futures
import logging
import threading
from typing import Callable, List, Optional

import numpy as np

from liveguard.models.result import ResultRecord
from liveguard.pipeline.pipeline import FrameProcessingPipeline, FrameStep, InferenceJob
from liveguard.stream.frame import NormalizedFrame


logger = logging.getLogger(__name__)


ResultSink = Callable[[ResultRecord], None]


class StreamSession:
    """
    Runs classifications off the producer thread.

    A single worker matches the single-flight rule: the pipeline already
    refuses a second concurrent classification.

    Example:
        session = StreamSession(pipeline, result_sink=print)
        for frame in frames:
            session.feed(frame)
        session.close()
    """

    def __init__(
        self,
        pipeline: FrameProcessingPipeline,
        result_sink: Optional[ResultSink] = None,
    ) -> None:
        """
        Initialize the session.

        Args:
            pipeline: Pipeline owned by this session
            result_sink: Called with every completed classification record
                (defaults to collecting them in `results`)
        """
        self.pipeline = pipeline
        self.results: List[ResultRecord] = []
        self._sink = result_sink or self.results.append
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix="liveguard-session",
        )
        self._pending: Optional[concurrent.futures.Future] = None
        self._lock = threading.Lock()
        self._closed = False

        logger.info("StreamSession started")

    def feed(
        self,
        frame: NormalizedFrame,
        timestamp: Optional[float] = None,
    ) -> ResultRecord:
        """
        Push a normalized frame; schedule a classification if one is due.

        Returns:
            Fast-path result (CollectingResult or ErrorResult)

        Raises:
            RuntimeError: If the session is closed (the frame is not scored)
        """
        self._ensure_open()
        return self._dispatch(self.pipeline.score_frame(frame, timestamp))

    def feed_image(
        self,
        image: np.ndarray,
        timestamp: Optional[float] = None,
    ) -> ResultRecord:
        """Locate/crop/normalize a raw RGB image, then feed it."""
        self._ensure_open()
        return self._dispatch(self.pipeline.score_image(image, timestamp))

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the outstanding classification (if any) is delivered."""
        with self._lock:
            pending = self._pending
        if pending is not None:
            concurrent.futures.wait([pending], timeout=timeout)

    def close(self, wait: bool = True) -> None:
        """Stop the worker and release the pipeline's resources."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=wait)
        self.pipeline.close()
        logger.info("StreamSession closed")

    def __enter__(self) -> "StreamSession":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _ensure_open(self) -> None:
        with self._lock:
            if self._closed:
                raise RuntimeError("StreamSession is closed")

    def _dispatch(self, step: FrameStep) -> ResultRecord:
        if step.job is not None:
            with self._lock:
                if not self._closed:
                    self._pending = self._executor.submit(self._classify, step.job)
                    return step.result
            # Closed between scoring and dispatch
            self.pipeline.abandon(step.job)
            raise RuntimeError("StreamSession is closed")
        return step.result

    def _classify(self, job: InferenceJob) -> None:
        record = self.pipeline.run_inference(job)
        try:
            self._sink(record)
        except Exception as e:
            logger.error(f"Result sink error: {e}")
