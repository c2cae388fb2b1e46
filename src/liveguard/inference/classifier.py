"""
Classifier Interface
====================

Black-box deepfake classifier abstraction.

The scoring core never looks inside the model. It hands over a batch of
normalized frames and receives one fake-probability estimate.

Interface:
    Classifier.predict(batch) -> float

Implementations:
    - MockClassifier: Deterministic scripted outputs (for testing)

Design Rules:
    - batch has shape (CAPACITY, H, W, 3), float32, values in [0, 1]
    - Output is a fake probability; it need not be clamped (the scheduler
      clamps), but it must be finite
    - Failures are raised, never returned as sentinel values
"""

import itertools
import logging
import threading
import time
from typing import Iterable, List, Optional, Protocol, Sequence

import numpy as np

from liveguard.stream.frame import NormalizedFrame


logger = logging.getLogger(__name__)


class ClassifierError(RuntimeError):
    """The classifier failed to produce an estimate."""


class Classifier(Protocol):
    """
    Protocol for classifier backends.

    Any class with a matching `predict` method can be used.
    """

    def predict(self, batch: np.ndarray) -> float:
        """
        Estimate the probability that the batch shows a synthetic face.

        Args:
            batch: float32 array (N, H, W, 3), values in [0, 1]

        Returns:
            Fake probability (nominally [0, 1])
        """
        ...


def stack_frames(frames: Sequence[NormalizedFrame]) -> np.ndarray:
    """
    Stack a buffer snapshot into a classifier batch.

    Raises:
        ValueError: If the snapshot is empty or frames differ in shape
    """
    if not frames:
        raise ValueError("Cannot build a batch from an empty snapshot")
    return np.stack([f.pixels for f in frames], axis=0)


class MockClassifier:
    """
    Deterministic mock classifier for testing.

    Returns scripted outputs in order, cycling when exhausted. Can be told
    to fail or to block so error, timeout and single-flight paths can be
    exercised.

    Attributes:
        outputs: Scripted fake probabilities
        delay_sec: Sleep before returning (simulates model latency)
        fail_on_calls: 1-based call numbers that raise ClassifierError
        call_count: Number of predict() calls
        batch_shapes: Shape of every batch received
    """

    def __init__(
        self,
        outputs: Iterable[float] = (0.1,),
        delay_sec: float = 0.0,
        fail_on_calls: Iterable[int] = (),
    ) -> None:
        """
        Initialize mock classifier.

        Args:
            outputs: Fake probabilities returned in order (cycled)
            delay_sec: Artificial latency per call
            fail_on_calls: Call numbers (1-based) that raise instead
        """
        self.outputs: List[float] = list(outputs)
        if not self.outputs:
            raise ValueError("MockClassifier needs at least one scripted output")

        self.delay_sec = delay_sec
        self.fail_on_calls = set(fail_on_calls)
        self.call_count = 0
        self.batch_shapes: List[tuple] = []

        self._cycle = itertools.cycle(self.outputs)
        self._lock = threading.Lock()
        self._release: Optional[threading.Event] = None

        logger.info(
            f"MockClassifier initialized: outputs={self.outputs}, "
            f"delay={delay_sec}s"
        )

    def hold(self) -> threading.Event:
        """
        Make subsequent calls block until the returned event is set.

        Returns:
            Event that releases blocked calls
        """
        self._release = threading.Event()
        return self._release

    def predict(self, batch: np.ndarray) -> float:
        with self._lock:
            self.call_count += 1
            call_number = self.call_count
            self.batch_shapes.append(tuple(batch.shape))
            output = next(self._cycle)

        if self._release is not None:
            self._release.wait()

        if self.delay_sec > 0:
            time.sleep(self.delay_sec)

        if call_number in self.fail_on_calls:
            raise ClassifierError(f"Scripted failure on call {call_number}")

        return output
