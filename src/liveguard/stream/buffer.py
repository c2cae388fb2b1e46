"""
Rolling Frame Buffer
====================

Thread-safe bounded sequence of the most recent normalized frames.

This module provides the RollingFrameBuffer class, which sits between the
per-frame producer and the batched classifier.

Design Rules:
    - Fixed capacity; length never exceeds it
    - Insertion order is temporal order
    - One critical section per call (push, or snapshot + clear)
    - The lock is never held while the classifier runs
    - Does NOT process or modify frames

Policies:
    ROLLING:       push evicts the oldest frame when full; snapshot never
                   clears, so a batch is always "the last N frames seen".
    DRAIN_ON_FULL: snapshot captures and clears in one step, so batches
                   never overlap.
"""

import logging
import threading
from collections import deque
from typing import Deque, List, Optional

from liveguard.config import BufferPolicy
from liveguard.stream.frame import NormalizedFrame


logger = logging.getLogger(__name__)


class RollingFrameBuffer:
    """
    Thread-safe bounded frame buffer.

    Attributes:
        capacity: Maximum number of frames (classifier batch size)
        policy: Default eviction policy used by snapshot_and_maybe_clear()

    Example:
        buffer = RollingFrameBuffer(capacity=20, policy=BufferPolicy.ROLLING)

        # Producer
        count = buffer.push(frame)

        # Consumer
        if buffer.is_full:
            batch = buffer.snapshot_and_maybe_clear()
    """

    def __init__(
        self,
        capacity: int = 20,
        policy: BufferPolicy = BufferPolicy.ROLLING,
    ) -> None:
        """
        Initialize frame buffer.

        Args:
            capacity: Maximum frames to hold. Must be >= 1.
            policy: Default eviction policy
        """
        if capacity < 1:
            raise ValueError("capacity must be >= 1")

        self._capacity = capacity
        self._policy = BufferPolicy(policy)
        self._frames: Deque[NormalizedFrame] = deque()
        self._lock = threading.Lock()

        self._evicted_count: int = 0
        self._total_pushed: int = 0
        self._drained_batches: int = 0

    @property
    def capacity(self) -> int:
        """Maximum buffer size."""
        return self._capacity

    @property
    def policy(self) -> BufferPolicy:
        """Default eviction policy."""
        return self._policy

    @property
    def is_full(self) -> bool:
        """Whether the buffer holds a full batch."""
        with self._lock:
            return len(self._frames) >= self._capacity

    @property
    def evicted_count(self) -> int:
        """Number of frames evicted on push."""
        return self._evicted_count

    def __len__(self) -> int:
        with self._lock:
            return len(self._frames)

    def push(self, frame: NormalizedFrame) -> int:
        """
        Append a frame, evicting the oldest if at capacity.

        Under DRAIN_ON_FULL the buffer normally drains before it overflows;
        if it does not (inference not yet due), the oldest frame is evicted
        so the newest CAPACITY frames are kept.

        Args:
            frame: Frame to add

        Returns:
            Buffer length after the push
        """
        with self._lock:
            self._total_pushed += 1
            if len(self._frames) >= self._capacity:
                self._frames.popleft()
                self._evicted_count += 1
            self._frames.append(frame)
            return len(self._frames)

    def snapshot_and_maybe_clear(
        self,
        policy: Optional[BufferPolicy] = None,
    ) -> List[NormalizedFrame]:
        """
        Return the buffered frames in temporal order.

        Args:
            policy: Policy for this call (defaults to the buffer's policy).
                DRAIN_ON_FULL clears the buffer in the same critical section.

        Returns:
            List of frames, oldest first
        """
        effective = self._policy if policy is None else BufferPolicy(policy)

        with self._lock:
            snapshot = list(self._frames)
            if effective == BufferPolicy.DRAIN_ON_FULL:
                self._frames.clear()
                self._drained_batches += 1
        return snapshot

    def clear(self) -> int:
        """
        Remove all frames.

        Returns:
            Number of frames cleared.
        """
        with self._lock:
            cleared = len(self._frames)
            self._frames.clear()
        return cleared

    def metrics(self) -> dict:
        """
        Get buffer metrics for observability.

        Returns:
            Dict with size, capacity, policy, evicted_count, total_pushed,
            drained_batches
        """
        with self._lock:
            size = len(self._frames)
        return {
            "size": size,
            "capacity": self._capacity,
            "policy": self._policy.value,
            "evicted_count": self._evicted_count,
            "total_pushed": self._total_pushed,
            "drained_batches": self._drained_batches,
        }
