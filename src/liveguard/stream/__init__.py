"""
Stream Module
=============

Frame representation and buffering components.

This module provides the ingestion layer of the scoring core:
    - NormalizedFrame: Typed, immutable normalized face frame
    - RollingFrameBuffer: Thread-safe bounded buffer (ROLLING / DRAIN_ON_FULL)

Example:
    from liveguard.stream import NormalizedFrame, RollingFrameBuffer

    buffer = RollingFrameBuffer(capacity=20)
    count = buffer.push(NormalizedFrame(pixels))
    if buffer.is_full:
        batch = buffer.snapshot_and_maybe_clear()
"""

from liveguard.stream.frame import NormalizedFrame
from liveguard.stream.buffer import RollingFrameBuffer


__all__ = [
    "NormalizedFrame",
    "RollingFrameBuffer",
]
