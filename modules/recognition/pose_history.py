"""
Per-hand ring buffers of recent landmark frames for motion-based gestures.

Histories are keyed by the per-frame hand index, which is positional rather
than a tracked identity: when hands cross or one drops out, a buffer may
mix frames from different physical hands.
"""

import logging
from collections import deque

import numpy as np

logger = logging.getLogger(__name__)


class PoseHistoryStore:
    """Bounded FIFO of landmark frames per hand index."""

    def __init__(self, capacity: int = 12):
        if capacity < 1:
            raise ValueError("Pose history capacity must be >= 1, got %r" % capacity)
        self._capacity = capacity
        self._histories = {}  # hand_index -> deque of (21, 3) arrays

    def record(self, hand_index: int, landmarks):
        """Append a copy of one hand's landmarks, evicting the oldest frame."""
        buffer = self._histories.get(hand_index)
        if buffer is None:
            buffer = deque(maxlen=self._capacity)
            self._histories[hand_index] = buffer
        frame = np.array(landmarks, dtype=np.float64, copy=True)
        frame.flags.writeable = False
        buffer.append(frame)

    def clear(self):
        """Drop every buffer (called when a frame contains no hands)."""
        if self._histories:
            logger.debug("Pose history cleared (%d hands)", len(self._histories))
        self._histories.clear()

    def get(self, hand_index: int) -> tuple:
        """Frames for a hand, oldest first; empty for unknown indices."""
        return tuple(self._histories.get(hand_index, ()))

    def length(self, hand_index: int) -> int:
        return len(self._histories.get(hand_index, ()))

    @property
    def hand_indices(self) -> list:
        return sorted(self._histories)

    @property
    def capacity(self) -> int:
        return self._capacity
