"""
Shared fixtures: synthetic hand landmarks in MediaPipe's normalized space
(x right, y down, 21 points per hand).
"""

import sys
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from modules.utils.config import Config
from modules.storage.persistence import MemoryStore


# Right hand, thumb raised above a closed fist
THUMBS_UP = [
    (0.50, 0.70, 0.0),                                                      # wrist
    (0.45, 0.45, 0.0), (0.44, 0.30, 0.0), (0.43, 0.25, 0.0), (0.41, 0.20, 0.0),   # thumb
    (0.47, 0.50, 0.0), (0.49, 0.46, 0.0), (0.52, 0.50, 0.0), (0.51, 0.54, 0.0),   # index
    (0.50, 0.52, 0.0), (0.52, 0.48, 0.0), (0.55, 0.52, 0.0), (0.54, 0.56, 0.0),   # middle
    (0.53, 0.55, 0.0), (0.55, 0.51, 0.0), (0.58, 0.55, 0.0), (0.57, 0.58, 0.0),   # ring
    (0.56, 0.58, 0.0), (0.58, 0.55, 0.0), (0.60, 0.58, 0.0), (0.59, 0.61, 0.0),   # pinky
]

# Right hand, open palm with spread fingers and the thumb tucked
OPEN_PALM = [
    (0.50, 0.80, 0.0),
    (0.46, 0.75, 0.0), (0.44, 0.70, 0.0), (0.46, 0.66, 0.0), (0.49, 0.64, 0.0),
    (0.42, 0.60, 0.0), (0.40, 0.50, 0.0), (0.39, 0.45, 0.0), (0.38, 0.40, 0.0),
    (0.49, 0.58, 0.0), (0.49, 0.47, 0.0), (0.49, 0.41, 0.0), (0.49, 0.35, 0.0),
    (0.56, 0.60, 0.0), (0.58, 0.50, 0.0), (0.59, 0.45, 0.0), (0.60, 0.40, 0.0),
    (0.62, 0.64, 0.0), (0.66, 0.56, 0.0), (0.68, 0.52, 0.0), (0.70, 0.48, 0.0),
]


def make_hand(points, dx=0.0, dy=0.0):
    """Landmark array shifted by (dx, dy)."""
    hand = np.array(points, dtype=np.float64)
    hand[:, 0] += dx
    hand[:, 1] += dy
    return hand


@pytest.fixture
def thumbs_up():
    return make_hand(THUMBS_UP)


@pytest.fixture
def open_palm():
    return make_hand(OPEN_PALM)


@pytest.fixture
def memory_store():
    return MemoryStore()


@pytest.fixture
def fresh_config():
    """Config singleton that does not leak between tests."""
    Config.reset()
    yield Config()
    Config.reset()


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start=0.0):
        self.now = float(start)

    def __call__(self):
        return self.now

    def advance(self, ms):
        self.now += ms
        return self.now


@pytest.fixture
def clock():
    return FakeClock()
