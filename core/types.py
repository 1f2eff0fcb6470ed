"""
Shared domain types for the adaptive gesture recognition engine.

Centralizes enums, data classes, and type definitions used across modules
to eliminate circular imports and ensure type consistency.
"""

import time
from enum import Enum
from typing import Optional, Dict, List
import numpy as np


# =============================================================================
# Gesture Types
# =============================================================================

class GestureType(Enum):
    """Gestures recognized by the built-in geometric detectors."""
    HELLO = "hello"
    YES = "yes"
    NO = "no"
    THANK_YOU = "thank_you"
    STOP = "stop"
    QUESTION = "question"
    HELP = "help"
    WAIT = "wait"
    GO = "go"
    PLEASE = "please"


class ClassifierKind(Enum):
    """Feature families, each backed by its own learned model."""
    HANDSHAPE = "handshape"
    ORIENTATION = "orientation"
    LOCATION = "location"


class CalibrationState(Enum):
    IDLE = "idle"
    RECORDING = "recording"


class DecisionSource(Enum):
    """Which side of the fusion layer produced a decision."""
    HEURISTIC = "heuristic"
    LEARNED = "learned"
    BLENDED = "blended"


# =============================================================================
# Data Containers
# =============================================================================

class HandObservation:
    """One detected hand in one frame.

    The hand index is positional within the frame; it is not a persistent
    identity and may refer to a different physical hand next frame.
    """

    __slots__ = ("landmarks", "handedness", "index")

    def __init__(self, landmarks, handedness: Optional[str] = None, index: int = 0):
        self.landmarks = landmarks          # (21, 3) normalized
        self.handedness = handedness        # "Left" / "Right" / None
        self.index = index

    def __repr__(self):
        count = len(self.landmarks) if self.landmarks is not None else 0
        return f"HandObservation(index={self.index}, handedness={self.handedness}, points={count})"


class FeaturePacket:
    """The three feature vectors derived from one hand observation."""

    __slots__ = ("handshape", "orientation", "location")

    def __init__(self, handshape: np.ndarray, orientation: np.ndarray, location: np.ndarray):
        self.handshape = handshape
        self.orientation = orientation
        self.location = location

    def get(self, kind: ClassifierKind) -> np.ndarray:
        return getattr(self, kind.value)

    def items(self):
        """Yield (ClassifierKind, vector) pairs in a fixed order."""
        for kind in ClassifierKind:
            yield kind, self.get(kind)

    @property
    def is_finite(self) -> bool:
        return all(bool(np.all(np.isfinite(vector))) for _, vector in self.items())


class Prediction:
    """Learned-model output: winning label, confidence, and per-model breakdown."""

    __slots__ = ("label", "confidence", "breakdown")

    def __init__(self, label: str, confidence: float, breakdown: Optional[List[dict]] = None):
        self.label = label
        self.confidence = confidence
        self.breakdown = breakdown or []

    def __repr__(self):
        return f"Prediction({self.label}, conf={self.confidence:.2f})"


class GestureEvent:
    """A debounced gesture decision handed to the interpreter layer."""

    __slots__ = ("gesture", "confidence", "landmarks", "timestamp", "source", "hand_index")

    def __init__(self, gesture: str, confidence: float, landmarks=None,
                 timestamp: Optional[float] = None,
                 source: DecisionSource = DecisionSource.HEURISTIC,
                 hand_index: int = 0):
        self.gesture = gesture
        self.confidence = confidence
        self.landmarks = landmarks
        self.timestamp = timestamp if timestamp is not None else time.time() * 1000
        self.source = source
        self.hand_index = hand_index

    def __repr__(self):
        return f"GestureEvent({self.gesture}, conf={self.confidence:.2f}, source={self.source.value})"

    def to_payload(self) -> Dict:
        """Keyword payload published on the event bus."""
        return {
            "gesture": self.gesture,
            "confidence": self.confidence,
            "landmarks": self.landmarks,
            "timestamp": self.timestamp,
            "source": self.source.value,
            "hand_index": self.hand_index,
        }
