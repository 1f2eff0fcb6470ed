"""
Rule-based gesture detectors built on landmark geometry.

Each gesture is a closed-form geometric test returning a confidence in
[0, 1]. Detectors are registered in an ordered table keyed by GestureType;
the table order decides ties between equally confident detectors.

Each detector also owns an acceptance threshold, distinct from the
confidence it emits: a score only becomes a candidate when it meets that
threshold. Thresholds can be tuned and detectors disabled from
gestures.yaml.
"""

import logging
from typing import Callable, Dict, List, Optional

import numpy as np

from core.types import GestureType
from modules.detection.landmark_extractor import (
    WRIST, THUMB_TIP, INDEX_TIP, MIDDLE_MCP, MIDDLE_TIP, RING_TIP, PINKY_TIP,
    as_landmark_array, is_finger_extended, planar_distance,
)

logger = logging.getLogger(__name__)

_NON_THUMB_TIPS = (INDEX_TIP, MIDDLE_TIP, RING_TIP, PINKY_TIP)


class DetectionContext:
    """What a detector may look at beyond its own hand's landmarks."""

    __slots__ = ("all_hands", "hand_index", "histories")

    def __init__(self, all_hands=None, hand_index: int = 0, histories=None):
        self.all_hands = all_hands or []     # list of (21, 3) arrays, frame order
        self.hand_index = hand_index
        self.histories = histories           # PoseHistoryStore or None

    @property
    def history(self) -> tuple:
        if self.histories is None:
            return ()
        return self.histories.get(self.hand_index)


# =============================================================================
# Detectors
# =============================================================================

def _others_closed(landmarks, handedness) -> bool:
    return not any(is_finger_extended(landmarks, tip, handedness) for tip in _NON_THUMB_TIPS)


def _mean_fingertip_y(landmarks) -> float:
    return float(np.mean([landmarks[tip][1] for tip in _NON_THUMB_TIPS]))


def detect_wave(landmarks, handedness, context: DetectionContext) -> float:
    """Lateral swing of the index fingertip across recent frames."""
    history = context.history
    if len(history) < 6:
        return 0.0
    xs = [frame[INDEX_TIP][0] for frame in history]
    if max(xs) - min(xs) > 0.06:
        return 0.85
    return 0.0


def detect_thumb_up(landmarks, handedness, context: DetectionContext) -> float:
    """Thumb extended above a closed fist."""
    if not is_finger_extended(landmarks, THUMB_TIP, handedness):
        return 0.0
    if not _others_closed(landmarks, handedness):
        return 0.0
    if landmarks[THUMB_TIP][1] < _mean_fingertip_y(landmarks) - 0.03:
        return 0.95
    return 0.0


def detect_thumb_down(landmarks, handedness, context: DetectionContext) -> float:
    """Thumb extended below a closed fist."""
    if not is_finger_extended(landmarks, THUMB_TIP, handedness):
        return 0.0
    if not _others_closed(landmarks, handedness):
        return 0.0
    if landmarks[THUMB_TIP][1] > _mean_fingertip_y(landmarks) + 0.03:
        return 0.95
    return 0.0


def detect_thank_you(landmarks, handedness, context: DetectionContext) -> float:
    """Both hands brought together (wrists close in the image plane)."""
    hands = context.all_hands
    if len(hands) < 2:
        return 0.0
    if planar_distance(hands[0][WRIST], hands[1][WRIST]) < 0.12:
        return 0.9
    return 0.0


def detect_stop(landmarks, handedness, context: DetectionContext) -> float:
    """Open palm: most fingers up and spread, thumb tucked."""
    extended = sum(1 for tip in _NON_THUMB_TIPS if is_finger_extended(landmarks, tip, handedness))
    thumb_closed = not is_finger_extended(landmarks, THUMB_TIP, handedness)
    index_middle = planar_distance(landmarks[INDEX_TIP], landmarks[MIDDLE_TIP])
    middle_ring = planar_distance(landmarks[MIDDLE_TIP], landmarks[RING_TIP])
    if extended >= 3 and thumb_closed and index_middle > 0.06 and middle_ring > 0.05:
        return 0.9
    return 0.0


def detect_question(landmarks, handedness, context: DetectionContext) -> float:
    """Index finger raised, everything else folded."""
    if not is_finger_extended(landmarks, INDEX_TIP, handedness):
        return 0.0
    others = (MIDDLE_TIP, RING_TIP, PINKY_TIP, THUMB_TIP)
    if any(is_finger_extended(landmarks, tip, handedness) for tip in others):
        return 0.0
    avg_others_y = float(np.mean([landmarks[tip][1] for tip in others]))
    if landmarks[INDEX_TIP][1] < avg_others_y - 0.06:
        return 0.95
    return 0.0


def detect_help(landmarks, handedness, context: DetectionContext) -> float:
    """Both wrists high in the frame; a single raised hand scores lower."""
    hands = context.all_hands
    if len(hands) >= 2:
        if hands[0][WRIST][1] < 0.45 and hands[1][WRIST][1] < 0.45:
            return 0.9
        return 0.0
    if landmarks[WRIST][1] < landmarks[MIDDLE_MCP][1] - 0.03:
        return 0.6
    return 0.0


def detect_wait(landmarks, handedness, context: DetectionContext) -> float:
    """Index up with the wrist above the palm center."""
    if (is_finger_extended(landmarks, INDEX_TIP, handedness)
            and landmarks[WRIST][1] < landmarks[MIDDLE_MCP][1] - 0.02):
        return 0.7
    return 0.0


def detect_go(landmarks, handedness, context: DetectionContext) -> float:
    """Pointing: index out sideways from the wrist, middle folded."""
    if (is_finger_extended(landmarks, INDEX_TIP, handedness)
            and not is_finger_extended(landmarks, MIDDLE_TIP, handedness)):
        if abs(landmarks[INDEX_TIP][0] - landmarks[WRIST][0]) > 0.08:
            return 0.8
    return 0.0


def detect_please(landmarks, handedness, context: DetectionContext) -> float:
    """Small circular motion of the palm in both axes."""
    history = context.history
    if len(history) < 8:
        return 0.0
    centroids = np.array([(frame[WRIST][:2] + frame[MIDDLE_MCP][:2]) / 2.0 for frame in history])
    x_range = float(np.ptp(centroids[:, 0]))
    y_range = float(np.ptp(centroids[:, 1]))
    if 0.02 < x_range < 0.12 and 0.02 < y_range < 0.12:
        return 0.6
    return 0.0


# =============================================================================
# Detector table
# =============================================================================

class GestureDetector:
    """One table entry: gesture, description, acceptance threshold, rule."""

    __slots__ = ("gesture", "description", "threshold", "_rule")

    def __init__(self, gesture: GestureType, description: str, threshold: float,
                 rule: Callable[..., float]):
        self.gesture = gesture
        self.description = description
        self.threshold = threshold
        self._rule = rule

    def evaluate(self, landmarks, handedness, context: DetectionContext) -> float:
        return float(self._rule(landmarks, handedness, context))

    def with_threshold(self, threshold: float) -> 'GestureDetector':
        return GestureDetector(self.gesture, self.description, threshold, self._rule)

    def __repr__(self):
        return f"GestureDetector({self.gesture.value}, threshold={self.threshold:.2f})"


DEFAULT_DETECTORS = (
    GestureDetector(GestureType.HELLO, "Wave hand", 0.8, detect_wave),
    GestureDetector(GestureType.YES, "Thumb up", 0.9, detect_thumb_up),
    GestureDetector(GestureType.NO, "Thumb down", 0.9, detect_thumb_down),
    GestureDetector(GestureType.THANK_YOU, "Both hands together", 0.7, detect_thank_you),
    GestureDetector(GestureType.STOP, "Open palm forward", 0.85, detect_stop),
    GestureDetector(GestureType.QUESTION, "Index finger up", 0.9, detect_question),
    GestureDetector(GestureType.HELP, "Both hands up", 0.6, detect_help),
    GestureDetector(GestureType.WAIT, "One hand up, palm out", 0.7, detect_wait),
    GestureDetector(GestureType.GO, "Pointing gesture", 0.8, detect_go),
    GestureDetector(GestureType.PLEASE, "Circular motion with hand", 0.5, detect_please),
)


class DetectorScore:
    """Confidence one detector produced for one hand in one frame."""

    __slots__ = ("name", "confidence", "threshold")

    def __init__(self, name: str, confidence: float, threshold: float):
        self.name = name
        self.confidence = confidence
        self.threshold = threshold

    @property
    def accepted(self) -> bool:
        return self.confidence >= self.threshold

    def __repr__(self):
        return f"DetectorScore({self.name}, {self.confidence:.2f}/{self.threshold:.2f})"


class HeuristicDetectorBank:
    """Evaluates every enabled detector for one hand, in table order."""

    def __init__(self, gesture_rules: dict = None, detectors=DEFAULT_DETECTORS):
        """
        Args:
            gesture_rules: optional mapping from gestures.yaml, e.g.
                           ``{"stop": {"threshold": 0.8, "enabled": True}}``
            detectors: ordered detector table
        """
        gesture_rules = gesture_rules or {}
        self._detectors = []
        for detector in detectors:
            rule = gesture_rules.get(detector.gesture.value) or {}
            if not isinstance(rule, dict):
                logger.warning("Ignoring gesture rule for %s: expected a mapping, got %r",
                               detector.gesture.value, rule)
                rule = {}
            if not rule.get("enabled", True):
                logger.info("Detector disabled by config: %s", detector.gesture.value)
                continue
            if "threshold" in rule:
                detector = detector.with_threshold(float(rule["threshold"]))
            self._detectors.append(detector)

    @property
    def detectors(self) -> List[GestureDetector]:
        return list(self._detectors)

    @property
    def gesture_names(self) -> List[str]:
        return [d.gesture.value for d in self._detectors]

    def get_threshold(self, name: str) -> Optional[float]:
        for detector in self._detectors:
            if detector.gesture.value == name:
                return detector.threshold
        return None

    def evaluate(self, landmarks, handedness=None, context: DetectionContext = None) -> List[DetectorScore]:
        """Score every detector for one hand.

        Returns an empty list when fewer than 21 landmarks are available.
        """
        points = as_landmark_array(landmarks)
        if points is None:
            return []
        context = context or DetectionContext(all_hands=[points])
        return [
            DetectorScore(d.gesture.value, d.evaluate(points, handedness, context), d.threshold)
            for d in self._detectors
        ]

    def scores(self, landmarks, handedness=None, context: DetectionContext = None) -> Dict[str, float]:
        """Ordered {gesture name: confidence} for inspection and tests."""
        return {s.name: s.confidence for s in self.evaluate(landmarks, handedness, context)}

    def best_match(self, landmarks, handedness=None, context: DetectionContext = None) -> Optional[DetectorScore]:
        """Highest-confidence detector meeting its own threshold, or None."""
        best = None
        for score in self.evaluate(landmarks, handedness, context):
            if score.accepted and (best is None or score.confidence > best.confidence):
                best = score
        return best
