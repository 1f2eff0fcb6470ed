"""
21-point hand landmark geometry shared by the detectors and the feature
extractor.

Coordinates are camera-normalized: x and y in [0, 1], y grows downward,
so "above" means a numerically smaller y.
"""

import math
import logging
from typing import List, Optional

import numpy as np

from core.types import HandObservation

logger = logging.getLogger(__name__)

# MediaPipe hand landmark indices
WRIST = 0
THUMB_CMC = 1
THUMB_MCP = 2
THUMB_IP = 3
THUMB_TIP = 4
INDEX_MCP = 5
INDEX_PIP = 6
INDEX_DIP = 7
INDEX_TIP = 8
MIDDLE_MCP = 9
MIDDLE_PIP = 10
MIDDLE_DIP = 11
MIDDLE_TIP = 12
RING_MCP = 13
RING_PIP = 14
RING_DIP = 15
RING_TIP = 16
PINKY_MCP = 17
PINKY_PIP = 18
PINKY_DIP = 19
PINKY_TIP = 20

NUM_LANDMARKS = 21

FINGER_NAMES = ("thumb", "index", "middle", "ring", "pinky")
FINGER_TIPS = [THUMB_TIP, INDEX_TIP, MIDDLE_TIP, RING_TIP, PINKY_TIP]

# Joint chains: (MCP/CMC, PIP/MCP, DIP/IP, TIP) for curl computation
FINGER_JOINTS = {
    "thumb":  (THUMB_CMC, THUMB_MCP, THUMB_IP, THUMB_TIP),
    "index":  (INDEX_MCP, INDEX_PIP, INDEX_DIP, INDEX_TIP),
    "middle": (MIDDLE_MCP, MIDDLE_PIP, MIDDLE_DIP, MIDDLE_TIP),
    "ring":   (RING_MCP, RING_PIP, RING_DIP, RING_TIP),
    "pinky":  (PINKY_MCP, PINKY_PIP, PINKY_DIP, PINKY_TIP),
}

# Tip -> PIP joint used by the vertical extension test
_TIP_TO_PIP = {
    INDEX_TIP: INDEX_PIP,
    MIDDLE_TIP: MIDDLE_PIP,
    RING_TIP: RING_PIP,
    PINKY_TIP: PINKY_PIP,
}

FINGER_EXTENSION_MARGIN = 0.02
THUMB_EXTENSION_MARGIN = 0.02
THUMB_DISPLACEMENT_MARGIN = 0.03
MIN_HAND_SCALE = 1e-3
_ZERO_LENGTH = 1e-9


# =============================================================================
# Input normalization
# =============================================================================

def as_landmark_array(points) -> Optional[np.ndarray]:
    """Convert landmarks to a float (N, 3) array, or None if fewer than 21.

    Accepts numpy arrays, sequences of (x, y, z) triples, sequences of
    objects exposing .x/.y/.z, and MediaPipe landmark lists (``.landmark``).
    """
    if points is None:
        return None
    if hasattr(points, "landmark"):
        points = points.landmark

    if isinstance(points, np.ndarray):
        arr = points.astype(np.float64, copy=True)
    else:
        rows = []
        for pt in points:
            if hasattr(pt, "x"):
                rows.append((pt.x, pt.y, getattr(pt, "z", 0.0) or 0.0))
            else:
                rows.append(tuple(pt)[:3])
        if not rows:
            return None
        try:
            arr = np.asarray(rows, dtype=np.float64)
        except (TypeError, ValueError):
            logger.debug("Unusable landmark payload: %r", rows[:2])
            return None

    if arr.ndim != 2 or arr.shape[1] < 3 or arr.shape[0] < NUM_LANDMARKS:
        return None
    return arr[:, :3]


def observations_from_results(results) -> List[HandObservation]:
    """Convert MediaPipe Hands results to a list of HandObservation.

    Works on any object exposing ``multi_hand_landmarks`` and optionally
    ``multi_handedness``; no MediaPipe import is needed.
    """
    observations = []
    if not results or not getattr(results, "multi_hand_landmarks", None):
        return observations

    handedness_list = getattr(results, "multi_handedness", None) or []
    for i, hand_lm in enumerate(results.multi_hand_landmarks):
        landmarks = as_landmark_array(hand_lm)
        if landmarks is None:
            continue
        label = None
        if i < len(handedness_list):
            try:
                label = handedness_list[i].classification[0].label
            except (AttributeError, IndexError):
                label = None
        observations.append(HandObservation(landmarks, label, i))
    return observations


# =============================================================================
# Handedness
# =============================================================================

def is_right(handedness: Optional[str]) -> bool:
    return bool(handedness) and handedness.lower().startswith("right")


def is_left(handedness: Optional[str]) -> bool:
    return bool(handedness) and handedness.lower().startswith("left")


def handedness_sign(handedness: Optional[str]) -> float:
    """Left -> -1, Right -> +1, unknown -> 0."""
    if is_left(handedness):
        return -1.0
    if is_right(handedness):
        return 1.0
    return 0.0


# =============================================================================
# Finger State Detection
# =============================================================================

def is_finger_extended(landmarks: np.ndarray, tip_index: int,
                       handedness: Optional[str] = None) -> bool:
    """Whether the finger ending at ``tip_index`` is extended.

    Non-thumb fingers: tip clearly above its PIP joint.
    Thumb: tip displaced sideways away from the palm, where "away" flips
    with handedness; unknown handedness falls back to raw displacement
    between tip and IP joint.
    """
    if tip_index == THUMB_TIP:
        tip = landmarks[THUMB_TIP]
        mcp = landmarks[THUMB_MCP]
        ip = landmarks[THUMB_IP]
        if is_right(handedness):
            return bool(tip[0] < mcp[0] - THUMB_EXTENSION_MARGIN)
        if is_left(handedness):
            return bool(tip[0] > mcp[0] + THUMB_EXTENSION_MARGIN)
        return bool(abs(tip[0] - ip[0]) > THUMB_DISPLACEMENT_MARGIN
                    or abs(tip[1] - ip[1]) > THUMB_DISPLACEMENT_MARGIN)

    pip_index = _TIP_TO_PIP.get(tip_index, WRIST)
    return bool(landmarks[tip_index][1] < landmarks[pip_index][1] - FINGER_EXTENSION_MARGIN)


def get_finger_states(landmarks: np.ndarray, handedness: Optional[str] = None) -> dict:
    """Extension flag per finger name."""
    return {
        name: is_finger_extended(landmarks, tip, handedness)
        for name, tip in zip(FINGER_NAMES, FINGER_TIPS)
    }


def finger_curl(landmarks: np.ndarray, finger: str) -> float:
    """Curl in [0, 1]: sum of the two inter-segment bend angles over pi.

    0 = straight finger, 1 = folded back on itself.
    """
    base, mid1, mid2, tip = FINGER_JOINTS[finger]
    v1 = normalize_vector(landmarks[mid1] - landmarks[base])
    v2 = normalize_vector(landmarks[mid2] - landmarks[mid1])
    v3 = normalize_vector(landmarks[tip] - landmarks[mid2])

    angle1 = math.acos(clamp(float(np.dot(v1, v2)), -1.0, 1.0))
    angle2 = math.acos(clamp(float(np.dot(v2, v3)), -1.0, 1.0))

    curl = (angle1 + angle2) / math.pi
    if not math.isfinite(curl):
        return 0.0
    return min(max(curl, 0.0), 1.0)


# =============================================================================
# Palm Geometry
# =============================================================================

def palm_center(landmarks: np.ndarray) -> np.ndarray:
    """Palm center from wrist and the index/middle/ring MCP joints."""
    return np.mean(landmarks[[WRIST, INDEX_MCP, MIDDLE_MCP, RING_MCP]], axis=0)


def hand_scale(landmarks: np.ndarray) -> float:
    """Wrist->middle MCP plus index MCP->pinky MCP, floored to avoid /0."""
    base = distance(landmarks[WRIST], landmarks[MIDDLE_MCP])
    span = distance(landmarks[INDEX_MCP], landmarks[PINKY_MCP])
    scale = base + span
    if not math.isfinite(scale):
        return MIN_HAND_SCALE
    return max(scale, MIN_HAND_SCALE)


def palm_normal(landmarks: np.ndarray) -> np.ndarray:
    """Unit normal of the wrist / index MCP / pinky MCP plane, or zeros."""
    wrist = landmarks[WRIST]
    return normalize_vector(np.cross(landmarks[INDEX_MCP] - wrist,
                                     landmarks[PINKY_MCP] - wrist))


# =============================================================================
# Math Helpers
# =============================================================================

def distance(p1: np.ndarray, p2: np.ndarray) -> float:
    """Euclidean distance between two 3D points."""
    return float(np.linalg.norm(np.asarray(p1) - np.asarray(p2)))


def planar_distance(p1: np.ndarray, p2: np.ndarray) -> float:
    """Distance in the image plane (x, y only)."""
    return float(math.hypot(p1[0] - p2[0], p1[1] - p2[1]))


def normalize_vector(v: np.ndarray) -> np.ndarray:
    """Unit vector, or the zero vector for (near) zero-length input."""
    v = np.asarray(v, dtype=np.float64)
    length = float(np.linalg.norm(v))
    if not math.isfinite(length) or length < _ZERO_LENGTH:
        return np.zeros(3, dtype=np.float64)
    return v / length


def clamp(value: float, low: float = -5.0, high: float = 5.0) -> float:
    """Clamp to [low, high]; non-finite values become 0."""
    value = float(value)
    if not math.isfinite(value):
        return 0.0
    if value < low:
        return low
    if value > high:
        return high
    return value
