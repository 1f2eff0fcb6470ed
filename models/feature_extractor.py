"""
Feature extraction: one hand observation -> FeaturePacket.

Produces the three typed vectors consumed by the classifier bank and
captured during calibration.

Feature layout:
    handshape   (25)  per finger [extended, curl, tip->palm, mcp->palm],
                      palm width, palm length, finger spread,
                      thumb-index distance, handedness sign
    orientation (8)   palm normal xyz, yaw, pitch, roll,
                      middle-direction z, handedness sign
    location    (14)  palm xyz, wrist xyz, index-tip dy, index-tip dx,
                      middle-tip dz, hand scale, handedness sign,
                      partner palm offset xyz

Distances are normalized by hand scale. Every value is clamped so that
degenerate geometry cannot produce NaN/inf or dominate a model.
"""

import math

import numpy as np

from core.types import FeaturePacket
from modules.detection.landmark_extractor import (
    FINGER_JOINTS, FINGER_NAMES,
    WRIST, THUMB_MCP, THUMB_TIP, INDEX_MCP, INDEX_TIP, MIDDLE_TIP, PINKY_MCP, PINKY_TIP,
    as_landmark_array, is_finger_extended, finger_curl,
    palm_center, hand_scale, palm_normal, normalize_vector,
    distance, clamp, handedness_sign,
)

HANDSHAPE_DIM = 25
ORIENTATION_DIM = 8
LOCATION_DIM = 14


class GestureFeatureExtractor:
    """Converts raw hand landmarks into handshape/orientation/location vectors."""

    def extract(self, landmarks, handedness=None, all_hands=None, hand_index=0):
        """Build a FeaturePacket for one hand.

        Args:
            landmarks: (21, 3) landmarks (array, triples, or .x/.y/.z points)
            handedness: "Left", "Right" or None
            all_hands: every hand in the frame, as HandObservation or raw
                       landmark arrays, used for the partner-hand offset
            hand_index: position of this hand within ``all_hands``

        Returns:
            FeaturePacket, or None when fewer than 21 landmarks are available
        """
        points = as_landmark_array(landmarks)
        if points is None:
            return None

        return FeaturePacket(
            handshape=self.handshape_features(points, handedness),
            orientation=self.orientation_features(points, handedness),
            location=self.location_features(points, handedness, all_hands, hand_index),
        )

    # ------------------------------------------------------------------
    # Feature families
    # ------------------------------------------------------------------

    def handshape_features(self, points, handedness=None):
        palm = palm_center(points)
        scale = hand_scale(points)
        features = []

        for name in FINGER_NAMES:
            base, _, _, tip = FINGER_JOINTS[name]
            # thumb uses its MCP (not CMC) as the base reference point
            base_point = points[THUMB_MCP] if name == "thumb" else points[base]
            extended = 1.0 if is_finger_extended(points, tip, handedness) else 0.0
            features.append(clamp(extended, 0.0, 1.0))
            features.append(clamp(finger_curl(points, name), 0.0, 1.0))
            features.append(clamp(distance(points[tip], palm) / scale))
            features.append(clamp(distance(base_point, palm) / scale))

        features.append(clamp(distance(points[INDEX_MCP], points[PINKY_MCP]) / scale))
        features.append(clamp(distance(points[WRIST], points[MIDDLE_TIP]) / scale))
        features.append(clamp(distance(points[INDEX_TIP], points[PINKY_TIP]) / scale))
        features.append(clamp(distance(points[THUMB_TIP], points[INDEX_TIP]) / scale))
        features.append(clamp(handedness_sign(handedness), -1.0, 1.0))

        return np.asarray(features, dtype=np.float64)

    def orientation_features(self, points, handedness=None):
        normal = palm_normal(points)
        direction = normalize_vector(points[MIDDLE_TIP] - points[WRIST])

        yaw = math.atan2(normal[0], normal[2]) / math.pi
        pitch = math.asin(clamp(-normal[1], -1.0, 1.0)) / (math.pi / 2)
        roll = math.atan2(direction[1], direction[0]) / math.pi

        return np.asarray([
            clamp(normal[0], -1.0, 1.0),
            clamp(normal[1], -1.0, 1.0),
            clamp(normal[2], -1.0, 1.0),
            clamp(yaw),
            clamp(pitch),
            clamp(roll),
            clamp(direction[2]),
            clamp(handedness_sign(handedness), -1.0, 1.0),
        ], dtype=np.float64)

    def location_features(self, points, handedness=None, all_hands=None, hand_index=0):
        palm = palm_center(points)
        wrist = points[WRIST]
        scale = hand_scale(points)

        features = [
            clamp(palm[0]), clamp(palm[1]), clamp(palm[2]),
            clamp(wrist[0]), clamp(wrist[1]), clamp(wrist[2]),
            clamp((points[INDEX_TIP][1] - wrist[1]) / scale),
            clamp((points[INDEX_TIP][0] - wrist[0]) / scale),
            clamp((points[MIDDLE_TIP][2] - wrist[2]) / scale),
            clamp(scale),
            clamp(handedness_sign(handedness), -1.0, 1.0),
        ]

        partner = self._partner_landmarks(all_hands, hand_index)
        if partner is not None:
            offset = palm - palm_center(partner)
            features.extend(clamp(v) for v in offset)
        else:
            features.extend((0.0, 0.0, 0.0))

        return np.asarray(features, dtype=np.float64)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _partner_landmarks(all_hands, hand_index):
        """Landmarks of the other hand in a two-hand frame, if any."""
        if not all_hands or len(all_hands) < 2:
            return None
        partner_index = 1 if hand_index == 0 else 0
        partner = all_hands[partner_index]
        return as_landmark_array(getattr(partner, "landmarks", partner))
