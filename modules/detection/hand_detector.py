"""
MediaPipe Hands landmark source.

Turns camera frames into HandObservations for the engine. Only this module
and main.py touch OpenCV/MediaPipe; the engine itself never does.
"""

import logging
import cv2
import numpy as np
import mediapipe as mp

from modules.detection.landmark_extractor import observations_from_results

logger = logging.getLogger(__name__)


class HandDetector:
    """MediaPipe Hands wrapper producing HandObservations."""

    def __init__(self, config: dict):
        self._model_complexity = config.get("model_complexity", 0)
        self._max_hands = config.get("max_num_hands", 2)
        self._min_detect_conf = config.get("min_detection_confidence", 0.6)
        self._min_track_conf = config.get("min_tracking_confidence", 0.5)

        self._mp_hands = mp.solutions.hands
        self._mp_drawing = mp.solutions.drawing_utils
        self._mp_drawing_styles = mp.solutions.drawing_styles

        self._hands = None
        self._initialized = False

    def initialize(self):
        """Initialize MediaPipe Hands solution."""
        self._hands = self._mp_hands.Hands(
            static_image_mode=False,
            model_complexity=self._model_complexity,
            max_num_hands=self._max_hands,
            min_detection_confidence=self._min_detect_conf,
            min_tracking_confidence=self._min_track_conf,
        )
        self._initialized = True
        logger.info(
            "MediaPipe Hands initialized (complexity=%d, max_hands=%d, "
            "detect_conf=%.2f, track_conf=%.2f)",
            self._model_complexity, self._max_hands,
            self._min_detect_conf, self._min_track_conf,
        )

    def detect(self, bgr_frame: np.ndarray):
        """Run hand detection on a BGR camera frame.

        Returns:
            (observations, raw MediaPipe results)
        """
        if not self._initialized:
            self.initialize()

        rgb_frame = cv2.cvtColor(bgr_frame, cv2.COLOR_BGR2RGB)
        # Non-writable lets MediaPipe skip a copy
        rgb_frame.flags.writeable = False
        results = self._hands.process(rgb_frame)

        return observations_from_results(results), results

    def draw_landmarks(self, frame: np.ndarray, results):
        """Draw hand landmarks and connections on a BGR frame."""
        if results and results.multi_hand_landmarks:
            for hand_landmarks in results.multi_hand_landmarks:
                self._mp_drawing.draw_landmarks(
                    frame,
                    hand_landmarks,
                    self._mp_hands.HAND_CONNECTIONS,
                    self._mp_drawing_styles.get_default_hand_landmarks_style(),
                    self._mp_drawing_styles.get_default_hand_connections_style(),
                )
        return frame

    def close(self):
        """Release MediaPipe resources."""
        if self._hands:
            self._hands.close()
            self._initialized = False
            logger.info("MediaPipe Hands closed")

    def __enter__(self):
        self.initialize()
        return self

    def __exit__(self, *args):
        self.close()
