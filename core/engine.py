"""
Gesture engine: the per-frame orchestrator.

Architecture:
    hands -> PoseHistoryStore -> GestureFeatureExtractor
    -> {HeuristicDetectorBank, ClassifierBank} -> FusionEngine
    -> Debouncer -> GestureLogger + EventBus

While a calibration session is recording, each hand's feature packet is
also offered to the CalibrationManager; detection keeps running.

All collaborators can be injected, so several engines can run side by
side (one per participant, or one per test) without sharing state.
"""

import time
import logging

import numpy as np

from core.events import EventBus, Events
from core.types import GestureEvent, HandObservation
from models.classifier_bank import ClassifierBank
from models.feature_extractor import GestureFeatureExtractor
from modules.control.debouncer import Debouncer
from modules.detection.landmark_extractor import as_landmark_array
from modules.intelligence.calibration import CalibrationManager, SampleStore
from modules.recognition.fusion import FusionEngine
from modules.recognition.gesture_detectors import DetectionContext, HeuristicDetectorBank
from modules.recognition.pose_history import PoseHistoryStore
from modules.storage.persistence import ModelPersistence, create_store
from modules.utils.logger import GestureLogger

logger = logging.getLogger(__name__)


def _wall_clock_ms() -> float:
    return time.time() * 1000


class FrameResult:
    """What the engine saw and decided in the most recent frame."""

    __slots__ = ("hand_count", "gesture_name", "gesture_confidence",
                 "gesture_source", "emitted", "timestamp")

    def __init__(self, timestamp=0.0):
        self.hand_count = 0
        self.gesture_name = None
        self.gesture_confidence = 0.0
        self.gesture_source = None
        self.emitted = False
        self.timestamp = timestamp


class GestureEngine:
    """Turns a stream of hand observations into debounced gesture events.

    Usage::

        engine = GestureEngine(config)
        engine.event_bus.subscribe(Events.GESTURE_DETECTED, on_gesture)
        for hands in landmark_source:
            engine.process_frame(hands)
    """

    def __init__(
        self,
        config=None,
        event_bus=None,
        store=None,
        clock=None,
        classifier_bank=None,
        sample_store=None,
        gesture_rules=None,
    ):
        """
        Args:
            config: full configuration dict (sections ``recognition``,
                    ``calibration``, ``training``, ``persistence``,
                    ``gestures``); every key is optional
            event_bus: EventBus to publish on (a private one by default)
            store: KeyValueStore for models and samples (built from the
                   ``persistence`` section by default)
            clock: callable returning the current time in milliseconds
            classifier_bank: pre-built ClassifierBank
            sample_store: pre-built SampleStore
            gesture_rules: detector overrides, defaults to ``gestures``
        """
        config = config or {}
        recognition = config.get("recognition") or {}
        calibration = config.get("calibration") or {}
        training = config.get("training") or {}
        persistence = config.get("persistence") or {}

        self._bus = event_bus if event_bus is not None else EventBus()
        self._clock = clock or _wall_clock_ms

        self._history = PoseHistoryStore(recognition.get("pose_history_size", 12))
        self._extractor = GestureFeatureExtractor()
        rules = gesture_rules if gesture_rules is not None else config.get("gestures")
        self._detectors = HeuristicDetectorBank(rules)
        self._bank = classifier_bank if classifier_bank is not None else ClassifierBank(training)
        self._samples = sample_store if sample_store is not None else SampleStore(
            calibration.get("max_samples_per_label", 180))
        self._fusion = FusionEngine(recognition)
        self._debouncer = Debouncer(recognition)
        self._gesture_log = GestureLogger(recognition.get("gesture_history_size", 10))

        store = store if store is not None else create_store(persistence)
        self._persistence = ModelPersistence(store, self._bus, persistence)
        self._calibration = CalibrationManager(
            calibration, self._samples, self._bank, self._bus,
            persistence=self._persistence,
            background_training=bool(training.get("background", False)),
        )

        self._frame_count = 0
        self._last = None

        self._persistence.restore(self._bank, self._samples)
        logger.info("Gesture engine ready: %d detectors, learned models: %s",
                    len(self._detectors.gesture_names),
                    [k.value for k in self._bank.trained_kinds] or "none")

    # ------------------------------------------------------------------
    # Frame processing
    # ------------------------------------------------------------------

    def process_frame(self, hands, timestamp=None):
        """Analyze one frame of hand observations.

        Args:
            hands: list of HandObservation, ``(landmarks, handedness)``
                   pairs, or bare landmark arrays; may be empty
            timestamp: frame time in ms (engine clock when omitted)

        Returns:
            The GestureEvent emitted for this frame, or None
        """
        now = float(timestamp) if timestamp is not None else self._clock()
        self._calibration.poll_training()
        observations = self._normalize_hands(hands)

        self._frame_count += 1
        result = FrameResult(now)
        result.hand_count = len(observations)
        self._last = result

        if not observations:
            self._history.clear()
            return None

        for obs in observations:
            self._history.record(obs.index, obs.landmarks)

        all_hands = [obs.landmarks for obs in observations]
        emitted = None
        for obs in observations:
            packet = self._extractor.extract(obs.landmarks, obs.handedness, all_hands, obs.index)

            if self._calibration.is_calibrating:
                self._calibration.capture(packet, now)

            event = self._analyze_hand(obs, packet, all_hands, now, result)
            if event is not None and emitted is None:
                emitted = event

        return emitted

    def _analyze_hand(self, obs, packet, all_hands, now, result):
        context = DetectionContext(all_hands, obs.index, self._history)
        scores = self._detectors.evaluate(obs.landmarks, obs.handedness, context)
        prediction = self._bank.predict(packet)

        decision = self._fusion.decide(scores, prediction)
        if decision is None:
            return None

        if result.gesture_name is None or decision.confidence > result.gesture_confidence:
            result.gesture_name = decision.gesture
            result.gesture_confidence = decision.confidence
            result.gesture_source = decision.source.value

        if not self._debouncer.can_emit(now):
            return None

        event = GestureEvent(
            decision.gesture, decision.confidence,
            landmarks=np.array(obs.landmarks, copy=True),
            timestamp=now,
            source=decision.source,
            hand_index=obs.index,
        )
        self._debouncer.record(now, decision.gesture)
        self._gesture_log.log_gesture(event)
        result.emitted = True
        self._bus.emit(Events.GESTURE_DETECTED, **event.to_payload())
        return event

    @staticmethod
    def _normalize_hands(hands) -> list:
        """Coerce the accepted input shapes into HandObservations.

        Hands with fewer than 21 landmarks are dropped; the survivors are
        indexed by their position in the filtered list.
        """
        observations = []
        for position, hand in enumerate(hands or []):
            if isinstance(hand, HandObservation):
                landmarks, handedness = hand.landmarks, hand.handedness
            elif (isinstance(hand, (tuple, list)) and len(hand) == 2
                    and (hand[1] is None or isinstance(hand[1], str))):
                landmarks, handedness = hand
            else:
                landmarks, handedness = hand, None
            points = as_landmark_array(landmarks)
            if points is None:
                logger.debug("Hand %d skipped: fewer than 21 landmarks", position)
                continue
            observations.append(HandObservation(points, handedness, len(observations)))
        return observations

    # ------------------------------------------------------------------
    # Calibration
    # ------------------------------------------------------------------

    def start_calibration(self, label: str, options: dict = None) -> bool:
        return self._calibration.start(label, options)

    def stop_calibration(self, train: bool = None):
        """End the session; returns training summaries when training ran inline."""
        return self._calibration.stop(train)

    def cancel_calibration(self):
        return self._calibration.cancel()

    def clear_calibration_data(self):
        self._calibration.clear()

    def is_calibrating(self) -> bool:
        return self._calibration.is_calibrating

    def train_models(self) -> dict:
        """Retrain from all stored samples without a session."""
        return self._calibration.train()

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get_gesture_history(self) -> list:
        return self._gesture_log.get_history()

    def clear_gesture_history(self):
        self._gesture_log.clear()

    def set_gesture_cooldown(self, cooldown_ms: float):
        self._debouncer.set_cooldown(cooldown_ms)

    def build_state(self) -> dict:
        """Snapshot for overlays and status displays.

        ``status`` is one of:
            waiting      no frame received yet
            no_hands     last frame had no usable hand
            tracking     hands seen, nothing recognized
            recognized   a gesture passed fusion in the last frame
        """
        last = self._last
        if last is None:
            status = "waiting"
        elif last.hand_count == 0:
            status = "no_hands"
        elif last.gesture_name is None:
            status = "tracking"
        else:
            status = "recognized"

        history = self._gesture_log.get_history()
        return {
            "status": status,
            "frames": self._frame_count,
            "hand_count": last.hand_count if last else 0,
            "gesture_name": last.gesture_name if last else None,
            "gesture_confidence": last.gesture_confidence if last else 0.0,
            "gesture_source": last.gesture_source if last else None,
            "last_event": history[-1] if history else None,
            "cooldown_ms": self._debouncer.cooldown_ms,
            "calibrating": self._calibration.is_calibrating,
            "calibration_progress": self._calibration.progress,
            "training": self._calibration.is_training,
            "learned_labels": self._bank.labels(),
        }

    @property
    def event_bus(self) -> EventBus:
        return self._bus

    @property
    def classifier_bank(self) -> ClassifierBank:
        return self._bank

    @property
    def sample_store(self) -> SampleStore:
        return self._samples

    @property
    def calibration(self) -> CalibrationManager:
        return self._calibration

    @property
    def detectors(self) -> HeuristicDetectorBank:
        return self._detectors

    @property
    def frame_count(self) -> int:
        return self._frame_count
