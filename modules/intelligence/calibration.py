"""
Calibration: collects labeled feature samples for the classifier bank.

A session records one label at a time. While recording, every hand seen in
a frame contributes a sample as long as the capture interval has elapsed
since the previous capture. A session ends when the target count is
reached (auto-stop), or on an explicit stop/cancel.

Samples outlive sessions: stopping or cancelling keeps them, so several
sessions with different labels accumulate one training set.
"""

import copy
import logging
import threading

import numpy as np

from core.events import Events
from core.types import CalibrationState, ClassifierKind

logger = logging.getLogger(__name__)

DEFAULT_SESSION_OPTIONS = {
    "target_samples": 60,
    "capture_interval_ms": 120,
    "auto_train": True,
}


class SampleStore:
    """Labeled feature vectors per classifier kind.

    Layout: ``{kind: {label: [vector, ...]}}`` with vectors kept as plain
    float lists. Labels keep first-insertion order; each label keeps at most
    ``max_per_label`` vectors, oldest evicted first.
    """

    def __init__(self, max_per_label: int = 180):
        self._max_per_label = max(1, int(max_per_label))
        self._samples = {kind: {} for kind in ClassifierKind}

    @property
    def max_per_label(self) -> int:
        return self._max_per_label

    def add(self, label: str, packet) -> bool:
        """Append one FeaturePacket under ``label``.

        Returns:
            False (and stores nothing) when the label is empty or any value
            in the packet is non-finite
        """
        if not label or packet is None or not packet.is_finite:
            return False
        for kind, vector in packet.items():
            bucket = self._samples[kind].setdefault(label, [])
            bucket.append([float(v) for v in vector])
            if len(bucket) > self._max_per_label:
                del bucket[:len(bucket) - self._max_per_label]
        return True

    def flatten(self, kind: ClassifierKind):
        """(matrix, labels) for training, label blocks in insertion order."""
        rows, labels = [], []
        for label, vectors in self._samples[kind].items():
            rows.extend(vectors)
            labels.extend([label] * len(vectors))
        matrix = np.asarray(rows, dtype=np.float64) if rows else np.empty((0, 0))
        return matrix, labels

    def labels(self, kind: ClassifierKind = ClassifierKind.HANDSHAPE) -> list:
        return list(self._samples[kind])

    def count(self, kind: ClassifierKind = ClassifierKind.HANDSHAPE, label: str = None) -> int:
        if label is not None:
            return len(self._samples[kind].get(label, ()))
        return sum(len(v) for v in self._samples[kind].values())

    @property
    def is_empty(self) -> bool:
        return all(not buckets for buckets in self._samples.values())

    def clear(self):
        for kind in ClassifierKind:
            self._samples[kind] = {}

    def copy(self) -> 'SampleStore':
        """Independent snapshot (used for background training)."""
        clone = SampleStore(self._max_per_label)
        clone._samples = copy.deepcopy(self._samples)
        return clone

    def to_dict(self) -> dict:
        return {kind.value: copy.deepcopy(self._samples[kind]) for kind in ClassifierKind}

    def load(self, data: dict):
        """Replace contents from to_dict() output.

        Raises:
            ValueError: on malformed or non-finite data; contents untouched
        """
        if not isinstance(data, dict):
            raise ValueError("Calibration data must be a mapping")
        loaded = {}
        for kind in ClassifierKind:
            buckets = data.get(kind.value) or {}
            if not isinstance(buckets, dict):
                raise ValueError("Samples for %s must be a mapping" % kind.value)
            width = None
            parsed = {}
            for label, vectors in buckets.items():
                rows = []
                for vector in vectors:
                    row = [float(v) for v in vector]
                    if width is None:
                        width = len(row)
                    if len(row) != width or not all(np.isfinite(row)):
                        raise ValueError("Malformed %s sample for label %r" % (kind.value, label))
                    rows.append(row)
                parsed[str(label)] = rows[-self._max_per_label:]
            loaded[kind] = parsed
        self._samples = loaded


class CalibrationSession:
    """State of the label currently being recorded."""

    __slots__ = ("label", "options", "collected", "last_capture_ms")

    def __init__(self, label: str, options: dict):
        self.label = label
        self.options = options
        self.collected = 0
        self.last_capture_ms = None

    @property
    def target(self) -> int:
        return self.options["target_samples"]


class CalibrationManager:
    """Drives calibration sessions and training of the classifier bank."""

    def __init__(self, config: dict, samples: SampleStore, classifier_bank,
                 event_bus, persistence=None, background_training: bool = False):
        """
        Args:
            config: ``calibration`` section from config.yaml
            samples: shared SampleStore
            classifier_bank: ClassifierBank trained when a session stops
            event_bus: EventBus receiving calibration events
            persistence: optional ModelPersistence flushed on progress/stop
            background_training: train in a daemon thread instead of inline
        """
        self._defaults = dict(DEFAULT_SESSION_OPTIONS)
        for key in DEFAULT_SESSION_OPTIONS:
            if key in config:
                self._defaults[key] = config[key]
        self._flush_every = max(1, int(config.get("flush_every", 10)))

        self._samples = samples
        self._bank = classifier_bank
        self._bus = event_bus
        self._persistence = persistence
        self._background = background_training

        self._state = CalibrationState.IDLE
        self._session = None
        self._last_session = None
        self._training_thread = None
        self._completed = None
        self._completed_lock = threading.Lock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> CalibrationState:
        return self._state

    @property
    def is_calibrating(self) -> bool:
        return self._state is CalibrationState.RECORDING

    @property
    def label(self):
        return self._session.label if self._session else None

    @property
    def progress(self) -> dict:
        """{label, collected, target} of the active (or last) session."""
        session = self._session or self._last_session
        if session is None:
            return {"label": None, "collected": 0, "target": 0}
        return {"label": session.label, "collected": session.collected, "target": session.target}

    @property
    def is_training(self) -> bool:
        return self._training_thread is not None and self._training_thread.is_alive()

    # ------------------------------------------------------------------
    # Session control
    # ------------------------------------------------------------------

    def _session_options(self, options) -> dict:
        options = dict(options or {})
        resolved = dict(self._defaults)
        if "target" in options and "target_samples" not in options:
            options["target_samples"] = options.pop("target")
        if "capture_interval" in options and "capture_interval_ms" not in options:
            options["capture_interval_ms"] = options.pop("capture_interval")
        resolved.update(options)
        resolved["target_samples"] = max(0, int(resolved["target_samples"] or 0))
        resolved["capture_interval_ms"] = max(0.0, float(resolved["capture_interval_ms"]))
        resolved["auto_train"] = bool(resolved["auto_train"])
        return resolved

    def start(self, label: str, options: dict = None) -> bool:
        """Begin recording ``label``; replaces any session in progress.

        Returns:
            False when the label is empty
        """
        if not label:
            logger.warning("Calibration not started: empty label")
            return False

        if self._session is not None:
            logger.info("Calibration for '%s' replaced by '%s' (%d samples kept)",
                        self._session.label, label, self._session.collected)

        resolved = self._session_options(options)
        self._session = CalibrationSession(label, resolved)
        self._state = CalibrationState.RECORDING
        logger.info("Calibration started for '%s' (target=%s, interval=%.0fms)",
                    label, resolved["target_samples"] or "unbounded",
                    resolved["capture_interval_ms"])
        self._bus.emit(Events.CALIBRATION_STARTED, label=label, options=dict(resolved))
        return True

    def capture(self, packet, now_ms: float) -> bool:
        """Offer one hand's FeaturePacket to the active session.

        Returns:
            True when the packet was stored as a sample
        """
        session = self._session
        if session is None or packet is None:
            return False
        if (session.last_capture_ms is not None
                and now_ms - session.last_capture_ms < session.options["capture_interval_ms"]):
            return False
        if not self._samples.add(session.label, packet):
            logger.debug("Calibration sample for '%s' dropped (non-finite features)", session.label)
            return False

        session.collected += 1
        session.last_capture_ms = now_ms
        self._bus.emit(Events.CALIBRATION_PROGRESS, label=session.label,
                       collected=session.collected, target=session.target)

        if session.collected % self._flush_every == 0:
            self._persist()

        if session.target and session.collected >= session.target:
            logger.info("Calibration target reached for '%s'", session.label)
            self.stop()
        return True

    def stop(self, train: bool = None):
        """End the session; trains unless ``train`` (or auto_train) is False.

        No-op when idle.
        """
        session = self._session
        if session is None:
            return None

        should_train = train if isinstance(train, bool) else session.options["auto_train"]
        self._session = None
        self._last_session = session
        self._state = CalibrationState.IDLE

        logger.info("Calibration stopped for '%s' (%d samples, train=%s)",
                    session.label, session.collected, should_train)
        self._bus.emit(Events.CALIBRATION_STOPPED, label=session.label,
                       samples=session.collected, trained=should_train)

        if not should_train:
            self._persist()
            return None

        if self._background:
            self._train_in_background()
            return None
        return self._train_and_publish(self._samples)

    def cancel(self):
        """Stop without training; captured samples are kept."""
        return self.stop(train=False)

    def clear(self):
        """Drop every sample and model and persist the empty state."""
        if self._session is not None:
            self._session.collected = 0
        self._samples.clear()
        self._bank.reset()
        self._persist()
        logger.info("Calibration data cleared")

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def train(self) -> dict:
        """Retrain from every stored sample outside of a session."""
        return self._train_and_publish(self._samples)

    def _train_and_publish(self, samples: SampleStore) -> dict:
        summaries = self._bank.train(samples)
        self._persist()
        self._bus.emit(Events.CALIBRATION_TRAINED, **summaries)
        return summaries

    def _train_in_background(self):
        # One run at a time, so an older snapshot never lands last
        previous = self._training_thread
        if previous is not None and previous.is_alive():
            previous.join()
        self.poll_training()
        snapshot = self._samples.copy()

        def _run():
            # Only the snapshot and the bank swap are touched here; saving and
            # publishing happen on the caller thread in poll_training().
            try:
                summaries = self._bank.train(snapshot)
            except Exception as e:
                logger.error("Background training failed: %s", e)
                return
            with self._completed_lock:
                self._completed = summaries

        self._training_thread = threading.Thread(target=_run, name="calibration-training", daemon=True)
        self._training_thread.start()
        logger.debug("Training started in background (%d samples)", snapshot.count())

    def poll_training(self):
        """Persist and publish a finished background training run.

        Call from the thread that owns the sample store (the engine does so
        at the start of every frame).

        Returns:
            The training summaries, or None when nothing finished
        """
        with self._completed_lock:
            summaries, self._completed = self._completed, None
        if summaries is None:
            return None
        self._persist()
        self._bus.emit(Events.CALIBRATION_TRAINED, **summaries)
        return summaries

    def wait_for_training(self, timeout: float = None) -> bool:
        """Block until background training finishes and publish it. True when idle."""
        thread = self._training_thread
        if thread is not None:
            thread.join(timeout)
        self.poll_training()
        return not self.is_training

    def _persist(self):
        if self._persistence is not None:
            self._persistence.save(self._bank, self._samples)
