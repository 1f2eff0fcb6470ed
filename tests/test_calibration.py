"""
Tests for the sample store and calibration sessions.
"""

import threading

import numpy as np
import pytest

from conftest import THUMBS_UP, OPEN_PALM, make_hand
from core.events import EventBus, Events
from core.types import CalibrationState, ClassifierKind, FeaturePacket
from models.classifier_bank import ClassifierBank
from models.feature_extractor import GestureFeatureExtractor
from modules.intelligence.calibration import CalibrationManager, SampleStore

_extractor = GestureFeatureExtractor()


def _packet(points=THUMBS_UP, dx=0.0):
    return _extractor.extract(make_hand(points, dx=dx), "Right")


class RecordingPersistence:
    """Counts save() calls instead of writing anywhere."""

    def __init__(self):
        self.saves = 0

    def save(self, bank, samples):
        self.saves += 1
        return True


class EventRecorder:

    def __init__(self, bus):
        self.events = []
        for name in (Events.CALIBRATION_STARTED, Events.CALIBRATION_PROGRESS,
                     Events.CALIBRATION_STOPPED, Events.CALIBRATION_TRAINED):
            bus.subscribe(name, self._handler(name))

    def _handler(self, name):
        def handler(**payload):
            self.events.append((name, payload))
        return handler

    def names(self):
        return [name for name, _ in self.events]

    def last(self, name):
        return [payload for n, payload in self.events if n == name][-1]


class TestSampleStore:

    def test_add_to_every_kind(self):
        store = SampleStore()
        assert store.add("yes", _packet())
        for kind in ClassifierKind:
            assert store.count(kind) == 1
            assert store.labels(kind) == ["yes"]

    def test_rejects_non_finite_and_empty_label(self):
        store = SampleStore()
        packet = _packet()
        bad = FeaturePacket(packet.handshape.copy(), packet.orientation, packet.location)
        bad.handshape[3] = np.nan
        assert not store.add("yes", bad)
        assert not store.add("", packet)
        assert not store.add("yes", None)
        assert store.is_empty

    def test_per_label_cap_evicts_oldest(self):
        store = SampleStore(max_per_label=3)
        for i in range(5):
            store.add("go", _packet(dx=i * 0.01))
        assert store.count(ClassifierKind.LOCATION, "go") == 3
        matrix, labels = store.flatten(ClassifierKind.LOCATION)
        # location[3] is wrist x
        assert matrix[0, 3] == pytest.approx(0.52)
        assert labels == ["go"] * 3

    def test_flatten_keeps_label_order(self):
        store = SampleStore()
        store.add("stop", _packet(OPEN_PALM))
        store.add("yes", _packet())
        store.add("stop", _packet(OPEN_PALM))
        matrix, labels = store.flatten(ClassifierKind.HANDSHAPE)
        assert labels == ["stop", "stop", "yes"]
        assert matrix.shape == (3, 25)

    def test_dict_round_trip_and_copy(self):
        store = SampleStore()
        store.add("yes", _packet())
        clone = SampleStore()
        clone.load(store.to_dict())
        assert clone.to_dict() == store.to_dict()

        snapshot = store.copy()
        store.add("yes", _packet())
        assert snapshot.count() == 1

    def test_load_rejects_ragged_vectors(self):
        store = SampleStore()
        store.add("yes", _packet())
        data = {"handshape": {"yes": [[0.0, 1.0], [0.0]]}}
        with pytest.raises(ValueError):
            store.load(data)
        assert store.count() == 1


class TestCalibrationManager:

    @pytest.fixture
    def bus(self):
        return EventBus()

    @pytest.fixture
    def persistence(self):
        return RecordingPersistence()

    @pytest.fixture
    def manager(self, bus, persistence):
        return CalibrationManager({}, SampleStore(), ClassifierBank(), bus, persistence)

    def test_empty_label_is_ignored(self, manager):
        assert manager.start("") is False
        assert manager.start(None) is False
        assert manager.state is CalibrationState.IDLE

    def test_start_emits_resolved_options(self, manager, bus):
        recorder = EventRecorder(bus)
        assert manager.start("yes", {"target": 5})
        assert manager.is_calibrating
        payload = recorder.last(Events.CALIBRATION_STARTED)
        assert payload["label"] == "yes"
        assert payload["options"] == {"target_samples": 5, "capture_interval_ms": 120.0, "auto_train": True}

    def test_capture_interval(self, manager):
        manager.start("yes", {"capture_interval_ms": 100, "target_samples": 0})
        assert manager.capture(_packet(), 0.0)
        assert not manager.capture(_packet(), 99.0)
        assert manager.capture(_packet(), 100.0)
        assert manager.progress == {"label": "yes", "collected": 2, "target": 0}

    def test_capture_when_idle(self, manager):
        assert not manager.capture(_packet(), 0.0)

    def test_non_finite_packet_dropped(self, manager):
        manager.start("yes", {"target_samples": 0})
        packet = _packet()
        packet.location[0] = np.inf
        assert not manager.capture(packet, 0.0)
        assert manager.progress["collected"] == 0
        # the dropped packet did not start the interval
        assert manager.capture(_packet(), 1.0)

    def test_target_auto_stops_and_trains(self, manager, bus, persistence):
        recorder = EventRecorder(bus)
        manager.start("yes", {"target_samples": 5, "capture_interval_ms": 100})
        for t in range(5):
            manager.capture(_packet(), t * 100.0)

        assert manager.state is CalibrationState.IDLE
        assert recorder.names() == (
            [Events.CALIBRATION_STARTED] + [Events.CALIBRATION_PROGRESS] * 5
            + [Events.CALIBRATION_STOPPED, Events.CALIBRATION_TRAINED]
        )
        assert recorder.last(Events.CALIBRATION_STOPPED) == {"label": "yes", "samples": 5, "trained": True}
        trained = recorder.last(Events.CALIBRATION_TRAINED)
        # a single label is not enough for any model
        assert {s["reason"] for s in trained.values()} == {"not-enough-samples"}
        assert not manager._bank.has_models
        assert persistence.saves == 1
        assert manager.progress == {"label": "yes", "collected": 5, "target": 5}

    def test_flush_every_tenth_capture(self, manager, persistence):
        manager.start("yes", {"target_samples": 0, "capture_interval_ms": 0})
        for t in range(9):
            manager.capture(_packet(), float(t))
        assert persistence.saves == 0
        manager.capture(_packet(), 9.0)
        assert persistence.saves == 1

    def test_stop_without_training(self, manager, bus, persistence):
        recorder = EventRecorder(bus)
        manager.start("yes", {"target_samples": 0, "auto_train": False})
        manager.capture(_packet(), 0.0)
        assert manager.stop() is None
        assert Events.CALIBRATION_TRAINED not in recorder.names()
        assert recorder.last(Events.CALIBRATION_STOPPED)["trained"] is False
        assert persistence.saves == 1

    def test_explicit_train_flag_overrides_session(self, manager, bus):
        recorder = EventRecorder(bus)
        manager.start("yes", {"target_samples": 0, "auto_train": False})
        summaries = manager.stop(train=True)
        assert set(summaries) == {"handshape", "orientation", "location"}
        assert Events.CALIBRATION_TRAINED in recorder.names()

    def test_stop_when_idle_is_noop(self, manager, bus, persistence):
        recorder = EventRecorder(bus)
        assert manager.stop() is None
        manager.cancel()
        assert recorder.events == []
        assert persistence.saves == 0

    def test_cancel_keeps_samples(self, manager):
        manager.start("yes", {"target_samples": 0})
        manager.capture(_packet(), 0.0)
        manager.cancel()
        assert not manager.is_calibrating
        assert manager._samples.count() == 1

    def test_restart_replaces_session(self, manager):
        manager.start("yes", {"target_samples": 0})
        manager.capture(_packet(), 0.0)
        manager.start("stop", {"target_samples": 3})
        assert manager.progress == {"label": "stop", "collected": 0, "target": 3}
        # options belong to the session, not the manager
        manager.start("go")
        assert manager.progress["target"] == 60

    def test_sessions_accumulate_labels(self, manager):
        for label, points in (("yes", THUMBS_UP), ("stop", OPEN_PALM)):
            manager.start(label, {"target_samples": 8, "capture_interval_ms": 0})
            for t in range(8):
                manager.capture(_packet(points, dx=t * 0.002), float(t))
        summaries = manager.train()
        assert summaries["handshape"]["trained"] is True
        assert summaries["handshape"]["labels"] == ["yes", "stop"]

    def test_clear(self, manager, persistence):
        manager.start("yes", {"target_samples": 3, "capture_interval_ms": 0})
        for t in range(3):
            manager.capture(_packet(dx=t * 0.01), float(t))
        manager.clear()
        assert manager._samples.is_empty
        assert not manager._bank.has_models
        assert persistence.saves == 2

    def test_background_training(self, bus, persistence):
        recorder = EventRecorder(bus)
        bank = ClassifierBank()
        manager = CalibrationManager({}, SampleStore(), bank, bus, persistence,
                                     background_training=True)
        for label, points in (("yes", THUMBS_UP), ("stop", OPEN_PALM)):
            manager.start(label, {"target_samples": 4, "capture_interval_ms": 0})
            for t in range(4):
                manager.capture(_packet(points, dx=t * 0.01), float(t))
        assert manager.wait_for_training(timeout=10.0)
        assert recorder.names().count(Events.CALIBRATION_TRAINED) == 2
        assert recorder.last(Events.CALIBRATION_TRAINED)["location"]["labels"] == ["yes", "stop"]
        assert bank.model(ClassifierKind.LOCATION) is not None

    def test_background_training_publishes_on_caller_thread(self, bus):
        saved_from, trained_on = [], []

        class ThreadRecordingPersistence:
            def save(self, bank, samples):
                saved_from.append(threading.current_thread())
                return True

        bus.subscribe(Events.CALIBRATION_TRAINED,
                      lambda **kw: trained_on.append(threading.current_thread()))
        samples = SampleStore()
        manager = CalibrationManager({}, samples, ClassifierBank(), bus,
                                     ThreadRecordingPersistence(), background_training=True)
        manager.start("yes", {"target_samples": 3, "capture_interval_ms": 0})
        for t in range(3):
            manager.capture(_packet(dx=t * 0.01), float(t))

        # keep recording a new label while the worker trains on its snapshot
        manager.start("stop", {"target_samples": 0, "capture_interval_ms": 0})
        for t in range(20):
            manager.capture(_packet(OPEN_PALM, dx=t * 0.002), 10.0 + t)

        manager._training_thread.join(10.0)
        assert trained_on == []
        summaries = manager.poll_training()
        assert summaries["location"]["samples"] == 3
        assert trained_on == [threading.main_thread()]
        assert set(saved_from) == {threading.main_thread()}
        assert manager.poll_training() is None
        assert samples.count(ClassifierKind.LOCATION, "stop") == 20
