"""
Tests for the heuristic detector bank and pose history.
"""

import numpy as np
import pytest

from conftest import THUMBS_UP, OPEN_PALM, make_hand
from core.types import GestureType
from modules.recognition.gesture_detectors import (
    DEFAULT_DETECTORS, DetectionContext, HeuristicDetectorBank,
)
from modules.recognition.pose_history import PoseHistoryStore


class TestPoseHistoryStore:

    def test_capacity_is_enforced(self):
        store = PoseHistoryStore(capacity=3)
        for i in range(5):
            store.record(0, make_hand(THUMBS_UP, dx=i * 0.01))
        assert store.length(0) == 3
        # oldest frames were evicted
        assert store.get(0)[0][0][0] == pytest.approx(0.52)

    def test_hands_are_independent(self):
        store = PoseHistoryStore(capacity=4)
        store.record(0, make_hand(THUMBS_UP))
        store.record(1, make_hand(OPEN_PALM))
        store.record(1, make_hand(OPEN_PALM))
        assert store.length(0) == 1
        assert store.length(1) == 2
        assert store.hand_indices == [0, 1]

    def test_clear_and_unknown_index(self):
        store = PoseHistoryStore()
        store.record(0, make_hand(THUMBS_UP))
        store.clear()
        assert store.get(0) == ()
        assert store.length(7) == 0

    def test_frames_are_copies_and_read_only(self):
        store = PoseHistoryStore()
        hand = make_hand(THUMBS_UP)
        store.record(0, hand)
        hand[0, 0] = 9.0
        frame = store.get(0)[0]
        assert frame[0, 0] == pytest.approx(0.50)
        with pytest.raises(ValueError):
            frame[0, 0] = 1.0

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            PoseHistoryStore(capacity=0)


class TestHeuristicDetectorBank:

    @pytest.fixture
    def bank(self):
        return HeuristicDetectorBank()

    def test_table_order(self, bank):
        assert bank.gesture_names == [
            "hello", "yes", "no", "thank_you", "stop",
            "question", "help", "wait", "go", "please",
        ]
        assert [d.gesture for d in DEFAULT_DETECTORS][0] is GestureType.HELLO

    def test_thumbs_up_only_fires_yes(self, bank, thumbs_up):
        scores = bank.scores(thumbs_up, "Right")
        assert scores["yes"] >= 0.9
        assert all(v == 0.0 for name, v in scores.items() if name != "yes")
        best = bank.best_match(thumbs_up, "Right")
        assert best.name == "yes"
        assert best.accepted

    def test_open_palm_is_stop(self, bank, open_palm):
        scores = bank.scores(open_palm, "Right")
        assert scores["stop"] == pytest.approx(0.9)
        assert bank.best_match(open_palm, "Right").name == "stop"

    def test_thumbs_down(self, bank):
        # Mirror the thumbs-up hand vertically around the fist
        hand = make_hand(THUMBS_UP)
        hand[1:5, 1] = [0.60, 0.70, 0.75, 0.80]
        scores = bank.scores(hand, "Right")
        assert scores["no"] == pytest.approx(0.95)
        assert scores["yes"] == 0.0

    def test_wave_needs_history(self, bank, open_palm):
        history = PoseHistoryStore()
        for i in range(6):
            history.record(0, make_hand(OPEN_PALM, dx=i * 0.02))
        context = DetectionContext([open_palm], 0, history)
        assert bank.scores(open_palm, "Right", context)["hello"] == pytest.approx(0.85)

        short = PoseHistoryStore()
        for i in range(5):
            short.record(0, make_hand(OPEN_PALM, dx=i * 0.05))
        context = DetectionContext([open_palm], 0, short)
        assert bank.scores(open_palm, "Right", context)["hello"] == 0.0

    def test_please_small_circle(self, bank, thumbs_up):
        history = PoseHistoryStore()
        for i in range(8):
            angle = i * np.pi / 4
            history.record(0, make_hand(THUMBS_UP, dx=0.03 * np.cos(angle), dy=0.03 * np.sin(angle)))
        context = DetectionContext([thumbs_up], 0, history)
        assert bank.scores(thumbs_up, "Right", context)["please"] == pytest.approx(0.6)

    def test_thank_you_two_hands_together(self, bank, open_palm):
        other = make_hand(OPEN_PALM, dx=0.05)
        context = DetectionContext([open_palm, other], 0, None)
        assert bank.scores(open_palm, "Right", context)["thank_you"] == pytest.approx(0.9)

        far = make_hand(OPEN_PALM, dx=0.3)
        context = DetectionContext([open_palm, far], 0, None)
        assert bank.scores(open_palm, "Right", context)["thank_you"] == 0.0

    def test_help_both_hands_high(self, bank, open_palm):
        high_a = make_hand(OPEN_PALM, dy=-0.40)
        high_b = make_hand(OPEN_PALM, dx=0.3, dy=-0.40)
        context = DetectionContext([high_a, high_b], 0, None)
        assert bank.scores(high_a, "Right", context)["help"] == pytest.approx(0.9)

    def test_deterministic(self, bank, thumbs_up):
        first = bank.scores(thumbs_up, "Right")
        for _ in range(5):
            assert bank.scores(thumbs_up, "Right") == first

    def test_too_few_landmarks(self, bank, thumbs_up):
        assert bank.evaluate(thumbs_up[:20], "Right") == []
        assert bank.best_match(None) is None

    def test_config_overrides(self, thumbs_up):
        bank = HeuristicDetectorBank({"yes": {"threshold": 0.99}, "hello": {"enabled": False}})
        assert "hello" not in bank.gesture_names
        assert bank.get_threshold("yes") == pytest.approx(0.99)
        assert bank.best_match(thumbs_up, "Right") is None
        # the default table is untouched
        assert HeuristicDetectorBank().get_threshold("yes") == pytest.approx(0.9)

    def test_non_mapping_rule_keeps_defaults(self, caplog):
        bank = HeuristicDetectorBank({"stop": 0.8, "yes": None})
        assert bank.gesture_names == [d.gesture.value for d in DEFAULT_DETECTORS]
        assert bank.get_threshold("stop") == pytest.approx(0.85)
        assert "Ignoring gesture rule for stop" in caplog.text
