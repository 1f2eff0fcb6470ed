"""
Tests for the event bus, configuration loading, and logging helpers.
"""

import logging

import pytest

from core.events import EventBus, Events
from core.types import GestureEvent, GestureType
from modules.utils.config import Config
from modules.utils.logger import GestureLogger, log_timing


class TestEventBus:

    def test_payload_as_keywords(self):
        bus = EventBus()
        received = []
        bus.subscribe(Events.CALIBRATION_PROGRESS, lambda **kw: received.append(kw))
        bus.emit(Events.CALIBRATION_PROGRESS, label="yes", collected=1, target=5)
        assert received == [{"label": "yes", "collected": 1, "target": 5}]

    def test_priority_order(self):
        bus = EventBus()
        order = []
        bus.subscribe("e", lambda **kw: order.append("low"), priority=0)
        bus.subscribe("e", lambda **kw: order.append("high"), priority=10)
        bus.emit("e")
        assert order == ["high", "low"]

    def test_handler_errors_do_not_stop_dispatch(self, caplog):
        bus = EventBus()
        received = []

        def broken(**kw):
            raise RuntimeError("boom")

        bus.subscribe("e", broken, priority=1)
        bus.subscribe("e", lambda **kw: received.append(kw))
        with caplog.at_level(logging.ERROR):
            bus.emit("e", value=1)
        assert received == [{"value": 1}]
        assert "boom" in caplog.text

    def test_unsubscribe_clear_and_disable(self):
        bus = EventBus()
        received = []
        handler = lambda **kw: received.append(kw)  # noqa: E731
        bus.subscribe("e", handler)
        assert bus.listener_count == 1
        bus.unsubscribe("e", handler)
        bus.emit("e")
        assert received == []

        bus.subscribe("e", handler)
        bus.set_enabled(False)
        bus.emit("e")
        assert received == []
        bus.set_enabled(True)
        bus.clear()
        assert bus.registered_events == []

    def test_history(self):
        bus = EventBus(max_history=2)
        for name in ("a", "b", "c"):
            bus.emit(name, x=1)
        assert [h["event"] for h in bus.get_history()] == ["b", "c"]


class TestConfig:

    def test_missing_files_use_defaults(self, fresh_config, tmp_path):
        config = fresh_config.load(str(tmp_path / "none.yaml"), str(tmp_path / "none2.yaml"))
        assert config.get("recognition.cooldown_ms", 1000) == 1000
        assert config.gestures == {}

    def test_dot_path_and_sections(self, fresh_config, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("recognition:\n  cooldown_ms: 750\ncalibration:\n  target_samples: 20\n")
        config = fresh_config.load(str(path), str(tmp_path / "missing.yaml"))
        assert config.get("recognition.cooldown_ms") == 750
        assert config.get("recognition.nothing.here", "x") == "x"
        assert config.calibration == {"target_samples": 20}
        assert config.training == {}

    def test_overrides_are_merged(self, fresh_config, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("recognition:\n  cooldown_ms: 750\n  pose_history_size: 12\n")
        config = fresh_config.load(str(path), str(tmp_path / "missing.yaml"),
                                   overrides={"recognition": {"cooldown_ms": 300}})
        assert config.recognition == {"cooldown_ms": 300, "pose_history_size": 12}

    def test_validation_warns_instead_of_failing(self, fresh_config, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("recognition:\n  cooldown_ms: fast\n")
        config = fresh_config.load(str(path), str(tmp_path / "missing.yaml"))
        warnings = config._validate()
        assert any("recognition.cooldown_ms" in w for w in warnings)

    def test_shipped_files(self, fresh_config):
        config = fresh_config.load()
        # yes/no must stay strings, not YAML booleans
        assert set(config.gestures) == {g.value for g in GestureType}
        assert config.get("gestures.yes.threshold") == pytest.approx(0.9)
        assert config._validate() == []

    def test_singleton_and_reset(self, fresh_config):
        assert Config() is fresh_config
        Config.reset()
        assert Config() is not fresh_config


class TestLogging:

    def test_gesture_logger_is_bounded(self):
        log = GestureLogger(max_history=2)
        for t in range(3):
            log.log_gesture(GestureEvent("yes", 0.95, timestamp=t))
        assert [e.timestamp for e in log.get_history()] == [1, 2]
        assert log.get_history(last_n=1)[0].timestamp == 2
        assert log.total_gestures == 3
        log.clear()
        assert log.get_history() == []

    def test_log_timing_keeps_result(self):
        @log_timing
        def add(a, b):
            return a + b

        assert add(2, 3) == 5
        assert add.__name__ == "add"
