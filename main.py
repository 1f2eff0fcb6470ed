#!/usr/bin/env python3
"""
Adaptive gesture recognition - live camera runner.

Camera -> MediaPipe Hands -> GestureEngine, with a small text overlay
showing the current gesture and calibration progress.

Usage:
    python main.py                          # recognize with built-in detectors
    python main.py --calibrate hello        # record samples for "hello" first
    python main.py --calibrate hello --target 40 --store data/calibration
    python main.py --cooldown 600           # shorter gap between events

Keys:
    q  quit
    s  stop calibration (and train)
    x  cancel calibration (keep samples, no training)
"""

import sys
import os
import signal
import argparse
import logging

import cv2

# Add project root to path
PROJECT_ROOT = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, PROJECT_ROOT)

from modules.utils.config import Config
from modules.utils.logger import setup_logging
from modules.detection.hand_detector import HandDetector
from modules.recognition.fusion import FusionEngine
from core.events import Events
from core.engine import GestureEngine

logger = logging.getLogger(__name__)

_BAND_COLORS = {
    "high": (0, 220, 0),
    "medium": (0, 200, 255),
    "low": (0, 0, 255),
}


class GestureAssistant:
    """Runs the engine against a live camera feed."""

    def __init__(self, config: Config):
        self._config = config
        self._running = False

        self._camera = None
        self._detector = HandDetector(config.mediapipe)
        self._engine = GestureEngine(config.as_dict())

        bus = self._engine.event_bus
        bus.subscribe(Events.GESTURE_DETECTED, self._on_gesture)
        bus.subscribe(Events.CALIBRATION_PROGRESS, self._on_progress)
        bus.subscribe(Events.CALIBRATION_TRAINED, self._on_trained)

        self._window_name = config.get("camera.window_name", "Gesture Assistant")
        self._flip = config.get("camera.flip_horizontal", True)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    def _on_gesture(self, **kwargs):
        print(f"> {kwargs['gesture']} ({kwargs['confidence']:.2f}, {kwargs['source']})")

    def _on_progress(self, **kwargs):
        target = kwargs["target"] or "-"
        logger.info("Calibrating '%s': %d/%s", kwargs["label"], kwargs["collected"], target)

    def _on_trained(self, **summaries):
        for kind, summary in summaries.items():
            if summary["trained"]:
                logger.info("Trained %s model on %d samples: %s",
                            kind, summary["samples"], summary.get("labels"))
            else:
                logger.info("No %s model (%s, %d samples)",
                            kind, summary.get("reason"), summary["samples"])

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def start(self, calibrate_label=None, target=None) -> bool:
        device_id = self._config.get("camera.device_id", 0)
        self._camera = cv2.VideoCapture(device_id)
        if not self._camera.isOpened():
            logger.error("Failed to open camera %s. Check connection and permissions.", device_id)
            return False
        self._camera.set(cv2.CAP_PROP_FRAME_WIDTH, self._config.get("camera.width", 640))
        self._camera.set(cv2.CAP_PROP_FRAME_HEIGHT, self._config.get("camera.height", 480))

        self._detector.initialize()

        if calibrate_label:
            options = {"target_samples": target} if target is not None else None
            self._engine.start_calibration(calibrate_label, options)

        self._running = True
        try:
            self._run_loop()
        finally:
            self._shutdown()
        return True

    def _run_loop(self):
        while self._running:
            ok, frame = self._camera.read()
            if not ok or frame is None:
                logger.warning("Camera returned no frame")
                continue
            if self._flip:
                frame = cv2.flip(frame, 1)

            observations, results = self._detector.detect(frame)
            self._engine.process_frame(observations)

            self._detector.draw_landmarks(frame, results)
            self._draw_overlay(frame, self._engine.build_state())
            cv2.imshow(self._window_name, frame)

            key = cv2.waitKey(1) & 0xFF
            if key == ord("q"):
                self._running = False
            elif key == ord("s"):
                self._engine.stop_calibration()
            elif key == ord("x"):
                self._engine.cancel_calibration()

    def _draw_overlay(self, frame, state):
        if state["gesture_name"]:
            band = FusionEngine.classify_confidence(state["gesture_confidence"])
            text = f"{state['gesture_name']}  {state['gesture_confidence']:.2f}  [{state['gesture_source']}]"
            cv2.putText(frame, text, (12, 32), cv2.FONT_HERSHEY_SIMPLEX, 0.8, _BAND_COLORS[band], 2)
        else:
            cv2.putText(frame, state["status"], (12, 32), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (200, 200, 200), 1)

        if state["calibrating"]:
            progress = state["calibration_progress"]
            text = f"REC {progress['label']}: {progress['collected']}/{progress['target'] or '-'}"
            cv2.putText(frame, text, (12, 64), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (0, 0, 255), 2)
        elif state["training"]:
            cv2.putText(frame, "training...", (12, 64), cv2.FONT_HERSHEY_SIMPLEX, 0.7, (255, 200, 0), 2)

    def _shutdown(self):
        logger.info("Shutting down...")
        self._running = False
        if self._engine.is_calibrating():
            self._engine.cancel_calibration()
        if self._camera is not None:
            self._camera.release()
        self._detector.close()
        cv2.destroyAllWindows()
        logger.info("Shutdown complete (%d frames, %d gestures in history)",
                    self._engine.frame_count, len(self._engine.get_gesture_history()))

    def handle_signal(self, signum, frame):
        """Handle SIGINT/SIGTERM for graceful shutdown."""
        logger.info("Signal %d received, shutting down...", signum)
        self._running = False


def parse_args():
    parser = argparse.ArgumentParser(description="Adaptive gesture recognition - live camera runner")
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    parser.add_argument("--gestures", type=str, default=None, help="Path to gestures.yaml")
    parser.add_argument("--camera", type=int, default=None, help="Camera device ID")
    parser.add_argument("--calibrate", type=str, default=None, metavar="LABEL",
                        help="Start a calibration session for LABEL")
    parser.add_argument("--target", type=int, default=None,
                        help="Samples to record when calibrating (0 = until stopped)")
    parser.add_argument("--store", type=str, default=None,
                        help="Directory for persisted models (JSON backend)")
    parser.add_argument("--cooldown", type=int, default=None,
                        help="Minimum ms between emitted gestures")
    return parser.parse_args()


def _cli_overrides(args) -> dict:
    overrides = {}
    if args.camera is not None:
        overrides.setdefault("camera", {})["device_id"] = args.camera
    if args.store is not None:
        overrides["persistence"] = {"backend": "json", "directory": args.store}
    if args.cooldown is not None:
        overrides.setdefault("recognition", {})["cooldown_ms"] = args.cooldown
    return overrides


def main():
    args = parse_args()

    config = Config()
    config.load(config_path=args.config, gestures_path=args.gestures,
                overrides=_cli_overrides(args))

    log_cfg = config.logging
    setup_logging(
        level=log_cfg.get("level", "INFO"),
        log_file=log_cfg.get("file"),
        max_size_mb=log_cfg.get("max_size_mb", 10),
        backup_count=log_cfg.get("backup_count", 3),
    )

    app = GestureAssistant(config)

    signal.signal(signal.SIGINT, app.handle_signal)
    signal.signal(signal.SIGTERM, app.handle_signal)

    if not app.start(calibrate_label=args.calibrate, target=args.target):
        sys.exit(1)


if __name__ == "__main__":
    main()
