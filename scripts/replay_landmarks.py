#!/usr/bin/env python3
"""
Replay recorded hand landmarks through the gesture engine, offline.

Input is JSON lines, one frame per line:

    {"timestamp": 1200, "hands": [{"landmarks": [[x, y, z], ...21], "handedness": "Right"}]}

Frames without "timestamp" are spaced --frame-ms apart. Useful for tuning
detector thresholds and for checking calibration without a camera.

Usage:
    python scripts/replay_landmarks.py session.jsonl
    python scripts/replay_landmarks.py session.jsonl --calibrate hello --target 30
"""

import sys
import json
import argparse
import logging
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from modules.utils.config import Config
from modules.utils.logger import setup_logging
from modules.storage.persistence import MemoryStore, JsonFileStore
from core.events import Events
from core.engine import GestureEngine
from core.types import HandObservation

logger = logging.getLogger("replay")


def read_frames(path, frame_ms=33.0):
    """Yield (timestamp_ms, [HandObservation]) from a JSON-lines file.

    Blank lines are skipped; malformed lines are logged and skipped.
    """
    with open(path, "r", encoding="utf-8") as f:
        for line_no, line in enumerate(f, start=1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except ValueError as e:
                logger.warning("Line %d skipped: %s", line_no, e)
                continue
            timestamp = record.get("timestamp", (line_no - 1) * frame_ms)
            hands = [
                HandObservation(hand.get("landmarks"), hand.get("handedness"), i)
                for i, hand in enumerate(record.get("hands", []))
            ]
            yield float(timestamp), hands


def main():
    parser = argparse.ArgumentParser(description="Replay recorded landmarks through the gesture engine")
    parser.add_argument("path", help="JSON-lines landmark recording")
    parser.add_argument("--config", type=str, default=None, help="Path to config.yaml")
    parser.add_argument("--gestures", type=str, default=None, help="Path to gestures.yaml")
    parser.add_argument("--calibrate", type=str, default=None, metavar="LABEL",
                        help="Record the replayed hands as samples for LABEL")
    parser.add_argument("--target", type=int, default=0,
                        help="Samples to record when calibrating (0 = whole file)")
    parser.add_argument("--store", type=str, default=None,
                        help="Directory for persisted models (default: in memory)")
    parser.add_argument("--frame-ms", type=float, default=33.0,
                        help="Spacing for frames without a timestamp")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    setup_logging(level="DEBUG" if args.verbose else "INFO")

    config = Config()
    config.load(config_path=args.config, gestures_path=args.gestures)
    store = JsonFileStore(args.store) if args.store else MemoryStore()

    engine = GestureEngine(config.as_dict(), store=store)
    engine.event_bus.subscribe(Events.CALIBRATION_TRAINED, lambda **s: print(
        "trained: " + ", ".join(f"{k}={'yes' if v['trained'] else v.get('reason')}"
                                for k, v in s.items())))

    if args.calibrate:
        engine.start_calibration(args.calibrate, {"target_samples": args.target})

    frames = 0
    events = 0
    for timestamp, hands in read_frames(args.path, args.frame_ms):
        frames += 1
        event = engine.process_frame(hands, timestamp=timestamp)
        if event is not None:
            events += 1
            print(f"{event.timestamp:10.0f} ms  {event.gesture:<10s} "
                  f"{event.confidence:.2f}  {event.source.value}  hand={event.hand_index}")

    if engine.is_calibrating():
        engine.stop_calibration()

    print(f"\n{frames} frames, {events} gestures")


if __name__ == "__main__":
    main()
