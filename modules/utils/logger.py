"""
Logging setup, the bounded gesture-event history, and a timing decorator.
"""

import os
import logging
import logging.handlers
import time
from collections import deque
from functools import wraps


def setup_logging(level="INFO", log_file=None, max_size_mb=10, backup_count=3):
    """Configure console and optional rotating-file logging."""
    console_format = "%(asctime)s  %(levelname)-5s  %(message)s"
    file_format = "%(asctime)s [%(levelname)-7s] %(name)-32s | %(message)s"
    date_format = "%H:%M:%S"

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    root_logger.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(console_format, datefmt=date_format))
    root_logger.addHandler(console)

    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=int(max_size_mb * 1024 * 1024),
            backupCount=backup_count,
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(file_format, datefmt=date_format))
        root_logger.addHandler(file_handler)

    return root_logger


class GestureLogger:
    """Keeps the most recent emitted GestureEvents and logs each one."""

    def __init__(self, max_history: int = 10):
        self.logger = logging.getLogger("gesture_events")
        self._max_history = max(1, int(max_history))
        self._history = deque(maxlen=self._max_history)
        self._total = 0

    def log_gesture(self, event):
        """Record an emitted GestureEvent, evicting the oldest past capacity."""
        self._history.append(event)
        self._total += 1
        self.logger.info(
            "Gesture: %-12s | Confidence: %.2f | Source: %-9s | Hand: %d",
            event.gesture,
            event.confidence,
            event.source.value,
            event.hand_index,
        )

    def get_history(self, last_n=None) -> list:
        """Events oldest first; ``last_n`` limits to the newest entries."""
        history = list(self._history)
        if last_n:
            return history[-last_n:]
        return history

    def clear(self):
        self._history.clear()

    @property
    def max_history(self) -> int:
        return self._max_history

    @property
    def total_gestures(self) -> int:
        """Events emitted since construction, including evicted ones."""
        return self._total


def log_timing(func):
    """Decorator to log function execution time."""
    logger = logging.getLogger(func.__module__)

    @wraps(func)
    def wrapper(*args, **kwargs):
        start = time.perf_counter()
        result = func(*args, **kwargs)
        elapsed = (time.perf_counter() - start) * 1000
        logger.debug("%s took %.2fms", func.__name__, elapsed)
        return result

    return wrapper
