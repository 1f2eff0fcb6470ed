"""
System-wide emission cooldown for gesture events.

One gate shared by every gesture and every hand: after an emission, the
next one is allowed only once strictly more than ``cooldown_ms`` has
elapsed. The very first emission is always allowed.

Timestamps are milliseconds supplied by the caller, so the gate works the
same with wall-clock time and with replayed or synthetic frames.
"""

import logging

logger = logging.getLogger(__name__)


class Debouncer:
    """Cooldown gate between consecutive gesture events."""

    def __init__(self, config: dict):
        self._cooldown_ms = float(config.get("cooldown_ms", 1000))
        self._last_emit_ms = None
        self._last_gesture = None
        self._suppressed = 0

    @property
    def cooldown_ms(self) -> float:
        return self._cooldown_ms

    @property
    def last_emit_ms(self):
        return self._last_emit_ms

    @property
    def suppressed_count(self) -> int:
        """Decisions blocked by the cooldown since the last reset."""
        return self._suppressed

    def can_emit(self, now_ms: float) -> bool:
        if self._last_emit_ms is None:
            return True
        if now_ms - self._last_emit_ms > self._cooldown_ms:
            return True
        self._suppressed += 1
        return False

    def record(self, now_ms: float, gesture: str = None):
        """Mark an emission at ``now_ms``."""
        self._last_emit_ms = now_ms
        self._last_gesture = gesture
        logger.debug("Emitted '%s' at %.0f ms, next allowed after %.0f ms",
                     gesture, now_ms, now_ms + self._cooldown_ms)

    def set_cooldown(self, cooldown_ms: float):
        """Change the cooldown; negative values are treated as zero."""
        self._cooldown_ms = max(0.0, float(cooldown_ms))
        logger.info("Gesture cooldown set to %.0f ms", self._cooldown_ms)

    def reset(self):
        """Forget the last emission so the next decision passes."""
        self._last_emit_ms = None
        self._last_gesture = None
        self._suppressed = 0
