"""
Centralized configuration manager.
Loads YAML configs and provides dot-path access with defaults.

Every engine component takes a plain dict section and falls back to its
own defaults, so a missing or partial file only narrows what is tuned.
"""

import os
import yaml
import logging

logger = logging.getLogger(__name__)

_BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
_CONFIG_DIR = os.path.join(_BASE_DIR, "config")

# Schema: expected sections and the types of their critical fields
_CONFIG_SCHEMA = {
    "recognition": {
        "cooldown_ms": int,
        "model_confidence_threshold": float,
        "pose_history_size": int,
        "gesture_history_size": int,
    },
    "calibration": {
        "capture_interval_ms": int,
        "target_samples": int,
        "auto_train": bool,
        "max_samples_per_label": int,
        "flush_every": int,
    },
    "training": {
        "background": bool,
        "handshape": dict,
        "orientation": dict,
        "location": dict,
    },
    "persistence": {
        "backend": str,
        "directory": str,
    },
}

_GESTURE_SCHEMA = {
    "threshold": float,
    "enabled": bool,
}


def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge override into base dict."""
    merged = base.copy()
    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def _type_warning(path: str, value, expected_type):
    # Allow int where float is expected, but never bool for a number
    if expected_type is float and isinstance(value, (int, float)) and not isinstance(value, bool):
        return None
    if expected_type is int and isinstance(value, bool):
        return f"{path}: expected int, got bool ({value!r})"
    if not isinstance(value, expected_type):
        return f"{path}: expected {expected_type.__name__}, got {type(value).__name__} ({value!r})"
    return None


class Config:
    """Singleton configuration manager."""

    _instance = None
    _data = {}

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def load(self, config_path=None, gestures_path=None, overrides=None):
        """Load configuration from YAML files.

        Args:
            config_path: main config (default ``config/config.yaml``)
            gestures_path: detector overrides (default ``config/gestures.yaml``)
            overrides: dict deep-merged on top, e.g. from CLI flags
        """
        config_path = config_path or os.path.join(_CONFIG_DIR, "config.yaml")
        gestures_path = gestures_path or os.path.join(_CONFIG_DIR, "gestures.yaml")

        try:
            with open(config_path, "r") as f:
                self._data = yaml.safe_load(f) or {}
            logger.info("Loaded config from %s", config_path)
        except FileNotFoundError:
            logger.warning("Config file not found: %s, using defaults", config_path)
            self._data = {}

        try:
            with open(gestures_path, "r") as f:
                gesture_data = yaml.safe_load(f) or {}
            self._data["gestures"] = gesture_data
            logger.info("Loaded gestures from %s", gestures_path)
        except FileNotFoundError:
            logger.warning("Gestures file not found: %s", gestures_path)

        if overrides:
            self._data = _deep_merge(self._data, overrides)

        self._validate()

        return self

    def _validate(self):
        """Log warnings for missing sections and mistyped fields."""
        warnings = []
        for section_name, fields in _CONFIG_SCHEMA.items():
            section = self._data.get(section_name)
            if section is None:
                warnings.append(f"Missing config section: '{section_name}'")
                continue
            if not isinstance(section, dict):
                warnings.append(f"Section '{section_name}' should be a dict, got {type(section).__name__}")
                continue
            for field_name, expected_type in fields.items():
                if field_name in section:
                    warning = _type_warning(f"{section_name}.{field_name}",
                                            section[field_name], expected_type)
                    if warning:
                        warnings.append(warning)

        for gesture_name, rule in self.gestures.items():
            if not isinstance(rule, dict):
                warnings.append(f"gestures.{gesture_name} should be a dict")
                continue
            for field_name, expected_type in _GESTURE_SCHEMA.items():
                if field_name in rule:
                    warning = _type_warning(f"gestures.{gesture_name}.{field_name}",
                                            rule[field_name], expected_type)
                    if warning:
                        warnings.append(warning)

        if warnings:
            for w in warnings:
                logger.warning("Config validation: %s", w)
        else:
            logger.debug("Config validation passed")
        return warnings

    def get(self, key_path: str, default=None):
        """Get nested config value using dot notation: 'recognition.cooldown_ms'."""
        keys = key_path.split(".")
        value = self._data
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def get_section(self, section: str) -> dict:
        """Get an entire config section."""
        return self._data.get(section, {})

    def as_dict(self) -> dict:
        return dict(self._data)

    @property
    def recognition(self) -> dict:
        return self._data.get("recognition", {})

    @property
    def calibration(self) -> dict:
        return self._data.get("calibration", {})

    @property
    def training(self) -> dict:
        return self._data.get("training", {})

    @property
    def persistence(self) -> dict:
        return self._data.get("persistence", {})

    @property
    def camera(self) -> dict:
        return self._data.get("camera", {})

    @property
    def mediapipe(self) -> dict:
        return self._data.get("mediapipe", {})

    @property
    def logging(self) -> dict:
        return self._data.get("logging", {})

    @property
    def gestures(self) -> dict:
        return self._data.get("gestures", {}) or {}

    @property
    def base_dir(self) -> str:
        return _BASE_DIR

    @classmethod
    def reset(cls):
        """Reset singleton instance (for testing)."""
        cls._instance = None
        cls._data = {}
