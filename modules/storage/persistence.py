"""
Persistence of learned models and calibration samples.

Two JSON records live in a key-value store:
    gesture_models_v1        classifier table (ClassifierBank.to_dict())
    gesture_calibration_v1   sample store (SampleStore.to_dict())

Storage problems never interrupt recognition: read/write errors, corrupt
JSON and malformed model data are logged and the engine carries on with
whatever it holds in memory.
"""

import os
import json
import logging
import tempfile

from core.events import Events

logger = logging.getLogger(__name__)

MODELS_KEY = "gesture_models_v1"
CALIBRATION_KEY = "gesture_calibration_v1"


class KeyValueStore:
    """Minimal string key-value interface."""

    def get(self, key: str):
        raise NotImplementedError

    def set(self, key: str, value: str):
        raise NotImplementedError

    def delete(self, key: str):
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """In-process store; the default when no directory is configured."""

    def __init__(self, initial: dict = None):
        self._data = dict(initial or {})

    def get(self, key):
        return self._data.get(key)

    def set(self, key, value):
        self._data[key] = value

    def delete(self, key):
        self._data.pop(key, None)

    def keys(self) -> list:
        return list(self._data)


class JsonFileStore(KeyValueStore):
    """One ``<key>.json`` file per key inside a directory.

    Writes go to a temporary file in the same directory and are moved into
    place with os.replace, so a crash never leaves a half-written record.
    """

    def __init__(self, directory: str):
        self._directory = directory
        os.makedirs(directory, exist_ok=True)

    @property
    def directory(self) -> str:
        return self._directory

    def _path(self, key):
        return os.path.join(self._directory, f"{key}.json")

    def get(self, key):
        try:
            with open(self._path(key), "r", encoding="utf-8") as f:
                return f.read()
        except FileNotFoundError:
            return None

    def set(self, key, value):
        fd, tmp_path = tempfile.mkstemp(prefix=f".{key}.", suffix=".tmp", dir=self._directory)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
            os.replace(tmp_path, self._path(key))
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def delete(self, key):
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass


def create_store(config: dict) -> KeyValueStore:
    """Build the store named by the ``persistence`` config section."""
    backend = config.get("backend", "memory")
    if backend == "json":
        return JsonFileStore(config.get("directory", "data/calibration"))
    if backend != "memory":
        logger.warning("Unknown persistence backend '%s', using memory", backend)
    return MemoryStore()


class ModelPersistence:
    """Saves and restores the classifier bank and sample store."""

    def __init__(self, store: KeyValueStore, event_bus=None, config: dict = None):
        config = config or {}
        self._store = store
        self._bus = event_bus
        self._models_key = config.get("models_key", MODELS_KEY)
        self._calibration_key = config.get("calibration_key", CALIBRATION_KEY)

    @property
    def store(self) -> KeyValueStore:
        return self._store

    def save(self, classifier_bank, samples) -> bool:
        """Write both records. Returns False (after logging) on failure."""
        try:
            self._store.set(self._models_key, json.dumps(classifier_bank.to_dict()))
            self._store.set(self._calibration_key, json.dumps(samples.to_dict()))
        except (OSError, TypeError, ValueError) as e:
            logger.error("Failed to persist gesture models: %s", e)
            return False
        logger.debug("Gesture models persisted (%s, %s)", self._models_key, self._calibration_key)
        return True

    def restore(self, classifier_bank, samples):
        """Load both records into the given bank and store.

        Each record is restored independently: a corrupt model record does
        not prevent the samples from loading, and vice versa.

        Returns:
            {kind: [labels]} of the restored models, or None when nothing
            was restored
        """
        restored = False

        data = self._read(self._calibration_key)
        if data is not None:
            try:
                samples.load(data)
                restored = True
            except (ValueError, TypeError, AttributeError) as e:
                logger.error("Ignoring malformed calibration record: %s", e)

        data = self._read(self._models_key)
        if data is not None:
            try:
                classifier_bank.load(data)
                restored = True
            except (ValueError, TypeError, KeyError, AttributeError) as e:
                logger.error("Ignoring malformed model record: %s", e)

        if not restored:
            return None

        labels = classifier_bank.labels()
        logger.info("Gesture models restored: %s",
                    ", ".join(f"{k}={len(v)} labels" for k, v in labels.items()))
        if self._bus is not None:
            self._bus.emit(Events.CALIBRATION_LOADED, **labels)
        return labels

    def _read(self, key):
        try:
            raw = self._store.get(key)
        except OSError as e:
            logger.error("Failed to read '%s': %s", key, e)
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError as e:
            logger.error("Corrupt JSON in '%s': %s", key, e)
            return None
