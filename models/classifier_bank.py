"""
ClassifierBank: per-user learned models over calibration samples.

One model per feature family:
    handshape    softmax regression
    orientation  softmax regression
    location     normalized k-nearest-neighbour table

Each model is optional. Prediction combines whatever models exist with a
per-label weighted average (location votes count 0.9, softmax votes 1.0).

Training builds a fresh model table and swaps it in with a single
assignment, so a prediction running concurrently sees either the old
table or the new one, never a mix.
"""

import logging
from typing import Dict, Optional

import numpy as np

from core.types import ClassifierKind, Prediction
from models.softmax import SoftmaxModel, train_softmax
from models.knn import LocationModel, build_location_model
from modules.utils.logger import log_timing

logger = logging.getLogger(__name__)

NOT_ENOUGH_SAMPLES = "not-enough-samples"

# Per-kind training defaults; overridable from the ``training`` config section
DEFAULT_TRAINING = {
    ClassifierKind.HANDSHAPE: {"min_samples": 8, "epochs": 180, "learning_rate": 0.35, "l2": 1e-4},
    ClassifierKind.ORIENTATION: {"min_samples": 6, "epochs": 150, "learning_rate": 0.30, "l2": 1e-4},
    ClassifierKind.LOCATION: {"min_samples": 3, "k": 5},
}

DEFAULT_VOTE_WEIGHTS = {
    ClassifierKind.HANDSHAPE: 1.0,
    ClassifierKind.ORIENTATION: 1.0,
    ClassifierKind.LOCATION: 0.9,
}

_MODEL_TYPES = {
    SoftmaxModel.kind: SoftmaxModel,
    LocationModel.kind: LocationModel,
}


class ClassifierBank:
    """Holds, trains, and queries the three learned models.

    Usage::

        bank = ClassifierBank(config.get("training", {}))
        summaries = bank.train(sample_store)
        prediction = bank.predict(packet)
    """

    def __init__(self, config: dict = None):
        """
        Args:
            config: ``training`` section from config.yaml
        """
        config = config or {}
        self._params = {}
        for kind, defaults in DEFAULT_TRAINING.items():
            params = dict(defaults)
            params.update(config.get(kind.value) or {})
            self._params[kind] = params
        self._loss_threshold = config.get("loss_threshold", 1e-4)
        self._models = {}   # ClassifierKind -> model; replaced wholesale

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def model(self, kind: ClassifierKind):
        return self._models.get(kind)

    @property
    def has_models(self) -> bool:
        return bool(self._models)

    @property
    def trained_kinds(self) -> list:
        return [kind for kind in ClassifierKind if kind in self._models]

    def labels(self) -> Dict[str, list]:
        """Known labels per kind (empty list for an untrained kind)."""
        models = self._models
        return {
            kind.value: list(dict.fromkeys(models[kind].labels)) if kind in models else []
            for kind in ClassifierKind
        }

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    @log_timing
    def train(self, samples) -> Dict[str, dict]:
        """Retrain every model from a SampleStore.

        Kinds without enough data end up with no model; this is reported in
        the summary, never raised.

        Returns:
            {kind name: summary dict}
        """
        models = {}
        summaries = {}
        for kind in ClassifierKind:
            features, labels = samples.flatten(kind)
            if kind is ClassifierKind.LOCATION:
                model, summary = self._train_location(features, labels)
            else:
                model, summary = self._train_softmax(kind, features, labels)
            if model is not None:
                models[kind] = model
            summaries[kind.value] = summary

        self._models = models
        logger.info("Classifier bank trained: %s",
                    ", ".join(f"{k}={'ok' if s['trained'] else s.get('reason')}"
                              for k, s in summaries.items()))
        return summaries

    def _train_softmax(self, kind, features, labels):
        params = self._params[kind]
        summary = {"type": kind.value, "samples": len(labels), "trained": False}
        if len(labels) < params["min_samples"] or len(set(labels)) < 2:
            summary["reason"] = NOT_ENOUGH_SAMPLES
            return None, summary

        model = train_softmax(
            features, labels,
            max_epochs=int(params["epochs"]),
            learning_rate=float(params["learning_rate"]),
            l2=float(params["l2"]),
            loss_threshold=self._loss_threshold,
        )
        summary.update(trained=True, labels=list(model.labels),
                       loss=model.final_loss, epochs=model.epochs)
        return model, summary

    def _train_location(self, features, labels):
        params = self._params[ClassifierKind.LOCATION]
        summary = {"type": ClassifierKind.LOCATION.value, "samples": len(labels), "trained": False}
        if len(labels) < params["min_samples"] or len(set(labels)) < 2:
            summary["reason"] = NOT_ENOUGH_SAMPLES
            return None, summary

        model = build_location_model(features, labels, max_k=int(params["k"]))
        summary.update(trained=True, labels=list(dict.fromkeys(labels)))
        return model, summary

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def predict(self, packet) -> Optional[Prediction]:
        """Combined prediction for one FeaturePacket, or None."""
        if packet is None:
            return None
        models = self._models
        if not models:
            return None

        contributions = []
        for kind in ClassifierKind:
            model = models.get(kind)
            if model is None:
                continue
            result = model.predict(packet.get(kind))
            if result is not None:
                contributions.append({
                    "source": kind.value,
                    "label": result["label"],
                    "confidence": result["confidence"],
                })
        if not contributions:
            return None

        tally = {}   # label -> [weighted score, total weight]; insertion order kept
        for item in contributions:
            weight = DEFAULT_VOTE_WEIGHTS[ClassifierKind(item["source"])]
            entry = tally.setdefault(item["label"], [0.0, 0.0])
            entry[0] += item["confidence"] * weight
            entry[1] += weight

        best_label, best_score = None, -np.inf
        for label, (score, weight) in tally.items():
            average = score / max(weight, 1e-6)
            if average > best_score:
                best_label, best_score = label, average

        return Prediction(best_label, float(min(max(best_score, 0.0), 1.0)), contributions)

    # ------------------------------------------------------------------
    # Lifecycle and serialization
    # ------------------------------------------------------------------

    def reset(self):
        """Drop every trained model."""
        self._models = {}
        logger.info("Classifier bank cleared")

    def to_dict(self) -> dict:
        models = self._models
        return {
            kind.value: models[kind].to_dict() if kind in models else None
            for kind in ClassifierKind
        }

    def load(self, data: dict):
        """Replace the model table from to_dict() output.

        Raises:
            ValueError: on unknown model types or inconsistent shapes; the
                        current models are left untouched
            KeyError: when a model dict is missing fields
        """
        models = {}
        for kind in ClassifierKind:
            entry = (data or {}).get(kind.value)
            if not entry:
                continue
            model_type = _MODEL_TYPES.get(entry.get("type"))
            expected = LocationModel if kind is ClassifierKind.LOCATION else SoftmaxModel
            if model_type is not expected:
                raise ValueError("Unknown model type for %s: %r" % (kind.value, entry.get("type")))
            models[kind] = model_type.from_dict(entry)
        self._models = models
        return self.labels()
