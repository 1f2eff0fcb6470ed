"""
Normalized k-nearest-neighbour model for hand location features.

Not gradient-trained: every calibration sample is kept as a reference
point after standardization; prediction is an inverse-distance weighted
vote among the k closest samples.
"""

import logging

import numpy as np

from models.softmax import normalize_matrix, apply_normalization

logger = logging.getLogger(__name__)

_DISTANCE_EPS = 1e-3


class LocationModel:
    """Reference table of normalized location samples."""

    kind = "knn"

    def __init__(self, samples, labels, mean, std, k=5):
        self.samples = np.asarray(samples, dtype=np.float64)   # (N, F) normalized
        self.labels = list(labels)
        self.mean = np.asarray(mean, dtype=np.float64)
        self.std = np.asarray(std, dtype=np.float64)
        self.k = int(k)

    @property
    def feature_dim(self) -> int:
        return self.samples.shape[1] if self.samples.ndim == 2 else 0

    @property
    def sample_count(self) -> int:
        return len(self.labels)

    def predict(self, features):
        """Weighted vote of the k nearest reference samples.

        Returns:
            dict {label, confidence, neighbours}, or None without samples or
            on a feature size mismatch
        """
        if features is None or not self.labels:
            return None
        features = np.asarray(features, dtype=np.float64)
        if features.shape != (self.feature_dim,):
            logger.debug("Feature size %s does not match model (%d)", features.shape, self.feature_dim)
            return None

        query = apply_normalization(features, self.mean, self.std)
        distances = np.linalg.norm(self.samples - query, axis=1)
        order = np.argsort(distances, kind="stable")
        k = min(self.k if self.k > 0 else 3, len(order))

        tally = {}
        total = 0.0
        neighbours = []
        for i in order[:k]:
            label = self.labels[i]
            weight = 1.0 / (float(distances[i]) + _DISTANCE_EPS)
            tally[label] = tally.get(label, 0.0) + weight
            total += weight
            neighbours.append({"label": label, "distance": float(distances[i])})

        best_label, best_weight = None, -np.inf
        for label, weight in tally.items():
            if weight > best_weight:
                best_label, best_weight = label, weight

        confidence = min(max(best_weight / total, 0.0), 1.0) if total > 0 else 0.5
        return {"label": best_label, "confidence": confidence, "neighbours": neighbours}

    def to_dict(self) -> dict:
        return {
            "type": self.kind,
            "samples": self.samples.tolist(),
            "labels": list(self.labels),
            "mean": self.mean.tolist(),
            "std": self.std.tolist(),
            "k": self.k,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'LocationModel':
        """Rebuild a model from to_dict() output.

        Raises:
            ValueError: if the stored shapes are inconsistent
        """
        model = cls(data["samples"], data["labels"], data["mean"], data["std"], data.get("k", 5))
        if (model.samples.ndim != 2
                or model.samples.shape[0] != len(model.labels)
                or model.mean.shape != (model.feature_dim,)
                or model.std.shape != (model.feature_dim,)):
            raise ValueError("Inconsistent location model shapes")
        return model


def build_location_model(features, labels, max_k=5) -> LocationModel:
    """Standardize the samples and keep them all as neighbours."""
    matrix = np.asarray(features, dtype=np.float64)
    normalized, mean, std = normalize_matrix(matrix)
    return LocationModel(normalized, labels, mean, std, k=min(max_k, len(labels)))
