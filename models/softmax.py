"""
Multinomial logistic regression trained by full-batch gradient descent.

Small enough to train synchronously on end-user hardware: a few hundred
calibration samples, a fixed epoch budget, no mini-batching and no
momentum, so a given sample set always yields the same weights (up to
floating-point summation order).
"""

import math
import logging

import numpy as np

logger = logging.getLogger(__name__)

_STD_FLOOR = 1e-12
_LOG_EPS = 1e-9


def normalize_matrix(matrix: np.ndarray):
    """Per-feature standardization.

    Returns:
        (normalized, mean, std); std entries that are (near) zero become 1
    """
    mean = matrix.mean(axis=0)
    std = matrix.std(axis=0)
    std = np.where(std < _STD_FLOOR, 1.0, std)
    return (matrix - mean) / std, mean, std


def apply_normalization(vector: np.ndarray, mean: np.ndarray, std: np.ndarray) -> np.ndarray:
    safe_std = np.where(std == 0, 1.0, std)
    return (vector - mean) / safe_std


def softmax(logits: np.ndarray) -> np.ndarray:
    """Numerically stable softmax over the last axis."""
    shifted = logits - np.max(logits, axis=-1, keepdims=True)
    exps = np.exp(shifted)
    total = np.sum(exps, axis=-1, keepdims=True)
    total = np.where(total == 0, 1.0, total)
    return exps / total


class SoftmaxModel:
    """Trained softmax classifier. Immutable once built."""

    kind = "softmax"

    def __init__(self, labels, weights, biases, feature_mean, feature_std,
                 final_loss=0.0, epochs=0):
        self.labels = list(labels)
        self.weights = np.asarray(weights, dtype=np.float64)          # (C, F)
        self.biases = np.asarray(biases, dtype=np.float64)            # (C,)
        self.feature_mean = np.asarray(feature_mean, dtype=np.float64)
        self.feature_std = np.asarray(feature_std, dtype=np.float64)
        self.final_loss = float(final_loss)
        self.epochs = int(epochs)

    @property
    def feature_dim(self) -> int:
        return self.weights.shape[1] if self.weights.ndim == 2 else 0

    def predict_proba(self, features) -> np.ndarray:
        x = apply_normalization(np.asarray(features, dtype=np.float64),
                                self.feature_mean, self.feature_std)
        return softmax(self.weights @ x + self.biases)

    def predict(self, features):
        """Most probable label for one feature vector.

        Returns:
            dict {label, confidence, probabilities}, or None when the vector
            does not match the model's feature dimension
        """
        if features is None or not self.labels:
            return None
        features = np.asarray(features, dtype=np.float64)
        if features.shape != (self.feature_dim,):
            logger.debug("Feature size %s does not match model (%d)", features.shape, self.feature_dim)
            return None

        probs = self.predict_proba(features)
        best = int(np.argmax(probs))
        return {
            "label": self.labels[best],
            "confidence": float(probs[best]),
            "probabilities": {label: float(p) for label, p in zip(self.labels, probs)},
        }

    def to_dict(self) -> dict:
        return {
            "type": self.kind,
            "labels": list(self.labels),
            "weights": self.weights.tolist(),
            "biases": self.biases.tolist(),
            "feature_mean": self.feature_mean.tolist(),
            "feature_std": self.feature_std.tolist(),
            "final_loss": self.final_loss,
            "epochs": self.epochs,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'SoftmaxModel':
        """Rebuild a model from to_dict() output.

        Raises:
            ValueError: if the stored shapes are inconsistent
        """
        model = cls(
            labels=data["labels"],
            weights=data["weights"],
            biases=data["biases"],
            feature_mean=data["feature_mean"],
            feature_std=data["feature_std"],
            final_loss=data.get("final_loss", 0.0),
            epochs=data.get("epochs", 0),
        )
        classes, features = len(model.labels), model.feature_dim
        if (model.weights.shape != (classes, features)
                or model.biases.shape != (classes,)
                or model.feature_mean.shape != (features,)
                or model.feature_std.shape != (features,)):
            raise ValueError("Inconsistent softmax model shapes")
        return model


def train_softmax(features, labels, max_epochs=150, learning_rate=0.3,
                  l2=0.0, loss_threshold=1e-4) -> SoftmaxModel:
    """Fit a softmax classifier with batch gradient descent.

    Args:
        features: (N, F) sample matrix
        labels: N label strings; class order is first appearance
        max_epochs: epoch budget
        learning_rate: step size
        l2: weight decay applied to weights (not biases)
        loss_threshold: stop once mean cross-entropy drops below this

    Returns:
        SoftmaxModel
    """
    matrix = np.asarray(features, dtype=np.float64)
    class_names = list(dict.fromkeys(labels))
    index = {label: i for i, label in enumerate(class_names)}
    targets = np.array([index[label] for label in labels], dtype=np.int64)

    normalized, mean, std = normalize_matrix(matrix)
    sample_count, feature_count = normalized.shape
    class_count = len(class_names)

    weights = np.zeros((class_count, feature_count), dtype=np.float64)
    biases = np.zeros(class_count, dtype=np.float64)
    one_hot = np.zeros((sample_count, class_count), dtype=np.float64)
    one_hot[np.arange(sample_count), targets] = 1.0

    final_loss = 0.0
    epochs_run = 0
    for epoch in range(max_epochs):
        probs = softmax(normalized @ weights.T + biases)
        loss = float(-np.mean(np.log(probs[np.arange(sample_count), targets] + _LOG_EPS)))

        error = probs - one_hot
        grad_w = error.T @ normalized / sample_count + l2 * weights
        grad_b = error.sum(axis=0) / sample_count
        weights -= learning_rate * grad_w
        biases -= learning_rate * grad_b

        final_loss = loss
        epochs_run = epoch + 1
        if not math.isfinite(loss) or loss < loss_threshold:
            break

    logger.debug("Softmax trained: %d samples, %d classes, %d epochs, loss=%.5f",
                 sample_count, class_count, epochs_run, final_loss)

    return SoftmaxModel(class_names, weights, biases, mean, std, final_loss, epochs_run)
