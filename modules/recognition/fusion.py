"""
Fusion of heuristic detector scores with the learned classifier prediction.

Decision rules, for one hand:
    - heuristic candidates are detectors meeting their own threshold
    - the learned candidate is the classifier bank's prediction when its
      confidence meets the model floor
    - a learned label that also names an accepted heuristic is blended
      (mean of both confidences) and may overtake the heuristic winner
    - otherwise the learned candidate competes on confidence alone

Ties go to heuristics over a learned-only candidate, and among heuristics
to the earlier detector in the table.
"""

import logging
from typing import List, Optional

from core.types import DecisionSource

logger = logging.getLogger(__name__)


class FusionDecision:
    """Selected gesture for one hand before the cooldown gate."""

    __slots__ = ("gesture", "confidence", "source")

    def __init__(self, gesture: str, confidence: float, source: DecisionSource):
        self.gesture = gesture
        self.confidence = confidence
        self.source = source

    def __repr__(self):
        return f"FusionDecision({self.gesture}, {self.confidence:.3f}, {self.source.value})"


class FusionEngine:
    """Merges DetectorScores and a Prediction into one decision."""

    def __init__(self, config: dict):
        self._model_threshold = config.get("model_confidence_threshold", 0.60)

    @property
    def model_confidence_threshold(self) -> float:
        return self._model_threshold

    def accepts_prediction(self, prediction) -> bool:
        return prediction is not None and prediction.confidence >= self._model_threshold

    def decide(self, scores, prediction=None) -> Optional[FusionDecision]:
        """Pick the gesture for one hand.

        Args:
            scores: DetectorScore list in table order
            prediction: Prediction from the classifier bank, or None

        Returns:
            FusionDecision, or None when nothing passes a threshold
        """
        candidates = [s for s in scores if s.accepted]
        learned = prediction if self.accepts_prediction(prediction) else None

        best = None
        blended = False
        for score in candidates:
            confidence = score.confidence
            source = DecisionSource.HEURISTIC
            if learned is not None and learned.label == score.name:
                confidence = (score.confidence + learned.confidence) / 2.0
                source = DecisionSource.BLENDED
                blended = True
            if best is None or confidence > best.confidence:
                best = FusionDecision(score.name, confidence, source)

        if learned is not None and not blended:
            if best is None or learned.confidence > best.confidence:
                best = FusionDecision(learned.label, learned.confidence, DecisionSource.LEARNED)

        if best is not None:
            best.confidence = min(max(float(best.confidence), 0.0), 1.0)
            logger.debug("Fusion: %r (heuristic candidates=%d, learned=%s)",
                         best, len(candidates), learned.label if learned else None)
        return best

    @staticmethod
    def classify_confidence(confidence: float) -> str:
        """Confidence band for overlays: 'high', 'medium' or 'low'."""
        if confidence >= 0.85:
            return "high"
        elif confidence >= 0.65:
            return "medium"
        return "low"
