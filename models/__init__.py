"""
Learned models for per-user gesture classification.

Provides:
    - GestureFeatureExtractor: landmarks -> handshape/orientation/location vectors
    - SoftmaxModel: gradient-trained multinomial logistic regression
    - LocationModel: normalized k-nearest-neighbour table
    - ClassifierBank: trains and combines the three models
"""

from models.feature_extractor import GestureFeatureExtractor
from models.softmax import SoftmaxModel
from models.knn import LocationModel
from models.classifier_bank import ClassifierBank

__all__ = [
    "GestureFeatureExtractor",
    "SoftmaxModel",
    "LocationModel",
    "ClassifierBank",
]
