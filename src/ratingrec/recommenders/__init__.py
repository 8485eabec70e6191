"""Interchangeable rating predictors sharing the `Recommender` interface."""

from .base import PredictionMode, PredictionResult, RecommendedItem, Recommender
from .baseline import PopularConfig, PopularRecommender, RandomConfig, RandomRecommender
from .user_based import UBCFConfig, UserBasedCF

__all__ = [
    "PopularConfig",
    "PopularRecommender",
    "PredictionMode",
    "PredictionResult",
    "RandomConfig",
    "RandomRecommender",
    "RecommendedItem",
    "Recommender",
    "UBCFConfig",
    "UserBasedCF",
]
