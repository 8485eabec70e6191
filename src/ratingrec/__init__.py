"""ratingrec: user-based collaborative filtering with an offline evaluation framework.

Typical flow:
- build a `SparseRatingMatrix` from a ratings table
- fit a `Recommender` (UBCF / POPULAR / RANDOM) and predict ratings or top-N lists
- measure them with an `EvaluationScheme` + `Evaluator`
"""

from .data import Rating, load_ratings, validate_ratings
from .errors import (
    DuplicateEntryError,
    EmptyInputError,
    InsufficientDataError,
    InvalidParameterError,
    NotFittedError,
    RecommenderError,
    UnknownEntityError,
)
from .evaluation import EvaluationScheme, Evaluator, compare, evaluate, split
from .matrix import SparseRatingMatrix
from .normalize import NormalizedMatrix, Normalizer, RowStats, binarize, denormalize
from .recommenders import (
    PopularRecommender,
    PredictionResult,
    RandomRecommender,
    Recommender,
    UserBasedCF,
)
from .similarity import SimilarityEngine, neighbors, similarity

__version__ = "0.1.0"

__all__ = [
    "DuplicateEntryError",
    "EmptyInputError",
    "EvaluationScheme",
    "Evaluator",
    "InsufficientDataError",
    "InvalidParameterError",
    "NormalizedMatrix",
    "Normalizer",
    "NotFittedError",
    "PopularRecommender",
    "PredictionResult",
    "RandomRecommender",
    "Rating",
    "Recommender",
    "RecommenderError",
    "RowStats",
    "SimilarityEngine",
    "SparseRatingMatrix",
    "UnknownEntityError",
    "UserBasedCF",
    "binarize",
    "compare",
    "denormalize",
    "evaluate",
    "load_ratings",
    "neighbors",
    "similarity",
    "split",
    "validate_ratings",
]
