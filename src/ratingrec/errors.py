"""Exception taxonomy for the rating engine.

Absence of a prediction for a single cell is *not* an error: it is represented as
``None`` (or NaN in tables) so callers can count it.
"""

from __future__ import annotations


class RecommenderError(Exception):
    """Base class for every error raised by ratingrec."""


class EmptyInputError(RecommenderError):
    """No ratings were supplied (or none survived a filter)."""


class DuplicateEntryError(RecommenderError):
    """The same (user, item) pair was rated more than once."""


class UnknownEntityError(RecommenderError, KeyError):
    """A query referenced a user or item id that is not in the matrix."""

    def __str__(self) -> str:
        # KeyError quotes its argument; keep plain messages.
        return str(self.args[0]) if self.args else ""


class InvalidParameterError(RecommenderError, ValueError):
    """A parameter is out of its valid domain (n <= 0, k <= 0, ...)."""


class InsufficientDataError(RecommenderError):
    """A test user has too few ratings for the requested `given` protocol."""


class NotFittedError(RecommenderError, RuntimeError):
    """A recommender was asked to predict before `fit()` was called."""
