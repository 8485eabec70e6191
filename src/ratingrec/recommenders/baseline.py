"""Non-personalized baselines: item popularity and uniform random scores."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal

import numpy as np

from ..errors import InvalidParameterError
from ..matrix import SparseRatingMatrix
from .base import PredictionMode, Profile, Recommender


PopularityStatistic = Literal["count", "mean"]


@dataclass(frozen=True)
class PopularConfig:
    statistic: PopularityStatistic = "count"


class PopularRecommender(Recommender):
    """Same ranking for every user (items the user rated are suppressed).

    Ratings mode predicts an item's mean training rating; items nobody rated in
    training have no prediction. Top-N ranks by `statistic`.
    """

    name = "POPULAR"

    def __init__(self, cfg: PopularConfig | None = None) -> None:
        super().__init__()
        self.cfg = cfg or PopularConfig()
        if self.cfg.statistic not in ("count", "mean"):
            raise InvalidParameterError(f"statistic must be 'count' or 'mean', got {self.cfg.statistic!r}")
        self.item_counts: np.ndarray | None = None
        self.item_means: np.ndarray | None = None

    def __repr__(self) -> str:
        return f"PopularRecommender({self.cfg})"

    def _fit(self, train: SparseRatingMatrix) -> None:
        self.item_counts = train.column_count_array().astype(np.float64)
        self.item_means = train.column_means()

    def _score(self, ctx: Any, profile: Profile, cand: np.ndarray, mode: PredictionMode) -> np.ndarray:
        assert self.item_counts is not None and self.item_means is not None
        if mode == "ratings" or self.cfg.statistic == "mean":
            return self.item_means[cand]
        return self.item_counts[cand]


@dataclass(frozen=True)
class RandomConfig:
    seed: int = 42
    rating_range: tuple[float, float] | None = None


class RandomRecommender(Recommender):
    """Uniform scores in the rating range; a lower-bound baseline.

    Each user's scores come from a generator seeded with `(seed, profile row)`,
    and cover the whole item universe, so a repeated call on the same profiles
    returns the same output whatever the candidate set.
    """

    name = "RANDOM"

    def __init__(self, cfg: RandomConfig | None = None) -> None:
        super().__init__()
        self.cfg = cfg or RandomConfig()
        if self.cfg.rating_range is not None:
            lo, hi = self.cfg.rating_range
            if not (np.isfinite(lo) and np.isfinite(hi) and lo <= hi):
                raise InvalidParameterError(f"rating_range must be finite (low, high), got {self.cfg.rating_range}")
        self.low: float | None = None
        self.high: float | None = None

    def __repr__(self) -> str:
        return f"RandomRecommender({self.cfg})"

    def _fit(self, train: SparseRatingMatrix) -> None:
        if self.cfg.rating_range is not None:
            self.low, self.high = (float(x) for x in self.cfg.rating_range)
        else:
            self.low = float(train.csr.data.min())
            self.high = float(train.csr.data.max())

    def _score(self, ctx: Any, profile: Profile, cand: np.ndarray, mode: PredictionMode) -> np.ndarray:
        assert self.low is not None and self.high is not None
        rng = np.random.default_rng([int(self.cfg.seed), int(profile.position)])
        scores = rng.uniform(self.low, self.high, size=self.train.shape[1])
        return scores[cand]
