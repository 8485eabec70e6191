"""User-based collaborative filtering (UBCF).

Scoring:
- Normalize training rows and target profiles with the same row normalizer
- Find the `nn` most similar training users to the target profile
- For each candidate item: similarity-weighted average of the normalized ratings
  of those neighbors that rated it (denominator: sum of |similarity|); with
  `normalize="none"` only neighbors with positive similarity are used
- Map back to the rating scale with the target's own row statistics

An item no neighbor rated gets no prediction (NaN / None), never a default.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Hashable

import numpy as np

from ..errors import InvalidParameterError
from ..matrix import SparseRatingMatrix
from ..normalize import NormalizedMatrix, NormalizeMethod, Normalizer
from ..similarity import Neighbor, SimilarityEngine, SimilarityMethod
from .base import PredictionMode, Profile, Recommender, item_map


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UBCFConfig:
    nn: int = 5
    method: SimilarityMethod = "cosine"
    normalize: NormalizeMethod = "z-score"
    weighted: bool = True
    min_overlap: int = 1


@dataclass(frozen=True)
class _PredictContext:
    profiles: NormalizedMatrix
    col_map: np.ndarray


class UserBasedCF(Recommender):
    name = "UBCF"

    def __init__(self, cfg: UBCFConfig | None = None) -> None:
        super().__init__()
        self.cfg = cfg or UBCFConfig()
        if int(self.cfg.nn) <= 0:
            raise InvalidParameterError(f"nn (neighborhood size) must be > 0, got {self.cfg.nn}")
        self.normalizer = Normalizer(self.cfg.normalize)
        self._normalized: NormalizedMatrix | None = None
        self._engine: SimilarityEngine | None = None

    def __repr__(self) -> str:
        return f"UserBasedCF({self.cfg})"

    def _fit(self, train: SparseRatingMatrix) -> None:
        self._normalized, _ = self.normalizer.normalize(train)
        self._engine = SimilarityEngine(
            self._normalized.values,
            self.cfg.method,
            min_overlap=int(self.cfg.min_overlap),
        )

    def _prepare(self, profiles: SparseRatingMatrix) -> _PredictContext:
        normalized, _ = self.normalizer.normalize(profiles)
        return _PredictContext(profiles=normalized, col_map=item_map(profiles, self.train))

    def _neighbors(self, ctx: _PredictContext, position: int, user_id: Hashable, k: int) -> list[Neighbor]:
        assert self._engine is not None
        cols, norm_vals = ctx.profiles.values.row_arrays(position)
        mapped = ctx.col_map[cols]
        known = mapped >= 0
        return self._engine.neighbors_for(mapped[known], norm_vals[known], k, exclude=user_id)

    def _score(self, ctx: _PredictContext, profile: Profile, cand: np.ndarray, mode: PredictionMode) -> np.ndarray:
        assert self._normalized is not None
        out = np.full(len(cand), np.nan)
        if len(cand) == 0:
            return out

        nbrs = self._neighbors(ctx, profile.position, profile.user_id, int(self.cfg.nn))
        logger.debug("UBCF user=%r neighbors=%d", profile.user_id, len(nbrs))
        if not nbrs:
            return out

        if self.cfg.normalize == "none":
            # uncentered ratings: only positively similar neighbors contribute
            nbrs = [n for n in nbrs if n.similarity > 0.0]
            if not nbrs:
                return out

        train = self._normalized.values
        rows = [train.user_index(n.user_id) for n in nbrs]
        w = np.array([n.similarity for n in nbrs], dtype=np.float64)
        if not self.cfg.weighted:
            w = np.ones_like(w)

        values = train.csr[rows][:, cand].toarray()
        observed = train.indicator[rows][:, cand].toarray()

        num = w @ values
        den = np.abs(w) @ observed
        with np.errstate(invalid="ignore", divide="ignore"):
            pred = np.where(den > 0.0, num / den, np.nan)

        stats = ctx.profiles.stats[profile.position]
        return pred * stats.scale + stats.mean

    def similar_users(self, profiles: SparseRatingMatrix, user_id: Hashable, *, top_n: int | None = None) -> list[Neighbor]:
        """Training users most similar to `user_id`'s profile (self excluded).

        Defaults to the configured neighborhood size.
        """
        self.train  # raises NotFittedError
        k = int(self.cfg.nn if top_n is None else top_n)
        if k <= 0:
            raise InvalidParameterError(f"top_n must be > 0, got {top_n}")
        ctx = self._prepare(profiles)
        return self._neighbors(ctx, profiles.user_index(user_id), user_id, k)
