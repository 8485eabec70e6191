"""Per-row (per-user) normalization of a SparseRatingMatrix and its inverse."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Hashable, Literal

import numpy as np

from .errors import InvalidParameterError
from .matrix import SparseRatingMatrix


NormalizeMethod = Literal["none", "center", "z-score"]
NORMALIZE_METHODS: tuple[str, ...] = ("none", "center", "z-score")

# Standard deviations below this are treated as zero (all ratings identical).
_STD_EPS = 1e-12


@dataclass(frozen=True)
class RowStats:
    """Per-row transform `(value - mean) / scale`.

    `scale == 0.0` marks a degenerate row (z-score with identical ratings or a
    single rating): every observed cell normalizes to exactly 0 and
    `denormalize` returns the mean.
    """

    mean: float
    scale: float = 1.0

    def apply(self, value: float) -> float:
        if self.scale == 0.0:
            return 0.0
        return (float(value) - self.mean) / self.scale

    def invert(self, value: float) -> float:
        return float(value) * self.scale + self.mean


def denormalize(value: float, stats: RowStats) -> float:
    return stats.invert(value)


@dataclass(frozen=True)
class NormalizedMatrix:
    values: SparseRatingMatrix
    stats: tuple[RowStats, ...]
    method: str

    def stats_for(self, user_id: Hashable) -> RowStats:
        return self.stats[self.values.user_index(user_id)]

    def denormalize(self, user_id: Hashable, value: float) -> float:
        return self.stats_for(user_id).invert(value)


class Normalizer:
    """Row normalizer: `none`, `center` (subtract row mean) or `z-score`.

    Statistics use observed entries only. Z-score uses the sample standard
    deviation (ddof=1).
    """

    def __init__(self, method: NormalizeMethod = "z-score") -> None:
        if method not in NORMALIZE_METHODS:
            raise InvalidParameterError(f"normalize method must be one of {NORMALIZE_METHODS}, got {method!r}")
        self.method = method

    def __repr__(self) -> str:
        return f"Normalizer(method={self.method!r})"

    def normalize(self, matrix: SparseRatingMatrix) -> tuple[NormalizedMatrix, tuple[RowStats, ...]]:
        n_users = matrix.shape[0]
        rows, _, vals = matrix.coo_arrays()

        if self.method == "none":
            means = np.zeros(n_users)
            scales = np.ones(n_users)
        else:
            means = np.nan_to_num(matrix.row_means(), nan=0.0)
            scales = np.ones(n_users)
            if self.method == "z-score":
                counts = matrix.row_count_array().astype(np.float64)
                sq = np.bincount(rows, weights=(vals - means[rows]) ** 2, minlength=n_users)
                var = np.divide(sq, counts - 1.0, out=np.zeros(n_users), where=counts > 1)
                scales = np.sqrt(var)
                scales[scales < _STD_EPS] = 0.0

        safe = np.where(scales > 0.0, scales, 1.0)
        data = (vals - means[rows]) / safe[rows]
        data[scales[rows] == 0.0] = 0.0

        stats = tuple(RowStats(mean=float(m), scale=float(s)) for m, s in zip(means, scales))
        normalized = NormalizedMatrix(values=matrix.with_values(data), stats=stats, method=self.method)
        return normalized, stats


def binarize(matrix: SparseRatingMatrix, threshold: float) -> SparseRatingMatrix:
    """Observed values >= threshold become 1, the rest 0. Unobserved stays unobserved."""
    if not np.isfinite(threshold):
        raise InvalidParameterError(f"threshold must be finite, got {threshold!r}")
    data = (matrix.csr.data >= float(threshold)).astype(np.float64)
    return matrix.with_values(data)
