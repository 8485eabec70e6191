"""Pairwise similarity over pairwise-complete observations, and neighborhood search.

Similarity between two rows only looks at the items *both* rows observed. No
overlap (or a zero norm on the overlap) means the similarity is undefined: it is
returned as None / NaN and such rows are never selected as neighbors.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Hashable, Literal, Mapping

import numpy as np
import pandas as pd

from .errors import InvalidParameterError
from .matrix import SparseRatingMatrix


logger = logging.getLogger(__name__)

SimilarityMethod = Literal["cosine", "pearson"]
SIMILARITY_METHODS: tuple[str, ...] = ("cosine", "pearson")
Axis = Literal["user", "item"]

# Relative tolerance for "this norm / variance is zero".
_EPS = 1e-12


def _check_method(method: str) -> None:
    if method not in SIMILARITY_METHODS:
        raise InvalidParameterError(f"similarity method must be one of {SIMILARITY_METHODS}, got {method!r}")


def similarity(
    row_a: Mapping[Hashable, float],
    row_b: Mapping[Hashable, float],
    method: SimilarityMethod = "cosine",
) -> float | None:
    """Similarity of two sparse rows (`{item_id: value}`) in [-1, 1], or None if undefined."""
    _check_method(method)
    common = [i for i in row_a if i in row_b]
    if not common:
        return None

    a = np.array([row_a[i] for i in common], dtype=np.float64)
    b = np.array([row_b[i] for i in common], dtype=np.float64)
    if method == "pearson":
        a = a - a.mean()
        b = b - b.mean()

    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom <= _EPS:
        return None
    return float(np.clip(np.dot(a, b) / denom, -1.0, 1.0))


@dataclass(frozen=True)
class Neighbor:
    user_id: Hashable
    similarity: float
    common_rated: int


class SimilarityEngine:
    """Similarities of a target profile against every row of a reference matrix.

    With `axis="item"` the reference is transposed, so rows are items and the
    "profile" of an item is its column of user ratings.

    The most recent `cache_size` per-target similarity vectors are kept in an
    LRU cache (0 disables it); an engine is bound to one reference matrix and
    is rebuilt when that changes.
    """

    def __init__(
        self,
        reference: SparseRatingMatrix,
        method: SimilarityMethod = "cosine",
        *,
        axis: Axis = "user",
        min_overlap: int = 1,
        cache_size: int = 1024,
    ) -> None:
        _check_method(method)
        if axis not in ("user", "item"):
            raise InvalidParameterError(f"axis must be 'user' or 'item', got {axis!r}")
        if int(min_overlap) < 1:
            raise InvalidParameterError(f"min_overlap must be >= 1, got {min_overlap}")
        if int(cache_size) < 0:
            raise InvalidParameterError(f"cache_size must be >= 0, got {cache_size}")

        self.reference = reference.transpose() if axis == "item" else reference
        self.method = method
        self.axis = axis
        self.min_overlap = int(min_overlap)

        self._x = self.reference.csr
        self._b = self.reference.indicator
        self._x2 = self._x.multiply(self._x).tocsr()
        self._cached = self._make_similarity_cache(maxsize=int(cache_size)) if cache_size else None

    def _make_similarity_cache(self, *, maxsize: int) -> Any:
        """LRU cache of `_compute`, keyed by the raw bytes of the profile arrays."""

        @lru_cache(maxsize=maxsize)
        def _sims(idx_key: bytes, val_key: bytes) -> tuple[np.ndarray, np.ndarray]:
            return self._compute(np.frombuffer(idx_key, dtype=np.int64), np.frombuffer(val_key, dtype=np.float64))

        return _sims

    def cache_info(self) -> Any:
        return self._cached.cache_info() if self._cached is not None else None

    def similarities_for(self, item_idx: np.ndarray, values: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Similarity of one sparse profile to every reference row.

        `item_idx` are column positions in the reference matrix. Returns
        `(sims, overlap)` where undefined similarities are NaN. The arrays are
        read-only; they may be shared with the cache.
        """
        item_idx = np.ascontiguousarray(item_idx, dtype=np.int64)
        values = np.ascontiguousarray(values, dtype=np.float64)
        if self._cached is not None:
            return self._cached(item_idx.tobytes(), values.tobytes())
        return self._compute(item_idx, values)

    def _compute(self, item_idx: np.ndarray, values: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        n_cols = self.reference.shape[1]
        m = np.zeros(n_cols)
        m[item_idx] = 1.0
        x = np.zeros(n_cols)
        x[item_idx] = values

        cnt = self._b @ m
        dot = self._x @ x
        na2 = self._b @ (x * x)
        nb2 = self._x2 @ m

        with np.errstate(invalid="ignore", divide="ignore"):
            if self.method == "cosine":
                va, vb, num = na2, nb2, dot
            else:
                sa = self._b @ x
                sb = self._x @ m
                safe_cnt = np.maximum(cnt, 1.0)
                num = dot - sa * sb / safe_cnt
                va = np.maximum(na2 - sa * sa / safe_cnt, 0.0)
                vb = np.maximum(nb2 - sb * sb / safe_cnt, 0.0)
                # sum-of-squares cancellation leaves tiny positives for constant rows
                va[va <= _EPS * np.maximum(na2, 1.0)] = 0.0
                vb[vb <= _EPS * np.maximum(nb2, 1.0)] = 0.0

            denom = np.sqrt(va * vb)
            sims = np.where(denom > _EPS, num / denom, np.nan)

        sims[cnt < self.min_overlap] = np.nan
        sims = np.clip(sims, -1.0, 1.0)
        overlap = cnt.astype(np.int64)
        sims.flags.writeable = False
        overlap.flags.writeable = False
        return sims, overlap

    def neighbors_for(
        self,
        item_idx: np.ndarray,
        values: np.ndarray,
        k: int,
        *,
        exclude: Hashable | None = None,
    ) -> list[Neighbor]:
        """Top-k reference rows by similarity (descending, ties by ascending id)."""
        if int(k) <= 0:
            raise InvalidParameterError(f"neighborhood size k must be > 0, got {k}")

        sims, overlap = self.similarities_for(item_idx, values)
        valid = ~np.isnan(sims)
        if exclude is not None and self.reference.has_user(exclude):
            valid[self.reference.user_index(exclude)] = False

        cand = np.flatnonzero(valid)
        if cand.size == 0:
            return []
        # Round so float noise does not defeat the id tie-break.
        key = np.round(sims[cand], 12)
        order = np.lexsort((cand, -key))
        top = cand[order[: int(k)]]

        ids = self.reference.user_ids
        return [Neighbor(user_id=ids[int(i)], similarity=float(sims[i]), common_rated=int(overlap[i])) for i in top]

    def neighbors(self, target: Hashable, k: int) -> list[Neighbor]:
        """Neighbors of a row of the reference matrix itself (self excluded)."""
        cols, vals = self.reference.row_arrays(self.reference.user_index(target))
        return self.neighbors_for(cols, vals, k, exclude=target)


def neighbors(
    user: Hashable,
    matrix: SparseRatingMatrix,
    k: int,
    method: SimilarityMethod = "cosine",
) -> list[tuple[Hashable, float]]:
    """Up to k `(user_id, similarity)` pairs for `user`, best first."""
    engine = SimilarityEngine(matrix, method, cache_size=0)
    return [(n.user_id, n.similarity) for n in engine.neighbors(user, k)]


def similarity_matrix(
    matrix: SparseRatingMatrix,
    method: SimilarityMethod = "cosine",
    *,
    axis: Axis = "user",
) -> pd.DataFrame:
    """Full square similarity table (NaN on the diagonal and for undefined pairs).

    Quadratic in the number of rows; intended for inspection of small matrices.
    """
    engine = SimilarityEngine(matrix, method, axis=axis, cache_size=0)
    ref = engine.reference
    n = ref.shape[0]
    out = np.full((n, n), np.nan)
    for i in range(n):
        cols, vals = ref.row_arrays(i)
        sims, _ = engine.similarities_for(cols, vals)
        out[i] = sims
    np.fill_diagonal(out, np.nan)
    ids = list(ref.user_ids)
    return pd.DataFrame(out, index=ids, columns=ids)
