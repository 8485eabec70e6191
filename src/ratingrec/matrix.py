"""Sparse users x items rating matrix with explicit "unobserved" cells.

Storage is a scipy CSR matrix whose *stored* entries are exactly the observed
ratings. A stored 0.0 is an observed zero (normalized matrices contain plenty of
them), so nothing in this module ever calls `eliminate_zeros()` or goes through a
conversion that would drop explicit entries.
"""

from __future__ import annotations

import logging
from typing import Callable, Hashable, Iterable, Mapping, Sequence

import numpy as np
import pandas as pd
import scipy.sparse as sp

from .data import ITEM_COL, RATING_COL, USER_COL, Rating, iter_ratings
from .errors import DuplicateEntryError, EmptyInputError, InvalidParameterError, UnknownEntityError


logger = logging.getLogger(__name__)


def _sorted_ids(ids: Iterable[Hashable], kind: str) -> tuple[Hashable, ...]:
    try:
        return tuple(sorted(set(ids)))
    except TypeError as exc:
        raise InvalidParameterError(f"{kind} ids must be mutually orderable: {exc}") from exc


class SparseRatingMatrix:
    """Immutable users x items rating matrix.

    Rows and columns are ordered by ascending id, so "lower index" and "lower id"
    mean the same thing for tie-breaking.
    """

    __slots__ = ("_user_ids", "_item_ids", "_user_pos", "_item_pos", "_csr", "_indicator")

    def __init__(
        self,
        user_ids: Sequence[Hashable],
        item_ids: Sequence[Hashable],
        csr: sp.csr_matrix,
    ) -> None:
        if csr.shape != (len(user_ids), len(item_ids)):
            raise ValueError(f"csr shape {csr.shape} does not match ids ({len(user_ids)}, {len(item_ids)})")
        self._user_ids = tuple(user_ids)
        self._item_ids = tuple(item_ids)
        self._user_pos = {u: i for i, u in enumerate(self._user_ids)}
        self._item_pos = {m: j for j, m in enumerate(self._item_ids)}
        self._csr = csr
        self._indicator: sp.csr_matrix | None = None

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def from_coo(
        cls,
        user_ids: Sequence[Hashable],
        item_ids: Sequence[Hashable],
        rows: np.ndarray,
        cols: np.ndarray,
        values: np.ndarray,
    ) -> "SparseRatingMatrix":
        """Build from positional (row, col, value) triples over fixed id universes.

        Raises DuplicateEntryError if a (row, col) pair appears twice.
        """
        rows = np.asarray(rows, dtype=np.int64)
        cols = np.asarray(cols, dtype=np.int64)
        values = np.asarray(values, dtype=np.float64)
        n_users, n_items = len(user_ids), len(item_ids)

        order = np.lexsort((cols, rows))
        rows, cols, values = rows[order], cols[order], values[order]

        if len(rows) > 1:
            dup = (rows[1:] == rows[:-1]) & (cols[1:] == cols[:-1])
            if dup.any():
                i = int(np.flatnonzero(dup)[0])
                raise DuplicateEntryError(
                    f"duplicate rating for (userId={user_ids[rows[i]]!r}, itemId={item_ids[cols[i]]!r})"
                )

        indptr = np.zeros(n_users + 1, dtype=np.int64)
        np.cumsum(np.bincount(rows, minlength=n_users), out=indptr[1:])
        csr = sp.csr_matrix((values, cols, indptr), shape=(n_users, n_items))
        return cls(user_ids, item_ids, csr)

    @classmethod
    def from_ratings(cls, ratings: Iterable[Rating]) -> "SparseRatingMatrix":
        users: list[Hashable] = []
        items: list[Hashable] = []
        values: list[float] = []
        for r in ratings:
            users.append(r.user_id)
            items.append(r.item_id)
            values.append(float(r.value))
        return cls._from_triples(users, items, values)

    @classmethod
    def from_frame(cls, df: pd.DataFrame) -> "SparseRatingMatrix":
        """Build from a canonical (userId, itemId, rating) table."""
        return cls.from_ratings(iter_ratings(df))

    @classmethod
    def from_dict(cls, ratings: Mapping[Hashable, Mapping[Hashable, float]]) -> "SparseRatingMatrix":
        """Build from `{user_id: {item_id: value}}`."""
        users, items, values = [], [], []
        for u, row in ratings.items():
            for m, v in row.items():
                users.append(u)
                items.append(m)
                values.append(float(v))
        return cls._from_triples(users, items, values)

    @classmethod
    def _from_triples(
        cls,
        users: Sequence[Hashable],
        items: Sequence[Hashable],
        values: Sequence[float],
    ) -> "SparseRatingMatrix":
        if len(values) == 0:
            raise EmptyInputError("no ratings supplied")
        user_ids = _sorted_ids(users, "user")
        item_ids = _sorted_ids(items, "item")
        user_pos = {u: i for i, u in enumerate(user_ids)}
        item_pos = {m: j for j, m in enumerate(item_ids)}
        rows = np.fromiter((user_pos[u] for u in users), dtype=np.int64, count=len(users))
        cols = np.fromiter((item_pos[m] for m in items), dtype=np.int64, count=len(items))
        vals = np.asarray(values, dtype=np.float64)
        if not np.isfinite(vals).all():
            raise InvalidParameterError("ratings must be finite numbers")
        m = cls.from_coo(user_ids, item_ids, rows, cols, vals)
        logger.debug("SparseRatingMatrix built: users=%d items=%d ratings=%d", *m.shape, m.n_ratings)
        return m

    # ------------------------------------------------------------------
    # Basic properties
    # ------------------------------------------------------------------
    @property
    def user_ids(self) -> tuple[Hashable, ...]:
        return self._user_ids

    @property
    def item_ids(self) -> tuple[Hashable, ...]:
        return self._item_ids

    @property
    def shape(self) -> tuple[int, int]:
        return (len(self._user_ids), len(self._item_ids))

    @property
    def n_ratings(self) -> int:
        return int(self._csr.nnz)

    @property
    def csr(self) -> sp.csr_matrix:
        """Underlying CSR storage. Treat as read-only."""
        return self._csr

    @property
    def indicator(self) -> sp.csr_matrix:
        """0/1 matrix with a 1 at every observed cell."""
        if self._indicator is None:
            self._indicator = self.with_values(np.ones(self.n_ratings, dtype=np.float64))._csr
        return self._indicator

    def __repr__(self) -> str:
        n_users, n_items = self.shape
        return f"SparseRatingMatrix(users={n_users}, items={n_items}, ratings={self.n_ratings})"

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    def has_user(self, user_id: Hashable) -> bool:
        return user_id in self._user_pos

    def has_item(self, item_id: Hashable) -> bool:
        return item_id in self._item_pos

    def user_index(self, user_id: Hashable) -> int:
        try:
            return self._user_pos[user_id]
        except KeyError:
            raise UnknownEntityError(f"Unknown userId: {user_id!r}") from None

    def item_index(self, item_id: Hashable) -> int:
        try:
            return self._item_pos[item_id]
        except KeyError:
            raise UnknownEntityError(f"Unknown itemId: {item_id!r}") from None

    def row_arrays(self, user_index: int) -> tuple[np.ndarray, np.ndarray]:
        """(item indices, values) of one row, by position. Views into storage."""
        start, end = self._csr.indptr[user_index], self._csr.indptr[user_index + 1]
        return self._csr.indices[start:end], self._csr.data[start:end]

    def get(self, user_id: Hashable, item_id: Hashable) -> float | None:
        """Rating at (user, item), or None when the cell is unobserved."""
        j = self.item_index(item_id)
        cols, vals = self.row_arrays(self.user_index(user_id))
        pos = int(np.searchsorted(cols, j))
        if pos < len(cols) and cols[pos] == j:
            return float(vals[pos])
        return None

    def row(self, user_id: Hashable) -> dict[Hashable, float]:
        cols, vals = self.row_arrays(self.user_index(user_id))
        return {self._item_ids[int(j)]: float(v) for j, v in zip(cols, vals)}

    def column(self, item_id: Hashable) -> dict[Hashable, float]:
        j = self.item_index(item_id)
        rows, cols, vals = self.coo_arrays()
        hit = cols == j
        return {self._user_ids[int(i)]: float(v) for i, v in zip(rows[hit], vals[hit])}

    def row_count(self, user_id: Hashable) -> int:
        i = self.user_index(user_id)
        return int(self._csr.indptr[i + 1] - self._csr.indptr[i])

    def row_count_array(self) -> np.ndarray:
        return np.diff(self._csr.indptr)

    def column_count_array(self) -> np.ndarray:
        return np.bincount(self._csr.indices, minlength=self.shape[1])

    def row_counts(self) -> pd.Series:
        return pd.Series(self.row_count_array(), index=list(self._user_ids), name="n_ratings")

    def column_counts(self) -> pd.Series:
        return pd.Series(self.column_count_array(), index=list(self._item_ids), name="n_ratings")

    def row_means(self) -> np.ndarray:
        """Mean over observed values per row; NaN for rows without ratings."""
        rows, _, vals = self.coo_arrays()
        counts = self.row_count_array().astype(np.float64)
        sums = np.bincount(rows, weights=vals, minlength=self.shape[0])
        return np.divide(sums, counts, out=np.full(self.shape[0], np.nan), where=counts > 0)

    def column_means(self) -> np.ndarray:
        """Mean over observed values per column; NaN for items without ratings."""
        _, cols, vals = self.coo_arrays()
        counts = self.column_count_array().astype(np.float64)
        sums = np.bincount(cols, weights=vals, minlength=self.shape[1])
        return np.divide(sums, counts, out=np.full(self.shape[1], np.nan), where=counts > 0)

    # ------------------------------------------------------------------
    # Derived matrices (always new instances)
    # ------------------------------------------------------------------
    def with_values(self, data: np.ndarray) -> "SparseRatingMatrix":
        """Same sparsity pattern, new values."""
        data = np.asarray(data, dtype=np.float64)
        if data.shape != self._csr.data.shape:
            raise ValueError(f"data length {data.shape} != stored entries {self._csr.data.shape}")
        csr = sp.csr_matrix(
            (data, self._csr.indices.copy(), self._csr.indptr.copy()),
            shape=self._csr.shape,
        )
        return SparseRatingMatrix(self._user_ids, self._item_ids, csr)

    def coo_arrays(self) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        rows = np.repeat(np.arange(self.shape[0], dtype=np.int64), self.row_count_array())
        return rows, self._csr.indices.astype(np.int64), self._csr.data

    def select_users(self, user_ids: Iterable[Hashable]) -> "SparseRatingMatrix":
        """Rows for `user_ids` (in id order); the item universe is kept intact."""
        idx = sorted({self.user_index(u) for u in user_ids})
        if not idx:
            raise EmptyInputError("select_users() called with no users")
        remap = np.full(self.shape[0], -1, dtype=np.int64)
        remap[idx] = np.arange(len(idx))
        rows, cols, vals = self.coo_arrays()
        mask = remap[rows] >= 0
        new_users = [self._user_ids[i] for i in idx]
        return SparseRatingMatrix.from_coo(new_users, self._item_ids, remap[rows[mask]], cols[mask], vals[mask])

    def select_entries(self, mask: np.ndarray) -> "SparseRatingMatrix":
        """Keep only stored entries where `mask` (aligned with storage order) is True.

        Users and items are kept even if they end up with no ratings.
        """
        mask = np.asarray(mask, dtype=bool)
        if mask.shape != self._csr.data.shape:
            raise ValueError(f"mask length {mask.shape} != stored entries {self._csr.data.shape}")
        rows, cols, vals = self.coo_arrays()
        return SparseRatingMatrix.from_coo(self._user_ids, self._item_ids, rows[mask], cols[mask], vals[mask])

    def filter_rows(self, predicate: Callable[[int], bool]) -> "SparseRatingMatrix":
        """Keep users whose observed-rating count satisfies `predicate`.

        E.g. `m.filter_rows(lambda n: n > 50)`.
        """
        counts = self.row_count_array()
        keep = [self._user_ids[i] for i, n in enumerate(counts) if predicate(int(n))]
        if not keep:
            raise EmptyInputError("filter_rows() removed every user")
        out = self.select_users(keep)
        logger.info("filter_rows: users %d -> %d", self.shape[0], out.shape[0])
        return out

    def filter_columns(self, predicate: Callable[[int], bool]) -> "SparseRatingMatrix":
        """Keep items whose observed-rating count satisfies `predicate`; users are kept."""
        counts = self.column_count_array()
        keep_cols = [j for j, n in enumerate(counts) if predicate(int(n))]
        if not keep_cols:
            raise EmptyInputError("filter_columns() removed every item")
        new_items = [self._item_ids[j] for j in keep_cols]
        remap = np.full(self.shape[1], -1, dtype=np.int64)
        remap[keep_cols] = np.arange(len(keep_cols))
        rows, cols, vals = self.coo_arrays()
        mask = remap[cols] >= 0
        out = SparseRatingMatrix.from_coo(self._user_ids, new_items, rows[mask], remap[cols[mask]], vals[mask])
        logger.info("filter_columns: items %d -> %d", self.shape[1], out.shape[1])
        return out

    def transpose(self) -> "SparseRatingMatrix":
        """Items x users view (items become rows)."""
        rows, cols, vals = self.coo_arrays()
        return SparseRatingMatrix.from_coo(self._item_ids, self._user_ids, cols, rows, vals)

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------
    def to_frame(self) -> pd.DataFrame:
        rows, cols, vals = self.coo_arrays()
        return pd.DataFrame(
            {
                USER_COL: [self._user_ids[int(i)] for i in rows],
                ITEM_COL: [self._item_ids[int(j)] for j in cols],
                RATING_COL: vals.astype(np.float64),
            }
        )

    def to_dense(self) -> np.ndarray:
        """Dense array with NaN at unobserved cells."""
        out = np.full(self.shape, np.nan, dtype=np.float64)
        rows, cols, vals = self.coo_arrays()
        out[rows, cols] = vals
        return out
