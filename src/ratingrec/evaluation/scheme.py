"""Train/test partitioning with the given-k (or all-but-x) hidden-ratings protocol.

Users are partitioned into train and test users. Each test user's observed
ratings are split into "given" (visible to the recommender) and "held-out"
(ground truth). Held-out ratings never appear in the train or given matrices.

Insufficient data policy: a test user who cannot satisfy the protocol raises
InsufficientDataError, unless `drop_insufficient=True`, in which case that user
is removed from the test set and reported in `TestContext.excluded_users`.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Hashable, Iterator, Literal, Sequence

import numpy as np
from sklearn.model_selection import KFold, train_test_split

from ..errors import InsufficientDataError, InvalidParameterError
from ..matrix import SparseRatingMatrix


logger = logging.getLogger(__name__)

SchemeMethod = Literal["split", "cross-validation"]
SCHEME_METHODS: tuple[str, ...] = ("split", "cross-validation")


@dataclass(frozen=True)
class TestContext:
    given: SparseRatingMatrix
    held_out: SparseRatingMatrix
    good_rating: float
    excluded_users: tuple[Hashable, ...] = ()

    @property
    def users(self) -> tuple[Hashable, ...]:
        return self.given.user_ids


@dataclass(frozen=True)
class Fold:
    index: int
    train: SparseRatingMatrix
    test: TestContext


def _min_ratings_for(given: int) -> int:
    # given-k needs k ratings; all-but-x needs x held out plus at least one given
    return int(given) if given > 0 else abs(int(given)) + 1


def _validate_given(given: int) -> int:
    if int(given) == 0 or int(given) != given:
        raise InvalidParameterError(f"given must be a non-zero integer, got {given!r}")
    return int(given)


def _validate_good_rating(good_rating: float) -> float:
    if good_rating is None or not np.isfinite(good_rating):
        raise InvalidParameterError(f"good_rating must be a finite number, got {good_rating!r}")
    return float(good_rating)


def _validate_train(train: float, n_users: int) -> float | int:
    if isinstance(train, (int, np.integer)) and not isinstance(train, bool):
        if not 1 <= int(train) < n_users:
            raise InvalidParameterError(f"train user count must be in [1, {n_users - 1}], got {train}")
        return int(train)
    if not 0.0 < float(train) < 1.0:
        raise InvalidParameterError(f"train fraction must be in (0, 1), got {train}")
    # same rounding as train_test_split: floor for train, the rest for test
    n_train = int(math.floor(float(train) * n_users))
    if n_train == 0 or n_users - n_train == 0:
        raise InvalidParameterError(
            f"train fraction {train} of {n_users} users leaves {n_train} train and {n_users - n_train} test users"
        )
    return float(train)


def split_given(
    matrix: SparseRatingMatrix,
    test_users: Sequence[Hashable],
    *,
    given: int,
    good_rating: float,
    rng: np.random.Generator,
    drop_insufficient: bool = False,
) -> TestContext:
    """Split each test user's ratings into given / held-out with `rng`."""
    given = _validate_given(given)
    need = _min_ratings_for(given)

    keep: list[Hashable] = []
    excluded: list[Hashable] = []
    for u in sorted(test_users):
        if matrix.row_count(u) >= need:
            keep.append(u)
        elif drop_insufficient:
            excluded.append(u)
        else:
            raise InsufficientDataError(
                f"test user {u!r} has {matrix.row_count(u)} ratings; given={given} needs at least {need}"
            )
    if excluded:
        logger.warning("Excluded %d test users with fewer than %d ratings", len(excluded), need)
    if not keep:
        raise InsufficientDataError(f"no test user has the {need} ratings required by given={given}")

    test = matrix.select_users(keep)
    mask = np.zeros(test.n_ratings, dtype=bool)
    indptr = test.csr.indptr
    for pos in range(test.shape[0]):
        start, end = int(indptr[pos]), int(indptr[pos + 1])
        count = end - start
        n_given = given if given > 0 else count - abs(given)
        chosen = rng.choice(count, size=n_given, replace=False)
        mask[start + chosen] = True

    return TestContext(
        given=test.select_entries(mask),
        held_out=test.select_entries(~mask),
        good_rating=_validate_good_rating(good_rating),
        excluded_users=tuple(excluded),
    )


def split(
    matrix: SparseRatingMatrix,
    train_fraction: float | int,
    given: int,
    good_rating: float,
    seed: int,
    *,
    drop_insufficient: bool = False,
) -> tuple[SparseRatingMatrix, TestContext]:
    """Partition users into train/test and hide ratings of the test users.

    Deterministic for identical inputs and seed.
    """
    _validate_given(given)
    _validate_good_rating(good_rating)
    train_size = _validate_train(train_fraction, matrix.shape[0])

    train_users, test_users = train_test_split(
        list(matrix.user_ids),
        train_size=train_size,
        random_state=int(seed),
        shuffle=True,
    )
    test = split_given(
        matrix,
        test_users,
        given=given,
        good_rating=good_rating,
        rng=np.random.default_rng([int(seed), 0]),
        drop_insufficient=drop_insufficient,
    )
    return matrix.select_users(train_users), test


class EvaluationScheme:
    """Folds of (train, given, held-out) for one evaluation run.

    - ``method="split"``: one fold, `train` is a fraction in (0, 1) or a user count
    - ``method="cross-validation"``: `k` folds; every user is a test user exactly once

    Built eagerly in the constructor: either every fold exists or an error is raised.
    """

    def __init__(
        self,
        matrix: SparseRatingMatrix,
        *,
        method: SchemeMethod = "split",
        train: float | int = 0.8,
        k: int = 10,
        given: int = 5,
        good_rating: float = 4.0,
        seed: int = 42,
        drop_insufficient: bool = False,
    ) -> None:
        if method not in SCHEME_METHODS:
            raise InvalidParameterError(f"method must be one of {SCHEME_METHODS}, got {method!r}")
        self.method = method
        self.train = train
        self.k = int(k)
        self.given = _validate_given(given)
        self.good_rating = _validate_good_rating(good_rating)
        self.seed = int(seed)
        self.drop_insufficient = bool(drop_insufficient)
        self.n_users, self.n_items = matrix.shape

        if method == "split":
            train_view, test = split(
                matrix,
                train,
                given,
                good_rating,
                self.seed,
                drop_insufficient=self.drop_insufficient,
            )
            folds = [Fold(index=0, train=train_view, test=test)]
        else:
            folds = self._cross_validation(matrix)

        self.folds: tuple[Fold, ...] = tuple(folds)
        logger.info(
            "EvaluationScheme: method=%s folds=%d given=%d good_rating=%.2f test_users=%s",
            self.method,
            len(self.folds),
            self.given,
            self.good_rating,
            [len(f.test.users) for f in self.folds],
        )

    def _cross_validation(self, matrix: SparseRatingMatrix) -> list[Fold]:
        if not 2 <= self.k <= matrix.shape[0]:
            raise InvalidParameterError(f"cross-validation needs 2 <= k <= {matrix.shape[0]} users, got k={self.k}")
        users = np.array(matrix.user_ids, dtype=object)
        kf = KFold(n_splits=self.k, shuffle=True, random_state=self.seed)
        folds = []
        for i, (train_idx, test_idx) in enumerate(kf.split(users)):
            test = split_given(
                matrix,
                users[test_idx].tolist(),
                given=self.given,
                good_rating=self.good_rating,
                rng=np.random.default_rng([self.seed, i]),
                drop_insufficient=self.drop_insufficient,
            )
            folds.append(Fold(index=i, train=matrix.select_users(users[train_idx].tolist()), test=test))
        return folds

    def __len__(self) -> int:
        return len(self.folds)

    def __iter__(self) -> Iterator[Fold]:
        return iter(self.folds)

    def __repr__(self) -> str:
        return (
            f"EvaluationScheme(method={self.method!r}, folds={len(self.folds)}, given={self.given}, "
            f"good_rating={self.good_rating}, users={self.n_users}, items={self.n_items})"
        )
