from __future__ import annotations

import pandas as pd
import pytest

from conftest import make_random_matrix
from ratingrec.errors import InsufficientDataError, InvalidParameterError
from ratingrec.evaluation import EvaluationScheme
from ratingrec.evaluation.scheme import split
from ratingrec.matrix import SparseRatingMatrix


def _cells(m: SparseRatingMatrix) -> set[tuple]:
    df = m.to_frame()
    return set(zip(df["userId"], df["itemId"]))


def test_split_is_deterministic(random_matrix: SparseRatingMatrix) -> None:
    train_a, test_a = split(random_matrix, 0.8, 5, 4.0, 42)
    train_b, test_b = split(random_matrix, 0.8, 5, 4.0, 42)
    assert train_a.user_ids == train_b.user_ids
    pd.testing.assert_frame_equal(test_a.given.to_frame(), test_b.given.to_frame())
    pd.testing.assert_frame_equal(test_a.held_out.to_frame(), test_b.held_out.to_frame())

    _, test_c = split(random_matrix, 0.8, 5, 4.0, 43)
    assert _cells(test_c.given) != _cells(test_a.given)


def test_split_partitions_users_and_hides_ratings(random_matrix: SparseRatingMatrix) -> None:
    train, test = split(random_matrix, 0.8, 5, 4.0, 42)
    assert len(train.user_ids) == 24
    assert len(test.users) == 6
    assert not set(train.user_ids) & set(test.users)
    assert set(train.user_ids) | set(test.users) == set(random_matrix.user_ids)
    assert train.item_ids == random_matrix.item_ids
    assert test.given.item_ids == random_matrix.item_ids

    given_cells = _cells(test.given)
    held_cells = _cells(test.held_out)
    assert not given_cells & held_cells
    assert not held_cells & _cells(train)
    for u in test.users:
        assert test.given.row_count(u) == 5
        assert {**test.given.row(u), **test.held_out.row(u)} == random_matrix.row(u)


def test_split_accepts_train_user_count(random_matrix: SparseRatingMatrix) -> None:
    train, test = split(random_matrix, 20, 5, 4.0, 0)
    assert len(train.user_ids) == 20
    assert len(test.users) == 10


def test_all_but_x_holds_out_x_ratings(random_matrix: SparseRatingMatrix) -> None:
    _, test = split(random_matrix, 0.8, -2, 4.0, 42)
    for u in test.users:
        assert test.held_out.row_count(u) == 2
        assert test.given.row_count(u) == random_matrix.row_count(u) - 2


def _uneven_matrix() -> SparseRatingMatrix:
    ratings = {u: {i: 3.0 + (u + i) % 3 for i in range(10)} for u in range(1, 11)}
    ratings.update({u: {0: 4.0, 1: 2.0} for u in range(11, 14)})
    return SparseRatingMatrix.from_dict(ratings)


def test_insufficient_test_user_raises_by_default() -> None:
    with pytest.raises(InsufficientDataError):
        EvaluationScheme(_uneven_matrix(), method="cross-validation", k=3, given=5, seed=1)
    with pytest.raises(InsufficientDataError):
        split(make_random_matrix(per_user=4), 0.5, 5, 4.0, 42)


def test_drop_insufficient_excludes_and_reports_users() -> None:
    scheme = EvaluationScheme(
        _uneven_matrix(),
        method="cross-validation",
        k=3,
        given=5,
        seed=1,
        drop_insufficient=True,
    )
    excluded = {u for fold in scheme for u in fold.test.excluded_users}
    assert excluded == {11, 12, 13}
    for fold in scheme:
        for u in fold.test.users:
            assert fold.test.given.row_count(u) == 5


def test_cross_validation_folds_cover_users_once(random_matrix: SparseRatingMatrix) -> None:
    scheme = EvaluationScheme(random_matrix, method="cross-validation", k=4, given=3, seed=5)
    assert len(scheme) == 4
    seen: list = []
    for fold in scheme:
        assert not set(fold.train.user_ids) & set(fold.test.users)
        seen.extend(fold.test.users)
    assert sorted(seen) == sorted(random_matrix.user_ids)


@pytest.mark.parametrize(
    "kwargs",
    [
        {"given": 0},
        {"train": 1.5},
        {"train": 0.0},
        {"train": 30},
        {"train": 0.02},
        {"good_rating": float("nan")},
        {"method": "bootstrap"},
        {"method": "cross-validation", "k": 1},
        {"method": "cross-validation", "k": 31},
    ],
)
def test_invalid_scheme_parameters(kwargs: dict, random_matrix: SparseRatingMatrix) -> None:
    with pytest.raises(InvalidParameterError):
        EvaluationScheme(random_matrix, **kwargs)


def test_train_fraction_that_empties_a_side_is_rejected() -> None:
    single = SparseRatingMatrix.from_dict({1: {"A": 5.0, "B": 4.0}})
    with pytest.raises(InvalidParameterError):
        split(single, 0.8, 1, 4.0, 42)

    three = SparseRatingMatrix.from_dict({u: {"A": 5.0, "B": 4.0} for u in (1, 2, 3)})
    with pytest.raises(InvalidParameterError):
        split(three, 0.2, 1, 4.0, 42)
    train, test = split(three, 0.5, 1, 4.0, 42)
    assert len(train.user_ids) == 1
    assert len(test.users) == 2
