from __future__ import annotations

import numpy as np
import pytest

from ratingrec.errors import InvalidParameterError, NotFittedError, UnknownEntityError
from ratingrec.matrix import SparseRatingMatrix
from ratingrec.recommenders import (
    PopularConfig,
    PopularRecommender,
    RandomConfig,
    RandomRecommender,
    UBCFConfig,
    UserBasedCF,
)


def _ubcf(**kwargs) -> UserBasedCF:
    return UserBasedCF(UBCFConfig(**kwargs))


def test_ubcf_predicts_from_single_nearest_neighbor(scenario_matrix: SparseRatingMatrix) -> None:
    rec = _ubcf(nn=1, method="cosine", normalize="none").fit(scenario_matrix)
    pred = rec.predict(scenario_matrix, users=[1], items=["C"])
    assert pred.ratings == {(1, "C"): pytest.approx(2.0)}
    assert [n.user_id for n in rec.similar_users(scenario_matrix, 1)] == [2]

    top = rec.predict(scenario_matrix, users=[1], mode="topn", n=5)
    assert top.items_for(1) == ["C"]


def test_ubcf_uncentered_ratings_skip_negatively_similar_neighbors() -> None:
    m = SparseRatingMatrix.from_dict({1: {"A": 5, "B": 1}, 2: {"A": 1, "B": 5, "C": 4}})
    rec = _ubcf(nn=1, method="pearson", normalize="none").fit(m)
    # user 2 is perfectly anti-correlated with user 1
    assert rec.predict(m, users=[1], items=["C"]).ratings == {(1, "C"): None}

    m = SparseRatingMatrix.from_dict(
        {1: {"A": 5, "B": 1}, 2: {"A": 1, "B": 5, "C": 4}, 3: {"A": 5, "B": 2, "C": 3}},
    )
    rec = _ubcf(nn=2, method="pearson", normalize="none").fit(m)
    pred = rec.predict(m, users=[1], items=["C"]).ratings[(1, "C")]
    assert pred == pytest.approx(3.0)

    # centered ratings still use the negative weight
    centered = _ubcf(nn=2, method="pearson", normalize="center").fit(m)
    value = centered.predict(m, users=[1], items=["C"]).ratings[(1, "C")]
    # user 1 mean 3; (1 * -1/3 + -1 * 2/3) / 2 = -0.5
    assert value == pytest.approx(2.5)


def test_ubcf_zscore_denormalizes_with_target_stats(scenario_matrix: SparseRatingMatrix) -> None:
    rec = _ubcf(nn=1, method="cosine", normalize="z-score").fit(scenario_matrix)
    pred = rec.predict(scenario_matrix, users=[1], items=["C"])
    # neighbor 2's z-score for C, rescaled by user 1's mean 4 and std sqrt(2)
    z = (2.0 - 11.0 / 3.0) / np.sqrt(7.0 / 3.0)
    assert pred.ratings[(1, "C")] == pytest.approx(4.0 + np.sqrt(2.0) * z)


def test_ubcf_missing_prediction_is_none_not_default() -> None:
    m = SparseRatingMatrix.from_dict({1: {"A": 5.0}, 2: {"A": 4.0}, 3: {"B": 3.0}})
    rec = _ubcf(nn=1, normalize="none").fit(m)
    pred = rec.predict(m, users=[1], items=["B"])
    assert pred.ratings == {(1, "B"): None}
    assert pred.n_missing == 1
    assert rec.predict(m, users=[1], mode="topn", n=3).items_for(1) == []


def test_ubcf_ignores_profile_items_unknown_to_training(scenario_matrix: SparseRatingMatrix) -> None:
    rec = _ubcf(nn=3, normalize="none").fit(scenario_matrix)
    profiles = SparseRatingMatrix.from_dict({9: {"A": 5.0, "B": 3.0, "Z": 4.0}})
    pred = rec.predict(profiles, mode="ratings")
    # candidates are training items the profile has not rated
    assert pred.ratings == {(9, "C"): pytest.approx(2.0)}


def test_ubcf_parallel_matches_serial(random_matrix: SparseRatingMatrix) -> None:
    rec = _ubcf(nn=5, method="pearson", normalize="center").fit(random_matrix)
    serial = rec.predict(random_matrix, mode="topn", n=5, n_jobs=1)
    parallel = rec.predict(random_matrix, mode="topn", n=5, n_jobs=4)
    assert serial.top_n == parallel.top_n


def test_topn_never_contains_known_items_and_is_sorted(random_matrix: SparseRatingMatrix) -> None:
    recs = [
        _ubcf(nn=10).fit(random_matrix),
        PopularRecommender().fit(random_matrix),
        RandomRecommender(RandomConfig(seed=1)).fit(random_matrix),
    ]
    for rec in recs:
        pred = rec.predict(random_matrix, mode="topn", n=5)
        for u, items in pred.top_n.items():
            assert len(items) <= 5
            assert not set(r.item_id for r in items) & set(random_matrix.row(u))
            scores = [r.score for r in items]
            assert all(a >= b for a, b in zip(scores, scores[1:]))


def test_invalid_arguments(scenario_matrix: SparseRatingMatrix) -> None:
    with pytest.raises(InvalidParameterError):
        _ubcf(nn=0)
    rec = _ubcf(nn=1).fit(scenario_matrix)
    with pytest.raises(InvalidParameterError):
        rec.predict(scenario_matrix, mode="topn", n=0)
    with pytest.raises(InvalidParameterError):
        rec.predict(scenario_matrix, mode="scores")  # type: ignore[arg-type]
    with pytest.raises(UnknownEntityError):
        rec.predict(scenario_matrix, users=[1], items=["Z"])
    with pytest.raises(UnknownEntityError):
        rec.predict(scenario_matrix, users=[42])


def test_predict_before_fit_raises(scenario_matrix: SparseRatingMatrix) -> None:
    for rec in (_ubcf(), PopularRecommender(), RandomRecommender()):
        with pytest.raises(NotFittedError):
            rec.predict(scenario_matrix)


@pytest.fixture
def popularity_matrix() -> SparseRatingMatrix:
    return SparseRatingMatrix.from_dict(
        {
            1: {"A": 5, "B": 3},
            2: {"A": 4, "C": 2},
            3: {"A": 3, "C": 5, "D": 1},
            4: {"E": 2},
        }
    )


def test_popular_ranks_by_count_with_id_ties(popularity_matrix: SparseRatingMatrix) -> None:
    rec = PopularRecommender().fit(popularity_matrix)
    pred = rec.predict(popularity_matrix, mode="topn", n=3)
    assert pred.items_for(4) == ["A", "C", "B"]
    # seen items are suppressed, order otherwise shared
    assert pred.items_for(1) == ["C", "D", "E"]
    assert pred.items_for(3) == ["B", "E"]


def test_popular_mean_statistic_and_ratings_mode(popularity_matrix: SparseRatingMatrix) -> None:
    rec = PopularRecommender(PopularConfig(statistic="mean")).fit(popularity_matrix)
    assert rec.predict(popularity_matrix, users=[4], mode="topn", n=3).items_for(4) == ["A", "C", "B"]

    ratings = PopularRecommender().fit(popularity_matrix).predict(popularity_matrix, users=[4], items=["A", "C"])
    assert ratings.ratings == {(4, "A"): pytest.approx(4.0), (4, "C"): pytest.approx(3.5)}


def test_random_is_reproducible_and_in_range(random_matrix: SparseRatingMatrix) -> None:
    a = RandomRecommender(RandomConfig(seed=7)).fit(random_matrix).predict(random_matrix, mode="ratings")
    b = RandomRecommender(RandomConfig(seed=7)).fit(random_matrix).predict(random_matrix, mode="ratings")
    assert a.ratings == b.ratings

    lo = float(random_matrix.csr.data.min())
    hi = float(random_matrix.csr.data.max())
    values = np.array(list(a.ratings.values()))
    assert ((values >= lo) & (values <= hi)).all()

    other = RandomRecommender(RandomConfig(seed=8)).fit(random_matrix).predict(random_matrix, mode="ratings")
    assert other.ratings != a.ratings


def test_random_rating_range_override(scenario_matrix: SparseRatingMatrix) -> None:
    rec = RandomRecommender(RandomConfig(seed=0, rating_range=(10.0, 20.0))).fit(scenario_matrix)
    values = list(rec.predict(scenario_matrix).ratings.values())
    assert values and all(10.0 <= v <= 20.0 for v in values)
    with pytest.raises(InvalidParameterError):
        RandomRecommender(RandomConfig(rating_range=(5.0, 1.0)))


def test_prediction_result_frames(scenario_matrix: SparseRatingMatrix) -> None:
    rec = _ubcf(nn=1, normalize="none").fit(scenario_matrix)
    ratings = rec.predict(scenario_matrix, users=[1], items=["A", "C"]).to_frame()
    assert list(ratings.columns) == ["userId", "itemId", "prediction"]
    assert len(ratings) == 2

    top = rec.predict(scenario_matrix, mode="topn", n=2).to_frame()
    assert list(top.columns) == ["userId", "rank", "itemId", "score"]
    assert (top["rank"] >= 1).all()
