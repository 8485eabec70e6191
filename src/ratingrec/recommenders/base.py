from __future__ import annotations

import abc
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Hashable, Iterable, Literal, Mapping, Sequence

import numpy as np
import pandas as pd

from ..data import ITEM_COL, USER_COL
from ..errors import EmptyInputError, InvalidParameterError, NotFittedError
from ..matrix import SparseRatingMatrix


logger = logging.getLogger(__name__)

PredictionMode = Literal["ratings", "topn"]
PREDICTION_MODES: tuple[str, ...] = ("ratings", "topn")


@dataclass(frozen=True)
class RecommendedItem:
    item_id: Hashable
    score: float


@dataclass(frozen=True)
class PredictionResult:
    """Output of `Recommender.predict` in one of two modes.

    - ``mode == "ratings"``: `ratings[(user, item)]` is the predicted value or
      None when no prediction is available for that cell.
    - ``mode == "topn"``: `top_n[user]` is the ranked recommendation list.
    """

    mode: PredictionMode
    ratings: dict[tuple[Hashable, Hashable], float | None] = field(default_factory=dict)
    top_n: dict[Hashable, list[RecommendedItem]] = field(default_factory=dict)

    @property
    def n_missing(self) -> int:
        return sum(1 for v in self.ratings.values() if v is None)

    def items_for(self, user_id: Hashable) -> list[Hashable]:
        return [r.item_id for r in self.top_n.get(user_id, [])]

    def to_frame(self) -> pd.DataFrame:
        if self.mode == "ratings":
            rows = [(u, i, (np.nan if v is None else v)) for (u, i), v in self.ratings.items()]
            return pd.DataFrame(rows, columns=[USER_COL, ITEM_COL, "prediction"])
        rows = [
            (u, rank, r.item_id, r.score)
            for u, recs in self.top_n.items()
            for rank, r in enumerate(recs, start=1)
        ]
        return pd.DataFrame(rows, columns=[USER_COL, "rank", ITEM_COL, "score"])


@dataclass(frozen=True)
class Profile:
    """One target user's known ratings, positioned in the training item universe."""

    user_id: Hashable
    position: int
    item_idx: np.ndarray
    values: np.ndarray


def rank_items(cand: np.ndarray, scores: np.ndarray, n: int) -> list[tuple[int, float]]:
    """Top-n (item index, score) by score descending, ties by ascending index.

    NaN scores (no prediction) are never ranked.
    """
    ok = ~np.isnan(scores)
    cand, scores = cand[ok], scores[ok]
    if cand.size == 0:
        return []
    order = np.lexsort((cand, -np.round(scores, 12)))[: int(n)]
    return [(int(cand[o]), float(scores[o])) for o in order]


class Recommender(abc.ABC):
    """Common predictor interface: `fit(train)` then `predict(profiles, ...)`.

    `profiles` holds the known ratings of the users to predict for (for
    evaluation: the "given" view of the test users). Items are resolved by id
    against the training item universe.
    """

    name: str = "recommender"

    def __init__(self) -> None:
        self._train: SparseRatingMatrix | None = None

    @property
    def train(self) -> SparseRatingMatrix:
        if self._train is None:
            raise NotFittedError(f"{type(self).__name__} is not fitted; call fit() first")
        return self._train

    def fit(self, train: SparseRatingMatrix) -> "Recommender":
        if train.n_ratings == 0:
            raise EmptyInputError("cannot fit on a matrix without ratings")
        self._train = train
        self._fit(train)
        logger.info("%s fitted: users=%d items=%d ratings=%d", self.name, *train.shape, train.n_ratings)
        return self

    @abc.abstractmethod
    def _fit(self, train: SparseRatingMatrix) -> None:
        ...

    def _prepare(self, profiles: SparseRatingMatrix) -> Any:
        """Per-call state shared by all users of one `predict` call."""
        return None

    @abc.abstractmethod
    def _score(self, ctx: Any, profile: Profile, cand: np.ndarray, mode: PredictionMode) -> np.ndarray:
        """Scores for candidate item indices (training universe); NaN = no prediction."""

    def predict(
        self,
        profiles: SparseRatingMatrix,
        users: Iterable[Hashable] | None = None,
        *,
        mode: PredictionMode = "ratings",
        n: int = 10,
        items: Sequence[Hashable] | Mapping[Hashable, Sequence[Hashable]] | None = None,
        n_jobs: int = 1,
    ) -> PredictionResult:
        """Predict ratings or top-n lists for `users` (default: every profile row).

        In ``ratings`` mode the candidates are `items` if given (one list for
        everybody, or a mapping user -> items), else every item the user has
        not rated. In ``topn`` mode the candidates are always the
        items the user has not rated.
        """
        train = self.train
        if mode not in PREDICTION_MODES:
            raise InvalidParameterError(f"mode must be one of {PREDICTION_MODES}, got {mode!r}")
        if mode == "topn" and int(n) <= 0:
            raise InvalidParameterError(f"top-N requires n > 0, got {n}")

        user_list = list(profiles.user_ids) if users is None else list(users)
        positions = [profiles.user_index(u) for u in user_list]
        requested: dict[Hashable, np.ndarray] | np.ndarray | None = None
        if items is not None and mode == "ratings":
            if isinstance(items, Mapping):
                requested = {u: _item_positions(train, its) for u, its in items.items()}
            else:
                requested = _item_positions(train, items)

        col_map = item_map(profiles, train)
        ctx = self._prepare(profiles)
        n_items = train.shape[1]

        def _one(pos: int) -> tuple[Hashable, np.ndarray, np.ndarray]:
            cols, vals = profiles.row_arrays(pos)
            mapped = col_map[cols]
            known = mapped >= 0
            profile = Profile(
                user_id=profiles.user_ids[pos],
                position=pos,
                item_idx=mapped[known],
                values=vals[known],
            )
            if isinstance(requested, dict):
                cand = requested.get(profile.user_id, np.zeros(0, dtype=np.int64))
            elif requested is not None:
                cand = requested
            else:
                seen = np.zeros(n_items, dtype=bool)
                seen[profile.item_idx] = True
                cand = np.flatnonzero(~seen)
            return profile.user_id, cand, self._score(ctx, profile, cand, mode)

        if int(n_jobs) > 1 and len(positions) > 1:
            with ThreadPoolExecutor(max_workers=int(n_jobs)) as pool:
                scored = list(pool.map(_one, positions))
        else:
            scored = [_one(p) for p in positions]

        item_ids = train.item_ids
        if mode == "ratings":
            ratings: dict[tuple[Hashable, Hashable], float | None] = {}
            for uid, cand, scores in scored:
                for j, s in zip(cand, scores):
                    ratings[(uid, item_ids[int(j)])] = None if np.isnan(s) else float(s)
            return PredictionResult(mode="ratings", ratings=ratings)

        top_n: dict[Hashable, list[RecommendedItem]] = {}
        for uid, cand, scores in scored:
            top_n[uid] = [RecommendedItem(item_ids[j], s) for j, s in rank_items(cand, scores, int(n))]
        return PredictionResult(mode="topn", top_n=top_n)


def item_map(profiles: SparseRatingMatrix, train: SparseRatingMatrix) -> np.ndarray:
    """Profile column position -> training column position (-1 if unknown to training)."""
    if profiles.item_ids == train.item_ids:
        return np.arange(train.shape[1], dtype=np.int64)
    return np.array(
        [train.item_index(i) if train.has_item(i) else -1 for i in profiles.item_ids],
        dtype=np.int64,
    )


def _item_positions(train: SparseRatingMatrix, items: Iterable[Hashable]) -> np.ndarray:
    return np.array([train.item_index(i) for i in items], dtype=np.int64)
