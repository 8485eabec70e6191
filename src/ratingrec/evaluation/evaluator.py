"""Run recommenders against an EvaluationScheme and aggregate their metrics.

Per fold:
- fit on the fold's train users
- ratings: predict every held-out cell from the given view -> RMSE/MSE/MAE
- topn: one top-max(cutoffs) list per test user, sliced at each cutoff ->
  TP/FP/FN/TN, precision, recall, TPR, FPR averaged over users (unweighted)

Fold tables are then averaged across folds.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Collection, Iterable, Mapping, Sequence

import numpy as np
import pandas as pd

from ..errors import InvalidParameterError
from ..recommenders.base import Recommender
from ..utils import timed
from .metrics import ACCURACY_COLUMNS, TOPN_COLUMNS, accuracy, topn_confusion
from .scheme import EvaluationScheme, Fold


logger = logging.getLogger(__name__)

METRIC_TYPES: tuple[str, ...] = ("ratings", "topn")
DEFAULT_CUTOFFS: tuple[int, ...] = (1, 3, 5, 10, 15, 20)


@dataclass(frozen=True)
class FoldResult:
    fold: int
    ratings: dict[str, float] | None
    topn: pd.DataFrame | None
    timings: dict[str, float]


@dataclass
class EvaluationResult:
    name: str
    folds: list[FoldResult] = field(default_factory=list)

    @property
    def ratings(self) -> pd.DataFrame | None:
        """One-row table: error metrics averaged over folds, counts summed."""
        rows = [f.ratings for f in self.folds if f.ratings is not None]
        if not rows:
            return None
        df = pd.DataFrame(rows, columns=list(ACCURACY_COLUMNS))
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", category=RuntimeWarning)
            out = {c: float(np.nanmean(df[c].to_numpy(dtype=float))) for c in ("RMSE", "MSE", "MAE")}
        out["n_predicted"] = int(df["n_predicted"].sum())
        out["n_missing"] = int(df["n_missing"].sum())
        return pd.DataFrame([out], index=pd.Index([self.name], name="recommender"))

    @property
    def topn(self) -> pd.DataFrame | None:
        """Per-cutoff table (index `n`) averaged over folds."""
        tables = [f.topn for f in self.folds if f.topn is not None]
        if not tables:
            return None
        return pd.concat(tables).groupby(level="n").mean()[list(TOPN_COLUMNS)]

    @property
    def timings(self) -> dict[str, float]:
        out: dict[str, float] = {}
        for f in self.folds:
            for k, v in f.timings.items():
                out[k] = out.get(k, 0.0) + v
        return out


class Evaluator:
    """Evaluates recommenders on every fold of `scheme`.

    `scheme` is an EvaluationScheme or any re-iterable sequence of prepared folds.
    """

    def __init__(self, scheme: EvaluationScheme | Sequence[Fold], *, n_jobs: int = 1) -> None:
        self.scheme = scheme
        self.n_jobs = max(1, int(n_jobs))

    def evaluate(
        self,
        predictors: Mapping[str, Recommender] | Iterable[Recommender],
        metric_types: Collection[str] = METRIC_TYPES,
        cutoffs: Sequence[int] = DEFAULT_CUTOFFS,
    ) -> dict[str, EvaluationResult]:
        named = _named(predictors)
        metric_types = tuple(metric_types)
        unknown = [m for m in metric_types if m not in METRIC_TYPES]
        if unknown or not metric_types:
            raise InvalidParameterError(f"metric_types must be a non-empty subset of {METRIC_TYPES}, got {metric_types}")
        cutoffs = sorted({int(n) for n in cutoffs})
        if "topn" in metric_types and (not cutoffs or cutoffs[0] <= 0):
            raise InvalidParameterError(f"top-N cutoffs must be positive integers, got {cutoffs}")

        results: dict[str, EvaluationResult] = {}
        for name, rec in named.items():
            result = EvaluationResult(name=name)
            for fold in self.scheme:
                result.folds.append(self._run_fold(name, rec, fold, metric_types, cutoffs))
            results[name] = result
            logger.info("Evaluated %s over %d fold(s): %s", name, len(result.folds), _fmt_timings(result.timings))
        return results

    def _run_fold(
        self,
        name: str,
        rec: Recommender,
        fold: Fold,
        metric_types: tuple[str, ...],
        cutoffs: list[int],
    ) -> FoldResult:
        timings: dict[str, float] = {}
        with timed(timings, "fit_seconds"):
            rec.fit(fold.train)

        ratings = None
        topn = None
        with timed(timings, "predict_seconds"):
            if "ratings" in metric_types:
                ratings = self._ratings_accuracy(rec, fold)
            if "topn" in metric_types:
                topn = self._topn_table(rec, fold, cutoffs)

        if ratings is not None:
            logger.info(
                "%s fold=%d RMSE=%.4f MAE=%.4f predicted=%d missing=%d",
                name,
                fold.index,
                ratings["RMSE"],
                ratings["MAE"],
                ratings["n_predicted"],
                ratings["n_missing"],
            )
            if ratings["n_missing"]:
                logger.warning("%s fold=%d: %d held-out cells had no prediction", name, fold.index, ratings["n_missing"])
        return FoldResult(fold=fold.index, ratings=ratings, topn=topn, timings=timings)

    def _ratings_accuracy(self, rec: Recommender, fold: Fold) -> dict[str, float]:
        held = fold.test.held_out
        cells = {u: list(held.row(u)) for u in held.user_ids}
        pred = rec.predict(fold.test.given, mode="ratings", items=cells, n_jobs=self.n_jobs)

        y_true: list[float] = []
        y_pred: list[float | None] = []
        for u in held.user_ids:
            for item, value in held.row(u).items():
                y_true.append(value)
                y_pred.append(pred.ratings.get((u, item)))
        return accuracy(y_true, y_pred)

    def _topn_table(self, rec: Recommender, fold: Fold, cutoffs: list[int]) -> pd.DataFrame:
        given = fold.test.given
        held = fold.test.held_out
        good = fold.test.good_rating
        n_items = given.shape[1]

        pred = rec.predict(given, mode="topn", n=max(cutoffs), n_jobs=self.n_jobs)

        per_cutoff: dict[int, list[dict[str, float]]] = {n: [] for n in cutoffs}
        for u in given.user_ids:
            recommended = pred.items_for(u)
            relevant = [i for i, v in held.row(u).items() if v >= good]
            n_candidates = n_items - given.row_count(u)
            for n in cutoffs:
                per_cutoff[n].append(topn_confusion(recommended, relevant, n, n_candidates).as_dict())

        rows = []
        with warnings.catch_warnings():
            # all-NaN columns (e.g. nobody has a relevant item) stay NaN
            warnings.simplefilter("ignore", category=RuntimeWarning)
            for n in cutoffs:
                df = pd.DataFrame(per_cutoff[n], columns=list(TOPN_COLUMNS))
                row = {c: float(np.nanmean(df[c].to_numpy(dtype=float))) for c in TOPN_COLUMNS}
                row["n"] = n
                rows.append(row)
        return pd.DataFrame(rows).set_index("n")[list(TOPN_COLUMNS)]


def evaluate(
    scheme: EvaluationScheme | Sequence[Fold],
    predictors: Mapping[str, Recommender] | Iterable[Recommender],
    metric_types: Collection[str] = METRIC_TYPES,
    cutoffs: Sequence[int] = DEFAULT_CUTOFFS,
    *,
    n_jobs: int = 1,
) -> dict[str, EvaluationResult]:
    return Evaluator(scheme, n_jobs=n_jobs).evaluate(predictors, metric_types, cutoffs)


def compare(results: Mapping[str, EvaluationResult], column: str = "precision") -> pd.DataFrame:
    """Align recommenders on identical cutoffs: index `n`, one column per recommender."""
    if column not in TOPN_COLUMNS:
        raise InvalidParameterError(f"column must be one of {TOPN_COLUMNS}, got {column!r}")
    series = {}
    for name, res in results.items():
        table = res.topn
        if table is not None:
            series[name] = table[column]
    if not series:
        return pd.DataFrame()
    return pd.concat(series, axis=1, join="inner")


def accuracy_table(results: Mapping[str, EvaluationResult]) -> pd.DataFrame:
    """RMSE/MSE/MAE rows for every recommender evaluated in ratings mode."""
    frames = [res.ratings for res in results.values() if res.ratings is not None]
    if not frames:
        return pd.DataFrame(columns=list(ACCURACY_COLUMNS))
    return pd.concat(frames)


def _named(predictors: Mapping[str, Recommender] | Iterable[Recommender]) -> dict[str, Recommender]:
    if isinstance(predictors, Mapping):
        named = dict(predictors)
    else:
        named = {}
        for rec in predictors:
            if rec.name in named:
                raise InvalidParameterError(f"duplicate recommender name {rec.name!r}; pass a mapping instead")
            named[rec.name] = rec
    if not named:
        raise InvalidParameterError("at least one recommender is required")
    return named


def _fmt_timings(timings: dict[str, float]) -> str:
    return " ".join(f"{k}={v:.3f}" for k, v in sorted(timings.items()))

