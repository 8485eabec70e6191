"""Rating-accuracy and top-N ranking metrics."""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from typing import Collection, Hashable, Sequence

import numpy as np
from sklearn.metrics import mean_absolute_error, mean_squared_error

from ..errors import InvalidParameterError


ACCURACY_COLUMNS: tuple[str, ...] = ("RMSE", "MSE", "MAE", "n_predicted", "n_missing")
TOPN_COLUMNS: tuple[str, ...] = ("TP", "FP", "FN", "TN", "precision", "recall", "TPR", "FPR")


def accuracy(
    y_true: Sequence[float],
    y_pred: Sequence[float | None],
) -> dict[str, float]:
    """RMSE / MSE / MAE over cells that have a prediction.

    Cells whose prediction is None (or NaN) are excluded and counted in
    `n_missing`. With nothing to score, the error metrics are NaN.
    """
    if len(y_true) != len(y_pred):
        raise InvalidParameterError(f"y_true/y_pred length mismatch: {len(y_true)} vs {len(y_pred)}")
    true = np.asarray(y_true, dtype=np.float64)
    pred = np.array([np.nan if p is None else p for p in y_pred], dtype=np.float64)
    ok = ~np.isnan(pred)
    n_predicted = int(ok.sum())
    out: dict[str, float] = {
        "RMSE": math.nan,
        "MSE": math.nan,
        "MAE": math.nan,
        "n_predicted": n_predicted,
        "n_missing": int(len(pred) - n_predicted),
    }
    if n_predicted:
        mse = float(mean_squared_error(true[ok], pred[ok]))
        out["MSE"] = mse
        out["RMSE"] = float(np.sqrt(mse))
        out["MAE"] = float(mean_absolute_error(true[ok], pred[ok]))
    return out


@dataclass(frozen=True)
class Confusion:
    TP: int
    FP: int
    FN: int
    TN: int
    precision: float
    recall: float
    TPR: float
    FPR: float

    def as_dict(self) -> dict[str, float]:
        return asdict(self)


def topn_confusion(
    recommended: Sequence[Hashable],
    relevant: Collection[Hashable],
    n: int,
    n_candidates: int,
) -> Confusion:
    """Confusion counts for one user's top-n list.

    `recommended` is truncated to `n`. Precision divides by `n` even when the
    list is shorter. `n_candidates` is the number of items the user could have
    been recommended (every item outside the user's given ratings). Recall/TPR
    are NaN without relevant items; FPR is NaN without negatives.
    """
    if int(n) <= 0:
        raise InvalidParameterError(f"cutoff n must be > 0, got {n}")
    top = list(recommended)[: int(n)]
    rel = set(relevant)
    tp = sum(1 for i in top if i in rel)
    fp = len(top) - tp
    fn = len(rel) - tp
    tn = max(int(n_candidates) - tp - fp - fn, 0)

    recall = tp / len(rel) if rel else math.nan
    fpr = fp / (fp + tn) if (fp + tn) > 0 else math.nan
    return Confusion(
        TP=tp,
        FP=fp,
        FN=fn,
        TN=tn,
        precision=tp / int(n),
        recall=recall,
        TPR=recall,
        FPR=fpr,
    )
