"""Boundary with the data-preparation side: rating tuples and the ratings table.

Everything upstream of here (joins, cleaning, plotting) is someone else's job; the
engine only needs a clean long table of (userId, itemId, rating[, timestamp]).
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Hashable, Iterable, Iterator

import pandas as pd


USER_COL = "userId"
ITEM_COL = "itemId"
RATING_COL = "rating"
TIMESTAMP_COL = "timestamp"

REQUIRED_COLUMNS: tuple[str, ...] = (USER_COL, ITEM_COL, RATING_COL)


@dataclass(frozen=True)
class Rating:
    user_id: Hashable
    item_id: Hashable
    value: float
    timestamp: int | None = None


def load_ratings(
    path: Path,
    *,
    user_column: str = USER_COL,
    item_column: str = "movieId",
    rating_column: str = RATING_COL,
) -> pd.DataFrame:
    """Load a ratings CSV into the canonical (userId, itemId, rating, timestamp) table.

    MovieLens-style files name the item column `movieId`; it is renamed to `itemId`.
    A missing timestamp column is tolerated and filled with <NA>.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Ratings file not found: {path}")

    df = pd.read_csv(path)
    df = df.rename(columns={user_column: USER_COL, item_column: ITEM_COL, rating_column: RATING_COL})
    missing = [c for c in REQUIRED_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"{path.name} missing columns: {missing}")

    df[RATING_COL] = df[RATING_COL].astype("float64")
    if TIMESTAMP_COL in df.columns:
        df[TIMESTAMP_COL] = df[TIMESTAMP_COL].astype("Int64")
    else:
        df[TIMESTAMP_COL] = pd.array([pd.NA] * len(df), dtype="Int64")
    return df[[USER_COL, ITEM_COL, RATING_COL, TIMESTAMP_COL]]


def validate_ratings(
    ratings: pd.DataFrame,
    *,
    min_rating: float = 0.5,
    max_rating: float = 5.0,
    half_stars: bool = True,
) -> None:
    """Validate the ratings table contract. Raises ValueError on the first violation."""
    missing = [c for c in REQUIRED_COLUMNS if c not in ratings.columns]
    if missing:
        raise ValueError(f"ratings missing columns: {missing}")

    if ratings[[USER_COL, ITEM_COL, RATING_COL]].isna().any().any():
        raise ValueError("ratings contain missing userId/itemId/rating values")

    values = ratings[RATING_COL].astype("float64")
    out_of_range = ~values.between(float(min_rating), float(max_rating))
    if out_of_range.any():
        bad_values = sorted(set(values[out_of_range].tolist()))
        raise ValueError(f"ratings outside [{min_rating}, {max_rating}]: {bad_values}")

    if half_stars:
        # Use integer arithmetic to avoid float representation edge cases.
        scaled = values * 2
        bad_mask = (scaled - scaled.round()).abs() > 1e-9
        if bad_mask.any():
            bad_values = sorted(set(values[bad_mask].tolist()))
            raise ValueError(f"ratings not in half-star increments: {bad_values}")

    if TIMESTAMP_COL in ratings.columns:
        ts = ratings[TIMESTAMP_COL].dropna()
        if (ts < 0).any():
            raise ValueError("ratings contain negative timestamps")


def iter_ratings(ratings: pd.DataFrame) -> Iterator[Rating]:
    """Yield `Rating` tuples from a canonical ratings table."""
    has_ts = TIMESTAMP_COL in ratings.columns
    cols = [USER_COL, ITEM_COL, RATING_COL] + ([TIMESTAMP_COL] if has_ts else [])
    for row in ratings[cols].itertuples(index=False, name=None):
        ts = row[3] if has_ts else None
        yield Rating(
            user_id=_plain(row[0]),
            item_id=_plain(row[1]),
            value=float(row[2]),
            timestamp=(None if ts is None or pd.isna(ts) else int(ts)),
        )


def ratings_to_frame(ratings: Iterable[Rating]) -> pd.DataFrame:
    rows = [(r.user_id, r.item_id, float(r.value), r.timestamp) for r in ratings]
    df = pd.DataFrame(rows, columns=[USER_COL, ITEM_COL, RATING_COL, TIMESTAMP_COL])
    df[TIMESTAMP_COL] = df[TIMESTAMP_COL].astype("Int64")
    return df


def _plain(x: Hashable) -> Hashable:
    # numpy scalars -> python scalars so ids compare and hash like the caller's ids
    return x.item() if hasattr(x, "item") else x
