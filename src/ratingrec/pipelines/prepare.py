from __future__ import annotations

import logging
from pathlib import Path

from ..config import DatasetConfig
from ..data import load_ratings, validate_ratings
from ..matrix import SparseRatingMatrix
from ..paths import resolve_path


logger = logging.getLogger(__name__)


def load_matrix(cfg: DatasetConfig, repo_root: Path, *, ratings_csv: Path | None = None) -> SparseRatingMatrix:
    """Ratings CSV -> validated table -> SparseRatingMatrix -> count filters."""
    path = resolve_path(repo_root, ratings_csv if ratings_csv is not None else cfg.ratings_csv)
    logger.info("Loading ratings from %s", path)
    df = load_ratings(
        path,
        user_column=cfg.user_column,
        item_column=cfg.item_column,
        rating_column=cfg.rating_column,
    )
    validate_ratings(df, min_rating=cfg.min_rating, max_rating=cfg.max_rating, half_stars=cfg.half_stars)

    matrix = SparseRatingMatrix.from_frame(df)
    logger.info("Rating matrix: users=%d items=%d ratings=%d", *matrix.shape, matrix.n_ratings)

    if cfg.min_user_ratings > 0:
        matrix = matrix.filter_rows(lambda n: n > cfg.min_user_ratings)
    if cfg.min_item_ratings > 0:
        matrix = matrix.filter_columns(lambda n: n > cfg.min_item_ratings)
    return matrix
