from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

# Ensure `import ratingrec` works without an editable install.
REPO_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(REPO_ROOT / "src"))

from ratingrec.matrix import SparseRatingMatrix  # noqa: E402


@pytest.fixture
def scenario_matrix() -> SparseRatingMatrix:
    """users {1,2,3} x items {A,B,C}: user1 is closest to user2 under cosine."""
    return SparseRatingMatrix.from_dict(
        {
            1: {"A": 5, "B": 3},
            2: {"A": 5, "B": 4, "C": 2},
            3: {"A": 1, "B": 1},
        }
    )


def make_random_matrix(
    n_users: int = 30,
    n_items: int = 20,
    per_user: int = 12,
    seed: int = 7,
) -> SparseRatingMatrix:
    """Half-star ratings; every user rates exactly `per_user` distinct items."""
    rng = np.random.default_rng(seed)
    ratings: dict[int, dict[int, float]] = {}
    for u in range(1, n_users + 1):
        items = rng.choice(n_items, size=per_user, replace=False)
        values = rng.integers(1, 11, size=per_user) / 2.0
        ratings[u] = {100 + int(i): float(v) for i, v in zip(items, values)}
    return SparseRatingMatrix.from_dict(ratings)


@pytest.fixture
def random_matrix() -> SparseRatingMatrix:
    return make_random_matrix()
