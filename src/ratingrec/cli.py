"""Top-N recommendations (and similar users) for one user from the full rating matrix."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Hashable

import pandas as pd

from .config import build_recommenders, load_config
from .matrix import SparseRatingMatrix
from .paths import get_repo_root, resolve_path
from .pipelines.prepare import load_matrix
from .recommenders import UserBasedCF
from .utils import setup_logging


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Recommend items for one user (collaborative filtering)")
    p.add_argument("--user-id", type=str, required=True, help="userId as written in the ratings file")
    p.add_argument("--n", type=int, default=10, help="How many items to recommend")
    p.add_argument("--config", type=Path, default=Path("config.yaml"), help="Path to config YAML")
    p.add_argument("--ratings", type=Path, default=None, help="Override dataset.ratings_csv")
    p.add_argument(
        "--recommender",
        type=str,
        default=None,
        help="Recommender name from config (default: the first one)",
    )
    p.add_argument("--top-similar", type=int, default=0, help="Also show this many similar users (UBCF only)")
    p.add_argument("--log-level", type=str, default="INFO")
    return p


def _resolve_user_id(raw: str, matrix: SparseRatingMatrix) -> Hashable:
    """Map the command-line text back to the matrix id (int, str, ...)."""
    by_text = {str(u): u for u in matrix.user_ids}
    if raw not in by_text:
        raise SystemExit(f"Unknown user id {raw!r}; not in the rating matrix")
    return by_text[raw]


def main(argv: list[str] | None = None) -> None:
    args = build_arg_parser().parse_args(argv)
    setup_logging(args.log_level)

    repo_root = get_repo_root()
    cfg = load_config(resolve_path(repo_root, args.config))
    matrix = load_matrix(cfg.dataset, repo_root, ratings_csv=args.ratings)

    recommenders = build_recommenders(cfg)
    name = args.recommender or next(iter(recommenders))
    if name not in recommenders:
        raise SystemExit(f"Unknown recommender {name!r}; configured: {sorted(recommenders)}")
    rec = recommenders[name].fit(matrix)

    user_id = _resolve_user_id(args.user_id, matrix)
    result = rec.predict(matrix, users=[user_id], mode="topn", n=int(args.n))

    if int(args.top_similar) > 0:
        print("\n=== Similar Users ===")
        if isinstance(rec, UserBasedCF):
            sims = rec.similar_users(matrix, user_id, top_n=int(args.top_similar))
            if sims:
                print(pd.DataFrame([s.__dict__ for s in sims]).to_string(index=False))
            else:
                print("No similar users found (no rating overlap).")
        else:
            print(f"{name} is not neighborhood based; no similar users to show.")

    print(f"\n=== Recommended Items ({name}) ===")
    df = result.to_frame()
    if df.empty:
        print("No recommendations found.")
    else:
        print(df.to_string(index=False))


if __name__ == "__main__":
    main()
