from __future__ import annotations

import argparse
import hashlib
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import pandas as pd

from ..config import AppConfig, build_recommenders, load_config
from ..evaluation import EvaluationScheme, accuracy_table, compare, evaluate
from ..evaluation.evaluator import EvaluationResult
from ..paths import get_repo_root, resolve_path
from ..utils import setup_logging
from .prepare import load_matrix


logger = logging.getLogger(__name__)


def _sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(chunk)
    return h.hexdigest()


def run_evaluation(cfg: AppConfig, repo_root: Path, *, ratings_csv: Path | None = None) -> dict[str, EvaluationResult]:
    """Load data, build the scheme and recommenders from config, evaluate them all."""
    matrix = load_matrix(cfg.dataset, repo_root, ratings_csv=ratings_csv)
    ev = cfg.evaluation
    scheme = EvaluationScheme(
        matrix,
        method=ev.method,
        train=ev.train,
        k=ev.k,
        given=ev.given,
        good_rating=ev.good_rating,
        seed=ev.seed,
        drop_insufficient=ev.drop_insufficient,
    )
    logger.info("%r", scheme)
    return evaluate(
        scheme,
        build_recommenders(cfg),
        metric_types=ev.metric_types,
        cutoffs=ev.cutoffs,
        n_jobs=ev.n_jobs,
    )


def report_tables(results: dict[str, EvaluationResult]) -> dict[str, pd.DataFrame]:
    """Plain tables for reporting: accuracy, per-recommender top-N, aligned comparisons."""
    tables: dict[str, pd.DataFrame] = {}
    acc = accuracy_table(results)
    if not acc.empty:
        tables["accuracy"] = acc
    for name, res in results.items():
        if res.topn is not None:
            tables[f"topn_{name}"] = res.topn
    if any(res.topn is not None for res in results.values()):
        for column in ("precision", "recall", "TPR", "FPR"):
            tables[f"compare_{column}"] = compare(results, column)
    return tables


def write_reports(
    tables: dict[str, pd.DataFrame],
    results: dict[str, EvaluationResult],
    *,
    out_dir: Path,
    cfg: AppConfig,
    ratings_path: Path,
) -> Path:
    out_dir.mkdir(parents=True, exist_ok=True)
    files = {}
    for name, df in tables.items():
        path = out_dir / f"{name}.csv"
        df.to_csv(path)
        files[name] = path.name

    manifest: dict[str, Any] = {
        "created_at": datetime.now(timezone.utc).isoformat(),
        "ratings_csv": str(ratings_path),
        "ratings_sha256": _sha256_file(ratings_path) if ratings_path.exists() else None,
        "config": cfg.model_dump(mode="json"),
        "timings": {name: res.timings for name, res in results.items()},
        "outputs": files,
    }
    manifest_path = out_dir / "evaluation_manifest.json"
    manifest_path.write_text(json.dumps(manifest, indent=2, sort_keys=True) + "\n")
    logger.info("Wrote %d report tables + manifest to %s", len(files), out_dir)
    return manifest_path


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Evaluate UBCF / POPULAR / RANDOM on held-out ratings.")
    p.add_argument("--config", type=Path, default=Path("config.yaml"), help="Path to config YAML.")
    p.add_argument("--ratings", type=Path, default=None, help="Override dataset.ratings_csv")
    p.add_argument("--out-dir", type=Path, default=None, help="Write CSV reports + manifest here")
    p.add_argument("--seed", type=int, default=None, help="Override evaluation.seed")
    p.add_argument("--given", type=int, default=None, help="Override evaluation.given")
    p.add_argument("--n-jobs", type=int, default=None, help="Override evaluation.n_jobs")
    p.add_argument("--log-level", type=str, default="INFO")
    return p


def main(argv: list[str] | None = None) -> None:
    args = build_arg_parser().parse_args(argv)
    setup_logging(args.log_level)
    repo_root = get_repo_root()
    cfg = load_config(resolve_path(repo_root, args.config))

    overrides = {k: v for k, v in (("seed", args.seed), ("given", args.given), ("n_jobs", args.n_jobs)) if v is not None}
    if overrides:
        cfg = cfg.model_copy(update={"evaluation": cfg.evaluation.model_copy(update=overrides)})

    results = run_evaluation(cfg, repo_root, ratings_csv=args.ratings)
    tables = report_tables(results)

    pd.set_option("display.width", 200)
    for name, df in tables.items():
        print(f"\n=== {name} ===")
        print(df.to_string(float_format=lambda x: f"{x:.4f}"))

    if args.out_dir is not None:
        ratings_path = resolve_path(repo_root, args.ratings if args.ratings is not None else cfg.dataset.ratings_csv)
        write_reports(tables, results, out_dir=resolve_path(repo_root, args.out_dir), cfg=cfg, ratings_path=ratings_path)


if __name__ == "__main__":
    main()
