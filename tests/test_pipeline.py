from __future__ import annotations

import json
from pathlib import Path

import pandas as pd
import pytest

from ratingrec import cli
from ratingrec.config import AppConfig, PopularSettings, load_config, build_recommenders
from ratingrec.data import iter_ratings, load_ratings, ratings_to_frame, validate_ratings
from ratingrec.errors import DuplicateEntryError
from ratingrec.matrix import SparseRatingMatrix
from ratingrec.pipelines import evaluate as evaluate_pipeline
from ratingrec.recommenders import PopularRecommender, RandomRecommender, UserBasedCF


CONFIG_YAML = """\
dataset:
  ratings_csv: ratings.csv
  min_user_ratings: 0
evaluation:
  method: split
  train: 0.8
  given: 5
  good_rating: 4.0
  seed: 42
  cutoffs: [1, 5]
recommenders:
  - type: UBCF
    nn: 5
    method: pearson
    normalize: center
  - type: POPULAR
  - type: RANDOM
    seed: 3
"""


def _write_ratings_csv(path: Path, matrix: SparseRatingMatrix) -> Path:
    df = matrix.to_frame().rename(columns={"itemId": "movieId"})
    df["timestamp"] = range(len(df))
    df.to_csv(path, index=False)
    return path


def test_load_ratings_renames_columns_and_fills_timestamp(tmp_path: Path) -> None:
    csv = tmp_path / "ratings.csv"
    pd.DataFrame({"userId": [1, 1, 2], "movieId": [10, 20, 10], "rating": [4, 3.5, 5]}).to_csv(csv, index=False)

    df = load_ratings(csv)
    assert list(df.columns) == ["userId", "itemId", "rating", "timestamp"]
    assert df["rating"].dtype == "float64"
    assert df["timestamp"].isna().all()
    validate_ratings(df)

    ratings = list(iter_ratings(df))
    assert ratings[0].user_id == 1 and ratings[0].item_id == 10 and ratings[0].timestamp is None
    pd.testing.assert_frame_equal(ratings_to_frame(ratings), df)

    m = SparseRatingMatrix.from_frame(df)
    assert m.get(1, 20) == 3.5


@pytest.mark.parametrize("bad", [5.5, 3.3, 0.0])
def test_validate_ratings_rejects_bad_values(bad: float) -> None:
    df = pd.DataFrame({"userId": [1, 2], "itemId": [1, 1], "rating": [4.0, bad]})
    with pytest.raises(ValueError):
        validate_ratings(df)


def test_duplicate_rows_in_table_are_rejected() -> None:
    df = pd.DataFrame({"userId": [1, 1], "itemId": [7, 7], "rating": [4.0, 2.0]})
    with pytest.raises(DuplicateEntryError):
        SparseRatingMatrix.from_frame(df)


def test_load_config_builds_named_recommenders(tmp_path: Path) -> None:
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML)
    cfg = load_config(path)
    assert cfg.evaluation.cutoffs == [1, 5]

    recs = build_recommenders(cfg)
    assert list(recs) == ["UBCF", "POPULAR", "RANDOM"]
    assert isinstance(recs["UBCF"], UserBasedCF)
    assert recs["UBCF"].cfg.method == "pearson"
    assert isinstance(recs["POPULAR"], PopularRecommender)
    assert isinstance(recs["RANDOM"], RandomRecommender)
    assert recs["RANDOM"].cfg.seed == 3


def test_config_validation(tmp_path: Path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")

    # pydantic's ValidationError is a ValueError
    bad = tmp_path / "bad.yaml"
    bad.write_text("evaluation:\n  given: 0\n")
    with pytest.raises(ValueError):
        load_config(bad)

    bad.write_text("recommenders:\n  - type: SVD\n")
    with pytest.raises(ValueError):
        load_config(bad)

    dup = AppConfig(recommenders=[PopularSettings(), PopularSettings()])
    with pytest.raises(ValueError):
        build_recommenders(dup)
    named = AppConfig(recommenders=[PopularSettings(), PopularSettings(name="POPULAR-mean", statistic="mean")])
    assert list(build_recommenders(named)) == ["POPULAR", "POPULAR-mean"]


def test_run_evaluation_writes_reports(tmp_path: Path, random_matrix: SparseRatingMatrix) -> None:
    _write_ratings_csv(tmp_path / "ratings.csv", random_matrix)
    (tmp_path / "config.yaml").write_text(CONFIG_YAML)
    cfg = load_config(tmp_path / "config.yaml")

    results = evaluate_pipeline.run_evaluation(cfg, tmp_path)
    tables = evaluate_pipeline.report_tables(results)
    assert {"accuracy", "topn_UBCF", "compare_precision"} <= set(tables)
    assert list(tables["compare_precision"].columns) == ["UBCF", "POPULAR", "RANDOM"]

    manifest_path = evaluate_pipeline.write_reports(
        tables,
        results,
        out_dir=tmp_path / "reports",
        cfg=cfg,
        ratings_path=tmp_path / "ratings.csv",
    )
    manifest = json.loads(manifest_path.read_text())
    assert manifest["ratings_sha256"]
    assert (tmp_path / "reports" / "accuracy.csv").exists()
    assert set(manifest["timings"]) == {"UBCF", "POPULAR", "RANDOM"}


def test_cli_prints_recommendations(
    tmp_path: Path,
    random_matrix: SparseRatingMatrix,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _write_ratings_csv(tmp_path / "ratings.csv", random_matrix)
    (tmp_path / "config.yaml").write_text(CONFIG_YAML)
    monkeypatch.chdir(tmp_path)

    cli.main(["--user-id", "1", "--n", "3", "--top-similar", "2"])
    out = capsys.readouterr().out
    assert "=== Similar Users ===" in out
    assert "=== Recommended Items (UBCF) ===" in out

    cli.main(["--user-id", "1", "--recommender", "POPULAR"])
    assert "Recommended Items (POPULAR)" in capsys.readouterr().out

    with pytest.raises(SystemExit):
        cli.main(["--user-id", "1", "--recommender", "SVD"])


def test_cli_accepts_string_user_ids(
    tmp_path: Path,
    random_matrix: SparseRatingMatrix,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    df = random_matrix.to_frame().rename(columns={"itemId": "movieId"})
    df["userId"] = "user-" + df["userId"].astype(str)
    df.to_csv(tmp_path / "ratings.csv", index=False)
    (tmp_path / "config.yaml").write_text(CONFIG_YAML)
    monkeypatch.chdir(tmp_path)

    cli.main(["--user-id", "user-7", "--n", "2", "--recommender", "POPULAR"])
    out = capsys.readouterr().out
    assert "user-7" in out

    with pytest.raises(SystemExit):
        cli.main(["--user-id", "7"])
