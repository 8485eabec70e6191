"""`config.yaml` schema (pydantic) and loaders.

Recommenders are declared as a tagged list; each entry's `type` selects its
pydantic model, which knows how to build the concrete Recommender.
"""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any, Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator

from .recommenders import (
    PopularConfig,
    PopularRecommender,
    RandomConfig,
    RandomRecommender,
    Recommender,
    UBCFConfig,
    UserBasedCF,
)


class DatasetConfig(BaseModel):
    """Where the ratings table lives and how it is pre-filtered."""

    ratings_csv: str = Field("data/raw/ratings.csv", description="Ratings CSV, relative to the repo root.")
    user_column: str = "userId"
    item_column: str = "movieId"
    rating_column: str = "rating"
    min_rating: float = 0.5
    max_rating: float = 5.0
    half_stars: bool = True
    min_user_ratings: int = Field(0, ge=0, description="Keep users with MORE than this many ratings.")
    min_item_ratings: int = Field(0, ge=0, description="Keep items with MORE than this many ratings.")


class EvaluationConfig(BaseModel):
    method: Literal["split", "cross-validation"] = "split"
    train: Union[int, float] = Field(0.8, gt=0, description="Train fraction in (0, 1) or a user count.")
    k: int = Field(10, ge=2, description="Folds for cross-validation.")
    given: int = Field(5, description="Given ratings per test user; negative = all-but-x.")
    good_rating: float = Field(4.0, description="Held-out ratings >= this are relevant.")
    seed: int = 42
    drop_insufficient: bool = False
    metric_types: list[Literal["ratings", "topn"]] = Field(default_factory=lambda: ["ratings", "topn"], min_length=1)
    cutoffs: list[int] = Field(default_factory=lambda: [1, 3, 5, 10, 15, 20], min_length=1)
    n_jobs: int = Field(1, ge=1)

    @field_validator("given")
    @classmethod
    def _given_non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("given must be non-zero")
        return v

    @field_validator("cutoffs")
    @classmethod
    def _cutoffs_positive(cls, v: list[int]) -> list[int]:
        if any(n <= 0 for n in v):
            raise ValueError(f"cutoffs must be positive, got {v}")
        return v


class UBCFSettings(BaseModel):
    type: Literal["UBCF"] = "UBCF"
    name: Optional[str] = None
    nn: int = Field(5, ge=1, description="Neighborhood size k.")
    method: Literal["cosine", "pearson"] = "cosine"
    normalize: Literal["none", "center", "z-score"] = "z-score"
    weighted: bool = True
    min_overlap: int = Field(1, ge=1)

    def build(self) -> Recommender:
        return UserBasedCF(
            UBCFConfig(
                nn=self.nn,
                method=self.method,
                normalize=self.normalize,
                weighted=self.weighted,
                min_overlap=self.min_overlap,
            )
        )


class PopularSettings(BaseModel):
    type: Literal["POPULAR"] = "POPULAR"
    name: Optional[str] = None
    statistic: Literal["count", "mean"] = "count"

    def build(self) -> Recommender:
        return PopularRecommender(PopularConfig(statistic=self.statistic))


class RandomSettings(BaseModel):
    type: Literal["RANDOM"] = "RANDOM"
    name: Optional[str] = None
    seed: int = 42
    rating_range: Optional[tuple[float, float]] = None

    def build(self) -> Recommender:
        return RandomRecommender(RandomConfig(seed=self.seed, rating_range=self.rating_range))


RecommenderSettings = Annotated[
    Union[UBCFSettings, PopularSettings, RandomSettings],
    Field(discriminator="type"),
]


def _default_recommenders() -> list[Any]:
    return [UBCFSettings(), PopularSettings(), RandomSettings()]


class AppConfig(BaseModel):
    dataset: DatasetConfig = Field(default_factory=DatasetConfig)
    evaluation: EvaluationConfig = Field(default_factory=EvaluationConfig)
    recommenders: list[RecommenderSettings] = Field(default_factory=_default_recommenders, min_length=1)


def load_config(path: Path) -> AppConfig:
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    obj = yaml.safe_load(path.read_text())
    if obj is None:
        obj = {}
    if not isinstance(obj, dict):
        raise ValueError(f"Expected YAML mapping at {path}, got {type(obj)}")
    return AppConfig.model_validate(obj)


def build_recommenders(cfg: AppConfig) -> dict[str, Recommender]:
    """Instantiate every configured recommender, keyed by its (unique) name."""
    out: dict[str, Recommender] = {}
    for settings in cfg.recommenders:
        name = settings.name or settings.type
        if name in out:
            raise ValueError(f"duplicate recommender name {name!r} in config; set distinct `name` fields")
        out[name] = settings.build()
    return out
