from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path

from quiz_engine.errors import ScoringError
from quiz_engine.scoring import (
    STRATEGIES,
    AdaptiveScoring,
    DifficultyWeightedScoring,
    ScoringStrategy,
    SimpleScoring,
    TimeWeightedScoring,
)

CONFIG_PATH = Path(__file__).resolve().parent.parent / "config.json"

DEFAULTS = {
    "db_path": "quiz_engine.db",
    "default_strategy": "simple",
    "time_base_seconds": 30.0,
    "time_penalty_per_second": 0.01,
    "easy_multiplier": 1.0,
    "medium_multiplier": 1.5,
    "hard_multiplier": 2.0,
    "time_weight": 0.2,
    "difficulty_weight": 0.3,
    "streak_weight": 0.1,
    "consistency_weight": 0.1,
    "allow_resubmission": False,
}


@dataclass
class Settings:
    db_path: str = DEFAULTS["db_path"]
    default_strategy: str = DEFAULTS["default_strategy"]
    time_base_seconds: float = DEFAULTS["time_base_seconds"]
    time_penalty_per_second: float = DEFAULTS["time_penalty_per_second"]
    easy_multiplier: float = DEFAULTS["easy_multiplier"]
    medium_multiplier: float = DEFAULTS["medium_multiplier"]
    hard_multiplier: float = DEFAULTS["hard_multiplier"]
    time_weight: float = DEFAULTS["time_weight"]
    difficulty_weight: float = DEFAULTS["difficulty_weight"]
    streak_weight: float = DEFAULTS["streak_weight"]
    consistency_weight: float = DEFAULTS["consistency_weight"]
    allow_resubmission: bool = DEFAULTS["allow_resubmission"]

    @property
    def project_root(self) -> Path:
        return Path(__file__).resolve().parent.parent

    @property
    def db_full_path(self) -> Path:
        return self.project_root / self.db_path

    def scoring_strategies(self) -> dict[str, ScoringStrategy]:
        """Every strategy, configured from these settings, keyed by name."""
        return {
            SimpleScoring.name: SimpleScoring(),
            TimeWeightedScoring.name: TimeWeightedScoring(
                base_time_seconds=self.time_base_seconds,
                penalty_per_second=self.time_penalty_per_second,
            ),
            DifficultyWeightedScoring.name: DifficultyWeightedScoring(
                easy_multiplier=self.easy_multiplier,
                medium_multiplier=self.medium_multiplier,
                hard_multiplier=self.hard_multiplier,
            ),
            AdaptiveScoring.name: AdaptiveScoring(
                time_weight=self.time_weight,
                difficulty_weight=self.difficulty_weight,
                streak_weight=self.streak_weight,
                consistency_weight=self.consistency_weight,
            ),
        }

    def strategy(self, name: str | None = None) -> ScoringStrategy:
        name = name or self.default_strategy
        if name not in STRATEGIES:
            raise ScoringError(f"Unknown scoring strategy: {name!r}")
        return self.scoring_strategies()[name]

    def to_dict(self) -> dict:
        return {
            "db_path": self.db_path,
            "default_strategy": self.default_strategy,
            "time_base_seconds": self.time_base_seconds,
            "time_penalty_per_second": self.time_penalty_per_second,
            "easy_multiplier": self.easy_multiplier,
            "medium_multiplier": self.medium_multiplier,
            "hard_multiplier": self.hard_multiplier,
            "time_weight": self.time_weight,
            "difficulty_weight": self.difficulty_weight,
            "streak_weight": self.streak_weight,
            "consistency_weight": self.consistency_weight,
            "allow_resubmission": self.allow_resubmission,
        }


def load_settings() -> Settings:
    if CONFIG_PATH.exists():
        raw = json.loads(CONFIG_PATH.read_text())
        known = {f.name for f in Settings.__dataclass_fields__.values()}
        filtered = {k: v for k, v in raw.items() if k in known}
        return Settings(**filtered)
    return Settings()


def save_settings(settings: Settings) -> None:
    CONFIG_PATH.write_text(json.dumps(settings.to_dict(), indent=4) + "\n")
