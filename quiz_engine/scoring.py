"""Scoring strategies for quiz sessions.

All strategies are pure and deterministic.  Any ratio whose denominator is zero
resolves to 0.0, so an empty session scores 0.0 everywhere and no strategy ever
returns NaN or infinity.
"""
from __future__ import annotations

import math
import statistics
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields, replace
from typing import TYPE_CHECKING, Any

from quiz_engine.errors import ScoringError

if TYPE_CHECKING:
    from quiz_engine.models import Question
    from quiz_engine.quiz import Quiz
    from quiz_engine.session import QuizSession, Response

EASY_CEILING = 0.33
HARD_FLOOR = 0.67


def safe_ratio(numerator: float, denominator: float) -> float:
    if denominator == 0:
        return 0.0
    result = numerator / denominator
    return result if math.isfinite(result) else 0.0


def difficulty_bucket(difficulty: float) -> str:
    if difficulty < EASY_CEILING:
        return "easy"
    if difficulty > HARD_FLOOR:
        return "hard"
    return "medium"


@dataclass(frozen=True)
class ScoreComponents:
    correctness: float = 0.0
    speed: float = 0.0
    difficulty: float = 0.0
    consistency: float = 0.0


@dataclass(frozen=True)
class Score:
    raw_score: float
    weighted_score: float
    percentile: float | None = None
    time_bonus: float = 0.0
    difficulty_bonus: float = 0.0
    streak_bonus: float = 0.0
    components: ScoreComponents = field(default_factory=ScoreComponents)

    def with_percentile(self, percentile: float) -> Score:
        """Attach a percentile computed elsewhere (the engine never ranks users)."""
        return replace(self, percentile=percentile)

    def passed(self, pass_threshold: float) -> bool:
        return self.weighted_score >= pass_threshold


def _scored_responses(session: QuizSession, quiz: Quiz) -> list[tuple[Response, Question]]:
    """Responses in submission order paired with their quiz question."""
    by_id: dict[uuid.UUID, Question] = {q.id: q for q in quiz.questions}
    return [(r, by_id[r.question_id]) for r in session.responses if r.question_id in by_id]


def _correctness(pairs: list[tuple[Response, Question]], total_questions: int) -> float:
    correct = sum(1 for r, _ in pairs if r.is_correct)
    return safe_ratio(correct, total_questions)


def _check_config(strategy: Any) -> None:
    for f in fields(strategy):
        value = getattr(strategy, f.name)
        if not isinstance(value, (int, float)) or not math.isfinite(value) or value < 0:
            raise ScoringError(
                f"{type(strategy).__name__}.{f.name} must be a non-negative number, got {value!r}"
            )


class ScoringStrategy(ABC):
    name: str = ""

    @abstractmethod
    def calculate_score(self, session: QuizSession, quiz: Quiz) -> Score:
        ...

    def __post_init__(self):
        _check_config(self)


@dataclass(frozen=True)
class SimpleScoring(ScoringStrategy):
    name = "simple"

    def calculate_score(self, session: QuizSession, quiz: Quiz) -> Score:
        raw = _correctness(_scored_responses(session, quiz), len(quiz.questions))
        return Score(
            raw_score=raw,
            weighted_score=raw,
            components=ScoreComponents(correctness=raw),
        )


@dataclass(frozen=True)
class TimeWeightedScoring(ScoringStrategy):
    """Each correct answer earns a point, minus a penalty per second over base time."""

    name = "time_weighted"

    base_time_seconds: float = 30.0
    penalty_per_second: float = 0.01

    def calculate_score(self, session: QuizSession, quiz: Quiz) -> Score:
        pairs = _scored_responses(session, quiz)
        total = 0.0
        for response, _ in pairs:
            points = 1.0 if response.is_correct else 0.0
            overtime = max(0.0, response.time_taken_seconds - self.base_time_seconds)
            total += max(0.0, points - overtime * self.penalty_per_second)

        raw = _correctness(pairs, len(quiz.questions))
        weighted = safe_ratio(total, len(quiz.questions))
        return Score(
            raw_score=raw,
            weighted_score=weighted,
            time_bonus=weighted - raw,
            components=ScoreComponents(correctness=raw, speed=weighted - raw),
        )


@dataclass(frozen=True)
class DifficultyWeightedScoring(ScoringStrategy):
    """Correct answers earn their difficulty bucket's multiplier.

    The denominator sums the multiplier of every quiz question, so unanswered
    questions lower the achievable score.
    """

    name = "difficulty_weighted"

    easy_multiplier: float = 1.0
    medium_multiplier: float = 1.5
    hard_multiplier: float = 2.0

    def multiplier(self, difficulty: float) -> float:
        bucket = difficulty_bucket(difficulty)
        if bucket == "easy":
            return self.easy_multiplier
        if bucket == "hard":
            return self.hard_multiplier
        return self.medium_multiplier

    def calculate_score(self, session: QuizSession, quiz: Quiz) -> Score:
        pairs = _scored_responses(session, quiz)
        earned = sum(self.multiplier(q.difficulty) for r, q in pairs if r.is_correct)
        possible = sum(self.multiplier(q.difficulty) for q in quiz.questions)

        raw = _correctness(pairs, len(quiz.questions))
        weighted = safe_ratio(earned, possible)
        return Score(
            raw_score=raw,
            weighted_score=weighted,
            difficulty_bonus=weighted - raw,
            components=ScoreComponents(correctness=raw, difficulty=weighted - raw),
        )


@dataclass(frozen=True)
class AdaptiveScoring(ScoringStrategy):
    name = "adaptive"

    time_weight: float = 0.2
    difficulty_weight: float = 0.3
    streak_weight: float = 0.1
    consistency_weight: float = 0.1

    def calculate_score(self, session: QuizSession, quiz: Quiz) -> Score:
        pairs = _scored_responses(session, quiz)
        total_questions = len(quiz.questions)

        correctness = _correctness(pairs, total_questions)
        time_score = self.time_score(pairs, quiz)
        difficulty_score = safe_ratio(
            sum(q.difficulty for r, q in pairs if r.is_correct),
            sum(q.difficulty for _, q in pairs),
        )
        streak_score = safe_ratio(longest_streak([r for r, _ in pairs]), total_questions)
        consistency_score = consistency([r.time_taken_seconds for r, _ in pairs])

        weighted = safe_ratio(
            correctness
            + time_score * self.time_weight
            + difficulty_score * self.difficulty_weight
            + streak_score * self.streak_weight
            + consistency_score * self.consistency_weight,
            1.0 + self.time_weight + self.difficulty_weight
            + self.streak_weight + self.consistency_weight,
        )
        return Score(
            raw_score=correctness,
            weighted_score=weighted,
            time_bonus=time_score * self.time_weight,
            difficulty_bonus=difficulty_score * self.difficulty_weight,
            streak_bonus=streak_score * self.streak_weight,
            components=ScoreComponents(
                correctness=correctness,
                speed=time_score,
                difficulty=difficulty_score,
                consistency=consistency_score,
            ),
        )

    @staticmethod
    def time_score(pairs: list[tuple[Response, Question]], quiz: Quiz) -> float:
        # No timed responses means no evidence of speed: 0, not 1.
        if not pairs or not quiz.questions:
            return 0.0
        expected = statistics.fmean(q.estimated_time_seconds for q in quiz.questions)
        actual = statistics.fmean(r.time_taken_seconds for r, _ in pairs)
        return min(1.0, safe_ratio(expected, actual))


def longest_streak(responses: list[Response]) -> int:
    best = run = 0
    for r in responses:
        run = run + 1 if r.is_correct else 0
        best = max(best, run)
    return best


def consistency(times: list[float]) -> float:
    """1 / (1 + coefficient of variation) of response times."""
    if len(times) < 2:
        return 0.0
    mean = statistics.fmean(times)
    if mean == 0:
        return 0.0
    cv = statistics.pstdev(times) / mean
    return safe_ratio(1.0, 1.0 + cv)


STRATEGIES: dict[str, type[ScoringStrategy]] = {
    cls.name: cls
    for cls in (SimpleScoring, TimeWeightedScoring, DifficultyWeightedScoring, AdaptiveScoring)
}


def strategy_from_config(name: str, params: dict[str, Any] | None = None) -> ScoringStrategy:
    cls = STRATEGIES.get(name)
    if cls is None:
        raise ScoringError(f"Unknown scoring strategy: {name!r}")
    try:
        return cls(**(params or {}))
    except TypeError as e:
        raise ScoringError(f"Invalid parameters for {name!r}: {e}") from e


def strategy_to_config(strategy: ScoringStrategy) -> dict[str, Any]:
    return {
        "name": strategy.name,
        "params": {f.name: getattr(strategy, f.name) for f in fields(strategy)},
    }
