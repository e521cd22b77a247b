"""Shared test fixtures."""
from __future__ import annotations

import random
import uuid
from datetime import datetime, timedelta, timezone

import pytest

from quiz_engine.models import (
    Evaluation,
    FillInTheBlank,
    FollowUpRule,
    InteractiveInterview,
    MatchPairs,
    MultiSelect,
    MultipleChoice,
    Question,
    TopicExplanation,
    TrueFalse,
)
from quiz_engine.providers.base import ContentProvider
from quiz_engine.quiz import QuizBuilder
from quiz_engine.storage import SqliteStorage


class FakeClock:
    """Deterministic clock; call ``advance`` to move time forward."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 1, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


class FakeProvider(ContentProvider):
    """Scores answers by the fraction of key concepts they mention."""

    def __init__(self):
        self.seen: list[str] = []

    async def generate_question(self, params):
        return Question.create(TrueFalse(params["statement"], params.get("answer", True)))

    async def evaluate_free_text(self, question, answer_text):
        self.seen.append(answer_text)
        concepts = getattr(question.variant, "key_concepts", ())
        if not concepts:
            return Evaluation(1.0, "No rubric.")
        hits = sum(1 for c in concepts if c in answer_text.lower())
        return Evaluation(hits / len(concepts), f"{hits} of {len(concepts)} concepts")

    def name(self) -> str:
        return "fake"


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def tmp_storage(tmp_path):
    """A fresh SQLite-backed storage."""
    storage = SqliteStorage(tmp_path / "test.db")
    yield storage
    storage.close()


def make_mc(question: str = "What is 2 + 2?", correct_index: int = 1, difficulty: float = 0.5,
            estimated_time: int = 30) -> Question:
    return Question.create(
        MultipleChoice(question, ["3", "4", "5", "22"], correct_index),
        difficulty=difficulty,
        estimated_time_seconds=estimated_time,
    )


@pytest.fixture
def all_kinds():
    """One question of every supported kind."""
    topic = uuid.uuid4()
    return [
        Question.create(TrueFalse("Python lists are mutable", True), topic, 0.2),
        Question.create(
            MultipleChoice("Capital of France?", ["Berlin", "Paris", "Rome"], 1, "Paris it is."),
            topic, 0.3,
        ),
        Question.create(
            MultiSelect("Which are primes?", ["2", "3", "4", "5"], [0, 1, 3]), topic, 0.5,
        ),
        Question.create(
            FillInTheBlank("The {} sat on the {}.", ["cat", "mat"], case_sensitive=False), topic, 0.4,
        ),
        Question.create(
            MatchPairs(
                "Match country to capital",
                ["France", "Italy", "Spain"],
                ["Rome", "Madrid", "Paris"],
                [(0, 2), (1, 0), (2, 1)],
            ),
            topic, 0.6,
        ),
        Question.create(
            InteractiveInterview(
                "Recursion",
                "Explain recursion in your own words.",
                [FollowUpRule("mentions base case", "Why is a base case needed?", 0.5)],
                comprehension_threshold=0.6,
            ),
            topic, 0.8,
        ),
        Question.create(
            TopicExplanation(
                "Photosynthesis",
                "Describe photosynthesis.",
                ["chlorophyll", "sunlight", "glucose"],
                min_word_count=5,
            ),
            topic, 0.9,
        ),
    ]


@pytest.fixture
def two_mc_quiz(clock):
    """Two multiple-choice questions, pass threshold 0.5, skipping allowed."""
    return (
        QuizBuilder("Arithmetic", clock=clock)
        .add_question(make_mc("What is 2 + 2?", 1))
        .add_question(make_mc("What is 1 + 2?", 0))
        .pass_threshold(0.5)
        .build()
    )


@pytest.fixture
def strict_quiz(clock):
    """Three questions, skipping not allowed."""
    return (
        QuizBuilder("Strict", clock=clock)
        .add_questions([make_mc("Q1", 0), make_mc("Q2", 1), make_mc("Q3", 2)])
        .allow_skip(False)
        .build()
    )
