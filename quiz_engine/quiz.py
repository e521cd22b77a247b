"""Immutable quizzes and the builder that assembles them."""
from __future__ import annotations

import enum
import logging
import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Iterable, Iterator, Mapping

from quiz_engine.errors import BuildError, EmptyQuizError, InvalidThresholdError
from quiz_engine.models import Question, utc_now

log = logging.getLogger("quiz_engine.quiz")

DEFAULT_PASS_THRESHOLD = 0.7


class ExplanationMode(str, enum.Enum):
    NEVER = "never"
    AFTER_EACH = "after_each"
    AT_END = "at_end"


def check_quiz_invariants(title: str, questions, pass_threshold) -> None:
    """Raise BuildError unless the questions and threshold form a usable quiz."""
    if not questions:
        raise EmptyQuizError(f"Quiz {title!r} has no questions")
    if isinstance(pass_threshold, bool) or not isinstance(pass_threshold, (int, float)) \
            or not math.isfinite(pass_threshold) or not 0.0 <= pass_threshold <= 1.0:
        raise InvalidThresholdError(
            f"pass_threshold must be within [0, 1], got {pass_threshold!r}"
        )
    seen: set[uuid.UUID] = set()
    for q in questions:
        if q.id in seen:
            raise BuildError(f"Question {q.id} was added more than once", "duplicate_question")
        seen.add(q.id)


@dataclass(frozen=True)
class Quiz:
    id: uuid.UUID
    title: str
    questions: tuple[Question, ...]
    description: str | None = None
    pass_threshold: float = DEFAULT_PASS_THRESHOLD
    allow_skip: bool = True
    show_explanations_mode: ExplanationMode = ExplanationMode.AFTER_EACH
    randomize_questions: bool = False
    randomize_answers: bool = False
    tags: tuple[str, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)
    topic_ids: tuple[uuid.UUID, ...] = ()
    difficulty_range: tuple[float, float] = (0.0, 1.0)
    estimated_duration_minutes: int = 1
    created_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        object.__setattr__(self, "questions", tuple(self.questions))
        check_quiz_invariants(self.title, self.questions, self.pass_threshold)
        object.__setattr__(self, "metadata", MappingProxyType(dict(self.metadata)))

    def __len__(self) -> int:
        return len(self.questions)

    def __iter__(self) -> Iterator[Question]:
        return iter(self.questions)

    def question(self, question_id: uuid.UUID) -> Question | None:
        idx = self.index_of(question_id)
        return None if idx is None else self.questions[idx]

    def index_of(self, question_id: uuid.UUID) -> int | None:
        for i, q in enumerate(self.questions):
            if q.id == question_id:
                return i
        return None

    @property
    def question_ids(self) -> list[uuid.UUID]:
        return [q.id for q in self.questions]


class QuizBuilder:
    """Fluent accumulator for a ``Quiz``.

    Setters return the builder; ``build()`` validates and snapshots the
    questions added so far.  A builder can be built more than once, and every
    Quiz it returns is independent of later builder calls.
    """

    def __init__(self, title: str, *, clock: Callable[[], datetime] = utc_now):
        self._title = title
        self._clock = clock
        self._description: str | None = None
        self._questions: list[Question] = []
        self._pass_threshold = DEFAULT_PASS_THRESHOLD
        self._allow_skip = True
        self._show_explanations = ExplanationMode.AFTER_EACH
        self._randomize_questions = False
        self._randomize_answers = False
        self._tags: list[str] = []
        self._metadata: dict[str, Any] = {}

    def description(self, text: str) -> QuizBuilder:
        self._description = text
        return self

    def add_question(self, question: Question) -> QuizBuilder:
        self._questions.append(question)
        return self

    def add_questions(self, questions: Iterable[Question]) -> QuizBuilder:
        for q in questions:
            self.add_question(q)
        return self

    def pass_threshold(self, threshold: float) -> QuizBuilder:
        self._pass_threshold = threshold
        return self

    def allow_skip(self, allow: bool = True) -> QuizBuilder:
        self._allow_skip = allow
        return self

    def show_explanations(self, mode: ExplanationMode | str) -> QuizBuilder:
        self._show_explanations = ExplanationMode(mode)
        return self

    def randomize_questions(self, randomize: bool = True) -> QuizBuilder:
        self._randomize_questions = randomize
        return self

    def randomize_answers(self, randomize: bool = True) -> QuizBuilder:
        self._randomize_answers = randomize
        return self

    def add_tag(self, tag: str) -> QuizBuilder:
        if tag not in self._tags:
            self._tags.append(tag)
        return self

    def add_metadata(self, key: str, value: Any) -> QuizBuilder:
        self._metadata[key] = value
        return self

    def build(self) -> Quiz:
        threshold = self._pass_threshold
        check_quiz_invariants(self._title, self._questions, threshold)

        questions = tuple(self._questions)
        topic_ids = tuple(dict.fromkeys(q.topic_id for q in questions))
        difficulties = [q.difficulty for q in questions]
        total_seconds = sum(q.estimated_time_seconds for q in questions)

        quiz = Quiz(
            id=uuid.uuid4(),
            title=self._title,
            questions=questions,
            description=self._description,
            pass_threshold=float(threshold),
            allow_skip=self._allow_skip,
            show_explanations_mode=self._show_explanations,
            randomize_questions=self._randomize_questions,
            randomize_answers=self._randomize_answers,
            tags=tuple(self._tags),
            metadata=dict(self._metadata),
            topic_ids=topic_ids,
            difficulty_range=(min(difficulties), max(difficulties)),
            estimated_duration_minutes=max(1, total_seconds // 60),
            created_at=self._clock(),
        )
        log.debug("Built quiz %s (%r) with %d questions", quiz.id, quiz.title, len(questions))
        return quiz
