"""Question and answer shapes.

Each question kind is its own frozen dataclass; ``QuestionVariant`` and ``Answer``
are closed unions over them.  Construction rejects data that breaks a kind's
invariants, so a ``Question`` that exists is always internally consistent.
"""
from __future__ import annotations

import math
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Any, Callable, Mapping, Union

from quiz_engine.errors import QuestionError

BLANK_MARKER = "{}"
DEFAULT_ESTIMATED_TIME_SECONDS = 60


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _freeze(obj: Any, name: str, value) -> None:
    object.__setattr__(obj, name, value)


def _check_unit_interval(value: float, label: str) -> None:
    if not isinstance(value, (int, float)) or not math.isfinite(value) or not 0.0 <= value <= 1.0:
        raise QuestionError(f"{label} must be within [0, 1], got {value!r}")


# ── Supporting records ───────────────────────────────────────────────────


@dataclass(frozen=True)
class Citation:
    source: str
    url: str | None = None
    excerpt: str | None = None
    confidence: float = 1.0
    id: uuid.UUID = field(default_factory=uuid.uuid4)

    def __post_init__(self):
        _check_unit_interval(self.confidence, "citation confidence")


@dataclass(frozen=True)
class FollowUpRule:
    condition: str
    follow_up_question: str
    weight: float

    def __post_init__(self):
        _check_unit_interval(self.weight, "follow-up rule weight")


@dataclass(frozen=True)
class Evaluation:
    """Opaque verdict from the free-text evaluation collaborator."""

    score: float
    feedback: str = ""

    def __post_init__(self):
        _check_unit_interval(self.score, "evaluation score")


# ── Question kinds ───────────────────────────────────────────────────────


@dataclass(frozen=True)
class TrueFalse:
    kind = "true_false"

    statement: str
    correct_answer: bool
    explanation: str | None = None


@dataclass(frozen=True)
class MultipleChoice:
    kind = "multiple_choice"

    question: str
    options: tuple[str, ...]
    correct_index: int
    explanation: str | None = None

    def __post_init__(self):
        _freeze(self, "options", tuple(self.options))
        if len(self.options) < 2:
            raise QuestionError("multiple choice questions need at least two options")
        if not 0 <= self.correct_index < len(self.options):
            raise QuestionError(
                f"correct_index {self.correct_index} is outside {len(self.options)} options"
            )


@dataclass(frozen=True)
class MultiSelect:
    kind = "multi_select"

    question: str
    options: tuple[str, ...]
    correct_indices: tuple[int, ...]
    explanation: str | None = None

    def __post_init__(self):
        _freeze(self, "options", tuple(self.options))
        _freeze(self, "correct_indices", tuple(self.correct_indices))
        if not self.correct_indices:
            raise QuestionError("multi select questions need at least one correct index")
        if len(set(self.correct_indices)) != len(self.correct_indices):
            raise QuestionError("correct_indices must not repeat")
        for idx in self.correct_indices:
            if not 0 <= idx < len(self.options):
                raise QuestionError(f"correct index {idx} is outside {len(self.options)} options")


@dataclass(frozen=True)
class FillInTheBlank:
    kind = "fill_in_the_blank"

    template: str  # each {} marks a blank
    correct_answers: tuple[str, ...]
    case_sensitive: bool = False
    explanation: str | None = None

    def __post_init__(self):
        _freeze(self, "correct_answers", tuple(self.correct_answers))
        if self.blank_count != len(self.correct_answers):
            raise QuestionError(
                f"template has {self.blank_count} blanks but "
                f"{len(self.correct_answers)} answers were given"
            )

    @property
    def blank_count(self) -> int:
        return self.template.count(BLANK_MARKER)


@dataclass(frozen=True)
class MatchPairs:
    kind = "match_pairs"

    instruction: str
    left_items: tuple[str, ...]
    right_items: tuple[str, ...]
    correct_pairs: tuple[tuple[int, int], ...]
    explanation: str | None = None

    def __post_init__(self):
        _freeze(self, "left_items", tuple(self.left_items))
        _freeze(self, "right_items", tuple(self.right_items))
        _freeze(
            self, "correct_pairs",
            tuple((int(left), int(right)) for left, right in self.correct_pairs),
        )
        lefts = [left for left, _ in self.correct_pairs]
        rights = [right for _, right in self.correct_pairs]
        if len(set(lefts)) != len(lefts) or len(set(rights)) != len(rights):
            raise QuestionError("correct_pairs must not repeat a left or right item")
        for left, right in self.correct_pairs:
            if not 0 <= left < len(self.left_items) or not 0 <= right < len(self.right_items):
                raise QuestionError(f"pair ({left}, {right}) references a missing item")


@dataclass(frozen=True)
class InteractiveInterview:
    kind = "interactive_interview"

    topic: str
    initial_question: str
    follow_up_rules: tuple[FollowUpRule, ...] = ()
    comprehension_threshold: float = 0.7

    def __post_init__(self):
        _freeze(self, "follow_up_rules", tuple(self.follow_up_rules))
        _check_unit_interval(self.comprehension_threshold, "comprehension_threshold")

    @property
    def explanation(self) -> None:
        return None


@dataclass(frozen=True)
class TopicExplanation:
    kind = "topic_explanation"

    topic: str
    prompt: str
    key_concepts: tuple[str, ...] = ()
    min_word_count: int = 0

    def __post_init__(self):
        _freeze(self, "key_concepts", tuple(self.key_concepts))
        if self.min_word_count < 0:
            raise QuestionError("min_word_count must not be negative")

    @property
    def explanation(self) -> None:
        return None


QuestionVariant = Union[
    TrueFalse,
    MultipleChoice,
    MultiSelect,
    FillInTheBlank,
    MatchPairs,
    InteractiveInterview,
    TopicExplanation,
]

QUESTION_KINDS: tuple[type, ...] = QuestionVariant.__args__


# ── Answers ──────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class TrueFalseAnswer:
    kind = "true_false"

    value: bool
    time_taken_seconds: float | None = None


@dataclass(frozen=True)
class MultipleChoiceAnswer:
    kind = "multiple_choice"

    index: int
    time_taken_seconds: float | None = None


@dataclass(frozen=True)
class MultiSelectAnswer:
    kind = "multi_select"

    indices: tuple[int, ...]
    time_taken_seconds: float | None = None

    def __post_init__(self):
        _freeze(self, "indices", tuple(self.indices))


@dataclass(frozen=True)
class FillInTheBlankAnswer:
    kind = "fill_in_the_blank"

    answers: tuple[str, ...]
    time_taken_seconds: float | None = None

    def __post_init__(self):
        _freeze(self, "answers", tuple(self.answers))


@dataclass(frozen=True)
class MatchPairsAnswer:
    kind = "match_pairs"

    pairs: tuple[tuple[int, int], ...]
    time_taken_seconds: float | None = None

    def __post_init__(self):
        # Shape is checked by validation, so malformed pairs are kept as given.
        _freeze(
            self, "pairs",
            tuple(tuple(p) if isinstance(p, (list, tuple)) else p for p in self.pairs),
        )


@dataclass(frozen=True)
class InteractiveResponse:
    kind = "interactive_interview"

    responses: tuple[str, ...]
    time_taken_seconds: float | None = None
    evaluation: Evaluation | None = None

    def __post_init__(self):
        _freeze(self, "responses", tuple(self.responses))


@dataclass(frozen=True)
class TopicExplanationAnswer:
    kind = "topic_explanation"

    explanation: str
    time_taken_seconds: float | None = None
    evaluation: Evaluation | None = None


Answer = Union[
    TrueFalseAnswer,
    MultipleChoiceAnswer,
    MultiSelectAnswer,
    FillInTheBlankAnswer,
    MatchPairsAnswer,
    InteractiveResponse,
    TopicExplanationAnswer,
]

ANSWER_TYPES: dict[str, type] = {cls.kind: cls for cls in Answer.__args__}
KIND_TYPES: dict[str, type] = {cls.kind: cls for cls in QUESTION_KINDS}


# ── Question ─────────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Question:
    id: uuid.UUID
    variant: QuestionVariant
    topic_id: uuid.UUID
    difficulty: float
    estimated_time_seconds: int = DEFAULT_ESTIMATED_TIME_SECONDS
    tags: frozenset[str] = frozenset()
    citations: tuple[Citation, ...] = ()
    metadata: Mapping[str, Any] = field(default_factory=dict, hash=False)
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)

    def __post_init__(self):
        if not isinstance(self.variant, QUESTION_KINDS):
            raise QuestionError(f"unsupported question kind: {type(self.variant).__name__}")
        _check_unit_interval(self.difficulty, "difficulty")
        if self.estimated_time_seconds < 0:
            raise QuestionError("estimated_time_seconds must not be negative")
        _freeze(self, "tags", frozenset(self.tags))
        _freeze(self, "citations", tuple(self.citations))
        _freeze(self, "metadata", MappingProxyType(dict(self.metadata)))

    @classmethod
    def create(
        cls,
        variant: QuestionVariant,
        topic_id: uuid.UUID | None = None,
        difficulty: float = 0.5,
        *,
        estimated_time_seconds: int = DEFAULT_ESTIMATED_TIME_SECONDS,
        tags=(),
        citations=(),
        metadata: dict[str, Any] | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> Question:
        now = clock()
        return cls(
            id=uuid.uuid4(),
            variant=variant,
            topic_id=topic_id or uuid.uuid4(),
            difficulty=difficulty,
            estimated_time_seconds=estimated_time_seconds,
            tags=frozenset(tags),
            citations=tuple(citations),
            metadata=dict(metadata or {}),
            created_at=now,
            updated_at=now,
        )

    @property
    def kind_name(self) -> str:
        return self.variant.kind

    @property
    def explanation(self) -> str | None:
        return self.variant.explanation

    @property
    def is_free_text(self) -> bool:
        return isinstance(self.variant, (InteractiveInterview, TopicExplanation))
