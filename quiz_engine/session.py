"""Per-user quiz attempts.

A ``QuizSession`` walks a strict lifecycle::

    NOT_STARTED -> IN_PROGRESS <-> PAUSED
    IN_PROGRESS -> COMPLETED
    any non-terminal state -> ABANDONED

Every transition checks all of its preconditions before touching any state, so
a call that raises leaves the session exactly as it was.  Sessions do no locking;
callers keep one owner per session.
"""
from __future__ import annotations

import enum
import logging
import math
import random
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Callable

from quiz_engine.errors import SessionError, ValidationError
from quiz_engine.models import (
    Answer,
    MultipleChoice,
    MultipleChoiceAnswer,
    MultiSelect,
    MultiSelectAnswer,
    Question,
    utc_now,
)
from quiz_engine.quiz import Quiz
from quiz_engine.validation import validate_answer

log = logging.getLogger("quiz_engine.session")


class SessionState(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    ABANDONED = "abandoned"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.ABANDONED)


@dataclass(frozen=True)
class Response:
    question_id: uuid.UUID
    answer: Answer  # canonical option indices, not the presented ones
    submitted_at: datetime
    time_taken_seconds: float
    is_correct: bool
    attempts: int = 1


GRADE_BOUNDARIES = (
    (0.9, "A"),
    (0.8, "B"),
    (0.7, "C"),
    (0.6, "D"),
)


@dataclass(frozen=True)
class ResultSummary:
    session_id: uuid.UUID
    quiz_id: uuid.UUID
    answered_count: int
    correct_count: int
    skipped_count: int
    total_questions: int
    total_time: float
    duration_seconds: float

    @property
    def score(self) -> float:
        if self.total_questions == 0:
            return 0.0
        return self.correct_count / self.total_questions

    @property
    def completion_rate(self) -> float:
        if self.total_questions == 0:
            return 0.0
        return self.answered_count / self.total_questions

    @property
    def average_time_per_question(self) -> float:
        if self.answered_count == 0:
            return 0.0
        return self.total_time / self.answered_count

    @property
    def grade(self) -> str:
        for boundary, letter in GRADE_BOUNDARIES:
            if self.score >= boundary:
                return letter
        return "F"

    def passed(self, pass_threshold: float) -> bool:
        return self.score >= pass_threshold

    def to_dict(self) -> dict:
        return {
            "session_id": str(self.session_id),
            "quiz_id": str(self.quiz_id),
            "answered_count": self.answered_count,
            "correct_count": self.correct_count,
            "skipped_count": self.skipped_count,
            "total_questions": self.total_questions,
            "total_time": self.total_time,
            "duration_seconds": self.duration_seconds,
            "score": self.score,
            "grade": self.grade,
            "completion_rate": self.completion_rate,
            "average_time_per_question": self.average_time_per_question,
        }


class QuizSession:
    def __init__(
        self,
        quiz: Quiz,
        user_id: uuid.UUID | None = None,
        *,
        allow_resubmission: bool = False,
        clock: Callable[[], datetime] = utc_now,
        rng: random.Random | None = None,
        session_id: uuid.UUID | None = None,
    ):
        self.id = session_id or uuid.uuid4()
        self.quiz = quiz
        self.user_id = user_id
        self.allow_resubmission = allow_resubmission
        self.state = SessionState.NOT_STARTED
        self.started_at: datetime | None = None
        self.completed_at: datetime | None = None
        self.paused_at: datetime | None = None
        self.paused_duration_seconds = 0.0
        self.current_question_index = 0
        self.question_order: list[int] = list(range(len(quiz)))
        self.option_orders: dict[uuid.UUID, tuple[int, ...]] = {}
        self.skipped_question_ids: list[uuid.UUID] = []
        self.summary: ResultSummary | None = None
        self.metadata: dict[str, Any] = {}
        self._responses: list[Response] = []
        self._clock = clock
        self._rng = rng or random.Random()
        # Active (pause-excluded) seconds at the last submission.
        self._last_mark = 0.0

    def __repr__(self) -> str:
        return f"<QuizSession {self.id} quiz={self.quiz_id} state={self.state.value}>"

    @property
    def quiz_id(self) -> uuid.UUID:
        return self.quiz.id

    @property
    def responses(self) -> tuple[Response, ...]:
        return tuple(self._responses)

    # ── Guards ────────────────────────────────────────────────────────────

    def _require(self, action: str, *states: SessionState) -> None:
        if self.state not in states:
            allowed = ", ".join(s.value for s in states)
            raise SessionError(
                f"Cannot {action} a session that is {self.state.value} (requires {allowed})",
                SessionError.INVALID_STATE,
            )

    def _question(self, question_id: uuid.UUID) -> Question:
        question = self.quiz.question(question_id)
        if question is None:
            raise SessionError(
                f"Question {question_id} is not part of quiz {self.quiz_id}",
                SessionError.UNKNOWN_QUESTION,
            )
        return question

    def _response_index(self, question_id: uuid.UUID) -> int | None:
        for i, r in enumerate(self._responses):
            if r.question_id == question_id:
                return i
        return None

    # ── Timing ────────────────────────────────────────────────────────────

    def active_elapsed_seconds(self, now: datetime | None = None) -> float:
        """Wall time since start, excluding every paused interval."""
        if self.started_at is None:
            return 0.0
        if self.paused_at is not None:
            end = self.paused_at
        elif self.completed_at is not None:
            end = self.completed_at
        else:
            end = now or self._clock()
        elapsed = (end - self.started_at).total_seconds() - self.paused_duration_seconds
        return max(0.0, elapsed)

    def question_elapsed_seconds(self, now: datetime | None = None) -> float:
        """Active seconds since the previous submission (or since start)."""
        return max(0.0, self.active_elapsed_seconds(now) - self._last_mark)

    def _fold_pause(self, now: datetime) -> None:
        if self.paused_at is not None:
            self.paused_duration_seconds += max(0.0, (now - self.paused_at).total_seconds())
            self.paused_at = None

    # ── Transitions ───────────────────────────────────────────────────────

    def start(self) -> None:
        self._require("start", SessionState.NOT_STARTED)
        order = list(range(len(self.quiz)))
        if self.quiz.randomize_questions:
            self._rng.shuffle(order)
        option_orders: dict[uuid.UUID, tuple[int, ...]] = {}
        if self.quiz.randomize_answers:
            for q in self.quiz.questions:
                if isinstance(q.variant, (MultipleChoice, MultiSelect)):
                    perm = list(range(len(q.variant.options)))
                    self._rng.shuffle(perm)
                    option_orders[q.id] = tuple(perm)

        self.question_order = order
        self.option_orders = option_orders
        self.started_at = self._clock()
        self.state = SessionState.IN_PROGRESS
        log.debug("Session %s started (%d questions)", self.id, len(order))

    def pause(self) -> None:
        self._require("pause", SessionState.IN_PROGRESS)
        self.paused_at = self._clock()
        self.state = SessionState.PAUSED
        log.debug("Session %s paused", self.id)

    def resume(self) -> None:
        self._require("resume", SessionState.PAUSED)
        self._fold_pause(self._clock())
        self.state = SessionState.IN_PROGRESS
        log.debug("Session %s resumed (%.1fs paused in total)", self.id, self.paused_duration_seconds)

    def submit_answer(
        self,
        question_id: uuid.UUID,
        answer: Answer,
        time_taken_seconds: float | None = None,
    ) -> Response:
        """Record an answer given in presentation order and return its Response.

        When no time is given, the answer's own ``time_taken_seconds`` is used,
        falling back to the pause-excluded time since the previous submission.
        """
        self._require("submit an answer to", SessionState.IN_PROGRESS)
        question = self._question(question_id)
        existing = self._response_index(question_id)
        if existing is not None and not self.allow_resubmission:
            raise SessionError(
                f"Question {question_id} has already been answered",
                SessionError.DUPLICATE_ANSWER,
            )

        canonical = self._to_canonical(question, answer)
        is_correct = validate_answer(question, canonical)

        now = self._clock()
        if time_taken_seconds is None:
            time_taken_seconds = getattr(answer, "time_taken_seconds", None)
        if time_taken_seconds is None:
            time_taken_seconds = self.question_elapsed_seconds(now)
        if not isinstance(time_taken_seconds, (int, float)) or not math.isfinite(time_taken_seconds) \
                or time_taken_seconds < 0:
            raise ValidationError(
                f"time_taken_seconds must be a non-negative number, got {time_taken_seconds!r}",
                ValidationError.MALFORMED_ANSWER,
            )

        if existing is None:
            response = Response(
                question_id=question_id,
                answer=canonical,
                submitted_at=now,
                time_taken_seconds=float(time_taken_seconds),
                is_correct=is_correct,
            )
            self._responses.append(response)
        else:
            previous = self._responses[existing]
            response = replace(
                previous,
                answer=canonical,
                submitted_at=now,
                time_taken_seconds=previous.time_taken_seconds + float(time_taken_seconds),
                is_correct=is_correct,
                attempts=previous.attempts + 1,
            )
            self._responses[existing] = response
        if question_id in self.skipped_question_ids:
            self.skipped_question_ids.remove(question_id)
        self._last_mark = self.active_elapsed_seconds(now)
        log.debug(
            "Session %s: %s answer to %s (%.1fs)",
            self.id, "correct" if is_correct else "incorrect", question_id, response.time_taken_seconds,
        )
        return response

    def skip_question(self, question_id: uuid.UUID) -> None:
        self._require("skip a question in", SessionState.IN_PROGRESS)
        if not self.quiz.allow_skip:
            raise SessionError(
                f"Quiz {self.quiz_id} does not allow skipping questions",
                SessionError.INVALID_STATE,
            )
        self._question(question_id)
        if self._response_index(question_id) is not None:
            raise SessionError(
                f"Question {question_id} has already been answered",
                SessionError.DUPLICATE_ANSWER,
            )
        if question_id not in self.skipped_question_ids:
            self.skipped_question_ids.append(question_id)

    def complete(self) -> ResultSummary:
        self._require("complete", SessionState.IN_PROGRESS)
        if not self.quiz.allow_skip:
            answered = {r.question_id for r in self._responses}
            missing = [q.id for q in self.quiz.questions if q.id not in answered]
            if missing:
                raise SessionError(
                    f"{len(missing)} of {len(self.quiz)} questions still need an answer",
                    SessionError.INCOMPLETE_QUIZ,
                )
        self.completed_at = self._clock()
        self.state = SessionState.COMPLETED
        self.summary = self.build_summary()
        log.info(
            "Session %s completed: %d/%d correct",
            self.id, self.summary.correct_count, self.summary.total_questions,
        )
        return self.summary

    def abandon(self) -> None:
        self._require(
            "abandon", SessionState.NOT_STARTED, SessionState.IN_PROGRESS, SessionState.PAUSED,
        )
        now = self._clock()
        self._fold_pause(now)
        self.completed_at = now
        self.state = SessionState.ABANDONED
        log.info("Session %s abandoned", self.id)

    # ── Navigation ────────────────────────────────────────────────────────

    def next_question(self) -> Question:
        self._require("move forward in", SessionState.IN_PROGRESS)
        if self.current_question_index + 1 >= len(self.question_order):
            raise SessionError("Already at the last question", SessionError.INVALID_STATE)
        self.current_question_index += 1
        return self.current_question()

    def previous_question(self) -> Question:
        self._require("move back in", SessionState.IN_PROGRESS)
        if self.current_question_index == 0:
            raise SessionError("Already at the first question", SessionError.INVALID_STATE)
        self.current_question_index -= 1
        return self.current_question()

    def current_question(self) -> Question:
        return self.quiz.questions[self.question_order[self.current_question_index]]

    # ── Presentation ──────────────────────────────────────────────────────

    def presented_questions(self) -> list[Question]:
        return [self.quiz.questions[i] for i in self.question_order]

    def presented_options(self, question_id: uuid.UUID) -> list[str]:
        variant = self._question(question_id).variant
        if not isinstance(variant, (MultipleChoice, MultiSelect)):
            return []
        perm = self.option_orders.get(question_id)
        if perm is None:
            return list(variant.options)
        return [variant.options[i] for i in perm]

    def _to_canonical(self, question: Question, answer: Answer) -> Answer:
        perm = self.option_orders.get(question.id)
        if perm is None:
            return answer

        def remap(idx: int) -> int:
            # Non-integer or out-of-range indices pass through so validation reports them.
            if isinstance(idx, bool) or not isinstance(idx, int) or not 0 <= idx < len(perm):
                return idx
            return perm[idx]

        if isinstance(answer, MultipleChoiceAnswer):
            return replace(answer, index=remap(answer.index))
        if isinstance(answer, MultiSelectAnswer):
            return replace(answer, indices=tuple(remap(i) for i in answer.indices))
        return answer

    # ── Reporting ─────────────────────────────────────────────────────────

    def response_for(self, question_id: uuid.UUID) -> Response | None:
        idx = self._response_index(question_id)
        return None if idx is None else self._responses[idx]

    def progress(self) -> float:
        if len(self.quiz) == 0:
            return 0.0
        return len(self._responses) / len(self.quiz)

    def build_summary(self) -> ResultSummary:
        return ResultSummary(
            session_id=self.id,
            quiz_id=self.quiz_id,
            answered_count=len(self._responses),
            correct_count=sum(1 for r in self._responses if r.is_correct),
            skipped_count=len(self.skipped_question_ids),
            total_questions=len(self.quiz),
            total_time=sum(r.time_taken_seconds for r in self._responses),
            duration_seconds=self.active_elapsed_seconds(),
        )
