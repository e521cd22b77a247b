"""JSON-compatible codecs for quizzes, sessions and scores.

Every top-level document carries ``"version"`` so stored data can be migrated.
The engine never touches storage; these helpers only shape what a caller puts
under keys such as ``quizzes/{id}`` and ``sessions/{user_id}/{id}``.
"""
from __future__ import annotations

import functools
import json
import uuid
from dataclasses import asdict, fields
from datetime import datetime
from typing import Any, Callable

from quiz_engine.errors import QuizEngineError, SerializationError
from quiz_engine.models import (
    ANSWER_TYPES,
    KIND_TYPES,
    Answer,
    Citation,
    Evaluation,
    FollowUpRule,
    InteractiveInterview,
    Question,
    utc_now,
)
from quiz_engine.quiz import ExplanationMode, Quiz
from quiz_engine.scoring import Score, ScoreComponents
from quiz_engine.session import QuizSession, Response, SessionState

SCHEMA_VERSION = 1


def quiz_key(quiz_id: uuid.UUID) -> str:
    return f"quizzes/{quiz_id}"


def session_key(user_id: uuid.UUID | None, session_id: uuid.UUID) -> str:
    return f"sessions/{user_id or 'anonymous'}/{session_id}"


def dumps(document: dict) -> bytes:
    return json.dumps(document, sort_keys=True).encode()


def loads(raw: bytes) -> dict:
    try:
        document = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise SerializationError(f"Stored document is not valid JSON: {e}") from e
    if not isinstance(document, dict):
        raise SerializationError("Stored document must be a JSON object")
    return document


def _check_version(data: dict, what: str) -> None:
    version = data.get("version")
    if version != SCHEMA_VERSION:
        raise SerializationError(f"Unsupported {what} document version: {version!r}")


def _dt(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_dt(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _uuid(value: str | None) -> uuid.UUID | None:
    return uuid.UUID(value) if value else None


def _decoding(what: str):
    """Wrap malformed-payload errors from the decoders in SerializationError."""

    def wrap(fn):
        @functools.wraps(fn)
        def inner(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except SerializationError:
                raise
            except (KeyError, TypeError, ValueError, QuizEngineError) as e:
                raise SerializationError(f"Malformed {what} document: {e}") from e

        return inner

    return wrap


# ── Questions and answers ────────────────────────────────────────────────


def question_to_dict(question: Question) -> dict:
    return {
        "id": str(question.id),
        "kind": question.kind_name,
        "data": asdict(question.variant),
        "topic_id": str(question.topic_id),
        "difficulty": question.difficulty,
        "estimated_time_seconds": question.estimated_time_seconds,
        "tags": sorted(question.tags),
        "citations": [
            {
                "id": str(c.id),
                "source": c.source,
                "url": c.url,
                "excerpt": c.excerpt,
                "confidence": c.confidence,
            }
            for c in question.citations
        ],
        "metadata": dict(question.metadata),
        "created_at": _dt(question.created_at),
        "updated_at": _dt(question.updated_at),
    }


@_decoding("question")
def question_from_dict(data: dict) -> Question:
    kind_type = KIND_TYPES.get(data["kind"])
    if kind_type is None:
        raise SerializationError(f"Unknown question kind: {data['kind']!r}")
    payload = dict(data["data"])
    if kind_type is InteractiveInterview:
        payload["follow_up_rules"] = [FollowUpRule(**r) for r in payload.get("follow_up_rules", [])]
    return Question(
        id=uuid.UUID(data["id"]),
        variant=kind_type(**payload),
        topic_id=uuid.UUID(data["topic_id"]),
        difficulty=data["difficulty"],
        estimated_time_seconds=data.get("estimated_time_seconds", 60),
        tags=frozenset(data.get("tags", [])),
        citations=tuple(
            Citation(
                id=uuid.UUID(c["id"]),
                source=c["source"],
                url=c.get("url"),
                excerpt=c.get("excerpt"),
                confidence=c.get("confidence", 1.0),
            )
            for c in data.get("citations", [])
        ),
        metadata=data.get("metadata", {}),
        created_at=_parse_dt(data.get("created_at")) or utc_now(),
        updated_at=_parse_dt(data.get("updated_at")) or utc_now(),
    )


def answer_to_dict(answer: Answer) -> dict:
    return {"kind": answer.kind, **asdict(answer)}


@_decoding("answer")
def answer_from_dict(data: dict) -> Answer:
    payload = dict(data)
    answer_type = ANSWER_TYPES.get(payload.pop("kind", None))
    if answer_type is None:
        raise SerializationError(f"Unknown answer kind: {data.get('kind')!r}")
    known = {f.name for f in fields(answer_type)}
    payload = {k: v for k, v in payload.items() if k in known}
    if payload.get("evaluation") is not None:
        payload["evaluation"] = Evaluation(**payload["evaluation"])
    return answer_type(**payload)


# ── Quizzes ──────────────────────────────────────────────────────────────


def quiz_to_dict(quiz: Quiz) -> dict:
    return {
        "version": SCHEMA_VERSION,
        "id": str(quiz.id),
        "title": quiz.title,
        "description": quiz.description,
        "questions": [question_to_dict(q) for q in quiz.questions],
        "pass_threshold": quiz.pass_threshold,
        "allow_skip": quiz.allow_skip,
        "show_explanations_mode": quiz.show_explanations_mode.value,
        "randomize_questions": quiz.randomize_questions,
        "randomize_answers": quiz.randomize_answers,
        "tags": list(quiz.tags),
        "metadata": dict(quiz.metadata),
        "topic_ids": [str(t) for t in quiz.topic_ids],
        "difficulty_range": list(quiz.difficulty_range),
        "estimated_duration_minutes": quiz.estimated_duration_minutes,
        "created_at": _dt(quiz.created_at),
    }


@_decoding("quiz")
def quiz_from_dict(data: dict) -> Quiz:
    _check_version(data, "quiz")
    return Quiz(
        id=uuid.UUID(data["id"]),
        title=data["title"],
        description=data.get("description"),
        questions=tuple(question_from_dict(q) for q in data["questions"]),
        pass_threshold=data["pass_threshold"],
        allow_skip=data["allow_skip"],
        show_explanations_mode=ExplanationMode(data["show_explanations_mode"]),
        randomize_questions=data["randomize_questions"],
        randomize_answers=data["randomize_answers"],
        tags=tuple(data.get("tags", [])),
        metadata=data.get("metadata", {}),
        topic_ids=tuple(uuid.UUID(t) for t in data.get("topic_ids", [])),
        difficulty_range=tuple(data.get("difficulty_range", (0.0, 1.0))),
        estimated_duration_minutes=data.get("estimated_duration_minutes", 1),
        created_at=_parse_dt(data.get("created_at")) or utc_now(),
    )


# ── Sessions ─────────────────────────────────────────────────────────────


def _response_to_dict(r: Response) -> dict:
    return {
        "question_id": str(r.question_id),
        "answer": answer_to_dict(r.answer),
        "submitted_at": _dt(r.submitted_at),
        "time_taken_seconds": r.time_taken_seconds,
        "is_correct": r.is_correct,
        "attempts": r.attempts,
    }


def _response_from_dict(data: dict) -> Response:
    return Response(
        question_id=uuid.UUID(data["question_id"]),
        answer=answer_from_dict(data["answer"]),
        submitted_at=datetime.fromisoformat(data["submitted_at"]),
        time_taken_seconds=data["time_taken_seconds"],
        is_correct=data["is_correct"],
        attempts=data.get("attempts", 1),
    )


def session_to_dict(session: QuizSession) -> dict:
    """Serialize a session; the quiz is referenced by id, never embedded."""
    return {
        "version": SCHEMA_VERSION,
        "id": str(session.id),
        "quiz_id": str(session.quiz_id),
        "user_id": str(session.user_id) if session.user_id else None,
        "state": session.state.value,
        "allow_resubmission": session.allow_resubmission,
        "responses": [_response_to_dict(r) for r in session.responses],
        "skipped_question_ids": [str(q) for q in session.skipped_question_ids],
        "current_question_index": session.current_question_index,
        "question_order": session.question_order,
        "option_orders": {str(k): list(v) for k, v in session.option_orders.items()},
        "started_at": _dt(session.started_at),
        "completed_at": _dt(session.completed_at),
        "paused_at": _dt(session.paused_at),
        "paused_duration_seconds": session.paused_duration_seconds,
        "last_mark_seconds": session._last_mark,
        "metadata": session.metadata,
    }


@_decoding("session")
def session_from_dict(
    data: dict,
    quiz: Quiz,
    *,
    clock: Callable[[], datetime] = utc_now,
) -> QuizSession:
    _check_version(data, "session")
    if uuid.UUID(data["quiz_id"]) != quiz.id:
        raise SerializationError(
            f"Session {data['id']} belongs to quiz {data['quiz_id']}, not {quiz.id}"
        )
    session = QuizSession(
        quiz,
        _uuid(data.get("user_id")),
        allow_resubmission=data.get("allow_resubmission", False),
        clock=clock,
        session_id=uuid.UUID(data["id"]),
    )
    session.state = SessionState(data["state"])
    session._responses = [_response_from_dict(r) for r in data.get("responses", [])]
    session._last_mark = data.get("last_mark_seconds", 0.0)
    session.skipped_question_ids = [uuid.UUID(q) for q in data.get("skipped_question_ids", [])]
    session.current_question_index = data.get("current_question_index", 0)
    session.question_order = list(data.get("question_order", session.question_order))
    session.option_orders = {
        uuid.UUID(k): tuple(v) for k, v in data.get("option_orders", {}).items()
    }
    session.started_at = _parse_dt(data.get("started_at"))
    session.completed_at = _parse_dt(data.get("completed_at"))
    session.paused_at = _parse_dt(data.get("paused_at"))
    session.paused_duration_seconds = data.get("paused_duration_seconds", 0.0)
    session.metadata = data.get("metadata", {})
    if session.state is SessionState.COMPLETED:
        session.summary = session.build_summary()
    return session


# ── Scores ───────────────────────────────────────────────────────────────


def score_to_dict(score: Score) -> dict[str, Any]:
    return {"version": SCHEMA_VERSION, **asdict(score)}


@_decoding("score")
def score_from_dict(data: dict) -> Score:
    _check_version(data, "score")
    return Score(
        raw_score=data["raw_score"],
        weighted_score=data["weighted_score"],
        percentile=data.get("percentile"),
        time_bonus=data.get("time_bonus", 0.0),
        difficulty_bonus=data.get("difficulty_bonus", 0.0),
        streak_bonus=data.get("streak_bonus", 0.0),
        components=ScoreComponents(**data.get("components", {})),
    )
