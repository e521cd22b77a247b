"""FastAPI service driving the engine between storage calls."""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from contextlib import asynccontextmanager

logging.basicConfig(level=logging.INFO, format="%(name)s | %(message)s")

from fastapi import FastAPI, HTTPException, Request

from quiz_engine.config import Settings, load_settings, save_settings
from quiz_engine.errors import QuizEngineError, SerializationError, SessionError
from quiz_engine.models import InteractiveResponse, TopicExplanationAnswer
from quiz_engine.providers.base import ContentProvider, attach_evaluation
from quiz_engine.quiz import ExplanationMode, Quiz, QuizBuilder
from quiz_engine.serialization import (
    answer_from_dict,
    dumps,
    loads,
    question_from_dict,
    quiz_from_dict,
    quiz_key,
    quiz_to_dict,
    score_to_dict,
    session_from_dict,
    session_key,
    session_to_dict,
)
from quiz_engine.session import QuizSession
from quiz_engine.storage import SqliteStorage, Storage

app = FastAPI(title="Quiz Engine")

log = logging.getLogger("quiz_engine.app")

# Global state (initialized in startup)
_storage: Storage | None = None
_settings: Settings | None = None
_provider: ContentProvider | None = None
_quizzes: dict[uuid.UUID, Quiz] = {}  # quiz_id -> shared, read-only quiz
_session_locks: defaultdict[uuid.UUID, asyncio.Lock] = defaultdict(asyncio.Lock)

STATUS_BY_KIND = {
    SessionError.UNKNOWN_QUESTION: 404,
    SessionError.INVALID_STATE: 409,
    SessionError.DUPLICATE_ANSWER: 409,
    SessionError.INCOMPLETE_QUIZ: 409,
    SerializationError.CORRUPT_DOCUMENT: 500,
}


def get_storage() -> Storage:
    assert _storage is not None
    return _storage


def get_settings() -> Settings:
    assert _settings is not None
    return _settings


def _http_error(e: QuizEngineError) -> HTTPException:
    return HTTPException(STATUS_BY_KIND.get(e.kind, 400), {"kind": e.kind, "message": e.message})


def _parse_id(value: str, what: str) -> uuid.UUID:
    try:
        return uuid.UUID(str(value))
    except ValueError:
        raise HTTPException(400, f"Invalid {what} id: {value!r}")


@app.on_event("startup")
async def startup():
    global _storage, _settings
    if _storage is not None:
        return  # Already initialized (e.g. by tests)
    _settings = load_settings()
    _storage = SqliteStorage(_settings.db_full_path)


@app.on_event("shutdown")
async def shutdown():
    if isinstance(_storage, SqliteStorage):
        _storage.close()


# ── Loading and saving ───────────────────────────────────────────────────


def _load_quiz(quiz_id: uuid.UUID) -> Quiz:
    quiz = _quizzes.get(quiz_id)
    if quiz is not None:
        return quiz
    raw = get_storage().get(quiz_key(quiz_id))
    if raw is None:
        raise HTTPException(404, "Quiz not found")
    try:
        quiz = quiz_from_dict(loads(raw))
    except QuizEngineError as e:
        log.error("Could not load quiz %s: %s", quiz_id, e)
        raise _http_error(SerializationError(e.message, SerializationError.CORRUPT_DOCUMENT))
    _quizzes[quiz_id] = quiz
    return quiz


def _find_session_key(session_id: uuid.UUID) -> str:
    suffix = f"/{session_id}"
    for key in get_storage().list("sessions/"):
        if key.endswith(suffix):
            return key
    raise HTTPException(404, "Session not found")


def _load_session(session_id: uuid.UUID) -> QuizSession:
    raw = get_storage().get(_find_session_key(session_id))
    try:
        if raw is None:
            raise SerializationError("Session document disappeared")
        data = loads(raw)
        try:
            quiz_id = uuid.UUID(str(data["quiz_id"]))
        except (KeyError, ValueError) as e:
            raise SerializationError(f"Session document has no valid quiz_id: {e}") from e
        quiz = _load_quiz(quiz_id)
        return session_from_dict(data, quiz)
    except QuizEngineError as e:
        log.error("Could not load session %s: %s", session_id, e)
        raise _http_error(SerializationError(e.message, SerializationError.CORRUPT_DOCUMENT))


def _save_session(session: QuizSession) -> None:
    get_storage().put(session_key(session.user_id, session.id), dumps(session_to_dict(session)))


def _session_view(session: QuizSession) -> dict:
    data = session_to_dict(session)
    data["presented_question_ids"] = [str(q.id) for q in session.presented_questions()]
    data["progress"] = session.progress()
    if session.summary is not None:
        data["summary"] = session.summary.to_dict()
        data["passed"] = session.summary.passed(session.quiz.pass_threshold)
    return data


# ── API: Settings ────────────────────────────────────────────────────────


@app.get("/api/settings")
async def api_get_settings():
    return get_settings().to_dict()


@app.put("/api/settings")
async def api_update_settings(request: Request):
    global _settings
    body = await request.json()
    current = get_settings().to_dict()
    for key, value in body.items():
        if key in current:
            current[key] = value
    _settings = Settings(**current)
    save_settings(_settings)
    return _settings.to_dict()


# ── API: Quizzes ─────────────────────────────────────────────────────────


@app.post("/api/quizzes")
async def api_create_quiz(request: Request):
    body = await request.json()
    try:
        builder = QuizBuilder(body["title"])
        if body.get("description"):
            builder.description(body["description"])
        if "pass_threshold" in body:
            builder.pass_threshold(body["pass_threshold"])
        builder.allow_skip(body.get("allow_skip", True))
        builder.show_explanations(body.get("show_explanations", "after_each"))
        builder.randomize_questions(body.get("randomize_questions", False))
        builder.randomize_answers(body.get("randomize_answers", False))
        for tag in body.get("tags", []):
            builder.add_tag(tag)
        for q in body.get("questions", []):
            q = {"id": str(uuid.uuid4()), "topic_id": str(uuid.uuid4()), **q}
            builder.add_question(question_from_dict(q))
        quiz = builder.build()
    except QuizEngineError as e:
        raise _http_error(e)
    except KeyError as e:
        raise HTTPException(400, f"Missing field: {e}")
    except ValueError as e:
        raise HTTPException(400, str(e))

    get_storage().put(quiz_key(quiz.id), dumps(quiz_to_dict(quiz)))
    _quizzes[quiz.id] = quiz
    log.info("Created quiz %s with %d questions", quiz.id, len(quiz))
    return quiz_to_dict(quiz)


@app.get("/api/quizzes")
async def api_list_quizzes():
    return {"quiz_ids": [key.split("/", 1)[1] for key in get_storage().list("quizzes/")]}


@app.get("/api/quizzes/{quiz_id}")
async def api_get_quiz(quiz_id: str):
    return quiz_to_dict(_load_quiz(_parse_id(quiz_id, "quiz")))


# ── API: Sessions ────────────────────────────────────────────────────────


@app.post("/api/sessions")
async def api_open_session(request: Request):
    body = await request.json()
    if "quiz_id" not in body:
        raise HTTPException(400, "Missing field: quiz_id")
    quiz = _load_quiz(_parse_id(body["quiz_id"], "quiz"))
    user_id = _parse_id(body["user_id"], "user") if body.get("user_id") else None
    session = QuizSession(
        quiz, user_id, allow_resubmission=get_settings().allow_resubmission,
    )
    _save_session(session)
    return _session_view(session)


@app.get("/api/sessions/{session_id}")
async def api_get_session(session_id: str):
    return _session_view(_load_session(_parse_id(session_id, "session")))


@asynccontextmanager
async def _locked_session(sid: uuid.UUID):
    """Load a session under its lock.

    The lock is dropped once the session is terminal (or could not be loaded),
    since no later request can change it.
    """
    lock = _session_locks[sid]
    session = None
    try:
        async with lock:
            session = _load_session(sid)
            yield session
    finally:
        if (session is None or session.state.is_terminal) and _session_locks.get(sid) is lock:
            del _session_locks[sid]


async def _transition(session_id: str, action: str) -> dict:
    sid = _parse_id(session_id, "session")
    async with _locked_session(sid) as session:
        try:
            getattr(session, action)()
        except QuizEngineError as e:
            raise _http_error(e)
        _save_session(session)
        return _session_view(session)


@app.post("/api/sessions/{session_id}/start")
async def api_start(session_id: str):
    return await _transition(session_id, "start")


@app.post("/api/sessions/{session_id}/pause")
async def api_pause(session_id: str):
    return await _transition(session_id, "pause")


@app.post("/api/sessions/{session_id}/resume")
async def api_resume(session_id: str):
    return await _transition(session_id, "resume")


@app.post("/api/sessions/{session_id}/complete")
async def api_complete(session_id: str):
    return await _transition(session_id, "complete")


@app.post("/api/sessions/{session_id}/abandon")
async def api_abandon(session_id: str):
    return await _transition(session_id, "abandon")


@app.post("/api/sessions/{session_id}/answer")
async def api_answer(session_id: str, request: Request):
    sid = _parse_id(session_id, "session")
    body = await request.json()
    try:
        question_id = _parse_id(body["question_id"], "question")
        answer = answer_from_dict(body["answer"])
    except KeyError as e:
        raise HTTPException(400, f"Missing field: {e}")
    except QuizEngineError as e:
        raise _http_error(e)

    # Free-text evaluation happens before the engine call, outside the lock.
    needs_eval = isinstance(answer, (InteractiveResponse, TopicExplanationAnswer)) \
        and answer.evaluation is None
    if needs_eval and _provider is not None:
        question = _load_session(sid).quiz.question(question_id)
        if question is not None:
            try:
                answer = await attach_evaluation(_provider, question, answer)
            except QuizEngineError as e:
                raise _http_error(e)

    async with _locked_session(sid) as session:
        try:
            response = session.submit_answer(question_id, answer, body.get("time_taken_seconds"))
        except QuizEngineError as e:
            raise _http_error(e)
        _save_session(session)

    question = session.quiz.question(question_id)
    result = {
        "correct": response.is_correct,
        "time_taken_seconds": response.time_taken_seconds,
        "attempts": response.attempts,
        "progress": session.progress(),
    }
    if session.quiz.show_explanations_mode is ExplanationMode.AFTER_EACH:
        result["explanation"] = question.explanation
    evaluation = getattr(response.answer, "evaluation", None)
    if evaluation is not None:
        result["feedback"] = evaluation.feedback
    return result


@app.post("/api/sessions/{session_id}/skip")
async def api_skip(session_id: str, request: Request):
    sid = _parse_id(session_id, "session")
    body = await request.json()
    if "question_id" not in body:
        raise HTTPException(400, "Missing field: question_id")
    question_id = _parse_id(body["question_id"], "question")
    async with _locked_session(sid) as session:
        try:
            session.skip_question(question_id)
        except QuizEngineError as e:
            raise _http_error(e)
        _save_session(session)
        return _session_view(session)


@app.get("/api/sessions/{session_id}/score")
async def api_score(session_id: str, strategy: str | None = None):
    session = _load_session(_parse_id(session_id, "session"))
    try:
        scorer = get_settings().strategy(strategy)
    except QuizEngineError as e:
        raise _http_error(e)
    score = scorer.calculate_score(session, session.quiz)
    result = score_to_dict(score)
    result["strategy"] = scorer.name
    result["passed"] = score.passed(session.quiz.pass_threshold)
    return result
