"""Exception taxonomy for the quiz engine.

Every error carries a short machine-readable ``kind`` alongside its message so
callers can branch on it without parsing text.
"""
from __future__ import annotations


class QuizEngineError(Exception):
    kind = "quiz_engine_error"

    def __init__(self, message: str, kind: str | None = None):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind

    def __str__(self) -> str:
        return self.message


class QuestionError(QuizEngineError, ValueError):
    """A question was constructed with data that breaks its invariants."""

    kind = "invalid_question"


class ValidationError(QuizEngineError):
    ANSWER_TYPE_MISMATCH = "answer_type_mismatch"
    INDEX_OUT_OF_BOUNDS = "index_out_of_bounds"
    EMPTY_SELECTION = "empty_selection"
    DUPLICATE_SELECTION = "duplicate_selection"
    WRONG_BLANK_COUNT = "wrong_blank_count"
    MALFORMED_ANSWER = "malformed_answer"
    MISSING_EVALUATION = "missing_evaluation"

    kind = MALFORMED_ANSWER


class SessionError(QuizEngineError):
    INVALID_STATE = "invalid_state"
    UNKNOWN_QUESTION = "unknown_question"
    DUPLICATE_ANSWER = "duplicate_answer"
    INCOMPLETE_QUIZ = "incomplete_quiz"

    kind = INVALID_STATE


class BuildError(QuizEngineError):
    kind = "build_error"


class EmptyQuizError(BuildError):
    kind = "empty_quiz"


class InvalidThresholdError(BuildError):
    kind = "invalid_threshold"


class ScoringError(QuizEngineError):
    kind = "invalid_strategy"


class SerializationError(QuizEngineError):
    CORRUPT_DOCUMENT = "corrupt_document"

    kind = "serialization_error"
