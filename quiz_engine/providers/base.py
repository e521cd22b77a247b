from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import replace
from typing import Any

from quiz_engine.errors import ValidationError
from quiz_engine.models import (
    Answer,
    Evaluation,
    InteractiveResponse,
    Question,
    TopicExplanationAnswer,
)

log = logging.getLogger("quiz_engine.providers")


class ContentProvider(ABC):
    """Question generation and free-text evaluation, usually LLM-backed.

    Callers invoke a provider between engine calls and attach the resulting
    ``Evaluation`` to a free-text answer before submitting it.
    """

    @abstractmethod
    async def generate_question(self, params: dict[str, Any]) -> Question:
        ...

    @abstractmethod
    async def evaluate_free_text(self, question: Question, answer_text: str) -> Evaluation:
        ...

    @abstractmethod
    def name(self) -> str:
        ...


def answer_text(answer: Answer) -> str:
    if isinstance(answer, InteractiveResponse):
        parts = answer.responses
    elif isinstance(answer, TopicExplanationAnswer):
        parts = (answer.explanation,)
    else:
        raise TypeError(f"{type(answer).__name__} is not a free-text answer")
    if not all(isinstance(p, str) for p in parts):
        raise ValidationError("Free-text answers must be strings", ValidationError.MALFORMED_ANSWER)
    return "\n".join(parts)


async def attach_evaluation(provider: ContentProvider, question: Question, answer: Answer) -> Answer:
    """Return *answer* carrying the provider's evaluation of its text."""
    evaluation = await provider.evaluate_free_text(question, answer_text(answer))
    log.info("%s scored %s answer %.2f", provider.name(), question.kind_name, evaluation.score)
    return replace(answer, evaluation=evaluation)
