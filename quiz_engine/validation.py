"""Answer checking for every question kind.

``validate_answer`` is pure: it returns whether the answer is correct or raises
``ValidationError`` when the answer cannot be judged at all.  Free-text kinds are
judged by the external evaluator; here we only check shape and read the
attached ``Evaluation``.
"""
from __future__ import annotations

from typing import Callable

from quiz_engine.errors import ValidationError
from quiz_engine.models import (
    QUESTION_KINDS,
    Answer,
    Evaluation,
    FillInTheBlank,
    FillInTheBlankAnswer,
    InteractiveInterview,
    InteractiveResponse,
    MatchPairs,
    MatchPairsAnswer,
    MultiSelect,
    MultiSelectAnswer,
    MultipleChoice,
    MultipleChoiceAnswer,
    Question,
    TopicExplanation,
    TopicExplanationAnswer,
    TrueFalse,
    TrueFalseAnswer,
)

# Minimum evaluator score for a topic explanation to count as correct.
TOPIC_EXPLANATION_PASS_SCORE = 0.5


def word_count(text: str) -> int:
    return len(text.split())


def _malformed(message: str) -> ValidationError:
    return ValidationError(message, ValidationError.MALFORMED_ANSWER)


def _check_int(value, what: str) -> None:
    # bool is an int subclass; True must not pass as option 1
    if isinstance(value, bool) or not isinstance(value, int):
        raise _malformed(f"{what} must be an integer, got {type(value).__name__}")


def _check_text(value, what: str) -> None:
    if not isinstance(value, str):
        raise _malformed(f"{what} must be a string, got {type(value).__name__}")


def _check_index(index: int, size: int) -> None:
    _check_int(index, "Option index")
    if not 0 <= index < size:
        raise ValidationError(
            f"Option index {index} is out of bounds for {size} options",
            ValidationError.INDEX_OUT_OF_BOUNDS,
        )


def _require_evaluation(evaluation: Evaluation | None) -> Evaluation:
    if evaluation is None:
        raise ValidationError(
            "Free-text answers must carry an evaluation before they can be scored",
            ValidationError.MISSING_EVALUATION,
        )
    if not isinstance(evaluation, Evaluation):
        raise _malformed(f"evaluation must be an Evaluation, got {type(evaluation).__name__}")
    return evaluation


def _true_false(q: TrueFalse, a: TrueFalseAnswer) -> bool:
    if not isinstance(a.value, bool):
        raise _malformed(f"True/false answer must be a boolean, got {type(a.value).__name__}")
    return a.value == q.correct_answer


def _multiple_choice(q: MultipleChoice, a: MultipleChoiceAnswer) -> bool:
    _check_index(a.index, len(q.options))
    return a.index == q.correct_index


def _multi_select(q: MultiSelect, a: MultiSelectAnswer) -> bool:
    if not a.indices:
        raise ValidationError("No options were selected", ValidationError.EMPTY_SELECTION)
    for idx in a.indices:
        _check_index(idx, len(q.options))
    if len(set(a.indices)) != len(a.indices):
        raise ValidationError(
            "The same option was selected more than once",
            ValidationError.DUPLICATE_SELECTION,
        )
    return set(a.indices) == set(q.correct_indices)


def _fill_in_the_blank(q: FillInTheBlank, a: FillInTheBlankAnswer) -> bool:
    if len(a.answers) != len(q.correct_answers):
        raise ValidationError(
            f"Expected {len(q.correct_answers)} blanks, got {len(a.answers)}",
            ValidationError.WRONG_BLANK_COUNT,
        )
    for given in a.answers:
        _check_text(given, "Blank answer")
    for given, expected in zip(a.answers, q.correct_answers):
        if not q.case_sensitive:
            given, expected = given.lower(), expected.lower()
        if given != expected:
            return False
    return True


def _match_pairs(q: MatchPairs, a: MatchPairsAnswer) -> bool:
    for pair in a.pairs:
        if not isinstance(pair, tuple) or len(pair) != 2:
            raise _malformed(f"Each pair must hold a left and a right index, got {pair!r}")
        _check_int(pair[0], "Left index")
        _check_int(pair[1], "Right index")
    for left, right in a.pairs:
        if not 0 <= left < len(q.left_items) or not 0 <= right < len(q.right_items):
            raise ValidationError(
                f"Pair ({left}, {right}) references a missing item",
                ValidationError.INDEX_OUT_OF_BOUNDS,
            )
    return set(a.pairs) == set(q.correct_pairs)


def _interactive_interview(q: InteractiveInterview, a: InteractiveResponse) -> bool:
    for r in a.responses:
        _check_text(r, "Interview response")
    if not a.responses or not all(r.strip() for r in a.responses):
        raise ValidationError(
            "Interview responses must be non-empty",
            ValidationError.MALFORMED_ANSWER,
        )
    evaluation = _require_evaluation(a.evaluation)
    return evaluation.score >= q.comprehension_threshold


def _topic_explanation(q: TopicExplanation, a: TopicExplanationAnswer) -> bool:
    _check_text(a.explanation, "Explanation")
    if not a.explanation.strip():
        raise ValidationError("Explanation must not be empty", ValidationError.MALFORMED_ANSWER)
    evaluation = _require_evaluation(a.evaluation)
    if word_count(a.explanation) < q.min_word_count:
        return False
    return evaluation.score >= TOPIC_EXPLANATION_PASS_SCORE


_VALIDATORS: dict[type, tuple[type, Callable[..., bool]]] = {
    TrueFalse: (TrueFalseAnswer, _true_false),
    MultipleChoice: (MultipleChoiceAnswer, _multiple_choice),
    MultiSelect: (MultiSelectAnswer, _multi_select),
    FillInTheBlank: (FillInTheBlankAnswer, _fill_in_the_blank),
    MatchPairs: (MatchPairsAnswer, _match_pairs),
    InteractiveInterview: (InteractiveResponse, _interactive_interview),
    TopicExplanation: (TopicExplanationAnswer, _topic_explanation),
}


def validate_answer(question: Question, answer: Answer) -> bool:
    """Return True when *answer* is correct for *question*.

    Raises ValidationError when the answer kind does not match the question kind
    or the answer is malformed for it.
    """
    answer_type, check = _VALIDATORS[type(question.variant)]
    if not isinstance(answer, answer_type):
        raise ValidationError(
            f"Answer of kind {getattr(answer, 'kind', type(answer).__name__)!r} "
            f"does not match question kind {question.kind_name!r}",
            ValidationError.ANSWER_TYPE_MISMATCH,
        )
    return check(question.variant, answer)


# ── Known-correct answers ────────────────────────────────────────────────


def _perfect() -> Evaluation:
    return Evaluation(score=1.0, feedback="Complete and accurate.")


def correct_answer_for(question: Question) -> Answer:
    """Build an answer that ``validate_answer`` accepts as correct."""
    v = question.variant
    if isinstance(v, TrueFalse):
        return TrueFalseAnswer(v.correct_answer)
    if isinstance(v, MultipleChoice):
        return MultipleChoiceAnswer(v.correct_index)
    if isinstance(v, MultiSelect):
        return MultiSelectAnswer(tuple(sorted(v.correct_indices)))
    if isinstance(v, FillInTheBlank):
        return FillInTheBlankAnswer(v.correct_answers)
    if isinstance(v, MatchPairs):
        return MatchPairsAnswer(v.correct_pairs)
    if isinstance(v, InteractiveInterview):
        return InteractiveResponse(
            responses=(f"A thorough answer about {v.topic}.",),
            evaluation=_perfect(),
        )
    if isinstance(v, TopicExplanation):
        words = list(v.key_concepts) or [v.topic or "concept"]
        text = " ".join(words[i % len(words)] for i in range(max(v.min_word_count, len(words))))
        return TopicExplanationAnswer(explanation=text, evaluation=_perfect())
    raise TypeError(f"unsupported question kind: {type(v).__name__}")


_missing = [k.__name__ for k in QUESTION_KINDS if k not in _VALIDATORS]
if _missing:
    raise RuntimeError(f"No validator registered for: {', '.join(_missing)}")
