"""Tests for JSON codecs and storage keys."""
from __future__ import annotations

import uuid

import pytest

from quiz_engine.errors import SerializationError
from quiz_engine.models import (
    Evaluation,
    InteractiveResponse,
    MatchPairsAnswer,
    MultipleChoiceAnswer,
)
from quiz_engine.quiz import QuizBuilder
from quiz_engine.scoring import AdaptiveScoring
from quiz_engine.serialization import (
    SCHEMA_VERSION,
    answer_from_dict,
    answer_to_dict,
    dumps,
    loads,
    question_from_dict,
    question_to_dict,
    quiz_from_dict,
    quiz_key,
    quiz_to_dict,
    score_from_dict,
    score_to_dict,
    session_from_dict,
    session_key,
    session_to_dict,
)
from quiz_engine.session import QuizSession, SessionState


class TestKeys:
    def test_quiz_key(self):
        qid = uuid.uuid4()
        assert quiz_key(qid) == f"quizzes/{qid}"

    def test_session_key(self):
        uid, sid = uuid.uuid4(), uuid.uuid4()
        assert session_key(uid, sid) == f"sessions/{uid}/{sid}"
        assert session_key(None, sid) == f"sessions/anonymous/{sid}"


class TestQuestions:
    def test_every_kind_survives(self, all_kinds):
        for q in all_kinds:
            assert question_from_dict(question_to_dict(q)) == q

    def test_unknown_kind(self, all_kinds):
        data = question_to_dict(all_kinds[0])
        data["kind"] = "essay"
        with pytest.raises(SerializationError):
            question_from_dict(data)

    def test_invalid_payload(self, all_kinds):
        data = question_to_dict(all_kinds[1])
        data["data"]["correct_index"] = 10
        with pytest.raises(SerializationError):
            question_from_dict(data)


class TestAnswers:
    def test_evaluation_kept(self):
        answer = InteractiveResponse(["first", "second"], 12.0, Evaluation(0.8, "Good"))
        assert answer_from_dict(answer_to_dict(answer)) == answer

    def test_pairs_become_tuples(self):
        data = answer_to_dict(MatchPairsAnswer([(0, 1), (1, 0)]))
        assert answer_from_dict(data).pairs == ((0, 1), (1, 0))

    def test_unknown_fields_ignored(self):
        answer = answer_from_dict({"kind": "multiple_choice", "index": 2, "client": "web"})
        assert answer == MultipleChoiceAnswer(2)

    def test_unknown_kind(self):
        with pytest.raises(SerializationError):
            answer_from_dict({"kind": "essay", "text": "hi"})

    def test_missing_field(self):
        with pytest.raises(SerializationError):
            answer_from_dict({"kind": "multiple_choice"})


class TestQuiz:
    def test_round_trip(self, all_kinds, clock):
        quiz = (
            QuizBuilder("Everything", clock=clock)
            .description("One of each")
            .add_questions(all_kinds)
            .show_explanations("at_end")
            .add_tag("mixed")
            .build()
        )
        data = quiz_to_dict(quiz)
        assert data["version"] == SCHEMA_VERSION
        assert quiz_from_dict(loads(dumps(data))) == quiz

    def test_unsupported_version(self, two_mc_quiz):
        data = quiz_to_dict(two_mc_quiz)
        data["version"] = 2
        with pytest.raises(SerializationError):
            quiz_from_dict(data)

    def test_missing_questions(self, two_mc_quiz):
        data = quiz_to_dict(two_mc_quiz)
        del data["questions"]
        with pytest.raises(SerializationError):
            quiz_from_dict(data)

    @pytest.mark.parametrize("field,value", [
        ("questions", []),
        ("pass_threshold", 1.5),
        ("pass_threshold", -0.1),
        ("pass_threshold", "0.5"),
        ("pass_threshold", None),
        ("metadata", None),
    ])
    def test_invariants_rechecked(self, two_mc_quiz, field, value):
        data = quiz_to_dict(two_mc_quiz)
        data[field] = value
        with pytest.raises(SerializationError):
            quiz_from_dict(data)

    def test_duplicate_question_ids(self, two_mc_quiz):
        data = quiz_to_dict(two_mc_quiz)
        data["questions"] = data["questions"] + data["questions"][:1]
        with pytest.raises(SerializationError):
            quiz_from_dict(data)

    def test_metadata_stays_read_only(self, two_mc_quiz):
        data = quiz_to_dict(two_mc_quiz)
        data["metadata"] = {"origin": "import"}
        quiz = quiz_from_dict(data)
        assert quiz_to_dict(quiz)["metadata"] == {"origin": "import"}
        with pytest.raises(TypeError):
            quiz.metadata["origin"] = "edited"


class TestSession:
    def test_round_trip_in_progress(self, two_mc_quiz, clock):
        user = uuid.uuid4()
        session = QuizSession(two_mc_quiz, user, clock=clock)
        session.start()
        clock.advance(4)
        session.submit_answer(two_mc_quiz.questions[0].id, MultipleChoiceAnswer(1))
        session.skip_question(two_mc_quiz.questions[1].id)
        session.pause()

        restored = session_from_dict(loads(dumps(session_to_dict(session))), two_mc_quiz, clock=clock)
        assert restored.id == session.id
        assert restored.user_id == user
        assert restored.state is SessionState.PAUSED
        assert restored.responses == session.responses
        assert restored.skipped_question_ids == session.skipped_question_ids
        assert restored.paused_at == session.paused_at

        clock.advance(30)
        restored.resume()
        clock.advance(6)
        response = restored.submit_answer(two_mc_quiz.questions[1].id, MultipleChoiceAnswer(0))
        assert response.time_taken_seconds == 6

    def test_quiz_referenced_by_id(self, two_mc_quiz):
        data = session_to_dict(QuizSession(two_mc_quiz))
        assert data["quiz_id"] == str(two_mc_quiz.id)
        assert "questions" not in data

    def test_completed_session_rebuilds_summary(self, two_mc_quiz, clock):
        session = QuizSession(two_mc_quiz, clock=clock)
        session.start()
        session.submit_answer(two_mc_quiz.questions[0].id, MultipleChoiceAnswer(1), 3)
        session.complete()
        restored = session_from_dict(session_to_dict(session), two_mc_quiz, clock=clock)
        assert restored.summary == session.summary

    def test_wrong_quiz(self, two_mc_quiz, strict_quiz):
        data = session_to_dict(QuizSession(two_mc_quiz))
        with pytest.raises(SerializationError):
            session_from_dict(data, strict_quiz)


class TestScore:
    def test_round_trip(self, two_mc_quiz, clock):
        session = QuizSession(two_mc_quiz, clock=clock)
        session.start()
        session.submit_answer(two_mc_quiz.questions[0].id, MultipleChoiceAnswer(1), 3)
        score = AdaptiveScoring().calculate_score(session, two_mc_quiz).with_percentile(50.0)
        assert score_from_dict(loads(dumps(score_to_dict(score)))) == score


class TestLoads:
    def test_invalid_json(self):
        with pytest.raises(SerializationError):
            loads(b"{not json")

    def test_not_an_object(self):
        with pytest.raises(SerializationError):
            loads(b"[1, 2]")
