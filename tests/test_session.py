"""Tests for the quiz session state machine."""

import pytest

from daily_quiz.quiz_models import Question, Quiz, SessionPhase
from daily_quiz.session import QuizSessionController


@pytest.fixture
def quiz():
    return Quiz(
        id="quiz1",
        title="Polity",
        questions=[
            Question(text="Q1", options=["A", "B", "C"], correct_answer=1),
            Question(text="Q2", options=["a", "b", "C"], correct_answer="c"),
        ],
    )


@pytest.fixture
def session(quiz):
    return QuizSessionController(quiz)


class TestAnswering:
    def test_initial_state(self, session):
        assert session.state.phase == SessionPhase.answering
        assert session.state.responses == [None, None]
        assert session.state.current_question_index == 0
        assert session.score is None
        assert not session.can_submit

    def test_select_records_without_advancing(self, session):
        assert session.select_option(2)
        assert session.state.responses == [2, None]
        assert session.state.current_question_index == 0

    def test_reselect_overwrites(self, session):
        session.select_option(0)
        session.select_option(1)
        assert session.state.responses[0] == 1

    def test_select_out_of_range(self, session):
        assert not session.select_option(3)
        assert not session.select_option(-1)
        assert session.state.responses == [None, None]

    def test_go_to_bounds(self, session):
        assert session.go_to(1)
        assert session.state.current_question_index == 1
        assert not session.go_to(2)
        assert not session.go_to(-1)
        assert session.state.current_question_index == 1

    def test_next_and_previous_clamp(self, session):
        assert not session.previous()
        assert session.next()
        assert not session.next()
        assert session.state.current_question_index == 1

    def test_go_to_restores_answer_and_feedback(self, session):
        session.select_option(0)
        session.go_to(1)
        assert session.feedback() is None
        session.go_to(0)
        fb = session.feedback()
        assert fb.selected_index == 0
        assert not fb.is_correct
        assert fb.correct_index == 1
        assert fb.message == "Wrong! The correct answer is: B"

    def test_correct_feedback(self, session):
        session.select_option(1)
        fb = session.feedback()
        assert fb.is_correct
        assert fb.message == "Correct! Well done!"


class TestSubmit:
    def test_scenario_full_marks(self, session):
        session.select_option(1)
        session.go_to(1)
        session.select_option(2)
        assert session.submit()
        assert session.submitted
        assert session.score == 2

    def test_partial_score(self, session):
        session.select_option(0)
        session.next()
        session.select_option(2)
        session.submit()
        assert session.score == 1

    def test_submit_requires_every_answer(self, session):
        session.select_option(1)
        assert session.unanswered() == [1]
        assert not session.submit()
        assert not session.submitted
        assert session.score is None

    def test_submitted_is_terminal(self, session):
        session.select_option(0)
        session.next()
        session.select_option(2)
        session.submit()
        responses = list(session.state.responses)

        session.go_to(1)
        assert not session.select_option(0)
        session.go_to(0)
        assert not session.select_option(1)
        assert not session.submit()
        assert session.state.responses == responses
        assert session.score == 1
        assert session.state.phase == SessionPhase.submitted

    def test_empty_quiz_never_completes(self):
        empty = QuizSessionController(Quiz(id="empty", questions=[]))
        assert not empty.can_submit
        assert not empty.select_option(0)
        assert not empty.submit()
        assert empty.feedback() is None

    def test_question_without_answer_key_scores_zero(self):
        quiz = Quiz(questions=[Question(text="?", options=["x", "y"], correct_answer=None)])
        session = QuizSessionController(quiz)
        session.select_option(0)
        assert session.feedback().message == "Wrong!"
        assert session.submit()
        assert session.score == 0


class TestOutcome:
    def test_requires_submission(self, session):
        with pytest.raises(RuntimeError):
            session.outcome()

    def test_snapshot(self, session):
        session.select_option(1)
        session.next()
        session.select_option(0)
        session.submit()
        outcome = session.outcome()
        assert outcome.quiz_id == "quiz1"
        assert outcome.quiz_title == "Polity"
        assert outcome.score == 1
        assert outcome.total_questions == 2
        assert [(r.question_number, r.selected_option_index, r.selected_option_text) for r in outcome.responses] == [
            (1, 1, "B"),
            (2, 0, "a"),
        ]
