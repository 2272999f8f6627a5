"""Tests for lead capture after OTP verification."""

import pytest

from daily_quiz.leads import LeadPersistence, UnverifiedMobileError
from daily_quiz.otp import OtpChallengeService
from daily_quiz.quiz_models import Question, Quiz
from daily_quiz.session import QuizSessionController
from daily_quiz.store import LEAD_COLLECTION, parse_timestamp


@pytest.fixture
def outcome():
    quiz = Quiz(
        id="quiz1",
        title="Economy",
        questions=[
            Question(text="Q1", options=["RBI", "SEBI", ""], correct_answer="rbi"),
            Question(text="Q2", options=["x", "y", ""], correct_answer="2"),
        ],
    )
    session = QuizSessionController(quiz)
    session.select_option(0)
    session.next()
    session.select_option(2)
    session.submit()
    return session.outcome()


@pytest.fixture
def otp(store, clock):
    return OtpChallengeService(store, clock=clock)


@pytest.fixture
def verified_otp(otp):
    otp.request_code("9876543210", "quiz1")
    assert otp.verify_code(otp.request.code)
    return otp


class TestSubmitLead:
    def test_writes_snapshot(self, store, clock, outcome, verified_otp):
        lead = LeadPersistence(store).submit_lead(" Asha ", "9876543210", outcome, verified_otp)

        assert lead.id
        assert lead.name == "Asha"
        assert lead.mobile == "9876543210"
        assert lead.quiz_id == "quiz1"
        assert lead.quiz_title == "Economy"
        assert lead.score == 2
        assert lead.total_questions == 2
        assert lead.submitted_at == clock.now

        doc = store.get(LEAD_COLLECTION, lead.id)
        assert doc["totalQuestions"] == 2
        assert parse_timestamp(doc["submittedAt"]) == clock.now
        assert doc["responses"] == [
            {"questionNumber": 1, "selectedOptionIndex": 0, "selectedOptionText": "RBI"},
            {"questionNumber": 2, "selectedOptionIndex": 2, "selectedOptionText": "Option 3"},
        ]

    def test_not_idempotent(self, store, outcome, verified_otp):
        leads = LeadPersistence(store)
        leads.submit_lead("Asha", "9876543210", outcome, verified_otp)
        leads.submit_lead("Asha", "9876543210", outcome, verified_otp)
        assert len(store.list_all(LEAD_COLLECTION)) == 2

    @pytest.mark.parametrize("name", ["", "   ", None])
    def test_blank_name(self, store, outcome, verified_otp, name):
        with pytest.raises(ValueError, match="name"):
            LeadPersistence(store).submit_lead(name, "9876543210", outcome, verified_otp)
        assert store.list_all(LEAD_COLLECTION) == []

    def test_bad_mobile(self, store, outcome, verified_otp):
        with pytest.raises(ValueError):
            LeadPersistence(store).submit_lead("Asha", "98765", outcome, verified_otp)
        assert store.list_all(LEAD_COLLECTION) == []

    def test_requires_verification(self, store, outcome, otp):
        otp.request_code("9876543210", "quiz1")
        with pytest.raises(UnverifiedMobileError):
            LeadPersistence(store).submit_lead("Asha", "9876543210", outcome, otp)
        assert store.list_all(LEAD_COLLECTION) == []

    def test_verified_number_must_match(self, store, outcome, verified_otp):
        with pytest.raises(UnverifiedMobileError):
            LeadPersistence(store).submit_lead("Asha", "9123456780", outcome, verified_otp)

    def test_unverified_is_not_a_filesystem_error(self):
        assert not issubclass(UnverifiedMobileError, OSError)

    def test_snapshot_is_detached_from_session(self, store, clock, verified_otp):
        quiz = Quiz(id="q", questions=[Question(text="Q", options=["a", "b"], correct_answer=0)])
        session = QuizSessionController(quiz)
        session.select_option(0)
        session.submit()
        outcome = session.outcome()
        session.state.responses[0] = 1
        lead = LeadPersistence(store).submit_lead("Asha", "9876543210", outcome, verified_otp)
        assert lead.responses[0].selected_option_index == 0
