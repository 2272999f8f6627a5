"""Quiz session: per-visitor navigation, answer recording and scoring.

A session is either answering or submitted. ``select_option`` and
``go_to`` move freely while answering; ``submit`` is the only way into the
submitted phase and needs every question answered. Nothing leaves the
submitted phase, and the score is fixed when it is entered.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel

from daily_quiz.answers import (
    is_correct,
    option_text,
    resolve_answer_index,
    resolve_display_answer,
)
from daily_quiz.quiz_models import (
    LeadResponse,
    Quiz,
    QuizOutcome,
    SessionPhase,
    SessionState,
)

logger = logging.getLogger(__name__)


class AnswerFeedback(BaseModel):
    """Immediate feedback for the answered question on screen."""

    selected_index: int
    is_correct: bool
    correct_index: int | None = None
    correct_text: str | None = None

    @property
    def message(self) -> str:
        if self.is_correct:
            return "Correct! Well done!"
        if self.correct_text is None:
            return "Wrong!"
        return f"Wrong! The correct answer is: {self.correct_text}"


class QuizSessionController:
    def __init__(self, quiz: Quiz) -> None:
        self.quiz = quiz
        self.state = SessionState(responses=[None] * len(quiz.questions))

    @property
    def question_count(self) -> int:
        return len(self.quiz.questions)

    @property
    def submitted(self) -> bool:
        return self.state.submitted

    @property
    def score(self) -> int | None:
        return self.state.score

    @property
    def can_submit(self) -> bool:
        # Empty quizzes never complete, so they get no submit affordance
        return (
            not self.state.submitted
            and self.question_count > 0
            and not self.unanswered()
        )

    def unanswered(self) -> list[int]:
        return [i for i, r in enumerate(self.state.responses) if r is None]

    def select_option(self, index: int) -> bool:
        """Record ``index`` for the current question. Returns False if rejected."""
        if self.state.submitted:
            logger.debug("Ignoring selection after submission")
            return False
        if self.question_count == 0:
            return False
        current = self.state.current_question_index
        question = self.quiz.questions[current]
        if not 0 <= index < len(question.options):
            logger.debug("Option %d out of range for question %d", index, current)
            return False
        self.state.responses[current] = index
        return True

    def go_to(self, question_index: int) -> bool:
        if not 0 <= question_index < self.question_count:
            return False
        self.state.current_question_index = question_index
        return True

    def next(self) -> bool:
        return self.go_to(self.state.current_question_index + 1)

    def previous(self) -> bool:
        return self.go_to(self.state.current_question_index - 1)

    def feedback(self) -> AnswerFeedback | None:
        """Feedback for the current question, or None while unanswered."""
        if self.question_count == 0:
            return None
        current = self.state.current_question_index
        selected = self.state.responses[current]
        if selected is None:
            return None
        question = self.quiz.questions[current]
        return AnswerFeedback(
            selected_index=selected,
            is_correct=is_correct(question, selected),
            correct_index=resolve_answer_index(question),
            correct_text=resolve_display_answer(question),
        )

    def submit(self) -> bool:
        """Score the session. Rejected unless every question is answered."""
        if not self.can_submit:
            logger.debug(
                "Submit rejected (submitted=%s, unanswered=%s)",
                self.state.submitted,
                self.unanswered(),
            )
            return False
        score = sum(
            1
            for question, selected in zip(self.quiz.questions, self.state.responses)
            if is_correct(question, selected)
        )
        self.state.score = score
        self.state.phase = SessionPhase.submitted
        logger.info(
            "Quiz %s submitted: %d/%d", self.quiz.id, score, self.question_count
        )
        return True

    def outcome(self) -> QuizOutcome:
        """Detached snapshot of a submitted session for lead capture."""
        if not self.state.submitted or self.state.score is None:
            raise RuntimeError("Quiz session has not been submitted")
        responses = tuple(
            LeadResponse(
                question_number=i + 1,
                selected_option_index=selected,
                selected_option_text=option_text(question, selected),
            )
            for i, (question, selected) in enumerate(
                zip(self.quiz.questions, self.state.responses)
            )
        )
        return QuizOutcome(
            quiz_id=self.quiz.id,
            quiz_title=self.quiz.title,
            score=self.state.score,
            total_questions=self.question_count,
            responses=responses,
        )
