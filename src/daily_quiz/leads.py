"""Lead capture: writes a verified visitor's details with their quiz result."""

from __future__ import annotations

import logging

from daily_quiz.otp import OtpChallengeService, mask_mobile, validate_mobile
from daily_quiz.quiz_models import Lead, QuizOutcome
from daily_quiz.store import LEAD_COLLECTION, DocumentStore

logger = logging.getLogger(__name__)


class UnverifiedMobileError(Exception):
    """The number on the lead is not the one the visitor verified."""


class LeadPersistence:
    def __init__(self, store: DocumentStore) -> None:
        self.store = store

    def submit_lead(
        self,
        name: str,
        mobile: str,
        outcome: QuizOutcome,
        otp: OtpChallengeService,
    ) -> Lead:
        """Persist one lead. Not idempotent: every call writes a new record.

        Raises ValueError for a blank name or malformed number and
        UnverifiedMobileError when ``mobile`` has not been verified by ``otp``.
        """
        name = (name or "").strip()
        if not name:
            raise ValueError("Please enter your name")
        mobile = validate_mobile(mobile)
        if otp.verified_mobile != mobile:
            raise UnverifiedMobileError("Mobile number has not been verified")

        lead = Lead(
            name=name,
            mobile=mobile,
            quiz_id=outcome.quiz_id or None,
            quiz_title=outcome.quiz_title,
            score=outcome.score,
            total_questions=outcome.total_questions,
            responses=[r.model_copy() for r in outcome.responses],
        )
        doc_id = self.store.create(
            LEAD_COLLECTION,
            lead.to_document(),
            timestamp_field="submittedAt",
        )
        logger.info(
            "Lead %s captured for %s (%d/%d)",
            doc_id,
            mask_mobile(mobile),
            lead.score,
            lead.total_questions,
        )
        return Lead.model_validate(self.store.get(LEAD_COLLECTION, doc_id))
