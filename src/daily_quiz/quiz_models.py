"""Quiz data models: stored quizzes, OTP requests, leads and session state."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Record(BaseModel):
    """Base for documents persisted with camelCase field names."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude={"id"})


class Question(Record):
    """A single multiple-choice question as authored.

    ``correct_answer`` is kept exactly as stored: an index, a numeric
    string or the text of one of the options.
    """

    text: str = Field("", validation_alias=AliasChoices("text", "question"))
    options: list[str] = Field(default_factory=list)
    correct_answer: Any = Field(
        None,
        validation_alias=AliasChoices("correctAnswer", "correct_answer", "answer"),
    )

    @field_validator("text", mode="before")
    @classmethod
    def _text_or_blank(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("options", mode="before")
    @classmethod
    def _options_as_text(cls, value: Any) -> list[str]:
        if not isinstance(value, (list, tuple)):
            return []
        return ["" if v is None else str(v) for v in value]


class Quiz(Record):
    """A dated set of questions, one per calendar day."""

    id: str = ""
    title: str = "Daily Quiz"
    description: str = ""
    date: datetime | None = None
    questions: list[Question] = Field(default_factory=list)

    @field_validator("date", mode="before")
    @classmethod
    def _timestamp_object(cls, value: Any) -> Any:
        # Exported store timestamps arrive as {"seconds": ..., "nanoseconds": ...}
        if isinstance(value, dict) and "seconds" in value:
            return datetime.fromtimestamp(value["seconds"], tz=timezone.utc)
        return value

    @field_validator("questions", mode="before")
    @classmethod
    def _questions_or_empty(cls, value: Any) -> Any:
        return value if value is not None else []


class DeliveryStatus(str, Enum):
    pending = "pending"
    sent = "sent"
    failed = "failed"


class OtpRequest(Record):
    """One "send code" action; completed later by the dispatcher."""

    id: str = ""
    mobile_number: str
    code: str
    quiz_id: str | None = None
    created_at: datetime | None = None
    sent_at: datetime | None = None
    expire_at: datetime | None = None
    failed_at: datetime | None = None
    delivery_error: str | None = None

    @property
    def delivery_status(self) -> DeliveryStatus:
        if self.sent_at is not None:
            return DeliveryStatus.sent
        if self.failed_at is not None or self.delivery_error:
            return DeliveryStatus.failed
        return DeliveryStatus.pending


class LeadResponse(Record):
    question_number: int  # 1-based
    selected_option_index: int
    selected_option_text: str


class QuizOutcome(BaseModel):
    """Snapshot of a submitted session, detached from the live session."""

    model_config = ConfigDict(frozen=True)

    quiz_id: str
    quiz_title: str
    score: int
    total_questions: int
    responses: tuple[LeadResponse, ...]


class Lead(Record):
    """A verified user identity plus the quiz outcome it was captured with."""

    id: str = ""
    name: str
    mobile: str
    quiz_id: str | None = None
    quiz_title: str = ""
    score: int = Field(0, ge=0)
    total_questions: int = Field(0, ge=0)
    responses: list[LeadResponse] = Field(default_factory=list)
    submitted_at: datetime | None = None


class SessionPhase(str, Enum):
    """Lifecycle of a quiz session."""

    answering = "answering"
    submitted = "submitted"  # Terminal


class SessionState(BaseModel):
    """Everything a quiz session mutates, kept in one place."""

    current_question_index: int = 0
    responses: list[int | None] = Field(default_factory=list)
    phase: SessionPhase = SessionPhase.answering
    score: int | None = None

    @property
    def submitted(self) -> bool:
        return self.phase == SessionPhase.submitted
