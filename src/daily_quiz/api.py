"""FastAPI HTTP layer for the daily quiz, OTP and lead-capture flow."""

from __future__ import annotations

import hmac
import logging
import threading
import time
import uuid
from contextlib import asynccontextmanager
from datetime import date
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from daily_quiz import config
from daily_quiz.dispatcher import NotificationDispatcher
from daily_quiz.events import EventQueue
from daily_quiz.leads import LeadPersistence, UnverifiedMobileError
from daily_quiz.otp import OTP_VALIDITY, OtpChallengeService
from daily_quiz.quiz_dates import QuizDateResolver
from daily_quiz.quiz_models import DeliveryStatus, Quiz
from daily_quiz.session import QuizSessionController
from daily_quiz.store import QUIZ_COLLECTION, DocumentStore

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the OTP dispatch worker for as long as the app is serving."""
    events.start(dispatcher.handle, on_give_up=dispatcher.give_up)
    try:
        yield
    finally:
        events.stop()


app = FastAPI(
    title="Daily Quiz API",
    description="Daily quiz delivery, scoring and OTP-verified lead capture",
    version="0.1.0",
    lifespan=lifespan,
)

if not config.API_KEY:
    logger.warning("API_KEY not set. All requests will be allowed.")


@app.middleware("http")
async def verify_api_key(request: Request, call_next):
    if config.API_KEY and request.url.path != "/health":
        key = request.headers.get("x-api-key", "")
        if not hmac.compare_digest(key, config.API_KEY):
            return JSONResponse(status_code=401, content={"detail": "Invalid API key"})
    return await call_next(request)


@app.get("/health")
def health():
    """Unauthenticated health check."""
    return {"status": "ok"}


events = EventQueue()
store = DocumentStore(events=events)
resolver = QuizDateResolver(store)
lead_persistence = LeadPersistence(store)
dispatcher = NotificationDispatcher(store)


class WebSession:
    """Server-held state for one visitor's pass through a quiz."""

    def __init__(self, quiz: Quiz) -> None:
        self.id = uuid.uuid4().hex
        self.created_at = session_clock()
        self.controller = QuizSessionController(quiz)
        self.otp = OtpChallengeService(store, clock=store.clock)
        self.lead_id: str | None = None
        self.lock = threading.Lock()


# Monotonic seconds; replaced in tests
session_clock = time.monotonic

sessions: dict[str, WebSession] = {}
_sessions_lock = threading.Lock()


def _expired(web: WebSession, now: float) -> bool:
    return now - web.created_at > config.SESSION_TTL_SECONDS


def prune_sessions() -> int:
    """Drop expired sessions, then the oldest ones beyond the cap.

    Leaves room for one more session. Returns the number dropped.
    """
    now = session_clock()
    with _sessions_lock:
        stale = [sid for sid, web in sessions.items() if _expired(web, now)]
        if config.SESSION_MAX_ACTIVE > 0:
            # Dicts keep insertion order, so the front holds the oldest sessions
            overflow = len(sessions) - len(stale) - (config.SESSION_MAX_ACTIVE - 1)
            if overflow > 0:
                stale += [sid for sid in sessions if sid not in stale][:overflow]
        for sid in stale:
            del sessions[sid]
    if stale:
        logger.info("Dropped %d quiz sessions", len(stale))
    return len(stale)


# --- Request models ---


class StartSessionRequest(BaseModel):
    day: date | None = Field(None, alias="date")


class SelectOptionRequest(BaseModel):
    index: int


class GoToRequest(BaseModel):
    question_index: int


class OtpSendRequest(BaseModel):
    mobile: str


class OtpVerifyRequest(BaseModel):
    code: str


class LeadRequest(BaseModel):
    name: str
    mobile: str


# --- Helpers ---


def action_error(status_code: int, action: str, message: str, **extra: Any):
    """Inline, action-keyed failure the page can show next to the control."""
    return HTTPException(
        status_code=status_code,
        detail={"action": action, "message": message, **extra},
    )


def public_quiz(quiz: Quiz) -> dict[str, Any]:
    """Quiz as shown to visitors; correct answers stay on the server."""
    return {
        "id": quiz.id,
        "title": quiz.title,
        "description": quiz.description,
        "date": quiz.date.isoformat() if quiz.date else None,
        "questions": [
            {"text": q.text, "options": q.options} for q in quiz.questions
        ],
    }


def session_view(web: WebSession) -> dict[str, Any]:
    controller = web.controller
    feedback = controller.feedback()
    return {
        "session_id": web.id,
        "quiz": public_quiz(controller.quiz),
        "state": {
            "current_question_index": controller.state.current_question_index,
            "responses": controller.state.responses,
            "submitted": controller.submitted,
            "score": controller.score,
            "total_questions": controller.question_count,
            "can_submit": controller.can_submit,
            "unanswered": controller.unanswered(),
        },
        "feedback": (
            {**feedback.model_dump(), "message": feedback.message} if feedback else None
        ),
        "otp_verified": web.otp.verified,
        "lead_id": web.lead_id,
    }


def get_session(session_id: str) -> WebSession:
    web = sessions.get(session_id)
    if web is not None and _expired(web, session_clock()):
        sessions.pop(session_id, None)
        web = None
    if web is None:
        raise HTTPException(status_code=404, detail=f"Session not found: {session_id}")
    return web


# --- Quiz endpoints ---


@app.get("/api/quizzes/today")
def todays_quiz():
    """Today's quiz, or null when none is available."""
    quiz = resolver.resolve()
    return {"quiz": public_quiz(quiz) if quiz else None}


@app.get("/api/quizzes/by-date")
def quiz_for_date(day: date = Query(..., alias="date")):
    """The quiz for a calendar-selected day, or null."""
    quiz = resolver.resolve(day)
    return {"quiz": public_quiz(quiz) if quiz else None}


@app.post("/api/quizzes")
def create_quiz(quiz: Quiz):
    """Publish a quiz (authoring interface)."""
    quiz.id = store.create(QUIZ_COLLECTION, quiz.to_document())
    return quiz.model_dump(mode="json", by_alias=True)


@app.get("/api/quizzes/{quiz_id}")
def get_quiz(quiz_id: str):
    """Load a quiz by ID, answers included."""
    try:
        return Quiz.model_validate(store.get(QUIZ_COLLECTION, quiz_id)).model_dump(
            mode="json", by_alias=True
        )
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail=f"Quiz not found: {quiz_id}")


# --- Session endpoints ---


@app.post("/api/sessions")
def start_session(req: StartSessionRequest | None = None):
    """Start answering the quiz for a day (today by default)."""
    day = req.day if req else None
    quiz = resolver.resolve(day)
    if quiz is None:
        raise action_error(404, "load-quiz", "No quiz available for this day")
    prune_sessions()
    web = WebSession(quiz)
    with _sessions_lock:
        sessions[web.id] = web
    return session_view(web)


@app.get("/api/sessions/{session_id}")
def read_session(session_id: str):
    return session_view(get_session(session_id))


@app.post("/api/sessions/{session_id}/select")
def select_option(session_id: str, req: SelectOptionRequest):
    web = get_session(session_id)
    with web.lock:
        if web.controller.submitted:
            raise action_error(409, "select", "Quiz already submitted")
        if not web.controller.select_option(req.index):
            raise action_error(422, "select", f"Invalid option: {req.index}")
        return session_view(web)


@app.post("/api/sessions/{session_id}/goto")
def go_to_question(session_id: str, req: GoToRequest):
    web = get_session(session_id)
    with web.lock:
        if not web.controller.go_to(req.question_index):
            raise action_error(422, "goto", f"No question {req.question_index}")
        return session_view(web)


@app.post("/api/sessions/{session_id}/submit")
def submit_quiz(session_id: str):
    web = get_session(session_id)
    with web.lock:
        controller = web.controller
        if controller.submitted:
            raise action_error(409, "submit", "Quiz already submitted")
        if not controller.submit():
            raise action_error(
                422,
                "submit",
                "Please answer every question before submitting",
                unanswered=controller.unanswered(),
            )
        return session_view(web)


@app.post("/api/sessions/{session_id}/otp")
def send_otp(session_id: str, req: OtpSendRequest):
    """Generate a code and queue it for SMS delivery."""
    web = get_session(session_id)
    with web.lock:
        if not web.controller.submitted:
            raise action_error(409, "send-otp", "Submit the quiz first")
        if web.lead_id is not None:
            raise action_error(409, "send-otp", "Details already submitted")
        try:
            web.otp.request_code(req.mobile, web.controller.quiz.id or None)
        except ValueError as e:
            raise action_error(422, "send-otp", str(e))
        except OSError as e:
            logger.error("OTP request write failed: %s", e)
            raise action_error(503, "send-otp", "Could not send OTP, try again")
        return {
            "status": "sent",
            "expires_in_seconds": int(OTP_VALIDITY.total_seconds()),
        }


@app.get("/api/sessions/{session_id}/otp")
def otp_delivery(session_id: str):
    """Delivery state of the latest code: pending, sent or failed."""
    web = get_session(session_id)
    with web.lock:
        if web.otp.request is None:
            raise action_error(409, "send-otp", "Request an OTP first")
        try:
            status = web.otp.delivery_status()
        except OSError as e:
            logger.error("OTP request read failed: %s", e)
            raise action_error(503, "send-otp", "Could not check the OTP, try again")
    if status is DeliveryStatus.failed:
        raise action_error(502, "send-otp", "Could not send OTP, try again")
    return {"status": status.value}


@app.post("/api/sessions/{session_id}/otp/verify")
def verify_otp(session_id: str, req: OtpVerifyRequest):
    web = get_session(session_id)
    with web.lock:
        if web.otp.request is None:
            raise action_error(409, "verify-otp", "Request an OTP first")
        verified = web.otp.verify_code(req.code)
        return {
            "verified": verified,
            "message": "Mobile number verified" if verified else "Invalid or expired OTP",
        }


@app.post("/api/sessions/{session_id}/lead")
def submit_lead(session_id: str, req: LeadRequest):
    """Save the visitor's details once their number is verified."""
    web = get_session(session_id)
    # A second click while the first write is outstanding is turned away
    if not web.lock.acquire(blocking=False):
        raise action_error(409, "submit-lead", "Submission already in progress")
    try:
        if web.lead_id is not None:
            raise action_error(409, "submit-lead", "Details already submitted")
        try:
            outcome = web.controller.outcome()
        except RuntimeError as e:
            raise action_error(409, "submit-lead", str(e))
        try:
            lead = lead_persistence.submit_lead(req.name, req.mobile, outcome, web.otp)
        except UnverifiedMobileError as e:
            raise action_error(403, "submit-lead", str(e))
        except ValueError as e:
            raise action_error(422, "submit-lead", str(e))
        except OSError as e:
            logger.error("Lead write failed: %s", e)
            raise action_error(503, "submit-lead", "Could not save your details, try again")
        web.lead_id = lead.id
        return lead.model_dump(mode="json", by_alias=True)
    finally:
        web.lock.release()


def main():
    """Run the API server; the dispatch worker follows the app lifespan."""
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=config.PORT)


if __name__ == "__main__":
    main()
