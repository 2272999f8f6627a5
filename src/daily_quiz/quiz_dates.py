"""Finds the quiz published for a calendar day."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import date, datetime, time, timedelta

from pydantic import ValidationError

from daily_quiz.config import QUIZ_LOOKUP_TIMEOUT_SECONDS
from daily_quiz.quiz_models import Quiz
from daily_quiz.store import QUIZ_COLLECTION, DocumentStore

logger = logging.getLogger(__name__)

_END_OF_DAY = time(23, 59, 59, 999000)

# Shared by all resolvers; an abandoned slow query keeps its thread until it returns
_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="quiz-lookup")


def _calendar_day(day: date | datetime) -> date:
    if isinstance(day, datetime):
        if day.tzinfo is not None:
            day = day.astimezone()
        return day.date()
    return day


def day_window(day: date | datetime) -> tuple[datetime, datetime]:
    """Local-time bounds of ``day``: 00:00:00.000 to 23:59:59.999."""
    day = _calendar_day(day)
    start = datetime.combine(day, time.min).astimezone()
    end = datetime.combine(day, _END_OF_DAY).astimezone()
    return start, end


def day_range(day: date | datetime) -> tuple[datetime, datetime]:
    """Half-open ``[start, next day start)`` used for queries."""
    day = _calendar_day(day)
    start = datetime.combine(day, time.min).astimezone()
    end = datetime.combine(day + timedelta(days=1), time.min).astimezone()
    return start, end


class QuizDateResolver:
    """Resolves "the quiz for day D", treating lookup failure as no quiz."""

    def __init__(
        self,
        store: DocumentStore,
        timeout: float = QUIZ_LOOKUP_TIMEOUT_SECONDS,
    ) -> None:
        self.store = store
        self.timeout = timeout

    def _lookup(self, start: datetime, end: datetime) -> Quiz | None:
        docs = self.store.query_range(
            QUIZ_COLLECTION, "date", start, end, descending=True, limit=1
        )
        if not docs:
            return None
        return Quiz.model_validate(docs[0])

    def resolve(self, day: date | datetime | None = None) -> Quiz | None:
        """Return the most recently dated quiz on ``day`` (today if None)."""
        start, end = day_range(day if day is not None else date.today())
        future = _executor.submit(self._lookup, start, end)
        try:
            quiz = future.result(timeout=self.timeout)
        except FutureTimeout:
            logger.warning(
                "Quiz lookup for %s timed out after %.1fs", start.date(), self.timeout
            )
            return None
        except ValidationError as e:
            logger.warning("Malformed quiz document for %s: %s", start.date(), e)
            return None
        except Exception as e:
            logger.warning("Quiz lookup for %s failed: %s", start.date(), e)
            return None
        if quiz is None:
            logger.info("No quiz published for %s", start.date())
        return quiz
