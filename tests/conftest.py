"""Shared fixtures: a controllable clock and a throwaway document store."""

from datetime import datetime, timedelta, timezone

import pytest

from daily_quiz.events import EventQueue
from daily_quiz.store import DocumentStore


class FakeClock:
    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 14, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def events():
    return EventQueue(max_attempts=3)


@pytest.fixture
def store(tmp_path, events, clock):
    return DocumentStore(directory=tmp_path, events=events, clock=clock)
