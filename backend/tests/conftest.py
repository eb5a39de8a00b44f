from datetime import datetime, timedelta, timezone

import pytest

from timetabling.core.config import Settings
from timetabling.services.engine import TimetableEngine


class FakeClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 1, 5, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


def slot_payload(day="monday", start="09:00", end="10:00", **overrides):
    payload = {
        "timeSlot": {"day": day, "startTime": start, "endTime": end},
        "subjectId": "math-101",
        "teacherId": "teacher-1",
        "roomId": "room-101",
        "studentGroups": ["group-1"],
    }
    payload.update(overrides)
    return payload


@pytest.fixture()
def settings():
    # Ignore any developer .env so tests see the defaults.
    return Settings(_env_file=None)


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def engine(settings, clock):
    return TimetableEngine(settings=settings, clock=clock)


@pytest.fixture()
def active_engine(engine):
    engine.create_timetable("Spring timetable", 2026, 2)
    return engine
