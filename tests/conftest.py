from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from agentoffice.core.config import get_settings
from agentoffice.runtime import OfficeRuntime
from agentoffice.services.notifications import EventBus, RecordingSubscriber


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 8, 9, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **delta: float) -> datetime:
        self.now += timedelta(**delta)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recorder() -> RecordingSubscriber:
    return RecordingSubscriber()


@pytest.fixture
def office(clock: FakeClock, recorder: RecordingSubscriber) -> OfficeRuntime:
    events = EventBus()
    events.subscribe(recorder)
    return OfficeRuntime.from_settings(get_settings({"environment": "test"}), events=events, clock=clock)
