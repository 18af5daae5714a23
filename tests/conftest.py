from datetime import datetime
from zoneinfo import ZoneInfo

import pytest

from alarms.notifier import LocalNotifier
from alarms.scheduler import Reconciler
from alarms.storage import MemorySlot
from alarms.store import AlarmStore

NY = ZoneInfo("America/New_York")


class Clock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    # Monday 2025-01-06 06:00 New York time.
    return Clock(datetime(2025, 1, 6, 6, 0, tzinfo=NY))


@pytest.fixture
def notifier(clock):
    return LocalNotifier(clock=clock)


@pytest.fixture
def reconciler(notifier, clock):
    return Reconciler(notifier, clock=clock)


@pytest.fixture
def slot():
    return MemorySlot()


@pytest.fixture
def store(reconciler, slot):
    return AlarmStore(reconciler, slot, tzinfo=NY)
