"""Alarm scheduling engine for Rise & Move."""

from .lifecycle import AlarmState, LifecycleCoordinator
from .models import Alarm, Weekday
from .notifier import LocalNotifier, Notifier, NotifierError
from .recurrence import next_fire_instant
from .scheduler import ReconcileWorker, Reconciler
from .storage import FileSlot, MemorySlot, StorageError
from .store import AlarmStore
