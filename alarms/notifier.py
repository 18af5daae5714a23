from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from threading import Event, Lock, Thread
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from dateutil.tz import tzlocal

logger = logging.getLogger(__name__)

ALARM_CATEGORY = "ALARM_CATEGORY"
STOP_ACTION = "STOP_ACTION"
DEFAULT_ACTION = "DEFAULT_ACTION"


class NotifierError(Exception):
    """Raised by a notifier that rejects a schedule or cancel request."""


class ReminderKind(str, Enum):
    PRIMARY = "primary"
    BACKUP = "backup"
    TEST = "test"


# Identity spellings per reminder slot, oldest first. The last entry is the
# one new reminders are scheduled under; older ones are still cancelled.
IDENTITY_FORMATS: Dict[ReminderKind, Tuple[str, ...]] = {
    ReminderKind.PRIMARY: ("{alarm_id}", "alarm.{alarm_id}.primary"),
    ReminderKind.BACKUP: ("{alarm_id}", "alarm.{alarm_id}.backup"),
}


def reminder_identity(alarm_id: str, kind: ReminderKind) -> str:
    return IDENTITY_FORMATS[kind][-1].format(alarm_id=alarm_id)


def identities_to_cancel(alarm_id: str, kinds: Iterable[ReminderKind]) -> List[str]:
    identities: List[str] = []
    for kind in kinds:
        for fmt in IDENTITY_FORMATS[kind]:
            identity = fmt.format(alarm_id=alarm_id)
            if identity not in identities:
                identities.append(identity)
    return identities


class AlarmCapability(Enum):
    OK = "ok"
    NOT_DETERMINED = "not_determined"
    DENIED = "denied"
    ALERTS_DISABLED = "alerts_disabled"
    SOUNDS_DISABLED = "sounds_disabled"
    UNKNOWN = "unknown"

    @property
    def is_alarm_capable(self) -> bool:
        return self is AlarmCapability.OK


@dataclass(frozen=True)
class ReminderPayload:
    alarm_id: str
    kind: ReminderKind
    title: str
    body: str
    category: str = ALARM_CATEGORY
    extra: Dict[str, object] = field(default_factory=dict)

    @property
    def user_info(self) -> Dict[str, object]:
        info: Dict[str, object] = {"alarmID": self.alarm_id, "kind": self.kind.value}
        info.update(self.extra)
        return info


@dataclass(frozen=True)
class PendingReminder:
    identity: str
    fires_at: datetime
    payload: ReminderPayload


class Notifier:
    """Host facility that delivers reminders at their instant.

    ``cancel_reminders`` must accept identities that are unknown or
    already delivered without complaint.
    """

    def schedule_reminder(self, identity: str, fires_at: datetime, payload: ReminderPayload) -> bool:
        raise NotImplementedError

    def cancel_reminders(self, identities: Iterable[str]) -> None:
        raise NotImplementedError

    def current_authorization_capable(self) -> bool:
        return self.capability().is_alarm_capable

    def capability(self) -> AlarmCapability:
        return AlarmCapability.UNKNOWN


def default_enabled(notifier: Notifier) -> bool:
    """Enablement for a newly created alarm when the caller does not choose."""
    try:
        return notifier.current_authorization_capable()
    except Exception:
        logger.error("Failed to query notifier authorization", exc_info=True)
        return False


class LocalNotifier(Notifier):
    """In-process notifier: keeps pending reminders and delivers due ones
    from a background thread through ``on_delivered``."""

    def __init__(
        self,
        on_delivered: Optional[Callable[[str, ReminderPayload], None]] = None,
        check_interval: float = 0.8,
        clock: Optional[Callable[[], datetime]] = None,
        capability: AlarmCapability = AlarmCapability.OK,
    ):
        self.on_delivered = on_delivered
        self.check_interval = max(0.2, check_interval)
        self.clock = clock or (lambda: datetime.now(tzlocal()))
        self._capability = capability

        self._pending: Dict[str, PendingReminder] = {}
        self._lock = Lock()
        self._stop_event = Event()
        self._thread: Optional[Thread] = None

    def capability(self) -> AlarmCapability:
        return self._capability

    def schedule_reminder(self, identity: str, fires_at: datetime, payload: ReminderPayload) -> bool:
        if fires_at.tzinfo is None:
            raise NotifierError(f"Reminder {identity} needs an aware fire time")
        with self._lock:
            self._pending[identity] = PendingReminder(identity, fires_at, payload)
        logger.info("Reminder %s scheduled for %s", identity, fires_at.isoformat())
        return True

    def cancel_reminders(self, identities: Iterable[str]) -> None:
        with self._lock:
            removed = [i for i in identities if self._pending.pop(i, None) is not None]
        if removed:
            logger.debug("Cancelled reminders %s", removed)

    def pending(self) -> List[PendingReminder]:
        with self._lock:
            return sorted(self._pending.values(), key=lambda r: r.fires_at)

    def get(self, identity: str) -> Optional[PendingReminder]:
        with self._lock:
            return self._pending.get(identity)

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = Thread(target=self._loop, name="reminder-delivery", daemon=True)
        self._thread.start()

    def shutdown(self) -> None:
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=2)
        self._thread = None

    def deliver_due(self) -> List[PendingReminder]:
        """Deliver every reminder whose instant has passed; returns them in order."""
        delivered = []
        while True:
            reminder = self._pop_due()
            if reminder is None:
                return delivered
            self._deliver(reminder)
            delivered.append(reminder)

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            if self.deliver_due():
                continue
            self._stop_event.wait(self.check_interval)

    def _pop_due(self) -> Optional[PendingReminder]:
        now = self.clock()
        with self._lock:
            if not self._pending:
                return None
            nearest = min(self._pending.values(), key=lambda r: r.fires_at)
            if nearest.fires_at <= now:
                del self._pending[nearest.identity]
                return nearest
        return None

    def _deliver(self, reminder: PendingReminder) -> None:
        logger.info("Reminder %s delivered (%s)", reminder.identity, reminder.payload.body)
        if self.on_delivered:
            try:
                self.on_delivered(reminder.identity, reminder.payload)
            except Exception:  # pragma: no cover - callback safety
                logger.error("on_delivered callback failed", exc_info=True)
