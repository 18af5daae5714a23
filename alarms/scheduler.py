from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from queue import Queue
from threading import Lock, Thread
from typing import Callable, Iterable, List, Optional

from dateutil.tz import tzlocal

from .models import Alarm, clamp_backup_minutes
from .notifier import (
    Notifier,
    NotifierError,
    ReminderKind,
    ReminderPayload,
    identities_to_cancel,
    reminder_identity,
)
from .recurrence import next_fire_instant

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "Rise & Move"
DEFAULT_BODY = "Time to get up."
BACKUP_SUFFIX = " (Backup alert)"


class Reconciler:
    """Keeps the notifier's reminders for an alarm in line with the alarm.

    Every call cancels whatever may be outstanding for the alarm id and
    then schedules afresh under deterministic identities, so repeating a
    call is harmless.
    """

    def __init__(
        self,
        notifier: Notifier,
        clock: Optional[Callable[[], datetime]] = None,
        title: str = DEFAULT_TITLE,
        default_body: str = DEFAULT_BODY,
    ):
        self.notifier = notifier
        self.clock = clock or (lambda: datetime.now(tzlocal()))
        self.title = title
        self.default_body = default_body
        self._lock = Lock()

    def reconcile(self, alarm: Alarm) -> Optional[datetime]:
        """Replace the alarm's reminders; returns the primary fire instant or None."""
        with self._lock:
            self._cancel(alarm.id, (ReminderKind.PRIMARY, ReminderKind.BACKUP))
            if not alarm.is_enabled:
                logger.debug("Alarm %s disabled, nothing scheduled", alarm.id)
                return None

            fires_at = next_fire_instant(self.clock(), alarm.hour, alarm.minute, alarm.repeat_days)
            body = alarm.display_label(self.default_body)
            self._schedule(
                reminder_identity(alarm.id, ReminderKind.PRIMARY),
                fires_at,
                ReminderPayload(alarm.id, ReminderKind.PRIMARY, self.title, body),
            )

            if alarm.backup_enabled:
                minutes = clamp_backup_minutes(alarm.backup_minutes)
                self._schedule(
                    reminder_identity(alarm.id, ReminderKind.BACKUP),
                    fires_at + timedelta(minutes=minutes),
                    ReminderPayload(
                        alarm.id,
                        ReminderKind.BACKUP,
                        self.title,
                        body + BACKUP_SUFFIX,
                        extra={"backupMinutes": minutes},
                    ),
                )
            return fires_at

    def clear_all(self, alarm_id: str) -> None:
        with self._lock:
            self._cancel(alarm_id, (ReminderKind.PRIMARY, ReminderKind.BACKUP))

    def clear_backup(self, alarm_id: str) -> None:
        with self._lock:
            self._cancel(alarm_id, (ReminderKind.BACKUP,))

    def schedule_test_reminder(self, seconds: int = 15) -> Optional[str]:
        """Schedule a throwaway reminder shortly from now to check delivery works."""
        seconds = min(max(int(seconds), 5), 60)
        test_id = str(uuid.uuid4()).upper()
        identity = f"test.{test_id}"
        payload = ReminderPayload(
            test_id,
            ReminderKind.TEST,
            self.title,
            "Test alarm - if you see/hear this, notifications are working.",
            extra={"isTest": True, "label": "Test Alarm"},
        )
        if self._schedule(identity, self.clock() + timedelta(seconds=seconds), payload):
            return identity
        return None

    def _cancel(self, alarm_id: str, kinds: Iterable[ReminderKind]) -> None:
        identities = identities_to_cancel(alarm_id, kinds)
        try:
            self.notifier.cancel_reminders(identities)
        except Exception as exc:
            logger.error("Failed to cancel reminders %s: %s", identities, exc, exc_info=True)

    def _schedule(self, identity: str, fires_at: datetime, payload: ReminderPayload) -> bool:
        try:
            accepted = self.notifier.schedule_reminder(identity, fires_at, payload)
        except NotifierError as exc:
            logger.error("Notifier rejected reminder %s: %s", identity, exc)
            return False
        except Exception:
            logger.error("Failed to schedule reminder %s", identity, exc_info=True)
            return False
        if accepted is False:
            logger.warning("Notifier declined reminder %s at %s", identity, fires_at.isoformat())
            return False
        return True


class ReconcileWorker:
    """Runs submitted reconciliation jobs one at a time on a background thread."""

    def __init__(self, name: str = "alarm-reconcile"):
        self._queue: "Queue[Optional[Callable[[], object]]]" = Queue()
        self._thread = Thread(target=self._run, name=name, daemon=True)
        self._thread.start()

    def __call__(self, job: Callable[[], object]) -> None:
        self._queue.put(job)

    def flush(self) -> None:
        self._queue.join()

    def shutdown(self) -> None:
        self._queue.put(None)
        self._thread.join(timeout=2)

    def _run(self) -> None:
        while True:
            job = self._queue.get()
            try:
                if job is None:
                    return
                job()
            except Exception:
                logger.error("Reconciliation job failed", exc_info=True)
            finally:
                self._queue.task_done()


def run_inline(job: Callable[[], object]) -> None:
    job()


def reconcile_all(reconciler: Reconciler, alarms: List[Alarm]) -> int:
    count = 0
    for alarm in alarms:
        if alarm.is_enabled:
            reconciler.reconcile(alarm)
            count += 1
    return count
