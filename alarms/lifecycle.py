from __future__ import annotations

import logging
import uuid
from enum import Enum
from threading import Lock
from typing import Callable, Dict, Optional, Set

from .models import Alarm
from .notifier import DEFAULT_ACTION, STOP_ACTION, ReminderKind, ReminderPayload
from .scheduler import Reconciler
from .store import AlarmStore

logger = logging.getLogger(__name__)


class AlarmState(Enum):
    ARMED = "armed"
    DISARMED = "disarmed"
    FIRED_PENDING_ACK = "fired_pending_ack"


class LifecycleCoordinator:
    """Tracks ringing alarms and applies the fired transition on acknowledgment.

    Only ``acknowledge`` changes an alarm; deliveries just mark it as
    ringing so the UI can show it.
    """

    def __init__(
        self,
        store: AlarmStore,
        reconciler: Reconciler,
        on_ringing: Optional[Callable[[Alarm, ReminderKind], None]] = None,
    ):
        self.store = store
        self.reconciler = reconciler
        self.on_ringing = on_ringing
        self._ringing: Set[str] = set()
        self._lock = Lock()

    def state_of(self, alarm_id: str) -> Optional[AlarmState]:
        alarm = self.store.get(alarm_id)
        if alarm is None:
            return None
        if alarm_id in self.ringing():
            return AlarmState.FIRED_PENDING_ACK
        return AlarmState.ARMED if alarm.is_enabled else AlarmState.DISARMED

    def ringing(self) -> Set[str]:
        """Ids still ringing; alarms deleted or disabled since delivery drop out."""
        with self._lock:
            for alarm_id in list(self._ringing):
                alarm = self.store.get(alarm_id)
                if alarm is None or not alarm.is_enabled:
                    self._ringing.discard(alarm_id)
            return set(self._ringing)

    def on_reminder_delivered(self, identity: str, payload: ReminderPayload) -> Optional[Alarm]:
        if payload.kind is ReminderKind.TEST:
            logger.info("Test reminder %s delivered", identity)
            return None
        alarm = self.store.get(payload.alarm_id)
        if alarm is None:
            logger.warning("Reminder %s delivered for unknown alarm %s", identity, payload.alarm_id)
            return None
        with self._lock:
            self._ringing.add(alarm.id)
        logger.info("Alarm %s ringing (%s reminder)", alarm.id, payload.kind.value)
        if self.on_ringing:
            try:
                self.on_ringing(alarm, payload.kind)
            except Exception:  # pragma: no cover - callback safety
                logger.error("on_ringing callback failed", exc_info=True)
        return alarm

    def acknowledge(self, alarm_id: str) -> Optional[Alarm]:
        """User stopped the alarm, from the ringing screen or a notification action."""
        self.reconciler.clear_backup(alarm_id)
        with self._lock:
            self._ringing.discard(alarm_id)
        alarm = self.store.mark_fired(alarm_id)
        if alarm is None:
            logger.info("Acknowledged alarm %s no longer exists", alarm_id)
        return alarm

    def handle_notification_response(self, user_info: Dict[str, object], action: str = DEFAULT_ACTION) -> Optional[Alarm]:
        raw_id = user_info.get("alarmID")
        if not isinstance(raw_id, str):
            return None
        try:
            uuid.UUID(raw_id)
        except ValueError:
            logger.debug("Ignoring notification response with malformed alarmID %r", raw_id)
            return None
        if user_info.get("kind") == ReminderKind.TEST.value:
            return None
        if action not in (STOP_ACTION, DEFAULT_ACTION):
            logger.debug("Ignoring notification action %s", action)
            return None
        return self.acknowledge(raw_id)
