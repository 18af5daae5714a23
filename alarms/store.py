from __future__ import annotations

import logging
from threading import RLock
from typing import Callable, List, Optional

from .models import Alarm
from .notifier import default_enabled
from .scheduler import Reconciler, reconcile_all, run_inline
from .storage import StorageError, decode_alarms, encode_alarms

logger = logging.getLogger(__name__)

STORAGE_KEY = "alarms_storage_v1"


class AlarmStore:
    """Source of truth for the user's alarms.

    Mutations are serialized, persisted, then handed to the reconciler
    through ``dispatch``, which runs jobs inline unless a background worker
    is supplied. Methods addressing an unknown id return None.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        slot,
        storage_key: str = STORAGE_KEY,
        dispatch: Optional[Callable[[Callable[[], object]], None]] = None,
        tzinfo=None,
    ):
        self.reconciler = reconciler
        self.slot = slot
        self.storage_key = storage_key
        self.dispatch = dispatch or run_inline
        self.tzinfo = tzinfo

        self._alarms: List[Alarm] = []
        self._lock = RLock()

    def load(self) -> Optional[StorageError]:
        """Read the stored collection and re-arm every enabled alarm.

        Returns the error when the collection could not be read, in which
        case the store starts empty.
        """
        error = None
        try:
            data = self.slot.load_bytes(self.storage_key)
            alarms = decode_alarms(data, tzinfo=self.tzinfo) if data is not None else []
        except StorageError as exc:
            error = exc
            alarms = []
        except Exception as exc:
            error = StorageError(f"Failed to load alarms: {exc}")
            error.__cause__ = exc
            alarms = []
        with self._lock:
            self._alarms = alarms
            snapshot = list(alarms)
        logger.info("Loaded %s alarms from slot %s", len(snapshot), self.storage_key)
        self.dispatch(lambda: reconcile_all(self.reconciler, snapshot))
        return error

    def list_alarms(self) -> List[Alarm]:
        with self._lock:
            return list(self._alarms)

    def get(self, alarm_id: str) -> Optional[Alarm]:
        with self._lock:
            index = self._index_of(alarm_id)
            return self._alarms[index] if index is not None else None

    def create(self, time_of_day: str, repeat_days=(), is_enabled: Optional[bool] = None, **kwargs) -> Alarm:
        if is_enabled is None:
            is_enabled = default_enabled(self.reconciler.notifier)
        return self.add(Alarm.at(time_of_day, repeat_days, is_enabled=is_enabled, **kwargs))

    def add(self, alarm: Alarm) -> Alarm:
        with self._lock:
            if self._index_of(alarm.id) is not None:
                raise ValueError(f"Alarm {alarm.id} already exists")
            self._alarms.append(alarm)
            self._save()
        logger.info("Alarm %s added (%s)", alarm.id, alarm)
        self._reconcile(alarm)
        return alarm

    def update(self, alarm: Alarm) -> Optional[Alarm]:
        with self._lock:
            index = self._index_of(alarm.id)
            if index is None:
                logger.debug("Update ignored, alarm %s not found", alarm.id)
                return None
            self._alarms[index] = alarm
            self._save()
        logger.info("Alarm %s updated (%s)", alarm.id, alarm)
        self._reconcile(alarm)
        return alarm

    def delete(self, alarm_id: str) -> Optional[Alarm]:
        with self._lock:
            index = self._index_of(alarm_id)
            removed = self._alarms.pop(index) if index is not None else None
            if removed is not None:
                self._save()
        if removed is None:
            logger.debug("Delete of unknown alarm %s, clearing reminders anyway", alarm_id)
        else:
            logger.info("Alarm %s deleted", alarm_id)
        self.dispatch(lambda: self.reconciler.clear_all(alarm_id))
        return removed

    def set_enabled(self, alarm_id: str, enabled: bool) -> Optional[Alarm]:
        return self._modify(alarm_id, lambda a: a.with_changes(is_enabled=enabled))

    def mark_fired(self, alarm_id: str) -> Optional[Alarm]:
        """Record that the alarm rang and was stopped.

        One-time alarms are disabled; repeating alarms stay enabled and
        are re-armed for their next occurrence.
        """

        def _fired(alarm: Alarm) -> Alarm:
            if alarm.is_repeating:
                return alarm
            return alarm.with_changes(is_enabled=False)

        return self._modify(alarm_id, _fired)

    def _modify(self, alarm_id: str, change: Callable[[Alarm], Alarm]) -> Optional[Alarm]:
        with self._lock:
            index = self._index_of(alarm_id)
            if index is None:
                logger.debug("Alarm %s not found", alarm_id)
                return None
            alarm = change(self._alarms[index])
            if alarm != self._alarms[index]:
                self._alarms[index] = alarm
                self._save()
        logger.info("Alarm %s is now %s", alarm.id, "enabled" if alarm.is_enabled else "disabled")
        self._reconcile(alarm)
        return alarm

    def _reconcile(self, alarm: Alarm) -> None:
        self.dispatch(lambda: self.reconciler.reconcile(alarm))

    def _index_of(self, alarm_id: str) -> Optional[int]:
        for index, alarm in enumerate(self._alarms):
            if alarm.id == alarm_id:
                return index
        return None

    def _save(self) -> None:
        try:
            self.slot.save_bytes(self.storage_key, encode_alarms(self._alarms))
        except Exception as exc:
            logger.error("Failed to save alarms: %s", exc, exc_info=True)
