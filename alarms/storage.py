from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional

from dateutil.tz import tzlocal

from .models import DEFAULT_BACKUP_MINUTES, Alarm, Weekday, clamp_backup_minutes, parse_time_of_day

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 2

# Older builds encoded dates as seconds since this reference instant.
_REFERENCE_DATE = datetime(2001, 1, 1, tzinfo=timezone.utc)


class StorageError(Exception):
    """Raised when the alarm collection cannot be read or written."""


class FileSlot:
    """Durable key-value slot backed by one JSON file per key."""

    def __init__(self, directory: Path):
        self.directory = Path(directory)

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load_bytes(self, key: str) -> Optional[bytes]:
        path = self.path_for(key)
        if not path.exists():
            return None
        try:
            return path.read_bytes()
        except OSError as exc:
            raise StorageError(f"Failed to read {path}: {exc}") from exc

    def save_bytes(self, key: str, data: bytes) -> None:
        path = self.path_for(key)
        tmp = path.with_suffix(path.suffix + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, path)
        except OSError as exc:
            raise StorageError(f"Failed to write {path}: {exc}") from exc


class MemorySlot:
    def __init__(self, initial: Optional[Dict[str, bytes]] = None):
        self.values: Dict[str, bytes] = dict(initial or {})

    def load_bytes(self, key: str) -> Optional[bytes]:
        return self.values.get(key)

    def save_bytes(self, key: str, data: bytes) -> None:
        self.values[key] = data


def alarm_to_dict(alarm: Alarm) -> dict:
    return {
        "id": alarm.id,
        "time_of_day": alarm.time_of_day,
        "repeat_days": sorted(d.calendar_number for d in alarm.repeat_days),
        "is_enabled": alarm.is_enabled,
        "label": alarm.label,
        "backup_enabled": alarm.backup_enabled,
        "backup_minutes": alarm.backup_minutes,
    }


def alarm_from_dict(data: dict, tzinfo=None) -> Alarm:
    """Build an Alarm from a stored record of any schema version.

    Missing optional fields get their defaults and every field is
    re-validated, so corrupted values are clamped rather than rejected.
    Raises ValueError only when the id or time cannot be recovered.
    """
    if not isinstance(data, dict):
        raise ValueError(f"Alarm record must be an object, got {type(data).__name__}")
    alarm_id = data.get("id")
    if not alarm_id:
        raise ValueError("Alarm record missing id")

    hour, minute = _read_time(data, tzinfo)

    repeat_days = set()
    for raw in _first(data, "repeat_days", "repeatDays") or []:
        try:
            repeat_days.add(Weekday.parse(raw))
        except ValueError:
            logger.warning("Ignoring unknown weekday %r in alarm %s", raw, alarm_id)

    backup_minutes = _first(data, "backup_minutes", "backupMinutes")
    return Alarm(
        id=str(alarm_id),
        hour=hour,
        minute=minute,
        repeat_days=frozenset(repeat_days),
        is_enabled=_read_bool(data, alarm_id, True, "is_enabled", "isEnabled"),
        label=str(_first(data, "label", default="") or ""),
        backup_enabled=_read_bool(data, alarm_id, False, "backup_enabled", "backupEnabled"),
        backup_minutes=clamp_backup_minutes(DEFAULT_BACKUP_MINUTES if backup_minutes is None else backup_minutes),
    )


def _first(data: dict, *keys: str, default=None):
    for key in keys:
        if data.get(key) is not None:
            return data[key]
    return default


def _read_bool(data: dict, alarm_id, default: bool, *keys: str) -> bool:
    value = _first(data, *keys)
    if value is None:
        return default
    if not isinstance(value, bool):
        logger.warning("Ignoring non-boolean %s=%r in alarm %s", keys[0], value, alarm_id)
        return default
    return value


def _read_time(data: dict, tzinfo) -> tuple:
    time_of_day = _first(data, "time_of_day", "timeOfDay")
    if time_of_day is not None:
        return parse_time_of_day(time_of_day)

    legacy = data.get("time")
    if legacy is None:
        raise ValueError("Alarm record missing time")
    if isinstance(legacy, bool):
        raise ValueError(f"Unsupported alarm time {legacy!r}")
    if isinstance(legacy, (int, float)):
        moment = _REFERENCE_DATE + timedelta(seconds=legacy)
    else:
        text = str(legacy).strip()
        if len(text) <= 8 and ":" in text and "T" not in text:
            return parse_time_of_day(text)
        moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
    if moment.tzinfo is not None:
        moment = moment.astimezone(tzinfo or tzlocal())
    return moment.hour, moment.minute


def encode_alarms(alarms: List[Alarm]) -> bytes:
    payload = {"version": SCHEMA_VERSION, "alarms": [alarm_to_dict(a) for a in alarms]}
    return json.dumps(payload, ensure_ascii=False, indent=2).encode("utf-8")


def decode_alarms(data: bytes, tzinfo=None) -> List[Alarm]:
    """Decode a stored collection written by this or an older schema version.

    Version 1 stored a bare list of records; later versions wrap the list
    in ``{"version": N, "alarms": [...]}``. A record that cannot be
    recovered is skipped; a collection that cannot be parsed at all
    raises StorageError.
    """
    try:
        payload = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StorageError(f"Alarm collection is not valid JSON: {exc}") from exc

    if isinstance(payload, dict):
        version = payload.get("version")
        records = payload.get("alarms")
        if isinstance(version, int) and version > SCHEMA_VERSION:
            logger.warning("Alarm collection has newer schema version %s, reading known fields", version)
    else:
        records = payload
    if not isinstance(records, list):
        raise StorageError("Alarm collection is not a list of records")

    alarms: List[Alarm] = []
    seen = set()
    for item in records:
        try:
            alarm = alarm_from_dict(item, tzinfo=tzinfo)
        except (TypeError, ValueError, OverflowError) as exc:
            logger.warning("Skipping alarm record due to parse error: %s", exc)
            continue
        if alarm.id in seen:
            logger.warning("Skipping duplicate alarm record %s", alarm.id)
            continue
        seen.add(alarm.id)
        alarms.append(alarm)
    return alarms
