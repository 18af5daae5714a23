from pathlib import Path

import pytest

from alarms.models import Weekday
from alarms.notifier import ReminderKind
from config import load_config
from risemove import AlarmRuntime

ENV_KEYS = (
    "ALARM_STORAGE_PATH",
    "ALARM_STORAGE_KEY",
    "ALARM_TIMEZONE",
    "ALARM_DEFAULT_LABEL",
    "ALARM_NOTIFICATION_TITLE",
    "ALARM_CHECK_INTERVAL_MS",
    "ALARM_ASYNC_RECONCILE",
    "ALARM_TEST_REMINDER_SECONDS",
    "DEBUG",
    "LOG_LEVEL",
    "LOG_DIR",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)


def test_defaults(tmp_path):
    config = load_config(tmp_path / "missing.env")
    assert config.alarms_path == Path("data")
    assert config.storage_key == "alarms_storage_v1"
    assert config.timezone_name is None
    assert config.default_label == "Time to get up."
    assert config.check_interval_ms == 800
    assert config.async_reconcile is False
    assert config.log_level == "INFO"


def test_env_file_and_overrides(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("ALARM_DEFAULT_LABEL=Rise and shine\nALARM_CHECK_INTERVAL_MS=250\nDEBUG=1\n", encoding="utf-8")
    monkeypatch.setenv("ALARM_ASYNC_RECONCILE", "true")

    config = load_config(env_file)
    assert config.default_label == "Rise and shine"
    assert config.check_interval_ms == 250
    assert config.async_reconcile is True
    assert config.log_level == "DEBUG"


def test_bad_integer_names_variable(tmp_path, monkeypatch):
    monkeypatch.setenv("ALARM_TEST_REMINDER_SECONDS", "soon")
    with pytest.raises(ValueError, match="ALARM_TEST_REMINDER_SECONDS"):
        load_config(tmp_path / "missing.env")


@pytest.mark.parametrize("async_reconcile", ["0", "1"])
def test_runtime_persists_and_rearms_across_restart(tmp_path, monkeypatch, async_reconcile):
    monkeypatch.setenv("ALARM_STORAGE_PATH", str(tmp_path / "data"))
    monkeypatch.setenv("ALARM_TIMEZONE", "America/New_York")
    monkeypatch.setenv("ALARM_ASYNC_RECONCILE", async_reconcile)
    config = load_config(tmp_path / "missing.env")

    runtime = AlarmRuntime(config)
    runtime.start()
    try:
        alarm = runtime.store.create("07:00", [Weekday.MON], is_enabled=True, backup_enabled=True)
        if runtime.worker:
            runtime.worker.flush()
        assert {r.payload.kind for r in runtime.notifier.pending()} == {ReminderKind.PRIMARY, ReminderKind.BACKUP}
        assert runtime.refresh() == 1
        assert runtime.send_test_reminder().startswith("test.")
    finally:
        runtime.shutdown()

    restarted = AlarmRuntime(config)
    restarted.start()
    try:
        if restarted.worker:
            restarted.worker.flush()
        assert restarted.store.list_alarms() == [alarm]
        primary = [r for r in restarted.notifier.pending() if r.payload.kind is ReminderKind.PRIMARY]
        assert len(primary) == 1
        assert (primary[0].fires_at.hour, primary[0].fires_at.minute) == (7, 0)
    finally:
        restarted.shutdown()
