import logging
import signal
import time
from typing import Optional

from alarms.lifecycle import LifecycleCoordinator
from alarms.models import Alarm
from alarms.notifier import LocalNotifier, ReminderKind
from alarms.scheduler import ReconcileWorker, Reconciler, reconcile_all
from alarms.storage import FileSlot
from alarms.store import AlarmStore
from config import Config, load_config, setup_logging
from time_utils import format_tz_offset, now_in_tz, resolve_timezone

logger = logging.getLogger("risemove")


def graceful_exit(signum, frame) -> None:  # pragma: no cover - signal handler
    logger.info("Shutting down (signal %s)", signum)
    raise KeyboardInterrupt()


class AlarmRuntime:
    """Wires the store, reconciler, notifier and lifecycle coordinator together."""

    def __init__(self, config: Config, notifier: Optional[LocalNotifier] = None):
        self.config = config
        self.tzinfo = resolve_timezone(config.timezone_name)
        self.notifier = notifier or LocalNotifier(
            check_interval=config.check_interval_ms / 1000.0,
            clock=self.now,
        )
        self.reconciler = Reconciler(
            self.notifier,
            clock=self.now,
            title=config.notification_title,
            default_body=config.default_label,
        )
        self.worker = ReconcileWorker() if config.async_reconcile else None
        self.store = AlarmStore(
            self.reconciler,
            FileSlot(config.alarms_path),
            storage_key=config.storage_key,
            dispatch=self.worker,
            tzinfo=self.tzinfo,
        )
        self.coordinator = LifecycleCoordinator(self.store, self.reconciler, on_ringing=self._on_ringing)
        self.notifier.on_delivered = self.coordinator.on_reminder_delivered

    def now(self):
        return now_in_tz(self.tzinfo)

    def start(self) -> None:
        error = self.store.load()
        if error:
            logger.error("Alarm storage unreadable, starting empty: %s", error)
        self.notifier.start()
        logger.info(
            "Alarm runtime started with %s alarms (UTC%s)",
            len(self.store.list_alarms()),
            format_tz_offset(self.tzinfo),
        )

    def shutdown(self) -> None:
        self.notifier.shutdown()
        if self.worker:
            self.worker.flush()
            self.worker.shutdown()

    def refresh(self) -> int:
        """Re-arm every enabled alarm, e.g. when the app returns to the foreground."""
        return reconcile_all(self.reconciler, self.store.list_alarms())

    def send_test_reminder(self) -> Optional[str]:
        return self.reconciler.schedule_test_reminder(self.config.test_reminder_seconds)

    def _on_ringing(self, alarm: Alarm, kind: ReminderKind) -> None:
        label = alarm.display_label(self.config.default_label)
        if kind is ReminderKind.BACKUP:
            logger.warning("Backup alert: %s (%s)", label, alarm.time_of_day)
        else:
            logger.info("Alarm! %s (%s)", label, alarm.time_of_day)


def main() -> None:
    config = load_config()
    setup_logging(config.log_level, config.log_dir)
    signal.signal(signal.SIGINT, graceful_exit)
    logger.info("Starting Rise & Move alarm engine (storage=%s)", config.alarms_path)

    runtime = AlarmRuntime(config)
    runtime.start()
    try:
        while True:
            time.sleep(0.5)
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    finally:
        runtime.shutdown()


if __name__ == "__main__":
    main()
