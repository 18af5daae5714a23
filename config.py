import logging
import logging.handlers
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


def _get_env_bool(name: str, default: bool = False) -> bool:
    val = os.getenv(name)
    if val is None:
        return default
    return val.strip() in {"1", "true", "True", "yes", "YES", "y"}


def _get_env_int(name: str, default: int) -> int:
    val = os.getenv(name)
    if val is None or val == "":
        return default
    try:
        return int(val)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc


@dataclass
class Config:
    alarms_path: Path
    storage_key: str
    timezone_name: Optional[str]
    default_label: str
    notification_title: str
    check_interval_ms: int
    async_reconcile: bool
    test_reminder_seconds: int
    debug: bool
    log_level: str
    log_dir: Path


def load_config(env_path: Optional[Path] = None) -> Config:
    if env_path is None:
        env_path = Path(".env")
    if env_path.exists():
        load_dotenv(env_path)

    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    debug = _get_env_bool("DEBUG", False)
    if debug:
        log_level = "DEBUG"

    return Config(
        alarms_path=Path(os.getenv("ALARM_STORAGE_PATH", "data")),
        storage_key=os.getenv("ALARM_STORAGE_KEY", "alarms_storage_v1"),
        timezone_name=os.getenv("ALARM_TIMEZONE") or None,
        default_label=os.getenv("ALARM_DEFAULT_LABEL", "Time to get up."),
        notification_title=os.getenv("ALARM_NOTIFICATION_TITLE", "Rise & Move"),
        check_interval_ms=_get_env_int("ALARM_CHECK_INTERVAL_MS", 800),
        async_reconcile=_get_env_bool("ALARM_ASYNC_RECONCILE", False),
        test_reminder_seconds=_get_env_int("ALARM_TEST_REMINDER_SECONDS", 15),
        debug=debug,
        log_level=log_level,
        log_dir=Path(os.getenv("LOG_DIR", "logs")),
    )


def setup_logging(log_level: str = "INFO", log_dir: Path = Path("logs")) -> None:
    log_dir.mkdir(parents=True, exist_ok=True)

    log_path = log_dir / "risemove.log"
    formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
    )
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    logging.basicConfig(
        level=getattr(logging, log_level, logging.INFO),
        handlers=[file_handler, console_handler],
    )
