import os
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Literal, cast

from platformdirs import user_data_dir

APP_NAME = "medclose"
APP_AUTHOR = "medclose"

MonthEndPolicyName = Literal["clamp", "rollover"]

DEFAULT_HISTORY_CUTOFF = date(2026, 1, 1)
DEFAULT_UNGROUPED_SORT_ORDER = 9999


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_date(name: str, default: date) -> date:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return date.fromisoformat(raw)
    except ValueError:
        return default


def _env_month_end_policy(name: str, default: MonthEndPolicyName) -> MonthEndPolicyName:
    raw = (os.getenv(name) or "").strip().lower()
    if raw in {"clamp", "rollover"}:
        return cast(MonthEndPolicyName, raw)
    return default


def _resolve_data_dir() -> Path:
    env_dir = os.getenv("MEDCLOSE_DATA_DIR")
    if env_dir:
        return Path(env_dir)
    return Path(user_data_dir(APP_NAME, APP_AUTHOR))


DATA_DIR = _resolve_data_dir()
LOG_DIR = DATA_DIR / "logs"
DB_FILE = Path(os.getenv("MEDCLOSE_DB_FILE") or (DATA_DIR / "medclose.db"))

DATA_DIR.mkdir(parents=True, exist_ok=True)
LOG_DIR.mkdir(parents=True, exist_ok=True)
DB_FILE.parent.mkdir(parents=True, exist_ok=True)


def default_database_url() -> str:
    # SQLite URL uses forward slashes; as_posix() keeps it cross-platform.
    return f"sqlite:///{DB_FILE.as_posix()}"


@dataclass(frozen=True)
class Settings:
    database_url: str = os.getenv("DATABASE_URL", default_database_url())
    echo_sql: bool = _env_bool("SQL_ECHO", False)
    log_level: str = (os.getenv("MEDCLOSE_LOG_LEVEL") or "INFO").strip().upper()
    # Past closings are listed back to this date only.
    history_cutoff: date = _env_date("MEDCLOSE_HISTORY_CUTOFF", DEFAULT_HISTORY_CUTOFF)
    month_end_policy: MonthEndPolicyName = _env_month_end_policy("MEDCLOSE_MONTH_END_POLICY", "clamp")
    ungrouped_sort_order: int = _env_int("MEDCLOSE_UNGROUPED_SORT_ORDER", DEFAULT_UNGROUPED_SORT_ORDER)


settings = Settings()
