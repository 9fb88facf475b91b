import os
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from zoneinfo import ZoneInfo


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        upcoming_days: int,
        alert_threshold: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.upcoming_days = upcoming_days
        self.alert_threshold = alert_threshold
        self.log_level = log_level


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("LEDGER_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "ledger.db"
    database_url = os.getenv("LEDGER_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("LEDGER_TIMEZONE", "UTC")
    upcoming_days = int(os.getenv("LEDGER_UPCOMING_DAYS", "7"))
    alert_threshold = int(os.getenv("LEDGER_ALERT_THRESHOLD", "80"))
    log_level = os.getenv("LEDGER_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        upcoming_days=upcoming_days,
        alert_threshold=alert_threshold,
        log_level=log_level,
    )


def local_now() -> datetime:
    """Current wall-clock time in the configured timezone, without tzinfo."""
    tz = ZoneInfo(get_settings().timezone)
    return datetime.now(tz).replace(tzinfo=None)
