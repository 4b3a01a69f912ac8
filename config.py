import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        max_statement_bytes: int,
        alert_warning_percent: int,
        alert_danger_percent: int,
        snapshot_hour: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.max_statement_bytes = max_statement_bytes
        self.alert_warning_percent = alert_warning_percent
        self.alert_danger_percent = alert_danger_percent
        self.snapshot_hour = snapshot_hour


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("BUDGET_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "budget.db"
    database_url = os.getenv("BUDGET_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("BUDGET_TIMEZONE", "Asia/Kolkata")
    max_statement_bytes = int(
        os.getenv("BUDGET_MAX_STATEMENT_BYTES", str(5 * 1024 * 1024))
    )
    alert_warning_percent = int(os.getenv("BUDGET_ALERT_WARNING_PERCENT", "80"))
    alert_danger_percent = int(os.getenv("BUDGET_ALERT_DANGER_PERCENT", "100"))
    snapshot_hour = int(os.getenv("BUDGET_SNAPSHOT_HOUR", "2"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        max_statement_bytes=max_statement_bytes,
        alert_warning_percent=alert_warning_percent,
        alert_danger_percent=alert_danger_percent,
        snapshot_hour=snapshot_hour,
    )
