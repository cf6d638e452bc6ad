import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        default_currency: str,
        week_start: int,
        log_level: str,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.default_currency = default_currency
        self.week_start = week_start
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
    timezone = os.getenv("LEDGER_TIMEZONE", "Asia/Kolkata")
    default_currency = os.getenv("LEDGER_DEFAULT_CURRENCY", "INR").upper()
    # Python weekday numbering, 6 = Sunday
    week_start = int(os.getenv("LEDGER_WEEK_START", "6"))
    if not 0 <= week_start <= 6:
        raise ValueError("LEDGER_WEEK_START must be between 0 and 6")
    log_level = os.getenv("LEDGER_LOG_LEVEL", "INFO").upper()
    return Settings(
        database_url=database_url,
        timezone=timezone,
        default_currency=default_currency,
        week_start=week_start,
        log_level=log_level,
    )
