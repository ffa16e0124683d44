import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(
        self,
        database_url: str,
        timezone: str,
        current_user: str,
        recurring_interval_hours: int,
    ) -> None:
        self.database_url = database_url
        self.timezone = timezone
        self.current_user = current_user
        self.recurring_interval_hours = recurring_interval_hours


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("RENTALS_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    data_dir = _ensure_data_dir()
    default_db = data_dir / "rentals.db"
    database_url = os.getenv("RENTALS_DATABASE_URL", f"sqlite:///{default_db}")
    timezone = os.getenv("RENTALS_TIMEZONE", "America/Chicago")
    current_user = os.getenv("RENTALS_CURRENT_USER", "owner")
    recurring_interval_hours = int(os.getenv("RENTALS_RECURRING_INTERVAL_HOURS", "1"))
    return Settings(
        database_url=database_url,
        timezone=timezone,
        current_user=current_user,
        recurring_interval_hours=recurring_interval_hours,
    )
