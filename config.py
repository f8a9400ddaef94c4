import os
from functools import lru_cache
from pathlib import Path


class Settings:
    def __init__(self, database_url: str, echo_sql: bool) -> None:
        self.database_url = database_url
        self.echo_sql = echo_sql


def _ensure_data_dir() -> Path:
    root = Path(os.getenv("CASHBACK_DATA_DIR", "./data")).resolve()
    root.mkdir(parents=True, exist_ok=True)
    return root


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    database_url = os.getenv("CASHBACK_DATABASE_URL")
    if not database_url:
        default_db = _ensure_data_dir() / "cashback.db"
        database_url = f"sqlite:///{default_db}"
    echo_sql = os.getenv("CASHBACK_ECHO_SQL", "0") == "1"
    return Settings(database_url=database_url, echo_sql=echo_sql)
