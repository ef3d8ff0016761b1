# posledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in instance/posledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///posledger.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Voids put sold quantities back on the shelf unless disabled
    VOID_RESTORES_STOCK = _env_bool("VOID_RESTORES_STOCK", True)

    SALE_NUMBER_PREFIX = os.environ.get("SALE_NUMBER_PREFIX", "INV")

    # Sales history paging and default window
    SALES_LIST_DEFAULT_LIMIT = int(os.environ.get("SALES_LIST_DEFAULT_LIMIT", "200"))
    SALES_LIST_MAX_LIMIT = int(os.environ.get("SALES_LIST_MAX_LIMIT", "500"))
    SALES_LIST_DEFAULT_DAYS = int(os.environ.get("SALES_LIST_DEFAULT_DAYS", "30"))

    # Retry policy for lock/optimistic-version conflicts
    DB_RETRY_ATTEMPTS = int(os.environ.get("DB_RETRY_ATTEMPTS", "3"))
    DB_RETRY_BACKOFF = float(os.environ.get("DB_RETRY_BACKOFF", "0.1"))
