# backend/possync/config.py
from __future__ import annotations
import os


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/possync.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///possync.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Failed replays allowed before an operation is reported as exhausted
    SYNC_MAX_RETRIES = int(os.environ.get("SYNC_MAX_RETRIES", "5"))

    # Move exhausted/rejected operations out of the active queue
    SYNC_DEAD_LETTER_EXHAUSTED = _env_flag("SYNC_DEAD_LETTER_EXHAUSTED", False)

    # Commit attempts when the database reports a lock
    SYNC_COMMIT_ATTEMPTS = int(os.environ.get("SYNC_COMMIT_ATTEMPTS", "3"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
