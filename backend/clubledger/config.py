# backend/clubledger/config.py
from __future__ import annotations
import os
from decimal import Decimal


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/clubledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///clubledger.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Stock policy: when False, no movement may take an article below zero
    ALLOW_NEGATIVE_STOCK = _env_bool("ALLOW_NEGATIVE_STOCK", False)

    # How far an ACCOUNT sale may take a balance below zero (0 = never)
    ACCOUNT_OVERDRAFT_LIMIT = Decimal(os.environ.get("ACCOUNT_OVERDRAFT_LIMIT", "0.00"))

    # Highscore window and leaderboard
    HIGHSCORE_DAILY_RESET_HOUR = int(os.environ.get("HIGHSCORE_DAILY_RESET_HOUR", "12"))
    HIGHSCORE_DISPLAY_COUNT = int(os.environ.get("HIGHSCORE_DISPLAY_COUNT", "10"))
    HIGHSCORE_COUNT_INACTIVE_ARTICLES = _env_bool("HIGHSCORE_COUNT_INACTIVE_ARTICLES", False)

    # Daily summary business day; calendar midnight unless configured.
    # Deliberately independent of HIGHSCORE_DAILY_RESET_HOUR.
    DAILY_SUMMARY_START_HOUR = int(os.environ.get("DAILY_SUMMARY_START_HOUR", "0"))

    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")

    # Unit of work: bounded lock wait and retry budget
    LOCK_TIMEOUT_SECONDS = float(os.environ.get("LOCK_TIMEOUT_SECONDS", "5"))
    UNIT_OF_WORK_ATTEMPTS = int(os.environ.get("UNIT_OF_WORK_ATTEMPTS", "3"))

    NOTIFICATIONS_ASYNC = _env_bool("NOTIFICATIONS_ASYNC", True)
