# backend/cartonstock/config.py
from __future__ import annotations
import os


def _int_or_none(value: str | None) -> int | None:
    if value is None or not value.strip():
        return None
    return int(value)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/cartonstock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///cartonstock.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Designated fulfillment store. Empty -> the single location of type "store".
    STORE_LOCATION_ID = _int_or_none(os.environ.get("STORE_LOCATION_ID"))

    # Calendar used for snapshot dates ("today")
    BUSINESS_TIMEZONE = os.environ.get("BUSINESS_TIMEZONE", "UTC")

    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))

    CONCURRENCY_RETRY_ATTEMPTS = int(os.environ.get("CONCURRENCY_RETRY_ATTEMPTS", "3"))
    CONCURRENCY_BACKOFF_SECONDS = float(os.environ.get("CONCURRENCY_BACKOFF_SECONDS", "0.1"))
