# backend/stockflow/config.py
from __future__ import annotations
import os


class Config:
    # SQLite DB stored next to the backend by default
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///stockflow.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Reporting defaults
    LOW_STOCK_THRESHOLD = int(os.environ.get("LOW_STOCK_THRESHOLD", "10"))
    RECENT_BILLS_LIMIT = int(os.environ.get("RECENT_BILLS_LIMIT", "20"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Snapshot persistence retry policy
    SNAPSHOT_SAVE_ATTEMPTS = int(os.environ.get("SNAPSHOT_SAVE_ATTEMPTS", "3"))
