# backend/compstock/config.py
from __future__ import annotations
import os


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/compstock.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///compstock.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Alert engine suppression windows
    LOW_STOCK_DEDUP_HOURS = int(os.environ.get("LOW_STOCK_DEDUP_HOURS", "24"))
    OLD_STOCK_DEDUP_DAYS = int(os.environ.get("OLD_STOCK_DEDUP_DAYS", "7"))
    OLD_STOCK_THRESHOLD_DAYS = int(os.environ.get("OLD_STOCK_THRESHOLD_DAYS", "90"))

    # Notification lifetime and physical cleanup grace period
    NOTIFICATION_TTL_DAYS = int(os.environ.get("NOTIFICATION_TTL_DAYS", "30"))
    NOTIFICATION_PURGE_GRACE_DAYS = int(os.environ.get("NOTIFICATION_PURGE_GRACE_DAYS", "30"))

    # Upper bound on waiting for a per-component movement lock
    COMPONENT_LOCK_TIMEOUT_SECONDS = float(os.environ.get("COMPONENT_LOCK_TIMEOUT_SECONDS", "10"))
