# Overview: Flask API routes for system health; reports database and notification store status.

import time
from datetime import timedelta

from flask import Blueprint, current_app
from sqlalchemy import text

from ..extensions import db
from ..models import Component, Notification, User
from ..services.notification_service import DEFAULT_PURGE_GRACE_DAYS
from compstock.time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        component_count = db.session.query(Component).count()
        user_count = db.session.query(User).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "components": component_count,
                "users": user_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


def check_notification_store_health() -> dict:
    """
    Count live notifications and expired ones waiting for the purge command.
    """
    start_time = time.time()
    try:
        now = utcnow()
        grace_days = int(current_app.config.get("NOTIFICATION_PURGE_GRACE_DAYS", DEFAULT_PURGE_GRACE_DAYS))

        live = db.session.query(Notification).filter(
            Notification.is_active.is_(True),
            Notification.expires_at > now,
        ).count()
        pending_purge = db.session.query(Notification).filter(
            Notification.expires_at < now - timedelta(days=grace_days),
        ).count()

        elapsed_ms = (time.time() - start_time) * 1000
        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "live_notifications": live,
                "expired_pending_purge": pending_purge,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Notification store health check failed")
        db.session.rollback()
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Notification store error"
        }


@system_bp.get("/health")
def health():
    database = check_database_health()
    notifications = check_notification_store_health()
    healthy = all(c["status"] == "healthy" for c in (database, notifications))
    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database, "notifications": notifications},
    }
    return body, 200 if healthy else 503


@system_bp.get("/version")
def version():
    """Non-sensitive deployment info."""
    import sys

    env = "production" if not current_app.debug else "development"

    return {
        "api_version": "1.0.0",
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
