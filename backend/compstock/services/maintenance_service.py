# Overview: Service-layer operations for maintenance; periodic cleanup jobs run from the CLI.

from __future__ import annotations

from flask import current_app

from .notification_service import purge_expired


def purge_expired_notifications(*, grace_days: int | None = None) -> int:
    """
    Delete notifications that expired more than grace_days ago.

    Movement history is never purged.
    """
    deleted = purge_expired(grace_days=grace_days)
    current_app.logger.info("Purged %s expired notification(s)", deleted)
    return deleted
