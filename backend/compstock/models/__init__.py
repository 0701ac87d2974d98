from .auth import User
from .inventory import Component, StockMovement
from .notifications import Notification, NotificationRead

__all__ = [
    'User',
    'Component', 'StockMovement',
    'Notification', 'NotificationRead',
]
