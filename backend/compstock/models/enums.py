from enum import Enum


class _ValuesMixin:
    @classmethod
    def values(cls) -> set[str]:
        return {member.value for member in cls}


class ComponentCategory(_ValuesMixin, str, Enum):
    PASSIVE = "Passive Components"
    SEMICONDUCTORS = "Semiconductors"
    MICROCONTROLLERS = "Microcontrollers"
    SENSORS = "Sensors"
    MEMORY = "Memory"
    TIMING = "Timing Components"
    POWER = "Power Management"
    CONNECTORS = "Connectors"
    DISPLAYS = "Displays"
    OTHER = "Other"


class StockStatus(_ValuesMixin, str, Enum):
    IN_STOCK = "in_stock"
    LOW_STOCK = "low_stock"
    OUT_OF_STOCK = "out_of_stock"


class MovementType(_ValuesMixin, str, Enum):
    INWARD = "inward"
    OUTWARD = "outward"


class Role(_ValuesMixin, str, Enum):
    ADMIN = "admin"
    USER = "user"
    RESEARCHER = "researcher"
    ENGINEER = "engineer"


class Capability(_ValuesMixin, str, Enum):
    ALL = "all"
    VIEW = "view"
    EDIT = "edit"
    INWARD = "inward"
    OUTWARD = "outward"
    REPORTS = "reports"
    SEARCH = "search"


class NotificationType(_ValuesMixin, str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    SUCCESS = "success"


class NotificationPriority(_ValuesMixin, str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class NotificationCategory(_ValuesMixin, str, Enum):
    LOW_STOCK = "low_stock"
    OLD_STOCK = "old_stock"
    STOCK_MOVEMENT = "stock_movement"
    USER_ACTIVITY = "user_activity"
    SYSTEM = "system"


# Sort weight for notification listings (higher first)
PRIORITY_WEIGHT = {
    NotificationPriority.HIGH.value: 3,
    NotificationPriority.MEDIUM.value: 2,
    NotificationPriority.LOW.value: 1,
}
