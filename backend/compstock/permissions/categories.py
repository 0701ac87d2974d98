# Overview: Permission category constants for grouping related capabilities.


class PermissionCategory:
    """Capability categories for organization and UI display."""
    INVENTORY = "INVENTORY"
    MOVEMENTS = "MOVEMENTS"
    REPORTING = "REPORTING"
    SYSTEM = "SYSTEM"
