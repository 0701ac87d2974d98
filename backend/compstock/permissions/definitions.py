# Overview: All capability definitions organized by category.
# Each capability is defined as: (code, name, description, category)

from ..models.enums import Capability
from .categories import PermissionCategory


# -- INVENTORY --

INVENTORY_PERMISSIONS = [
    (
        Capability.VIEW,
        "View Inventory",
        "View components, stock levels and movement history",
        PermissionCategory.INVENTORY,
    ),
    (
        Capability.EDIT,
        "Edit Components",
        "Create and update components, import from CSV",
        PermissionCategory.INVENTORY,
    ),
    (
        Capability.SEARCH,
        "Search Inventory",
        "Run text searches across the component catalogue",
        PermissionCategory.INVENTORY,
    ),
]


# -- MOVEMENTS --

MOVEMENT_PERMISSIONS = [
    (
        Capability.INWARD,
        "Inward Stock",
        "Record inward movements (incoming stock)",
        PermissionCategory.MOVEMENTS,
    ),
    (
        Capability.OUTWARD,
        "Outward Stock",
        "Record outward movements (stock issued to projects)",
        PermissionCategory.MOVEMENTS,
    ),
]


# -- REPORTING --

REPORTING_PERMISSIONS = [
    (
        Capability.REPORTS,
        "View Reports",
        "View inventory reports and movement statistics",
        PermissionCategory.REPORTING,
    ),
]


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        Capability.ALL,
        "Full Access",
        "Every capability, including deletes, bulk updates, user and alert administration",
        PermissionCategory.SYSTEM,
    ),
]


PERMISSION_DEFINITIONS = (
    INVENTORY_PERMISSIONS
    + MOVEMENT_PERMISSIONS
    + REPORTING_PERMISSIONS
    + SYSTEM_PERMISSIONS
)
