# Overview: Capability system package.
# Re-exports all public APIs.

from .categories import PermissionCategory
from .definitions import (
    PERMISSION_DEFINITIONS,
    INVENTORY_PERMISSIONS,
    MOVEMENT_PERMISSIONS,
    REPORTING_PERMISSIONS,
    SYSTEM_PERMISSIONS,
)
from .roles import DEFAULT_ROLE_PERMISSIONS, FALLBACK_PERMISSIONS
from .helpers import (
    get_all_permission_codes,
    get_permissions_by_category,
    get_permission_definition,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "PERMISSION_DEFINITIONS",
    "INVENTORY_PERMISSIONS",
    "MOVEMENT_PERMISSIONS",
    "REPORTING_PERMISSIONS",
    "SYSTEM_PERMISSIONS",
    "DEFAULT_ROLE_PERMISSIONS",
    "FALLBACK_PERMISSIONS",
    "get_all_permission_codes",
    "get_permissions_by_category",
    "get_permission_definition",
    "validate_permission_code",
]
