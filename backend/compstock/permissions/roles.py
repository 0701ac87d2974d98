# Overview: Fixed role -> capability table.

from ..models.enums import Capability, Role


DEFAULT_ROLE_PERMISSIONS = {
    Role.ADMIN: frozenset({Capability.ALL}),
    Role.USER: frozenset({Capability.VIEW, Capability.EDIT, Capability.INWARD, Capability.OUTWARD}),
    Role.RESEARCHER: frozenset({Capability.VIEW, Capability.SEARCH}),
    Role.ENGINEER: frozenset({Capability.VIEW, Capability.OUTWARD, Capability.REPORTS}),
}

# Used when a role has no table entry
FALLBACK_PERMISSIONS = frozenset({Capability.VIEW})
