"""
Access Control Constants and Definitions

WHY: Roles, modules and access levels are closed sets. Every access decision
compares values drawn from these enums, never free-form strings.

DESIGN PRINCIPLES:
- Global role (User.role) decides the two shortcuts: SUPER_ADMIN everywhere,
  FARM_ADMIN on the farms they administer
- Everything else is decided per (user, farm, module) by UserPermission rows
- Access levels are totally ordered; LEVEL_RANK is the single source of truth
"""

import enum

from .errors import ValidationError


# =============================================================================
# GLOBAL ROLES
# =============================================================================

class Role(str, enum.Enum):
    SUPER_ADMIN = "super_admin"
    FARM_ADMIN = "farm_admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"
    VETERINARIAN = "veterinarian"
    AGRONOMIST = "agronomist"
    CONSULTANT = "consultant"


# Roles allowed to administer users, memberships and permissions
ADMIN_ROLES = frozenset({Role.SUPER_ADMIN, Role.FARM_ADMIN})


# =============================================================================
# MODULES AND ACCESS LEVELS
# =============================================================================

class Module(str, enum.Enum):
    ANIMALS = "animals"
    CROPS = "crops"
    INVENTORY = "inventory"
    TASKS = "tasks"
    GOALS = "goals"
    FINANCIAL = "financial"
    REPORTS = "reports"
    ADMINISTRATION = "administration"
    EMPLOYEES = "employees"


class AccessLevel(str, enum.Enum):
    NONE = "none"
    READ_ONLY = "read_only"
    EDIT = "edit"
    MANAGE = "manage"
    FULL = "full"


LEVEL_RANK = {
    AccessLevel.NONE: 0,
    AccessLevel.READ_ONLY: 1,
    AccessLevel.EDIT: 2,
    AccessLevel.MANAGE: 3,
    AccessLevel.FULL: 4,
}

# Every AccessLevel member must have a rank.
_unranked = set(AccessLevel) - set(LEVEL_RANK)
if _unranked:
    raise RuntimeError(f"Access levels without rank: {sorted(level.name for level in _unranked)}")

MUTATING_LEVELS = frozenset({AccessLevel.EDIT, AccessLevel.MANAGE, AccessLevel.FULL})


def level_satisfies(stored: AccessLevel, required: AccessLevel) -> bool:
    """
    True when a stored grant covers the required level.

    Any stored row satisfies NONE. Above that the scale is ordered, so FULL
    satisfies everything and READ_ONLY never satisfies a mutating level.
    """
    if required is AccessLevel.NONE:
        return True
    return LEVEL_RANK[stored] >= LEVEL_RANK[required]


# =============================================================================
# FARM MEMBERSHIP ROLES
# =============================================================================

class MembershipRole(str, enum.Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    WORKER = "worker"
    SPECIALIST = "specialist"
    CONSULTANT = "consultant"
    MEMBER = "member"


# Starting permission rows created when a user joins a farm with
# apply_defaults=True. Admins adjust individual rows afterwards.
DEFAULT_MEMBERSHIP_PERMISSIONS = {
    MembershipRole.ADMIN: {module: AccessLevel.FULL for module in Module},
    MembershipRole.MANAGER: {
        Module.ANIMALS: AccessLevel.MANAGE,
        Module.CROPS: AccessLevel.MANAGE,
        Module.INVENTORY: AccessLevel.MANAGE,
        Module.TASKS: AccessLevel.MANAGE,
        Module.GOALS: AccessLevel.MANAGE,
        Module.FINANCIAL: AccessLevel.READ_ONLY,
        Module.REPORTS: AccessLevel.READ_ONLY,
        Module.EMPLOYEES: AccessLevel.READ_ONLY,
    },
    MembershipRole.WORKER: {
        Module.ANIMALS: AccessLevel.EDIT,
        Module.CROPS: AccessLevel.EDIT,
        Module.INVENTORY: AccessLevel.EDIT,
        Module.TASKS: AccessLevel.EDIT,
    },
    MembershipRole.SPECIALIST: {
        Module.ANIMALS: AccessLevel.EDIT,
        Module.CROPS: AccessLevel.EDIT,
        Module.INVENTORY: AccessLevel.READ_ONLY,
        Module.REPORTS: AccessLevel.READ_ONLY,
    },
    MembershipRole.CONSULTANT: {
        Module.ANIMALS: AccessLevel.READ_ONLY,
        Module.CROPS: AccessLevel.READ_ONLY,
        Module.REPORTS: AccessLevel.READ_ONLY,
    },
    MembershipRole.MEMBER: {},
}


# =============================================================================
# PARSING HELPERS
# =============================================================================

def parse_enum(enum_cls, value, field: str):
    """
    Resolve a member from its value ("read_only") or name ("READ_ONLY").

    Raises ValidationError naming the field and the accepted values.
    """
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        raw = value.strip()
        try:
            return enum_cls(raw.lower())
        except ValueError:
            pass
        if raw.upper() in enum_cls.__members__:
            return enum_cls[raw.upper()]
    allowed = ", ".join(member.value for member in enum_cls)
    raise ValidationError(f"{field} must be one of: {allowed}")
