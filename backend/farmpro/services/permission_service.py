# Overview: Service-layer operations for permission rows and the security audit log.

"""
Per-Farm Module Permissions and Security Event Logging

WHY: Fine-grained rights are UserPermission rows keyed by
(user, farm, module). This module is the only writer of those rows.

RULES:
- Only SUPER_ADMIN, or the FARM_ADMIN who administers the farm, may write
- Writes are upserts: never two rows for the same (user, farm, module)
- The target user must be a member of the farm (no orphan rows)
- A FARM_ADMIN may not touch a SUPER_ADMIN's rights
- Every change and every denial is written to security_events
"""

from __future__ import annotations

from ..errors import NotFoundError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..models import Farm, SecurityEvent, User, UserFarm, UserPermission
from ..permissions import AccessLevel, DEFAULT_MEMBERSHIP_PERMISSIONS, MembershipRole, Module, Role
from .access_service import get_access_controller
from farmpro.time_utils import utcnow


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
    farm_id: int | None = None,
    commit: bool = True,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    commit=False adds the event to the caller's unit of work so it lands
    (or rolls back) together with the change it records.

    event_type examples:
    - ACCESS_DENIED
    - ROLE_DENIED
    - PERMISSION_SET
    - PERMISSION_REVOKED
    - MEMBER_ASSIGNED
    - MEMBER_REMOVED
    - USER_CREATED
    - ROLE_CHANGED
    - ESCALATION_BLOCKED
    """
    event = SecurityEvent(
        user_id=user_id,
        farm_id=farm_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow(),
    )

    db.session.add(event)
    if commit:
        db.session.commit()
    else:
        db.session.flush()

    return event


def require_farm_admin(actor: User, farm_id: int) -> Farm:
    """
    Ensure actor may administer farm_id; returns the farm.

    Raises NotFoundError for an unknown farm, PermissionDeniedError otherwise.
    """
    farm = db.session.get(Farm, farm_id)
    if farm is None:
        raise NotFoundError(f"Farm {farm_id} not found")
    if not get_access_controller().can_administer_farm(actor, farm_id):
        raise PermissionDeniedError("Only a super admin or this farm's admin can manage its users and permissions")
    return farm


def _guard_super_admin_target(actor: User, target: User) -> None:
    if target.role is Role.SUPER_ADMIN and actor.role is not Role.SUPER_ADMIN:
        raise PermissionDeniedError("Farm admins cannot modify a super admin account")


def get_user_permissions(user_id: int, farm_id: int) -> list[UserPermission]:
    return (
        db.session.query(UserPermission)
        .filter_by(user_id=user_id, farm_id=farm_id)
        .order_by(UserPermission.module.asc())
        .all()
    )


def get_access_map(user_id: int, farm_id: int) -> dict[str, str]:
    """{module: access_level} for every stored row."""
    return {p.module.value: p.access_level.value for p in get_user_permissions(user_id, farm_id)}


def _upsert(user_id: int, farm_id: int, module: Module, access_level: AccessLevel, granted_by: int | None) -> UserPermission:
    permission = db.session.query(UserPermission).filter_by(
        user_id=user_id,
        farm_id=farm_id,
        module=module,
    ).first()

    if permission:
        permission.access_level = access_level
        permission.granted_by_user_id = granted_by
    else:
        permission = UserPermission(
            user_id=user_id,
            farm_id=farm_id,
            module=module,
            access_level=access_level,
            granted_by_user_id=granted_by,
        )
        db.session.add(permission)

    db.session.flush()
    return permission


def set_user_permission(
    *,
    actor: User,
    user_id: int,
    farm_id: int,
    module: Module,
    access_level: AccessLevel,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> UserPermission:
    """
    Create or update the single permission row for (user, farm, module).
    """
    require_farm_admin(actor, farm_id)

    target = db.session.get(User, user_id)
    if target is None:
        raise NotFoundError(f"User {user_id} not found")
    _guard_super_admin_target(actor, target)

    membership = db.session.query(UserFarm).filter_by(user_id=user_id, farm_id=farm_id).first()
    if membership is None:
        raise ValidationError(f"User {user_id} is not a member of farm {farm_id}")

    permission = _upsert(user_id, farm_id, module, access_level, actor.id)

    log_security_event(
        user_id=actor.id,
        event_type="PERMISSION_SET",
        success=True,
        resource=f"/api/farms/{farm_id}/permissions",
        action=f"{module.value}:{access_level.value}",
        reason=f"Set for user {user_id}",
        ip_address=ip_address,
        user_agent=user_agent,
        farm_id=farm_id,
        commit=False,
    )

    db.session.commit()
    return permission


def revoke_user_permission(*, actor: User, user_id: int, farm_id: int, module: Module) -> bool:
    """Delete one permission row. Returns False if there was none."""
    require_farm_admin(actor, farm_id)

    target = db.session.get(User, user_id)
    if target is None:
        raise NotFoundError(f"User {user_id} not found")
    _guard_super_admin_target(actor, target)

    permission = db.session.query(UserPermission).filter_by(
        user_id=user_id,
        farm_id=farm_id,
        module=module,
    ).first()
    if not permission:
        return False

    db.session.delete(permission)
    log_security_event(
        user_id=actor.id,
        event_type="PERMISSION_REVOKED",
        success=True,
        resource=f"/api/farms/{farm_id}/permissions",
        action=module.value,
        reason=f"Revoked for user {user_id}",
        farm_id=farm_id,
        commit=False,
    )
    db.session.commit()
    return True


def apply_default_permissions(
    *,
    user_id: int,
    farm_id: int,
    membership_role: MembershipRole,
    granted_by: int | None = None,
) -> list[UserPermission]:
    """
    Upsert the starting rows for a membership role.

    Flushes only; the caller owns the commit.
    """
    defaults = DEFAULT_MEMBERSHIP_PERMISSIONS.get(membership_role, {})
    return [
        _upsert(user_id, farm_id, module, level, granted_by)
        for module, level in defaults.items()
    ]
