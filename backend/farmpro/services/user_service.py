# Overview: Administrative user changes guarded by the escalation rules.

"""
User Administration

ESCALATION RULES (every path that changes a user goes through here):
- Nobody changes their own role
- A FARM_ADMIN never creates, promotes to, or modifies a SUPER_ADMIN
- Only SUPER_ADMIN and FARM_ADMIN actors change other users at all
"""

from __future__ import annotations

from ..errors import NotFoundError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..models import Farm, User, UserFarm
from ..permissions import ADMIN_ROLES, Role
from . import session_service
from .auth_service import hash_password
from .permission_service import log_security_event


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    return user


def list_users(*, role: Role | None = None, include_inactive: bool = False) -> list[User]:
    query = db.session.query(User)
    if role is not None:
        query = query.filter(User.role == role)
    if not include_inactive:
        query = query.filter(User.is_active.is_(True))
    return query.order_by(User.username).all()


def _guard_target(actor: User, target: User) -> None:
    if actor.role not in ADMIN_ROLES:
        raise PermissionDeniedError("Not authorized - insufficient role")
    if target.role is Role.SUPER_ADMIN and actor.role is not Role.SUPER_ADMIN:
        raise PermissionDeniedError("Farm admins cannot modify a super admin account")


def change_role(
    *,
    actor: User,
    user_id: int,
    new_role: Role,
    ip_address: str | None = None,
    commit: bool = True,
) -> User:
    """
    Set another user's global role.

    Raises PermissionDeniedError for self-change and for any FARM_ADMIN
    action involving SUPER_ADMIN (as target or as new role). Blocked
    attempts are audited. With commit=False the change and its ROLE_CHANGED
    event stay in the caller's unit of work.
    """
    target = get_user(user_id)

    try:
        if target.id == actor.id:
            raise PermissionDeniedError("You cannot change your own role")
        _guard_target(actor, target)
        if new_role is Role.SUPER_ADMIN and actor.role is not Role.SUPER_ADMIN:
            raise PermissionDeniedError("Only a super admin can grant the super admin role")
    except PermissionDeniedError as e:
        log_security_event(
            user_id=actor.id,
            event_type="ESCALATION_BLOCKED",
            success=False,
            resource=f"/api/users/{user_id}",
            action=f"role:{new_role.value}",
            reason=e.message,
            ip_address=ip_address,
        )
        raise

    previous = target.role
    target.role = new_role
    log_security_event(
        user_id=actor.id,
        event_type="ROLE_CHANGED",
        success=True,
        resource=f"/api/users/{user_id}",
        action=f"role:{previous.value}->{new_role.value}",
        ip_address=ip_address,
        commit=False,
    )
    if commit:
        db.session.commit()
    return target


def update_user(
    *,
    actor: User,
    user_id: int,
    changes: dict,
    new_role: Role | None = None,
    ip_address: str | None = None,
) -> User:
    """
    Update profile fields (email, name, language, is_active, password) and,
    optionally, the global role.

    The role and profile changes commit together; any rejected field rolls
    back the whole update. "role" inside changes is rejected; pass new_role
    so the escalation checks in change_role apply.
    """
    if "role" in changes:
        raise ValidationError("role is changed through change_role")

    target = get_user(user_id)
    try:
        if new_role is not None:
            change_role(actor=actor, user_id=user_id, new_role=new_role, ip_address=ip_address, commit=False)
        elif target.id != actor.id:
            _guard_target(actor, target)

        if "is_active" in changes:
            if target.id == actor.id:
                raise ValidationError("Cannot deactivate your own account")
            target.is_active = bool(changes["is_active"])
            if not target.is_active:
                session_service.revoke_all_user_sessions(target.id, reason="Account deactivated by admin", commit=False)

        for field in ("email", "name"):
            if field in changes:
                value = str(changes[field]).strip()
                if not value:
                    raise ValidationError(f"{field} cannot be blank")
                setattr(target, field, value)

        if "language" in changes:
            target.language = str(changes["language"]).strip() or target.language

        if "password" in changes:
            target.password_hash = hash_password(str(changes["password"]))
            if target.id != actor.id:
                session_service.revoke_all_user_sessions(target.id, reason="Password reset by admin", commit=False)

        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    return target


def list_user_farms(user_id: int) -> list[dict]:
    """Memberships of a user with the farm name, for admin screens."""
    get_user(user_id)
    rows = (
        db.session.query(UserFarm, Farm)
        .join(Farm, Farm.id == UserFarm.farm_id)
        .filter(UserFarm.user_id == user_id)
        .order_by(Farm.name)
        .all()
    )
    return [dict(membership.to_dict(), farm_name=farm.name) for membership, farm in rows]
