# Overview: Service-layer operations for farms and farm memberships.

"""
Farms and Memberships

MEMBERSHIP INVARIANT:
A user without a UserFarm row for a farm has no UserPermission rows for that
farm. remove_user_from_farm deletes both in one DB transaction.
"""

from __future__ import annotations

from ..errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from ..extensions import db
from ..models import Farm, User, UserFarm, UserPermission
from ..permissions import ADMIN_ROLES, MembershipRole, Role
from .permission_service import apply_default_permissions, log_security_event, require_farm_admin


def get_farm(farm_id: int) -> Farm:
    farm = db.session.get(Farm, farm_id)
    if farm is None:
        raise NotFoundError(f"Farm {farm_id} not found")
    return farm


def create_farm(*, actor: User, name: str, location: str, admin_id: int | None = None) -> Farm:
    """
    Create a farm.

    A FARM_ADMIN creating a farm becomes its admin unless admin_id says
    otherwise; only a SUPER_ADMIN may name someone else. The admin is also
    registered as an "admin" member.
    """
    if actor.role not in ADMIN_ROLES:
        raise PermissionDeniedError("Not authorized - insufficient role")

    name = (name or "").strip()
    location = (location or "").strip()
    if not name or not location:
        raise ValidationError("name and location are required")

    if admin_id is None and actor.role is Role.FARM_ADMIN:
        admin_id = actor.id
    if admin_id is not None and admin_id != actor.id and actor.role is not Role.SUPER_ADMIN:
        raise PermissionDeniedError("Only a super admin can assign another user as farm admin")

    admin = None
    if admin_id is not None:
        admin = db.session.get(User, admin_id)
        if admin is None:
            raise NotFoundError(f"User {admin_id} not found")
        if admin.role is not Role.FARM_ADMIN:
            raise ValidationError("Farm admin must have the farm_admin role")

    farm = Farm(name=name, location=location, created_by=actor.id, admin_id=admin_id)
    db.session.add(farm)
    db.session.flush()

    if admin is not None:
        db.session.add(UserFarm(user_id=admin.id, farm_id=farm.id, role=MembershipRole.ADMIN))

    db.session.commit()
    return farm


def list_accessible_farms(actor: User) -> list[Farm]:
    """
    SUPER_ADMIN: every farm.
    FARM_ADMIN: farms they administer plus farms they are a member of.
    Everyone else: farms they are a member of.
    """
    query = db.session.query(Farm)
    if actor.role is Role.SUPER_ADMIN:
        return query.order_by(Farm.name).all()

    member_farm_ids = db.session.query(UserFarm.farm_id).filter(UserFarm.user_id == actor.id)
    condition = Farm.id.in_(member_farm_ids)
    if actor.role is Role.FARM_ADMIN:
        condition = condition | (Farm.admin_id == actor.id)
    return query.filter(condition).order_by(Farm.name).all()


def list_farm_members(farm_id: int) -> list[dict]:
    get_farm(farm_id)
    rows = (
        db.session.query(UserFarm, User)
        .join(User, User.id == UserFarm.user_id)
        .filter(UserFarm.farm_id == farm_id)
        .order_by(User.username)
        .all()
    )
    return [dict(membership.to_dict(), user=user.to_dict()) for membership, user in rows]


def assign_user_to_farm(
    *,
    actor: User,
    farm_id: int,
    user_id: int,
    role: MembershipRole = MembershipRole.MEMBER,
    apply_defaults: bool = False,
    ip_address: str | None = None,
) -> UserFarm:
    """
    Add user_id to farm_id.

    apply_defaults=True seeds UserPermission rows from
    DEFAULT_MEMBERSHIP_PERMISSIONS in the same DB transaction.
    """
    require_farm_admin(actor, farm_id)

    user = db.session.get(User, user_id)
    if user is None:
        raise NotFoundError(f"User {user_id} not found")
    if user.role is Role.SUPER_ADMIN and actor.role is not Role.SUPER_ADMIN:
        raise PermissionDeniedError("Farm admins cannot modify a super admin account")

    existing = db.session.query(UserFarm).filter_by(user_id=user_id, farm_id=farm_id).first()
    if existing:
        raise ConflictError(f"User {user_id} is already a member of farm {farm_id}")

    membership = UserFarm(user_id=user_id, farm_id=farm_id, role=role)
    db.session.add(membership)
    db.session.flush()

    if apply_defaults:
        apply_default_permissions(
            user_id=user_id,
            farm_id=farm_id,
            membership_role=role,
            granted_by=actor.id,
        )

    log_security_event(
        user_id=actor.id,
        event_type="MEMBER_ASSIGNED",
        success=True,
        resource=f"/api/farms/{farm_id}/users",
        action=f"assign:{user_id}:{role.value}",
        ip_address=ip_address,
        farm_id=farm_id,
        commit=False,
    )
    db.session.commit()
    return membership


def remove_user_from_farm(*, actor: User, farm_id: int, user_id: int, ip_address: str | None = None) -> int:
    """
    Remove a membership and every permission row for (user, farm).

    Both deletes commit together. Returns the number of permission rows
    removed. The farm's designated admin cannot be removed while assigned.
    """
    farm = require_farm_admin(actor, farm_id)

    membership = db.session.query(UserFarm).filter_by(user_id=user_id, farm_id=farm_id).first()
    if membership is None:
        raise NotFoundError(f"User {user_id} is not a member of farm {farm_id}")

    if farm.admin_id == user_id:
        raise ValidationError("Reassign the farm admin before removing them from the farm")

    target = db.session.get(User, user_id)
    if target is not None and target.role is Role.SUPER_ADMIN and actor.role is not Role.SUPER_ADMIN:
        raise PermissionDeniedError("Farm admins cannot modify a super admin account")

    db.session.delete(membership)
    removed = (
        db.session.query(UserPermission)
        .filter_by(user_id=user_id, farm_id=farm_id)
        .delete(synchronize_session="fetch")
    )

    log_security_event(
        user_id=actor.id,
        event_type="MEMBER_REMOVED",
        success=True,
        resource=f"/api/farms/{farm_id}/users/{user_id}",
        action=f"remove:{user_id}",
        reason=f"Removed {removed} permission rows",
        ip_address=ip_address,
        farm_id=farm_id,
        commit=False,
    )
    db.session.commit()
    return removed
