# Overview: Flask API routes for farms, memberships and per-farm module permissions.

"""
Farm routes.

- GET /api/farms lists only the farms the actor can reach
- Membership and permission writes require SUPER_ADMIN or the farm's own
  FARM_ADMIN (checked in the services via AccessController.can_administer_farm)
- Reads of a farm's members require ADMINISTRATION access on that farm
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_module_access, require_role
from ..errors import FarmProError, NotFoundError, PermissionDeniedError, ValidationError, error_response
from ..permissions import ADMIN_ROLES, AccessLevel, MembershipRole, Module, parse_enum
from ..services import farm_service, permission_service
from ..services.access_service import get_access_controller
from ..validation import json_body

farms_bp = Blueprint("farms", __name__, url_prefix="/api/farms")


def _int_field(data: dict, *keys: str) -> int:
    for key in keys:
        value = data.get(key)
        if value is None:
            continue
        if isinstance(value, bool):
            break
        if isinstance(value, int):
            return value
        if isinstance(value, str) and value.strip().isdigit():
            return int(value.strip())
        break
    raise ValidationError(f"{keys[0]} must be an integer")


@farms_bp.get("")
@require_auth
def list_farms_route():
    try:
        farms = farm_service.list_accessible_farms(g.current_user)
        return jsonify({"farms": [f.to_dict() for f in farms], "count": len(farms)}), 200
    except Exception:
        current_app.logger.exception("Failed to list farms")
        return jsonify({"message": "Internal server error"}), 500


@farms_bp.post("")
@require_auth
@require_role(*ADMIN_ROLES)
def create_farm_route():
    """
    Request body:
    - name, location: str (required)
    - adminId: int (optional; SUPER_ADMIN only, defaults to a FARM_ADMIN creator)
    """
    try:
        data = json_body()
        raw_admin = data.get("adminId", data.get("admin_id"))
        admin_id = _int_field(data, "adminId", "admin_id") if raw_admin is not None else None
        farm = farm_service.create_farm(
            actor=g.current_user,
            name=data.get("name"),
            location=data.get("location"),
            admin_id=admin_id,
        )
        return jsonify({"farm": farm.to_dict()}), 201
    except FarmProError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create farm")
        return jsonify({"message": "Internal server error"}), 500


@farms_bp.get("/<int:farm_id>")
@require_auth
def get_farm_route(farm_id: int):
    """Visible to anyone who can reach the farm; 404 otherwise."""
    try:
        user = g.current_user
        farm = farm_service.get_farm(farm_id)
        if farm not in farm_service.list_accessible_farms(user):
            raise NotFoundError(f"Farm {farm_id} not found")
        return jsonify({"farm": farm.to_dict()}), 200
    except FarmProError as e:
        return error_response(e)


# =============================================================================
# MEMBERSHIPS
# =============================================================================

@farms_bp.get("/<int:farm_id>/users")
@require_auth
@require_module_access(Module.ADMINISTRATION, AccessLevel.READ_ONLY)
def list_members_route(farm_id: int):
    try:
        members = farm_service.list_farm_members(farm_id)
        return jsonify({"users": members, "count": len(members)}), 200
    except FarmProError as e:
        return error_response(e)


@farms_bp.post("/<int:farm_id>/users")
@require_auth
@require_role(*ADMIN_ROLES)
def assign_member_route(farm_id: int):
    """
    Request body:
    - userId: int (required)
    - role: membership role (optional, default member)
    - applyDefaults: bool (optional) seed permissions for the role
    """
    try:
        data = json_body()
        user_id = _int_field(data, "userId", "user_id")
        role = parse_enum(MembershipRole, data.get("role") or MembershipRole.MEMBER.value, "role")
        membership = farm_service.assign_user_to_farm(
            actor=g.current_user,
            farm_id=farm_id,
            user_id=user_id,
            role=role,
            apply_defaults=bool(data.get("applyDefaults", data.get("apply_defaults", False))),
            ip_address=request.remote_addr,
        )
        return jsonify({
            "membership": membership.to_dict(),
            "permissions": permission_service.get_access_map(user_id, farm_id),
        }), 201
    except FarmProError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to assign user to farm")
        return jsonify({"message": "Internal server error"}), 500


@farms_bp.delete("/<int:farm_id>/users/<int:user_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def remove_member_route(farm_id: int, user_id: int):
    """Removes the membership and every permission row for the pair."""
    try:
        removed = farm_service.remove_user_from_farm(
            actor=g.current_user,
            farm_id=farm_id,
            user_id=user_id,
            ip_address=request.remote_addr,
        )
        return jsonify({"message": "User removed from farm", "permissions_removed": removed}), 200
    except FarmProError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to remove user from farm")
        return jsonify({"message": "Internal server error"}), 500


# =============================================================================
# PERMISSIONS
# =============================================================================

@farms_bp.get("/<int:farm_id>/users/<int:user_id>/permissions")
@require_auth
def user_permissions_route(farm_id: int, user_id: int):
    """A user may read their own rows; farm administrators may read anyone's."""
    try:
        actor = g.current_user
        farm_service.get_farm(farm_id)
        if actor.id != user_id and not get_access_controller().can_administer_farm(actor, farm_id):
            raise PermissionDeniedError("Only a super admin or this farm's admin can view other users' permissions")

        rows = permission_service.get_user_permissions(user_id, farm_id)
        return jsonify({"permissions": [p.to_dict() for p in rows], "count": len(rows)}), 200
    except FarmProError as e:
        return error_response(e)


@farms_bp.put("/<int:farm_id>/permissions")
@require_auth
@require_role(*ADMIN_ROLES)
def set_permission_route(farm_id: int):
    """
    Upsert one (user, farm, module) row.

    Request body: {"userId": 5, "module": "inventory", "accessLevel": "edit"}
    """
    actor = g.current_user
    try:
        data = json_body()
        user_id = _int_field(data, "userId", "user_id")
        module = parse_enum(Module, data.get("module"), "module")
        level = parse_enum(AccessLevel, data.get("accessLevel", data.get("access_level")), "accessLevel")

        permission = permission_service.set_user_permission(
            actor=actor,
            user_id=user_id,
            farm_id=farm_id,
            module=module,
            access_level=level,
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({"permission": permission.to_dict()}), 200
    except PermissionDeniedError as e:
        permission_service.log_security_event(
            user_id=actor.id,
            event_type="ESCALATION_BLOCKED",
            success=False,
            resource=request.path,
            action=f"{data.get('module')}:{data.get('accessLevel')}",
            reason=e.message,
            ip_address=request.remote_addr,
            farm_id=farm_id,
        )
        return error_response(e)
    except FarmProError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to set permission")
        return jsonify({"message": "Internal server error"}), 500


@farms_bp.delete("/<int:farm_id>/permissions")
@require_auth
@require_role(*ADMIN_ROLES)
def revoke_permission_route(farm_id: int):
    """Request body: {"userId": 5, "module": "inventory"}"""
    try:
        data = json_body()
        user_id = _int_field(data, "userId", "user_id")
        module = parse_enum(Module, data.get("module"), "module")
        revoked = permission_service.revoke_user_permission(
            actor=g.current_user,
            user_id=user_id,
            farm_id=farm_id,
            module=module,
        )
        if not revoked:
            raise NotFoundError("No permission row for that user and module")
        return jsonify({"message": "Permission revoked"}), 200
    except FarmProError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to revoke permission")
        return jsonify({"message": "Internal server error"}), 500
