# Overview: Flask API routes for user administration; parses input and returns JSON responses.

"""
User administration routes.

All endpoints require authentication and a SUPER_ADMIN or FARM_ADMIN role.
Role changes and SUPER_ADMIN protection are enforced in user_service and
auth_service; blocked attempts are written to security_events.
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import require_auth, require_role
from ..errors import FarmProError, PermissionDeniedError, ValidationError, error_response
from ..permissions import ADMIN_ROLES, Role, parse_enum
from ..services import auth_service, user_service
from ..services.permission_service import log_security_event
from ..validation import json_body

users_bp = Blueprint("users", __name__, url_prefix="/api/users")

PROFILE_FIELDS = {"email", "name", "language", "password", "is_active", "isActive"}


@users_bp.get("")
@require_auth
@require_role(*ADMIN_ROLES)
def list_users_route():
    """
    Query params:
    - role: filter by global role
    - include_inactive: bool (default false)
    """
    try:
        role_raw = request.args.get("role")
        role = parse_enum(Role, role_raw, "role") if role_raw else None
        include_inactive = request.args.get("include_inactive", "false").lower() == "true"

        users = user_service.list_users(role=role, include_inactive=include_inactive)
        return jsonify({"users": [u.to_dict() for u in users], "count": len(users)}), 200
    except FarmProError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to list users")
        return jsonify({"message": "Internal server error"}), 500


@users_bp.post("")
@require_auth
@require_role(*ADMIN_ROLES)
def create_user_route():
    """
    Request body:
    - username, email, name, password: str (required)
    - role: str (optional, default employee)
    - language: str (optional, default pt)
    """
    actor = g.current_user
    try:
        data = json_body()
        role_raw = data.get("role") or Role.EMPLOYEE.value

        missing = [k for k in ("username", "email", "name", "password") if not data.get(k)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        role = parse_enum(Role, role_raw, "role")
        user = auth_service.create_user(
            username=data["username"],
            email=data["email"],
            name=data["name"],
            password=data["password"],
            role=role,
            actor=actor,
            language=data.get("language") or "pt",
        )
        log_security_event(
            user_id=actor.id,
            event_type="USER_CREATED",
            success=True,
            resource=request.path,
            action=f"create:{user.username}:{role.value}",
            ip_address=request.remote_addr,
        )
        return jsonify({"user": user.to_dict()}), 201
    except PermissionDeniedError as e:
        log_security_event(
            user_id=actor.id,
            event_type="ESCALATION_BLOCKED",
            success=False,
            resource=request.path,
            action=f"create:{data.get('username')}:{role_raw}",
            reason=e.message,
            ip_address=request.remote_addr,
        )
        return error_response(e)
    except FarmProError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"message": "Internal server error"}), 500


@users_bp.get("/<int:user_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def get_user_route(user_id: int):
    try:
        return jsonify({"user": user_service.get_user(user_id).to_dict()}), 200
    except FarmProError as e:
        return error_response(e)


@users_bp.patch("/<int:user_id>")
@require_auth
@require_role(*ADMIN_ROLES)
def update_user_route(user_id: int):
    """
    Request body (any subset):
    - role: new global role (escalation rules apply)
    - email, name, language, password, is_active
    """
    actor = g.current_user
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return error_response(ValidationError("Request body must be a non-empty JSON object"))

    try:
        unknown = set(data) - PROFILE_FIELDS - {"role"}
        if unknown:
            raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

        changes = {k: v for k, v in data.items() if k in PROFILE_FIELDS}
        if "isActive" in changes:
            changes["is_active"] = changes.pop("isActive")

        new_role = parse_enum(Role, data["role"], "role") if "role" in data else None
        user = user_service.update_user(
            actor=actor,
            user_id=user_id,
            changes=changes,
            new_role=new_role,
            ip_address=request.remote_addr,
        )
        return jsonify({"user": user.to_dict()}), 200
    except FarmProError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to update user")
        return jsonify({"message": "Internal server error"}), 500


@users_bp.get("/<int:user_id>/farms")
@require_auth
@require_role(*ADMIN_ROLES)
def user_farms_route(user_id: int):
    try:
        memberships = user_service.list_user_farms(user_id)
        return jsonify({"farms": memberships, "count": len(memberships)}), 200
    except FarmProError as e:
        return error_response(e)
