# Overview: Flask API routes for login, logout and the current user.

"""
Authentication API routes

- Bearer tokens only; no cookie sessions
- Accounts are created by administrators (POST /api/users or CLI)
"""

from flask import Blueprint, current_app, g, jsonify, request

from ..decorators import bearer_token, require_auth
from ..errors import FarmProError, error_response
from ..services import auth_service, farm_service, session_service
from ..services.permission_service import get_access_map, log_security_event
from ..validation import json_body


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Token must be included in the Authorization header for protected routes.
    """
    try:
        data = json_body()
        username = data.get("username")
        password = data.get("password")

        if not all([username, password]):
            return jsonify({"message": "username and password required", "error": "INVALID_ARGUMENT"}), 400

        user_agent = request.headers.get("User-Agent")
        ip_address = request.remote_addr

        user = auth_service.authenticate(username, password)
        if not user:
            log_security_event(
                user_id=None,
                event_type="LOGIN_FAILED",
                success=False,
                resource=request.path,
                action=f"login:{username}",
                reason="Invalid credentials",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return jsonify({"message": "Invalid credentials", "error": "UNAUTHENTICATED"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=user_agent,
            ip_address=ip_address,
        )

        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "session": session.to_dict(),
            "message": "Login successful",
        }), 200

    except FarmProError as e:
        return error_response(e)
    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"message": "Internal server error"}), 500


@auth_bp.post("/logout")
def logout_route():
    """Revoke the presented session token."""
    try:
        token = bearer_token()
        if token is None:
            return jsonify({"message": "Authorization header required", "error": "UNAUTHENTICATED"}), 401

        if not session_service.revoke_session(token, reason="User logout"):
            return jsonify({"message": "Invalid or expired token", "error": "UNAUTHENTICATED"}), 401

        return jsonify({"message": "Logout successful"}), 200

    except Exception:
        current_app.logger.exception("Failed to logout user")
        return jsonify({"message": "Internal server error"}), 500


@auth_bp.get("/me")
@require_auth
def me_route():
    """
    Current user, the farms they can reach, and their per-farm module
    levels (for UI filtering; the server re-checks every request).
    """
    try:
        user = g.current_user
        farms = farm_service.list_accessible_farms(user)
        return jsonify({
            "user": user.to_dict(),
            "farms": [
                dict(farm.to_dict(), permissions=get_access_map(user.id, farm.id))
                for farm in farms
            ],
        }), 200

    except Exception:
        current_app.logger.exception("Failed to load current user")
        return jsonify({"message": "Internal server error"}), 500
