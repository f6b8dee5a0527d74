# Overview: Request decorators: authentication, global roles and farm-scoped module access.

from functools import wraps

from flask import g, jsonify, request

from .errors import AuthenticationError, FarmProError, PermissionDeniedError, ValidationError, error_response
from .permissions import AccessLevel, Module, Role
from .services import session_service, permission_service
from .services.access_service import RequestContext, get_access_controller


def _is_authenticated() -> bool:
    return getattr(g, "current_user", None) is not None


def _unauthenticated(message: str = "Authentication required"):
    body, status = error_response(AuthenticationError(message))
    return jsonify(body), status


def _forbidden(message: str):
    body, status = error_response(PermissionDeniedError(message))
    return jsonify(body), status


def bearer_token() -> str | None:
    auth_header = request.headers.get("Authorization")
    if not auth_header or not auth_header.startswith("Bearer "):
        return None
    return auth_header.split(" ", 1)[1].strip() or None


def require_auth(f):
    """
    Require a valid bearer session.

    Sets g.current_user to the authenticated User.

    SECURITY: Returns 401 if:
    - No Authorization header
    - Invalid, expired or idle-timed-out token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if token is None:
            return _unauthenticated()

        user = session_service.validate_session(token)
        if user is None:
            return _unauthenticated("Invalid or expired token")

        g.current_user = user
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: Role):
    """Require the actor's global role to be one of roles."""
    allowed = frozenset(roles)

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return _unauthenticated()

            user = g.current_user
            if user.role not in allowed:
                permission_service.log_security_event(
                    user_id=user.id,
                    event_type="ROLE_DENIED",
                    success=False,
                    resource=request.path,
                    action=request.method,
                    reason=f"Role {user.role.value} not in {sorted(r.value for r in allowed)}",
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                )
                return _forbidden("Not authorized - insufficient role")

            return f(*args, **kwargs)

        return decorated_function
    return decorator


def _parse_farm_id(raw):
    if raw is None or isinstance(raw, bool) or raw == "":
        return None
    if isinstance(raw, int):
        return raw
    if isinstance(raw, str) and raw.strip().isdigit():
        return int(raw.strip())
    raise ValidationError("Farm ID must be an integer")


def resolve_farm_id(item_resolver=None):
    """
    Farm id for the current request.

    Lookup order: the farm_id view arg, then item_resolver(view_args) for
    routes keyed by another resource (the resource's own farm wins over the
    body), then the JSON body (farmId, then farm_id). Returns None when none
    of them yields one.
    """
    view_args = request.view_args or {}
    if view_args.get("farm_id") is not None:
        return _parse_farm_id(view_args["farm_id"])

    if item_resolver is not None:
        return item_resolver(view_args)

    body = request.get_json(silent=True)
    if isinstance(body, dict):
        for key in ("farmId", "farm_id"):
            if body.get(key) is not None:
                return _parse_farm_id(body[key])

    return None


def require_module_access(module: Module, level: AccessLevel, *, farm_resolver=None):
    """
    Require access to module on the request's farm at level or above.

    Responses:
    - 401 when no authenticated user
    - 400 "Farm ID is required" when the farm cannot be determined
    - 403 when AccessController.check_access denies (audited)

    On success g.request_context holds RequestContext(actor, farm_id, module).
    farm_resolver(view_args) may raise NotFoundError for an unknown resource.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return _unauthenticated()

            user = g.current_user
            try:
                farm_id = resolve_farm_id(farm_resolver)
            except FarmProError as e:
                body, status = error_response(e)
                return jsonify(body), status

            if farm_id is None:
                body, status = error_response(ValidationError("Farm ID is required"))
                return jsonify(body), status

            if not get_access_controller().check_access(user, farm_id, module, level):
                permission_service.log_security_event(
                    user_id=user.id,
                    event_type="ACCESS_DENIED",
                    success=False,
                    resource=request.path,
                    action=f"{module.value}:{level.value}",
                    reason=f"Insufficient access to {module.value}",
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                    farm_id=farm_id,
                )
                return _forbidden(f"Access denied: {module.value} requires {level.value}")

            g.request_context = RequestContext(actor=user, farm_id=farm_id, module=module)
            return f(*args, **kwargs)

        return decorated_function
    return decorator
