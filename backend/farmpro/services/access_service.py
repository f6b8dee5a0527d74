# Overview: Access resolution for (actor, farm, module, level); the AccessController.

"""
Farm-Scoped Access Control

Resolution order for check_access (first match wins):
1. actor.role == SUPER_ADMIN                        -> allow
2. actor.role == FARM_ADMIN and farm.admin_id == actor.id -> allow
3. no UserPermission row for (actor, farm, module)  -> deny
4. stored level compared against required level via permissions.level_satisfies

DESIGN PRINCIPLES:
- Fail closed: anything unresolved (unknown farm, unknown level, store
  failure) is a denial, never an exception
- The permission store is injected; the controller keeps no state of its own
- One controller per Flask app, registered in app.extensions
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Farm, UserPermission
from ..permissions import AccessLevel, LEVEL_RANK, Module, Role, level_satisfies


EXTENSION_KEY = "access_controller"


class PermissionStore(Protocol):
    """Read-only lookups the controller needs."""

    def get_farm_admin_id(self, farm_id: int) -> int | None:
        """admin_id of the farm, or None if the farm has none or does not exist."""

    def get_access_level(self, user_id: int, farm_id: int, module: Module) -> AccessLevel | None:
        """Stored level for (user, farm, module), or None when there is no row."""


class SqlPermissionStore:
    """PermissionStore backed by the application database."""

    def get_farm_admin_id(self, farm_id: int) -> int | None:
        row = db.session.query(Farm.admin_id).filter(Farm.id == farm_id).first()
        return row[0] if row else None

    def get_access_level(self, user_id: int, farm_id: int, module: Module) -> AccessLevel | None:
        row = db.session.query(UserPermission.access_level).filter_by(
            user_id=user_id,
            farm_id=farm_id,
            module=module,
        ).first()
        return row[0] if row else None


@dataclass(frozen=True)
class RequestContext:
    """
    Who is acting, on which farm, in which module.

    Built once by require_module_access and stored on g.request_context so
    handlers can run further checks without re-deriving the farm.
    """
    actor: Any
    farm_id: int
    module: Module


class AccessController:
    def __init__(self, store: PermissionStore):
        self.store = store

    def check_access(self, actor, farm_id: int, module: Module, required_level: AccessLevel) -> bool:
        """
        Decide whether actor may act on module within farm at required_level.

        Returns False (never raises) on any unresolved case.
        """
        if actor is None or farm_id is None:
            return False
        if not isinstance(module, Module) or required_level not in LEVEL_RANK:
            return False

        role = getattr(actor, "role", None)
        if role is Role.SUPER_ADMIN:
            return True

        try:
            if role is Role.FARM_ADMIN:
                admin_id = self.store.get_farm_admin_id(farm_id)
                if admin_id is not None and admin_id == actor.id:
                    return True

            stored = self.store.get_access_level(actor.id, farm_id, module)
        except SQLAlchemyError:
            current_app.logger.exception(
                "Permission lookup failed for user %s on farm %s", getattr(actor, "id", None), farm_id
            )
            return False

        if stored is None or stored not in LEVEL_RANK:
            return False

        return level_satisfies(stored, required_level)

    def check_context(self, ctx: RequestContext, required_level: AccessLevel) -> bool:
        """Mid-handler check reusing the context built by the middleware."""
        return self.check_access(ctx.actor, ctx.farm_id, ctx.module, required_level)

    def can_administer_farm(self, actor, farm_id: int) -> bool:
        """
        SUPER_ADMIN anywhere, FARM_ADMIN on farms they administer.

        Permission rows never confer this; it gates membership and
        permission writes.
        """
        role = getattr(actor, "role", None)
        if role is Role.SUPER_ADMIN:
            return True
        if role is not Role.FARM_ADMIN or farm_id is None:
            return False
        try:
            return self.store.get_farm_admin_id(farm_id) == actor.id
        except SQLAlchemyError:
            current_app.logger.exception("Farm admin lookup failed for farm %s", farm_id)
            return False


def init_access_control(app, store: PermissionStore | None = None) -> AccessController:
    """Create the app's controller (SQL store unless one is injected)."""
    controller = AccessController(store or SqlPermissionStore())
    app.extensions[EXTENSION_KEY] = controller
    return controller


def get_access_controller() -> AccessController:
    return current_app.extensions[EXTENSION_KEY]


def check_access(actor, farm_id: int, module: Module, required_level: AccessLevel) -> bool:
    """Shortcut for the current app's controller."""
    return get_access_controller().check_access(actor, farm_id, module, required_level)
