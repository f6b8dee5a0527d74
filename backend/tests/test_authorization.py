"""
Authorization tests for the FarmPro API.

Verifies:
- Unauthenticated requests return 401
- Module access is checked on the farm that owns the data (403 otherwise)
- Farm scope comes from the path, the item, or the body, in that order
- Global-role gates on administration endpoints
- Denials are written to security_events
"""

import pytest
from flask import g, jsonify

from farmpro.decorators import require_auth, require_module_access
from farmpro.extensions import db
from farmpro.models import InventoryItem, SecurityEvent
from farmpro.permissions import AccessLevel, Module
from farmpro.services import ledger_service


def denial_events(event_type="ACCESS_DENIED"):
    return db.session.query(SecurityEvent).filter_by(event_type=event_type).all()


# =============================================================================
# UNAUTHENTICATED ACCESS - 401
# =============================================================================


class TestUnauthenticatedAccess:
    """All protected endpoints return 401 without a token."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/auth/me"),
            ("GET", "/api/users"),
            ("POST", "/api/users"),
            ("GET", "/api/farms"),
            ("POST", "/api/farms"),
            ("GET", "/api/farms/1/users"),
            ("PUT", "/api/farms/1/permissions"),
            ("GET", "/api/farms/1/inventory"),
            ("POST", "/api/farms/1/inventory"),
            ("GET", "/api/farms/1/inventory/transactions"),
            ("GET", "/api/inventory/1"),
            ("POST", "/api/inventory/1/entry"),
            ("POST", "/api/inventory/1/withdrawal"),
            ("POST", "/api/inventory/1/adjustment"),
        ],
    )
    def test_requires_auth(self, client, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"
        assert resp.json["message"] == "Authentication required"

    def test_invalid_token(self, client):
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-real-token"})
        assert resp.status_code == 401
        assert resp.json["message"] == "Invalid or expired token"

    def test_malformed_header(self, client):
        resp = client.get("/api/auth/me", headers={"Authorization": "Token abc"})
        assert resp.status_code == 401

    def test_logout_revokes_token(self, client, employee, login):
        headers = login(employee)
        assert client.get("/api/auth/me", headers=headers).status_code == 200
        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401


class TestLogin:

    def test_login_returns_token(self, client, employee):
        resp = client.post("/api/auth/login", json={"username": "joao", "password": "Password123"})
        assert resp.status_code == 200
        assert resp.json["token"]
        assert resp.json["user"]["username"] == "joao"
        assert "password_hash" not in resp.json["user"]

    def test_bad_password_audited(self, client, employee):
        resp = client.post("/api/auth/login", json={"username": "joao", "password": "wrong"})
        assert resp.status_code == 401
        assert resp.json["message"] == "Invalid credentials"
        assert len(denial_events("LOGIN_FAILED")) == 1

    def test_missing_fields(self, client):
        resp = client.post("/api/auth/login", json={"username": "joao"})
        assert resp.status_code == 400


# =============================================================================
# MODULE ACCESS - 403
# =============================================================================


class TestModuleAccess:

    def test_no_permission_row_denied(self, client, employee, farm, member, login):
        member(employee, farm)
        resp = client.get(f"/api/farms/{farm.id}/inventory", headers=login(employee))

        assert resp.status_code == 403
        assert resp.json["message"] == "Access denied: inventory requires read_only"

        events = denial_events()
        assert len(events) == 1
        assert events[0].user_id == employee.id
        assert events[0].farm_id == farm.id
        assert events[0].action == "inventory:read_only"

    def test_reader_can_list(self, client, inventory_reader, farm, feed_item, login):
        resp = client.get(f"/api/farms/{farm.id}/inventory", headers=login(inventory_reader))
        assert resp.status_code == 200
        assert resp.json["count"] == 1

    def test_reader_cannot_withdraw(self, client, inventory_reader, feed_item, login):
        resp = client.post(
            f"/api/inventory/{feed_item.id}/withdrawal",
            json={"quantity": 10},
            headers=login(inventory_reader),
        )
        assert resp.status_code == 403
        db.session.expire_all()
        assert db.session.get(InventoryItem, feed_item.id).quantity == 500

    def test_editor_can_withdraw(self, client, inventory_editor, feed_item, login):
        resp = client.post(
            f"/api/inventory/{feed_item.id}/withdrawal",
            json={"quantity": 10},
            headers=login(inventory_editor),
        )
        assert resp.status_code == 201
        assert resp.json["inventory"]["quantity"] == 490.0

    def test_permission_on_other_module_does_not_help(self, client, employee, farm, feed_item, member, login):
        member(employee, farm, animals=AccessLevel.FULL)
        resp = client.get(f"/api/inventory/{feed_item.id}", headers=login(employee))
        assert resp.status_code == 403

    def test_farm_admin_own_farm(self, client, farm_admin, farm, feed_item, login):
        resp = client.post(
            f"/api/inventory/{feed_item.id}/adjustment",
            json={"newQuantity": 450},
            headers=login(farm_admin),
        )
        assert resp.status_code == 201

    def test_farm_admin_other_farm_denied(self, client, other_farm_admin, feed_item, login):
        resp = client.get(f"/api/inventory/{feed_item.id}", headers=login(other_farm_admin))
        assert resp.status_code == 403

    def test_super_admin_any_farm(self, client, super_admin, other_farm, login):
        resp = client.get(f"/api/farms/{other_farm.id}/inventory", headers=login(super_admin))
        assert resp.status_code == 200

    def test_unknown_farm_denied(self, client, farm_admin, login):
        resp = client.get("/api/farms/9999/inventory", headers=login(farm_admin))
        assert resp.status_code == 403

    def test_unknown_item_not_found(self, client, super_admin, login):
        resp = client.get("/api/inventory/9999", headers=login(super_admin))
        assert resp.status_code == 404


# =============================================================================
# FARM SCOPE RESOLUTION
# =============================================================================


@pytest.fixture
def scoped_endpoint(app):
    """A body-scoped endpoint, as older clients post farmId in the JSON body."""
    @require_auth
    @require_module_access(Module.INVENTORY, AccessLevel.READ_ONLY)
    def scoped_view():
        ctx = g.request_context
        return jsonify({"farm_id": ctx.farm_id, "module": ctx.module.value, "actor": ctx.actor.id}), 200

    app.add_url_rule("/api/_scoped", "scoped_view", scoped_view, methods=["POST"])
    return "/api/_scoped"


class TestFarmScopeResolution:

    def test_body_farm_id(self, client, scoped_endpoint, inventory_reader, farm, login):
        resp = client.post(scoped_endpoint, json={"farmId": farm.id}, headers=login(inventory_reader))
        assert resp.status_code == 200
        assert resp.json == {"farm_id": farm.id, "module": "inventory", "actor": inventory_reader.id}

    def test_body_farm_id_snake_case_and_string(self, client, scoped_endpoint, inventory_reader, farm, login):
        resp = client.post(scoped_endpoint, json={"farm_id": str(farm.id)}, headers=login(inventory_reader))
        assert resp.status_code == 200
        assert resp.json["farm_id"] == farm.id

    def test_missing_farm_id(self, client, scoped_endpoint, inventory_reader, login):
        resp = client.post(scoped_endpoint, json={}, headers=login(inventory_reader))
        assert resp.status_code == 400
        assert resp.json["message"] == "Farm ID is required"

    def test_non_integer_farm_id(self, client, scoped_endpoint, inventory_reader, login):
        resp = client.post(scoped_endpoint, json={"farmId": "abc"}, headers=login(inventory_reader))
        assert resp.status_code == 400
        assert resp.json["message"] == "Farm ID must be an integer"

    def test_body_farm_id_for_other_farm_denied(self, client, scoped_endpoint, inventory_reader, other_farm, login):
        resp = client.post(scoped_endpoint, json={"farmId": other_farm.id}, headers=login(inventory_reader))
        assert resp.status_code == 403

    def test_item_farm_beats_body(self, client, inventory_editor, farm, other_farm, other_farm_admin, login):
        foreign = InventoryItem(farm_id=other_farm.id, name="Vacina", category="medicine", unit="doses")
        db.session.add(foreign)
        db.session.commit()
        ledger_service.entry(foreign.id, 20, other_farm_admin.id)

        resp = client.post(
            f"/api/inventory/{foreign.id}/withdrawal",
            json={"quantity": 5, "farmId": farm.id},
            headers=login(inventory_editor),
        )
        assert resp.status_code == 403
        db.session.expire_all()
        assert db.session.get(InventoryItem, foreign.id).quantity == 20

    def test_path_farm_beats_body(self, client, inventory_reader, farm, other_farm, login):
        resp = client.get(
            f"/api/farms/{other_farm.id}/inventory",
            json={"farmId": farm.id},
            headers=login(inventory_reader),
        )
        assert resp.status_code == 403


# =============================================================================
# GLOBAL ROLE GATES
# =============================================================================


class TestRoleGates:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/users"),
            ("POST", "/api/users"),
            ("POST", "/api/farms"),
            ("PUT", "/api/farms/1/permissions"),
            ("POST", "/api/farms/1/users"),
        ],
    )
    def test_employee_denied(self, client, employee, login, method, path):
        resp = getattr(client, method.lower())(path, json={}, headers=login(employee))
        assert resp.status_code == 403
        assert resp.json["message"] == "Not authorized - insufficient role"

    def test_role_denial_audited(self, client, veterinarian, login):
        client.get("/api/users", headers=login(veterinarian))
        events = denial_events("ROLE_DENIED")
        assert len(events) == 1
        assert events[0].user_id == veterinarian.id

    def test_farm_admin_can_list_users(self, client, farm_admin, login):
        resp = client.get("/api/users", headers=login(farm_admin))
        assert resp.status_code == 200


class TestNonObjectBodies:
    """A JSON array or scalar body is a 400 with a message, never a 500."""

    @pytest.mark.parametrize(
        "method,path",
        [
            ("POST", "/api/auth/login"),
            ("POST", "/api/users"),
            ("POST", "/api/farms"),
            ("POST", "/api/farms/{farm}/users"),
            ("PUT", "/api/farms/{farm}/permissions"),
            ("DELETE", "/api/farms/{farm}/permissions"),
            ("POST", "/api/farms/{farm}/inventory"),
            ("PATCH", "/api/inventory/{item}"),
            ("POST", "/api/inventory/{item}/entry"),
        ],
    )
    @pytest.mark.parametrize("body", [[1], "text", 42])
    def test_rejected_with_400(self, client, super_admin, farm, feed_item, login, method, path, body):
        url = path.format(farm=farm.id, item=feed_item.id)
        resp = getattr(client, method.lower())(url, json=body, headers=login(super_admin))
        assert resp.status_code == 400
        assert resp.json["message"] == "Invalid JSON payload"

    def test_user_patch_with_array(self, client, super_admin, employee, login):
        resp = client.patch(f"/api/users/{employee.id}", json=[1], headers=login(super_admin))
        assert resp.status_code == 400
        assert "JSON object" in resp.json["message"]


class TestMe:

    def test_me_lists_farms_with_permissions(self, client, inventory_editor, farm, other_farm, login):
        resp = client.get("/api/auth/me", headers=login(inventory_editor))
        assert resp.status_code == 200
        farms = resp.json["farms"]
        assert [f["id"] for f in farms] == [farm.id]
        assert farms[0]["permissions"] == {"inventory": "edit"}

    def test_super_admin_sees_every_farm(self, client, super_admin, farm, other_farm, login):
        resp = client.get("/api/auth/me", headers=login(super_admin))
        assert {f["id"] for f in resp.json["farms"]} == {farm.id, other_farm.id}
