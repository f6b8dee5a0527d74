"""
CLI bootstrap commands and the health endpoint.
"""

from decimal import Decimal

import pytest
from sqlalchemy import update

from farmpro.extensions import db
from farmpro.models import Farm, InventoryItem, User, UserFarm
from farmpro.permissions import MembershipRole, Role
from farmpro.services import ledger_service


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


class TestUsersCli:

    def test_create_and_list(self, runner):
        result = runner.invoke(args=[
            "users", "create",
            "--username", "root",
            "--email", "root@farm.local",
            "--name", "Root",
            "--password", "Password123",
            "--role", "super_admin",
        ])
        assert result.exit_code == 0, result.output
        assert "PASS Created user: root" in result.output
        assert db.session.query(User).filter_by(username="root").one().role is Role.SUPER_ADMIN

        result = runner.invoke(args=["users", "list"])
        assert result.exit_code == 0
        assert "root" in result.output

    def test_weak_password_fails(self, runner):
        result = runner.invoke(args=[
            "users", "create",
            "--username", "x",
            "--email", "x@farm.local",
            "--name", "X",
            "--password", "weak",
        ])
        assert result.exit_code == 1
        assert "FAIL Password validation failed" in result.output


class TestFarmsCli:

    def test_create_farm_and_assign(self, runner, super_admin, farm_admin, employee):
        result = runner.invoke(args=[
            "farms", "create",
            "--as", "root",
            "--name", "Fazenda CLI",
            "--location", "Parana",
            "--admin", "maria",
        ])
        assert result.exit_code == 0, result.output
        farm = db.session.query(Farm).filter_by(name="Fazenda CLI").one()
        assert farm.admin_id == farm_admin.id

        result = runner.invoke(args=[
            "farms", "assign",
            "--as", "maria",
            "--farm-id", str(farm.id),
            "--username", "joao",
            "--role", "worker",
            "--defaults",
        ])
        assert result.exit_code == 0, result.output
        membership = db.session.query(UserFarm).filter_by(user_id=employee.id, farm_id=farm.id).one()
        assert membership.role is MembershipRole.WORKER

    def test_employee_cannot_create_farm(self, runner, employee):
        result = runner.invoke(args=["farms", "create", "--as", "joao", "--name", "F", "--location", "L"])
        assert result.exit_code == 1
        assert "FAIL" in result.output

    def test_unknown_actor(self, runner):
        result = runner.invoke(args=["farms", "create", "--as", "ghost", "--name", "F", "--location", "L"])
        assert result.exit_code == 1
        assert "User 'ghost' not found" in result.output


class TestInventoryCli:

    def test_critical(self, runner, feed_item, farm_admin):
        result = runner.invoke(args=["inventory", "critical"])
        assert "No critical items." in result.output

        ledger_service.withdrawal(feed_item.id, 450, farm_admin.id)
        result = runner.invoke(args=["inventory", "critical", "--farm-id", str(feed_item.farm_id)])
        assert result.exit_code == 0
        assert "Ração" in result.output


class TestHealth:

    def test_healthy(self, client, farm):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["status"] == "healthy"
        assert resp.json["checks"]["database"]["details"]["farms"] == 1

    def test_ledger_drift_reported(self, client, feed_item):
        resp = client.get("/api/health")
        assert resp.json["checks"]["ledger"]["details"] == {"unbalanced_items": 0, "critical_items": 0}

        table = InventoryItem.__table__
        db.session.execute(update(table).where(table.c.id == feed_item.id).values(quantity=Decimal("1")))
        db.session.commit()

        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json["checks"]["ledger"]["details"] == {"unbalanced_items": 1, "critical_items": 1}


class TestCors:

    def test_allowed_origin(self, client):
        resp = client.get("/api/health", headers={"Origin": "http://localhost:5173"})
        assert resp.headers["Access-Control-Allow-Origin"] == "http://localhost:5173"

    def test_unknown_origin(self, client):
        resp = client.get("/api/health", headers={"Origin": "http://evil.example"})
        assert "Access-Control-Allow-Origin" not in resp.headers
