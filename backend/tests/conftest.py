"""
Pytest fixtures for FarmPro backend tests.

Provides an app bound to an in-memory SQLite database (fresh per test),
users of each global role, two farms and an inventory item.
"""

from decimal import Decimal

import pytest

from farmpro import create_app
from farmpro.extensions import db
from farmpro.models import Farm, InventoryItem, UserFarm, UserPermission
from farmpro.permissions import AccessLevel, MembershipRole, Module, Role
from farmpro.services import ledger_service
from farmpro.services.auth_service import create_user

PASSWORD = "Password123"


@pytest.fixture(scope='function')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'LEDGER_RETRY_ATTEMPTS': 3,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    yield db.session
    db.session.rollback()


def make_user(username: str, role: Role):
    # Low bcrypt cost keeps the suite fast
    return create_user(
        username=username,
        email=f"{username}@farm.test",
        name=username.title(),
        password=PASSWORD,
        role=role,
        password_rounds=4,
    )


@pytest.fixture
def super_admin(db_session):
    return make_user("root", Role.SUPER_ADMIN)


@pytest.fixture
def farm_admin(db_session):
    return make_user("maria", Role.FARM_ADMIN)


@pytest.fixture
def other_farm_admin(db_session):
    return make_user("carlos", Role.FARM_ADMIN)


@pytest.fixture
def employee(db_session):
    return make_user("joao", Role.EMPLOYEE)


@pytest.fixture
def veterinarian(db_session):
    return make_user("ana", Role.VETERINARIAN)


@pytest.fixture
def farm(db_session, super_admin, farm_admin):
    """Farm administered by farm_admin, who is also an admin member."""
    farm = Farm(name="Fazenda Boa Vista", location="Goias", created_by=super_admin.id, admin_id=farm_admin.id)
    db_session.add(farm)
    db_session.flush()
    db_session.add(UserFarm(user_id=farm_admin.id, farm_id=farm.id, role=MembershipRole.ADMIN))
    db_session.commit()
    return farm


@pytest.fixture
def other_farm(db_session, super_admin, other_farm_admin):
    farm = Farm(name="Sitio Esperanca", location="Minas Gerais", created_by=super_admin.id, admin_id=other_farm_admin.id)
    db_session.add(farm)
    db_session.commit()
    return farm


def add_member(user, farm, role=MembershipRole.WORKER, **levels):
    """Membership plus explicit rows, e.g. add_member(u, f, inventory=AccessLevel.EDIT)."""
    db.session.add(UserFarm(user_id=user.id, farm_id=farm.id, role=role))
    for module_value, level in levels.items():
        db.session.add(UserPermission(
            user_id=user.id,
            farm_id=farm.id,
            module=Module(module_value),
            access_level=level,
        ))
    db.session.commit()


@pytest.fixture
def inventory_editor(db_session, employee, farm):
    add_member(employee, farm, inventory=AccessLevel.EDIT)
    return employee


@pytest.fixture
def inventory_reader(db_session, veterinarian, farm):
    add_member(veterinarian, farm, role=MembershipRole.SPECIALIST, inventory=AccessLevel.READ_ONLY)
    return veterinarian


@pytest.fixture
def feed_item(db_session, farm, farm_admin):
    """Feed ("Ração") with 500 kg on hand and a 100 kg minimum."""
    item = InventoryItem(farm_id=farm.id, name="Ração", category="feed", unit="kg", minimum_level=Decimal("100"))
    db_session.add(item)
    db_session.commit()
    ledger_service.entry(item.id, 500, farm_admin.id, notes="Estoque inicial")
    return db_session.get(InventoryItem, item.id)


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture
def login(client):
    """login(user) -> Authorization headers for that user."""
    def _login(user):
        token = get_auth_token(client, user.username)
        assert token, f"login failed for {user.username}"
        return auth_headers(token)
    return _login


@pytest.fixture
def member(db_session):
    """Fixture form of add_member for tests that build their own grants."""
    return add_member
