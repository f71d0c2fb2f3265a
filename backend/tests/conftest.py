"""
Pytest fixtures for storeledger backend tests.

Provides an in-memory database, two fully provisioned tenants, and helpers
for binding a tenant or building identity headers for the test client.
"""

from dataclasses import dataclass

import pytest
from storeledger import create_app
from storeledger.config import Config
from storeledger.extensions import db
from storeledger.models.auth import ROLE_ATTENDANT
from storeledger.services import cash_service, inventory_service, tenant_service
from storeledger.services.tenant_context import tenant_scope

SUPERVISOR_PIN = "4321"


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    BCRYPT_ROUNDS = 4
    DB_RETRY_BACKOFF = 0
    LOG_LEVEL = "WARNING"
    DEFAULT_FISCAL_MODE = "none"


@dataclass(frozen=True)
class TenantData:
    """Ids only: ORM instances would be read across tenant scopes."""
    label: str
    tenant_id: int
    owner_id: int
    attendant_id: int
    floor_id: int
    backroom_id: int
    product_id: int
    other_product_id: int

    @property
    def owner_password(self) -> str:
        return owner_password(self.label)


def owner_password(label: str) -> str:
    return f"Owner-{label}-pass1"


def attendant_password(label: str) -> str:
    return f"Attendant-{label}-pass1"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app(TestingConfig)

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    # Clear all data but keep schema
    meta = db.metadata
    for table in reversed(meta.sorted_tables):
        db.session.execute(table.delete())
    db.session.commit()

    yield db.session

    # Cleanup after test
    db.session.rollback()
    db.session.expunge_all()


def _provision_tenant(label: str) -> TenantData:
    tenant, owner = tenant_service.create_tenant_with_owner(
        name=f"Shop {label}",
        email=f"contact@{label}.test",
        tax_id=f"TAX-{label}",
        owner_name=f"Owner {label}",
        owner_email=f"owner@{label}.test",
        owner_password=owner_password(label),
        owner_pin=SUPERVISOR_PIN,
    )
    with tenant_scope(tenant.id):
        attendant = tenant_service.create_user(
            name=f"Attendant {label}",
            email=f"attendant@{label}.test",
            password=attendant_password(label),
            role=ROLE_ATTENDANT,
        )
        floor = inventory_service.create_location("Shop floor", is_sale_source=True)
        backroom = inventory_service.create_location("Back room")
        product = inventory_service.create_product(f"{label}-COFFEE", "Coffee 500g", 1500)
        other = inventory_service.create_product(f"{label}-SUGAR", "Sugar 1kg", 500)
        return TenantData(
            label=label,
            tenant_id=tenant.id,
            owner_id=owner.id,
            attendant_id=attendant.id,
            floor_id=floor.id,
            backroom_id=backroom.id,
            product_id=product.id,
            other_product_id=other.id,
        )


@pytest.fixture(scope='function')
def tenant_a(db_session):
    """Tenant A: owner (PIN 4321), attendant, two locations, two products."""
    return _provision_tenant("a")


@pytest.fixture(scope='function')
def tenant_b(db_session):
    """Tenant B: same layout as tenant A, different ids."""
    return _provision_tenant("b")


@pytest.fixture(scope='function')
def bound_a(tenant_a):
    """Run the test body with tenant A bound."""
    with tenant_scope(tenant_a.tenant_id):
        yield tenant_a


def open_drawer(tenant: TenantData, user_id: int | None = None, opening_cents: int = 10000, label: str | None = None):
    """Open a cash session inside the tenant's scope and return its id."""
    with tenant_scope(tenant.tenant_id):
        session = cash_service.open_cash_session(
            user_id=user_id or tenant.attendant_id,
            opening_cents=opening_cents,
            register_label=label,
        )
        return session.id


def identity_headers(tenant: TenantData, user_id: int | None = None) -> dict:
    """Helper to create identity headers for the test client."""
    return {
        'X-Tenant-Id': str(tenant.tenant_id),
        'X-User-Id': str(user_id or tenant.attendant_id),
    }
