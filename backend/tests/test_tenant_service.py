# Overview: Pytest coverage for tenant onboarding and operator management.

"""
Tenant Service Tests

Onboarding must leave a tenant with a working OWNER, credentials are stored
hashed, and users stay inside their own tenant.
"""

import pytest

from storeledger.errors import ConflictError, NotFoundError, TenantNotResolvedError, ValidationError
from storeledger.models.auth import ROLE_ADMIN, ROLE_OWNER
from storeledger.services import tenant_service
from storeledger.services.auth_service import verify_password
from storeledger.services.supervisor_service import require_supervisor_approval
from storeledger.services.tenant_context import tenant_scope


class TestOnboarding:
    def test_creates_tenant_and_owner(self, db_session):
        tenant, owner = tenant_service.create_tenant_with_owner(
            name="Corner Shop",
            owner_name="Joana",
            owner_email="  Joana@Corner.TEST ",
            owner_password="Joana-pass-123",
            owner_pin="2468",
            max_open_cash_sessions=2,
        )

        assert tenant.max_open_cash_sessions == 2
        with tenant_scope(tenant.id):
            assert owner.role == ROLE_OWNER
            assert owner.email == "joana@corner.test"
            assert owner.supervisor_pin != "2468"
            assert verify_password("Joana-pass-123", owner.password_hash)
            assert require_supervisor_approval("2468", "Onboarding check").approver_id == owner.id

    def test_duplicate_tax_id_conflicts(self, tenant_a):
        with pytest.raises(ConflictError) as exc:
            tenant_service.create_tenant_with_owner(
                name="Copycat",
                tax_id="TAX-a",
                owner_name="Copy",
                owner_email="copy@cat.test",
                owner_password="Copycat-pass1",
            )
        assert exc.value.code == "TENANT_EXISTS"
        assert [t.name for t in tenant_service.list_tenants()] == ["Shop a"]

    def test_weak_owner_password_writes_nothing(self, db_session):
        with pytest.raises(ValidationError):
            tenant_service.create_tenant_with_owner(
                name="Weak", owner_name="W", owner_email="w@weak.test", owner_password="short",
            )
        assert tenant_service.list_tenants() == []

    def test_missing_tenant(self, db_session):
        with pytest.raises(NotFoundError) as exc:
            tenant_service.get_tenant(424242)
        assert exc.value.code == "TENANT_NOT_FOUND"


class TestSettings:
    def test_set_max_open_sessions(self, tenant_a):
        tenant = tenant_service.set_max_open_sessions(tenant_a.tenant_id, 4)
        assert tenant.max_open_cash_sessions == 4

    @pytest.mark.parametrize("value", [0, -1, "many"])
    def test_invalid_max_open_sessions(self, tenant_a, value):
        with pytest.raises(ValidationError):
            tenant_service.set_max_open_sessions(tenant_a.tenant_id, value)


class TestUsers:
    def test_create_user_requires_tenant(self, db_session):
        with pytest.raises(TenantNotResolvedError):
            tenant_service.create_user(name="Nobody", email="n@x.test", password="Nobody-pass1", role=ROLE_ADMIN)

    def test_same_email_allowed_across_tenants(self, tenant_a, tenant_b):
        for tenant in (tenant_a, tenant_b):
            with tenant_scope(tenant.tenant_id):
                tenant_service.create_user(
                    name="Shared", email="shared@chain.test", password="Shared-pass1", role=ROLE_ADMIN,
                )

    def test_duplicate_email_in_tenant(self, bound_a):
        with pytest.raises(ConflictError) as exc:
            tenant_service.create_user(
                name="Again", email="OWNER@a.test", password="Again-pass1", role=ROLE_ADMIN,
            )
        assert exc.value.code == "USER_EXISTS"

    def test_unknown_role(self, bound_a):
        with pytest.raises(ValidationError):
            tenant_service.create_user(name="X", email="x@a.test", password="Xxxxx-pass1", role="CASHIER")

    def test_list_users_is_tenant_scoped(self, tenant_a, tenant_b):
        with tenant_scope(tenant_b.tenant_id):
            emails = [u.email for u in tenant_service.list_users()]
        assert emails == ["owner@b.test", "attendant@b.test"]

    def test_set_and_clear_pin(self, bound_a):
        user = tenant_service.set_supervisor_pin(bound_a.owner_id, "9753")
        assert require_supervisor_approval("9753", "PIN check").via == "PIN"

        tenant_service.set_supervisor_pin(bound_a.owner_id, None)
        assert user.supervisor_pin is None

    def test_set_pin_other_tenant_user(self, tenant_a, tenant_b):
        with tenant_scope(tenant_b.tenant_id):
            with pytest.raises(NotFoundError):
                tenant_service.set_supervisor_pin(tenant_a.owner_id, "1357")

    def test_bad_pin(self, bound_a):
        with pytest.raises(ValidationError):
            tenant_service.set_supervisor_pin(bound_a.owner_id, "12a4")
