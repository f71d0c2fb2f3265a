# Overview: Pytest coverage for the tenant binding carrier.

import pytest

from storeledger.errors import TenantNotResolvedError, ValidationError
from storeledger.services.tenant_context import (
    current_tenant_id,
    peek_tenant_id,
    run_with_tenant,
    tenant_scope,
)


class TestTenantScope:
    """tenant_scope / run_with_tenant binding rules."""

    def test_unbound_raises(self):
        assert peek_tenant_id() is None
        with pytest.raises(TenantNotResolvedError) as exc:
            current_tenant_id()
        assert exc.value.code == "TENANT_NOT_RESOLVED"
        assert exc.value.status_code == 500

    def test_scope_binds_and_resets(self):
        with tenant_scope(7) as bound:
            assert bound == 7
            assert current_tenant_id() == 7
        assert peek_tenant_id() is None

    def test_nested_scope_restores_outer(self):
        with tenant_scope(1):
            with tenant_scope(2):
                assert current_tenant_id() == 2
            assert current_tenant_id() == 1

    def test_reentering_same_tenant(self):
        with tenant_scope(3):
            with tenant_scope("3"):
                assert current_tenant_id() == 3
            assert current_tenant_id() == 3

    def test_binding_reset_after_exception(self):
        with pytest.raises(RuntimeError):
            with tenant_scope(5):
                raise RuntimeError("boom")
        assert peek_tenant_id() is None

    def test_run_with_tenant_returns_result(self):
        assert run_with_tenant(9, lambda x: (current_tenant_id(), x), "ok") == (9, "ok")
        assert peek_tenant_id() is None

    @pytest.mark.parametrize("bad", [None, 0, -4, "abc", True])
    def test_invalid_tenant_ids_rejected(self, bad):
        with pytest.raises(ValidationError):
            with tenant_scope(bad):
                pass
