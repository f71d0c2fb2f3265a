# Overview: Pytest coverage for tenant isolation behavior.

"""
Multi-Tenant Isolation Tests

SECURITY TESTS: Prove that one tenant never reads or writes another tenant's
rows, whether the access goes through a service, a raw ORM query, a bulk
statement, or an HTTP request.

Test Coverage:
- Reads: queries return only the bound tenant's rows
- Lookups by id: a foreign id looks exactly like a missing one
- Writes: flushes carrying a foreign tenant_id are rejected
- Bulk UPDATE: scoped to the bound tenant
- Unbound access to tenant-owned models fails closed
- HTTP: identity headers from different tenants do not mix
"""

import pytest

from conftest import identity_headers, open_drawer
from storeledger.errors import NotFoundError, TenantAccessError, TenantNotResolvedError
from storeledger.extensions import db
from storeledger.models import Product, Sale, SaleItem, Tenant
from storeledger.services import inventory_service, sales_service
from storeledger.services.tenant_context import tenant_scope


def _ring_up(tenant, quantity="1"):
    session_id = open_drawer(tenant)
    with tenant_scope(tenant.tenant_id):
        result = sales_service.create_sale(
            user_id=tenant.attendant_id,
            role="ATTENDANT",
            cash_session_id=session_id,
            location_id=tenant.floor_id,
            items=[{"product_id": tenant.product_id, "quantity": quantity}],
            payments=[{"method": "cash", "amount_cents": 5000}],
        )
        return result.sale.id


class TestReadIsolation:
    """Queries only ever see the bound tenant."""

    def test_list_products_scoped(self, tenant_a, tenant_b):
        with tenant_scope(tenant_a.tenant_id):
            skus = [p.sku for p in inventory_service.list_products()]
        assert skus == ["a-COFFEE", "a-SUGAR"]

        with tenant_scope(tenant_b.tenant_id):
            skus = [p.sku for p in inventory_service.list_products()]
        assert skus == ["b-COFFEE", "b-SUGAR"]

    def test_foreign_id_is_not_found(self, tenant_a, tenant_b):
        with tenant_scope(tenant_a.tenant_id):
            with pytest.raises(NotFoundError):
                inventory_service.require_product(tenant_b.product_id)

    def test_raw_query_is_filtered(self, tenant_a, tenant_b):
        with tenant_scope(tenant_a.tenant_id):
            ids = {p.id for p in db.session.query(Product).all()}
        assert ids == {tenant_a.product_id, tenant_a.other_product_id}

    def test_sale_children_follow_sale_tenant(self, tenant_a, tenant_b):
        sale_b = _ring_up(tenant_b)
        with tenant_scope(tenant_a.tenant_id):
            assert db.session.query(Sale).filter_by(id=sale_b).first() is None
            assert db.session.query(SaleItem).filter_by(sale_id=sale_b).all() == []

        with tenant_scope(tenant_b.tenant_id):
            assert len(db.session.query(SaleItem).filter_by(sale_id=sale_b).all()) == 1

    def test_tenant_table_not_scoped(self, tenant_a, tenant_b):
        assert db.session.query(Tenant).count() == 2


class TestWriteIsolation:
    """Writes cannot land in another tenant."""

    def test_tenant_id_filled_on_insert(self, tenant_a):
        with tenant_scope(tenant_a.tenant_id):
            product = Product(sku="a-TEA", name="Tea", price_cents=300)
            db.session.add(product)
            db.session.commit()
            assert product.tenant_id == tenant_a.tenant_id

    def test_foreign_tenant_id_rejected_on_flush(self, tenant_a, tenant_b):
        with tenant_scope(tenant_a.tenant_id):
            db.session.add(Product(tenant_id=tenant_b.tenant_id, sku="x", name="x", price_cents=1))
            with pytest.raises(TenantAccessError):
                db.session.flush()
            db.session.rollback()

    def test_bulk_update_scoped(self, tenant_a, tenant_b):
        with tenant_scope(tenant_a.tenant_id):
            db.session.query(Product).update({Product.price_cents: 1}, synchronize_session=False)
            db.session.commit()

        with tenant_scope(tenant_b.tenant_id):
            assert inventory_service.require_product(tenant_b.product_id).price_cents == 1500
        with tenant_scope(tenant_a.tenant_id):
            assert inventory_service.require_product(tenant_a.product_id).price_cents == 1


class TestFailClosed:
    """No bound tenant means no access to tenant-owned rows."""

    def test_query_without_tenant_raises(self, tenant_a):
        with pytest.raises(TenantNotResolvedError):
            db.session.query(Product).all()
        db.session.rollback()

    def test_service_without_tenant_raises(self, tenant_a):
        with pytest.raises(TenantNotResolvedError):
            inventory_service.create_location("Nowhere")
        db.session.rollback()


class TestHttpIsolation:
    """Identity headers bind the request to exactly one tenant."""

    def test_missing_headers_rejected(self, client, tenant_a):
        response = client.get('/api/stock/products')
        assert response.status_code == 401
        assert response.json["code"] == "IDENTITY_REQUIRED"

    def test_user_from_other_tenant_rejected(self, client, tenant_a, tenant_b):
        headers = {'X-Tenant-Id': str(tenant_a.tenant_id), 'X-User-Id': str(tenant_b.attendant_id)}
        response = client.get('/api/stock/products', headers=headers)
        assert response.status_code == 401

    def test_foreign_sale_returns_404(self, client, tenant_a, tenant_b):
        sale_b = _ring_up(tenant_b)
        response = client.get(f'/api/sales/{sale_b}', headers=identity_headers(tenant_a))
        assert response.status_code == 404
        assert response.json["code"] == "SALE_NOT_FOUND"

        response = client.get(f'/api/sales/{sale_b}', headers=identity_headers(tenant_b))
        assert response.status_code == 200
        assert response.json["sale"]["id"] == sale_b
