# Overview: Pytest coverage for the offline sale sync debit path.

"""
Offline Sync Tests

Uploads are deduplicated by sale_ref, oversold lines are reported as
deficits, and failures leave an ERROR marker behind.
"""

from decimal import Decimal

import pytest

from storeledger.errors import NotFoundError, ValidationError
from storeledger.services import inventory_service as inv
from storeledger.services import sync_service
from storeledger.services.tenant_context import tenant_scope


def _items(t, *quantities):
    return [{"product_id": t.product_id, "location_id": t.floor_id, "quantity": q} for q in quantities]


class TestOfflineSale:
    def test_applies_debits(self, bound_a):
        t = bound_a
        inv.credit(t.product_id, t.floor_id, 10)
        result = sync_service.process_offline_sale(
            sale_ref="dev1-0001",
            items=_items(t, "2"),
            user_id=t.attendant_id,
            device_id="dev1",
            client_created_at="2026-03-01T12:00:00Z",
        )

        assert result.status == sync_service.STATUS_DONE
        assert result.items_applied == 1
        assert result.deficits == []
        assert inv.get_stock_level(t.product_id, t.floor_id) == Decimal("8")

        marker = sync_service.get_processed_sale("dev1-0001")
        assert marker.status == "DONE"
        assert marker.device_id == "dev1"
        assert inv.list_movements(reference="dev1-0001")[0].reason == "Offline sale"

    def test_second_upload_is_noop(self, bound_a):
        t = bound_a
        inv.credit(t.product_id, t.floor_id, 10)
        sync_service.process_offline_sale(sale_ref="dup-1", items=_items(t, "3"))
        again = sync_service.process_offline_sale(sale_ref="dup-1", items=_items(t, "3"))

        assert again.already_processed
        assert again.to_dict() == {"ok": True, "sale_ref": "dup-1", "already_processed": True, "status": "DONE"}
        assert inv.get_stock_level(t.product_id, t.floor_id) == Decimal("7")

    def test_same_ref_in_other_tenant_is_independent(self, tenant_a, tenant_b):
        for tenant in (tenant_a, tenant_b):
            with tenant_scope(tenant.tenant_id):
                result = sync_service.process_offline_sale(sale_ref="shared-ref", items=_items(tenant, "1"))
                assert not result.already_processed

    def test_duplicate_lines_are_consolidated(self, bound_a):
        t = bound_a
        inv.credit(t.product_id, t.floor_id, 5)
        result = sync_service.process_offline_sale(sale_ref="merge-1", items=_items(t, "1", "1.5"))

        assert result.items_applied == 1
        movements = inv.list_movements(reference="merge-1")
        assert len(movements) == 1
        assert movements[0].quantity == Decimal("-2.5")

    def test_oversell_reports_deficit(self, bound_a):
        t = bound_a
        inv.credit(t.product_id, t.floor_id, 1)
        result = sync_service.process_offline_sale(
            sale_ref="short-1",
            items=[
                {"product_id": t.product_id, "location_id": t.floor_id, "qty": 3},
                {"product_id": t.other_product_id, "location_id": t.floor_id, "qty": 1},
            ],
        )

        assert result.items_applied == 2
        assert len(result.deficits) == 2
        coffee = result.deficits[0]
        assert coffee["product_id"] == t.product_id
        assert Decimal(coffee["before_qty"]) == Decimal("1")
        assert Decimal(coffee["sold_qty"]) == Decimal("3")
        assert Decimal(coffee["after_qty"]) == Decimal("-2")
        assert Decimal(result.deficits[1]["before_qty"]) == Decimal("0")

    def test_unknown_product_marks_error(self, bound_a):
        t = bound_a
        with pytest.raises(NotFoundError):
            sync_service.process_offline_sale(
                sale_ref="bad-1",
                items=[{"product_id": 999999, "location_id": t.floor_id, "quantity": 1}],
            )

        marker = sync_service.get_processed_sale("bad-1")
        assert marker.status == sync_service.STATUS_ERROR
        assert "Product not found" in marker.error_message

        retry = sync_service.process_offline_sale(sale_ref="bad-1", items=_items(t, "1"))
        assert retry.already_processed
        assert retry.status == "ERROR"

    @pytest.mark.parametrize("items", [[], None, [{"product_id": 1}], ["x"]])
    def test_invalid_items(self, bound_a, items):
        with pytest.raises(ValidationError):
            sync_service.process_offline_sale(sale_ref="v-1", items=items)
        assert sync_service.get_processed_sale("v-1") is None

    def test_sale_ref_required(self, bound_a):
        with pytest.raises(ValidationError):
            sync_service.process_offline_sale(sale_ref="  ", items=_items(bound_a, "1"))

    def test_bad_created_at(self, bound_a):
        with pytest.raises(ValidationError):
            sync_service.process_offline_sale(
                sale_ref="v-2", items=_items(bound_a, "1"), client_created_at="yesterday",
            )
