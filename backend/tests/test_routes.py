# Overview: HTTP-level tests for the JSON API (status codes, bodies, role guards).

"""
API Route Tests

Service behavior is covered elsewhere; these check the HTTP contract:
status codes, response shapes, the error body and role restrictions.
"""

from decimal import Decimal

from conftest import SUPERVISOR_PIN, identity_headers


def _open_session(client, tenant, opening_cents=10000):
    response = client.post(
        '/api/cash/sessions',
        json={"opening_cents": opening_cents, "register_label": "Front"},
        headers=identity_headers(tenant),
    )
    assert response.status_code == 201
    return response.json["session"]["id"]


def _sale_body(tenant, session_id, paid_cents=2000):
    return {
        "cash_session_id": session_id,
        "location_id": tenant.floor_id,
        "items": [{"product_id": tenant.product_id, "quantity": "1"}],
        "payments": [{"method": "cash", "amount_cents": paid_cents}],
    }


class TestSystem:
    def test_health(self, client, db_session):
        response = client.get('/api/health')
        assert response.status_code == 200
        assert response.json["status"] == "ok"
        assert response.json["checks"]["database"]["status"] == "healthy"

    def test_unknown_route_uses_error_body(self, client, db_session):
        response = client.get('/api/nope')
        assert response.status_code == 404
        assert set(response.json) == {"error", "code", "details"}


class TestCashRoutes:
    def test_open_shift_and_close(self, client, tenant_a):
        headers = identity_headers(tenant_a)
        session_id = _open_session(client, tenant_a)

        current = client.get('/api/cash/sessions/current', headers=headers)
        assert current.status_code == 200
        assert current.json["session"]["id"] == session_id

        sale = client.post('/api/sales', json=_sale_body(tenant_a, session_id), headers=headers)
        assert sale.status_code == 201
        assert sale.json["sale"]["change_cents"] == 500

        withdrawal = client.post(
            f'/api/cash/sessions/{session_id}/withdrawals',
            json={"amount_cents": 1000, "reason": "Bank deposit", "supervisor_credential": SUPERVISOR_PIN},
            headers=headers,
        )
        assert withdrawal.status_code == 201

        closed = client.post(
            f'/api/cash/sessions/{session_id}/close',
            json={"closing_cents": 10500, "supervisor_credential": SUPERVISOR_PIN},
            headers=headers,
        )
        assert closed.status_code == 200
        report = closed.json["report"]
        assert report["expected_cash_cents"] == 10500
        assert report["difference_cents"] == 0

        stored = client.get(f'/api/cash/sessions/{session_id}/report', headers=headers)
        assert stored.json["report"] == report

        detail = client.get(f'/api/cash/sessions/{session_id}', headers=headers)
        assert detail.json["session"]["status"] == "CLOSED"
        assert len(detail.json["session"]["withdrawals"]) == 1

    def test_second_open_conflicts(self, client, tenant_a):
        _open_session(client, tenant_a)
        response = client.post(
            '/api/cash/sessions', json={"opening_cents": 0}, headers=identity_headers(tenant_a, tenant_a.owner_id),
        )
        assert response.status_code == 409
        assert response.json == {
            "error": "Maximum number of open cash sessions reached",
            "code": "MAX_OPEN_CASH_SESSIONS",
            "details": {"max_open": 1},
        }

    def test_no_current_session(self, client, tenant_a):
        response = client.get('/api/cash/sessions/current', headers=identity_headers(tenant_a))
        assert response.status_code == 404
        assert response.json["code"] == "CASH_SESSION_NOT_OPEN"

    def test_close_with_bad_credential(self, client, tenant_a):
        session_id = _open_session(client, tenant_a)
        response = client.post(
            f'/api/cash/sessions/{session_id}/close',
            json={"closing_cents": 10000, "supervisor_credential": "0000"},
            headers=identity_headers(tenant_a),
        )
        assert response.status_code == 403
        assert response.json["code"] == "SUPERVISOR_APPROVAL_FAILED"

    def test_report_of_open_session(self, client, tenant_a):
        session_id = _open_session(client, tenant_a)
        response = client.get(f'/api/cash/sessions/{session_id}/report', headers=identity_headers(tenant_a))
        assert response.status_code == 409


class TestSalesRoutes:
    def test_idempotency_key_header(self, client, tenant_a):
        headers = dict(identity_headers(tenant_a), **{"Idempotency-Key": "till-1-0007"})
        session_id = _open_session(client, tenant_a)

        first = client.post('/api/sales', json=_sale_body(tenant_a, session_id), headers=headers)
        assert first.status_code == 201

        again = client.post('/api/sales', json=_sale_body(tenant_a, session_id), headers=headers)
        assert again.status_code == 200
        assert again.json == {"duplicate": True}

        listed = client.get(f'/api/sales?cash_session_id={session_id}', headers=identity_headers(tenant_a))
        assert len(listed.json["sales"]) == 1

    def test_invalid_sale_body(self, client, tenant_a):
        session_id = _open_session(client, tenant_a)
        body = _sale_body(tenant_a, session_id)
        body["items"] = []
        response = client.post('/api/sales', json=body, headers=identity_headers(tenant_a))
        assert response.status_code == 400
        assert response.json["code"] == "VALIDATION_ERROR"

    def test_receipt_and_cancel(self, client, tenant_a):
        headers = identity_headers(tenant_a)
        session_id = _open_session(client, tenant_a)
        sale_id = client.post('/api/sales', json=_sale_body(tenant_a, session_id), headers=headers).json["sale"]["id"]

        receipt = client.get(f'/api/sales/{sale_id}/receipt', headers=headers)
        assert receipt.status_code == 200

        canceled = client.post(
            f'/api/sales/{sale_id}/cancel',
            json={"supervisor_credential": SUPERVISOR_PIN, "reason": "Wrong item"},
            headers=headers,
        )
        assert canceled.status_code == 200
        assert canceled.json["sale"]["status"] == "CANCELED"


class TestStockRoutes:
    def test_credit_and_levels(self, client, tenant_a):
        headers = identity_headers(tenant_a)
        response = client.post(
            '/api/stock/in',
            json={"product_id": tenant_a.product_id, "location_id": tenant_a.backroom_id, "quantity": "12.5"},
            headers=headers,
        )
        assert response.status_code == 201
        assert Decimal(response.json["quantity"]) == Decimal("12.5")

        levels = client.get(f'/api/stock/levels?product_id={tenant_a.product_id}', headers=headers)
        assert [Decimal(row["quantity"]) for row in levels.json["levels"]] == [Decimal("12.5")]

        transfer = client.post(
            '/api/stock/transfer',
            json={
                "product_id": tenant_a.product_id,
                "from_location_id": tenant_a.backroom_id,
                "to_location_id": tenant_a.floor_id,
                "quantity": "2.5",
            },
            headers=headers,
        )
        assert transfer.status_code == 201
        assert Decimal(transfer.json["out"]["quantity"]) == Decimal("10")
        assert Decimal(transfer.json["in"]["quantity"]) == Decimal("2.5")

    def test_adjust_requires_supervisor_role(self, client, tenant_a):
        body = {"product_id": tenant_a.product_id, "location_id": tenant_a.floor_id, "delta": "-1", "reason": "Broken"}

        denied = client.post('/api/stock/adjust', json=body, headers=identity_headers(tenant_a))
        assert denied.status_code == 403
        assert denied.json["code"] == "ROLE_FORBIDDEN"

        allowed = client.post('/api/stock/adjust', json=body, headers=identity_headers(tenant_a, tenant_a.owner_id))
        assert allowed.status_code == 201

    def test_create_product_as_owner(self, client, tenant_a):
        response = client.post(
            '/api/stock/products',
            json={"sku": "a-MILK", "name": "Milk 1L", "price_cents": 650},
            headers=identity_headers(tenant_a, tenant_a.owner_id),
        )
        assert response.status_code == 201

        duplicate = client.post(
            '/api/stock/products',
            json={"sku": "a-MILK", "name": "Milk 1L", "price_cents": 650},
            headers=identity_headers(tenant_a, tenant_a.owner_id),
        )
        assert duplicate.status_code == 409
        assert duplicate.json["code"] == "SKU_EXISTS"


class TestSyncRoutes:
    def test_offline_upload_twice(self, client, tenant_a):
        headers = identity_headers(tenant_a)
        body = {
            "sale_ref": "dev-9-0001",
            "device_id": "dev-9",
            "created_at": "2026-02-01T09:30:00Z",
            "items": [{"product_id": tenant_a.product_id, "location_id": tenant_a.floor_id, "quantity": "2"}],
        }
        first = client.post('/api/sync/sales', json=body, headers=headers)
        assert first.status_code == 200
        assert first.json["already_processed"] is False
        assert len(first.json["deficits"]) == 1

        second = client.post('/api/sync/sales', json=body, headers=headers)
        assert second.status_code == 200
        assert second.json["already_processed"] is True
        assert "deficits" not in second.json


class TestCustomerRoutes:
    def test_customer_charge_and_balance(self, client, tenant_a):
        owner = identity_headers(tenant_a, tenant_a.owner_id)
        created = client.post(
            '/api/customers',
            json={"name": "Maria", "allow_credit": True, "credit_limit_cents": 5000},
            headers=owner,
        )
        assert created.status_code == 201
        customer_id = created.json["customer"]["id"]

        denied = client.post('/api/customers', json={"name": "Nope"}, headers=identity_headers(tenant_a))
        assert denied.status_code == 403

        charged = client.post(
            f'/api/customers/{customer_id}/charges',
            json={"amount_cents": 3000, "description": "Groceries"},
            headers=identity_headers(tenant_a),
        )
        assert charged.status_code == 201

        balance = client.get(f'/api/customers/{customer_id}/balance', headers=identity_headers(tenant_a))
        assert balance.json == {"customer_id": customer_id, "balance_cents": 3000}

        over = client.post(
            f'/api/customers/{customer_id}/charges',
            json={"amount_cents": 2500},
            headers=identity_headers(tenant_a),
        )
        assert over.status_code == 403
        assert over.json["code"] == "CREDIT_LIMIT_EXCEEDED"


class TestPrintAndFiscalRoutes:
    def test_receipt_job_lifecycle(self, client, tenant_a):
        headers = identity_headers(tenant_a)
        session_id = _open_session(client, tenant_a)
        client.post('/api/sales', json=_sale_body(tenant_a, session_id), headers=headers)

        jobs = client.get('/api/print-jobs?status=PENDING&type=RECEIPT', headers=headers)
        assert jobs.status_code == 200
        assert len(jobs.json["jobs"]) == 1
        job_id = jobs.json["jobs"][0]["id"]

        failed = client.post(
            f'/api/print-jobs/{job_id}/status', json={"status": "FAILED", "error": "Paper out"}, headers=headers,
        )
        assert failed.json["job"]["last_error"] == "Paper out"

        bad = client.post(f'/api/print-jobs/{job_id}/status', json={"status": "LOST"}, headers=headers)
        assert bad.status_code == 400

        assert client.get('/api/print-jobs?status=PENDING', headers=headers).json["jobs"] == []

    def test_fiscal_retry_is_supervisor_only(self, client, tenant_a):
        listed = client.get('/api/fiscal/documents', headers=identity_headers(tenant_a))
        assert listed.status_code == 200

        denied = client.post('/api/fiscal/retry', json={"sale_ids": [1]}, headers=identity_headers(tenant_a))
        assert denied.status_code == 403
