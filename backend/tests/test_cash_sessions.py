# Overview: Pytest coverage for cash session lifecycle and reconciliation.

"""
Cash Session Tests

End-to-end drawer accounting: opening caps, register labels, supervised
withdrawals, and the frozen closing snapshot.
"""

import pytest

from conftest import SUPERVISOR_PIN, open_drawer, owner_password
from storeledger.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from storeledger.extensions import db
from storeledger.models import CashSession, CashWithdrawal, PrintJob, User
from storeledger.models.printing import PRINT_CASH_CLOSING
from storeledger.services import audit_service, cash_service, sales_service, tenant_service
from storeledger.services.tenant_context import tenant_scope
from storeledger.time_utils import utcnow


def _cash_sale(tenant, session_id, quantity, paid_cents, **kwargs):
    return sales_service.create_sale(
        user_id=tenant.attendant_id,
        role="ATTENDANT",
        cash_session_id=session_id,
        location_id=tenant.floor_id,
        items=[{"product_id": tenant.product_id, "quantity": quantity}],
        payments=[{"method": "cash", "amount_cents": paid_cents}],
        **kwargs,
    ).sale


class TestOpening:
    def test_open_session(self, bound_a):
        session = cash_service.open_cash_session(
            user_id=bound_a.attendant_id, opening_cents=10000, register_label="Front",
        )
        assert session.is_open
        assert session.to_dict()["status"] == "OPEN"
        assert cash_service.get_current_session(bound_a.attendant_id).id == session.id

    def test_cap_enforced(self, bound_a):
        cash_service.open_cash_session(user_id=bound_a.attendant_id, opening_cents=0)
        with pytest.raises(ConflictError) as exc:
            cash_service.open_cash_session(user_id=bound_a.owner_id, opening_cents=0)
        assert exc.value.code == "MAX_OPEN_CASH_SESSIONS"
        assert exc.value.details == {"max_open": 1}

    def test_closing_frees_one_slot(self, tenant_a):
        first = open_drawer(tenant_a)
        with tenant_scope(tenant_a.tenant_id):
            cash_service.close_cash_session(
                first, closing_cents=10000, user_id=tenant_a.attendant_id, supervisor_credential=SUPERVISOR_PIN,
            )
            reopened = cash_service.open_cash_session(user_id=tenant_a.owner_id, opening_cents=5000)
            assert reopened.is_open

            with pytest.raises(ConflictError) as exc:
                cash_service.open_cash_session(user_id=tenant_a.attendant_id, opening_cents=0)
            assert exc.value.code == "MAX_OPEN_CASH_SESSIONS"

    def test_cap_is_per_tenant(self, tenant_a, tenant_b):
        open_drawer(tenant_a)
        open_drawer(tenant_b)

    def test_register_label_unique_among_open(self, bound_a):
        tenant_service.set_max_open_sessions(bound_a.tenant_id, 3)
        cash_service.open_cash_session(user_id=bound_a.attendant_id, opening_cents=0, register_label="Front")
        with pytest.raises(ConflictError) as exc:
            cash_service.open_cash_session(user_id=bound_a.owner_id, opening_cents=0, register_label="Front")
        assert exc.value.code == "REGISTER_LABEL_IN_USE"
        cash_service.open_cash_session(user_id=bound_a.owner_id, opening_cents=0, register_label="Back")
        assert len(cash_service.list_open_sessions()) == 2

    def test_negative_opening_rejected(self, bound_a):
        with pytest.raises(ValidationError):
            cash_service.open_cash_session(user_id=bound_a.attendant_id, opening_cents=-1)


class TestWithdrawals:
    def test_withdrawal_requires_supervisor(self, tenant_a):
        session_id = open_drawer(tenant_a)
        with tenant_scope(tenant_a.tenant_id):
            with pytest.raises(ForbiddenError):
                cash_service.withdraw(
                    session_id, amount_cents=1500, reason="Supplier", user_id=tenant_a.attendant_id,
                    supervisor_credential=None,
                )
            withdrawal = cash_service.withdraw(
                session_id, amount_cents=1500, reason="Supplier", user_id=tenant_a.attendant_id,
                supervisor_credential=owner_password("a"),
            )
            assert withdrawal.approved_by_user_id == tenant_a.owner_id
            assert withdrawal.approval_via == "PASSWORD"

            events = audit_service.list_events(action=audit_service.ACTION_CASH_WITHDRAW)
            assert [e.entity_id for e in events] == [withdrawal.id]

    @pytest.mark.parametrize("reason", ["", "ab", "x" * 281])
    def test_reason_length(self, tenant_a, reason):
        session_id = open_drawer(tenant_a)
        with tenant_scope(tenant_a.tenant_id):
            with pytest.raises(ValidationError):
                cash_service.withdraw(
                    session_id, amount_cents=100, reason=reason, user_id=tenant_a.attendant_id,
                    supervisor_credential=SUPERVISOR_PIN,
                )

    def test_withdraw_from_closed_session(self, tenant_a):
        session_id = open_drawer(tenant_a)
        with tenant_scope(tenant_a.tenant_id):
            cash_service.close_cash_session(
                session_id, closing_cents=10000, user_id=tenant_a.attendant_id, supervisor_credential=SUPERVISOR_PIN,
            )
            with pytest.raises(NotFoundError):
                cash_service.withdraw(
                    session_id, amount_cents=100, reason="Late", user_id=tenant_a.attendant_id,
                    supervisor_credential=SUPERVISOR_PIN,
                )

    def test_withdraw_rechecks_session_under_lock(self, tenant_a, monkeypatch):
        session_id = open_drawer(tenant_a)
        approve = cash_service.require_supervisor_approval

        def approve_then_close(credential, action):
            approval = approve(credential, action)
            db.session.query(CashSession).filter(CashSession.id == session_id).update(
                {"closed_at": utcnow(), "closing_cents": 10000}, synchronize_session=False,
            )
            db.session.commit()
            return approval

        monkeypatch.setattr(cash_service, "require_supervisor_approval", approve_then_close)
        with tenant_scope(tenant_a.tenant_id):
            with pytest.raises(NotFoundError):
                cash_service.withdraw(
                    session_id, amount_cents=100, reason="Too late", user_id=tenant_a.attendant_id,
                    supervisor_credential=SUPERVISOR_PIN,
                )
            assert db.session.query(CashWithdrawal).count() == 0


class TestClosing:
    """Shift: opening 10000, net cash sales 4500, withdrawals 1500, expected 13000."""

    def _run_shift(self, tenant):
        session_id = open_drawer(tenant, opening_cents=10000)
        with tenant_scope(tenant.tenant_id):
            _cash_sale(tenant, session_id, "2", 5000)          # 3000 total, 2000 change
            _cash_sale(tenant, session_id, "1", 2000)          # 1500 total, 500 change
            canceled = _cash_sale(tenant, session_id, "1", 1500)
            sales_service.cancel_sale(canceled.id, user_id=tenant.attendant_id, supervisor_credential=SUPERVISOR_PIN)
            sales_service.create_sale(
                user_id=tenant.attendant_id,
                role="ATTENDANT",
                cash_session_id=session_id,
                location_id=tenant.floor_id,
                items=[{"product_id": tenant.other_product_id, "quantity": "1"}],
                payments=[{"method": "store_credit", "amount_cents": 500, "provider_ref": "Maria"}],
            )
            cash_service.withdraw(
                session_id, amount_cents=1500, reason="Supplier payment", user_id=tenant.attendant_id,
                supervisor_credential=SUPERVISOR_PIN,
            )
        return session_id

    def test_close_reconciles(self, tenant_a):
        session_id = self._run_shift(tenant_a)
        with tenant_scope(tenant_a.tenant_id):
            report = cash_service.close_cash_session(
                session_id, closing_cents=13500, user_id=tenant_a.attendant_id,
                supervisor_credential=SUPERVISOR_PIN, notes="All good",
            )

        assert report["opening_cents"] == 10000
        assert report["cash_sales_cents"] == 4500
        assert report["total_withdrawals_cents"] == 1500
        assert report["expected_cash_cents"] == 13000
        assert report["difference_cents"] == 500
        assert report["total_sales_cents"] == 5000
        assert report["total_change_cents"] == 2500
        assert report["approved_by"]["id"] == tenant_a.owner_id
        assert report["approved_by"]["via"] == "PIN"
        assert report["closed_by"]["name"] == "Attendant a"
        assert report["closing_notes"] == "All good"

        breakdown = {row["method"]: row["amount_cents"] for row in report["payment_breakdown"]}
        assert breakdown["cash"] == 7000
        assert breakdown["store_credit"] == 500
        assert breakdown["debit"] == 0
        assert [row["method"] for row in report["payment_breakdown"]] == list(cash_service.PAYMENT_ORDER)
        assert report["store_credit"] == {
            "total_cents": 500,
            "entries": [{"reference": "Maria", "amount_cents": 500}],
        }
        assert [w["amount_cents"] for w in report["withdrawals"]] == [1500]

    def test_exact_drawer_has_zero_difference(self, tenant_a):
        session_id = open_drawer(tenant_a, opening_cents=10000)
        with tenant_scope(tenant_a.tenant_id):
            _cash_sale(tenant_a, session_id, "2", 3000)
            _cash_sale(tenant_a, session_id, "1", 2000)
            cash_service.withdraw(
                session_id, amount_cents=1500, reason="Supplier payment", user_id=tenant_a.attendant_id,
                supervisor_credential=SUPERVISOR_PIN,
            )
            report = cash_service.close_cash_session(
                session_id, closing_cents=13000, user_id=tenant_a.attendant_id,
                supervisor_credential=SUPERVISOR_PIN,
            )
        assert report["expected_cash_cents"] == 13000
        assert report["difference_cents"] == 0

    def test_close_enqueues_print_job(self, tenant_a):
        session_id = open_drawer(tenant_a)
        with tenant_scope(tenant_a.tenant_id):
            report = cash_service.close_cash_session(
                session_id, closing_cents=10000, user_id=tenant_a.attendant_id, supervisor_credential=SUPERVISOR_PIN,
            )
            job = db.session.query(PrintJob).filter_by(id=report["print_job_id"]).first()
            assert job.type == PRINT_CASH_CLOSING
            assert job.cash_session_id == session_id
            assert report["print_job_status"] == "PENDING"

    def test_close_requires_supervisor(self, tenant_a):
        session_id = open_drawer(tenant_a)
        with tenant_scope(tenant_a.tenant_id):
            with pytest.raises(ForbiddenError):
                cash_service.close_cash_session(
                    session_id, closing_cents=10000, user_id=tenant_a.attendant_id, supervisor_credential="1111",
                )
            assert cash_service.get_session(session_id).is_open

    def test_closed_session_cannot_close_again(self, tenant_a):
        session_id = open_drawer(tenant_a)
        with tenant_scope(tenant_a.tenant_id):
            cash_service.close_cash_session(
                session_id, closing_cents=10000, user_id=tenant_a.attendant_id, supervisor_credential=SUPERVISOR_PIN,
            )
            with pytest.raises(NotFoundError):
                cash_service.close_cash_session(
                    session_id, closing_cents=10000, user_id=tenant_a.attendant_id, supervisor_credential=SUPERVISOR_PIN,
                )


class TestReport:
    def test_report_is_frozen(self, tenant_a):
        session_id = open_drawer(tenant_a)
        with tenant_scope(tenant_a.tenant_id):
            closed = cash_service.close_cash_session(
                session_id, closing_cents=10000, user_id=tenant_a.attendant_id, supervisor_credential=SUPERVISOR_PIN,
            )
            attendant = db.session.query(User).filter_by(id=tenant_a.attendant_id).first()
            attendant.name = "Renamed later"
            db.session.commit()

            assert cash_service.get_cash_report(session_id) == closed

    def test_report_for_open_session_conflicts(self, tenant_a):
        session_id = open_drawer(tenant_a)
        with tenant_scope(tenant_a.tenant_id):
            with pytest.raises(ConflictError) as exc:
                cash_service.get_cash_report(session_id)
            assert exc.value.code == "CASH_SESSION_OPEN"

    def test_report_rebuilt_when_snapshot_missing(self, tenant_a):
        session_id = open_drawer(tenant_a)
        with tenant_scope(tenant_a.tenant_id):
            cash_service.close_cash_session(
                session_id, closing_cents=9000, user_id=tenant_a.attendant_id, supervisor_credential=SUPERVISOR_PIN,
            )
            session = db.session.query(CashSession).filter_by(id=session_id).first()
            session.closing_snapshot = None
            db.session.commit()

            report = cash_service.get_cash_report(session_id)
            assert report["difference_cents"] == -1000
            assert report["approved_by"]["id"] == tenant_a.owner_id


class TestStoreCredit:
    def test_reference_falls_back_to_sale_number(self, tenant_a):
        session_id = open_drawer(tenant_a)
        with tenant_scope(tenant_a.tenant_id):
            sale = sales_service.create_sale(
                user_id=tenant_a.attendant_id,
                role="ATTENDANT",
                cash_session_id=session_id,
                location_id=tenant_a.floor_id,
                items=[{"product_id": tenant_a.other_product_id, "quantity": "2"}],
                payments=[{"method": "store_credit", "amount_cents": 1000}],
            ).sale
            report = cash_service.close_cash_session(
                session_id, closing_cents=10000, user_id=tenant_a.attendant_id, supervisor_credential=SUPERVISOR_PIN,
            )

            assert report["store_credit"] == {
                "total_cents": 1000,
                "entries": [{"reference": f"Sale #{sale.number}", "amount_cents": 1000}],
            }
            assert report["difference_cents"] == 0
