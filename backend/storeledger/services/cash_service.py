# Overview: Cash drawer lifecycle; open, withdraw, close with a frozen reconciliation snapshot.

# backend/storeledger/services/cash_service.py
"""
Cash Session Lifecycle & Reconciliation

WHY: A drawer shift is the unit of cash accountability. Opening is capped per
tenant, every cash removal needs a supervisor, and closing freezes a
reconciliation snapshot that later reports return verbatim.

INVARIANTS:
- open sessions per tenant <= tenant.max_open_cash_sessions
- a register label is unique among the tenant's open sessions
- a closed session is never reopened; closing_snapshot is never recomputed

RECONCILIATION (FINALIZED sales of the session only):
    cash_sales = max(cash payments - change given, 0)
    expected   = opening + cash_sales - withdrawals
    difference = closing - expected
"""

from __future__ import annotations

import logging

from sqlalchemy import func

from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import CashSession, CashWithdrawal, Payment, Sale, Tenant, User
from ..models.sales import SALE_FINALIZED
from ..time_utils import to_utc_z, utcnow
from ..validation import MAX_PRICE_CENTS
from . import audit_service, printing_service
from .concurrency import lock_for_update, run_with_retry
from .supervisor_service import SupervisorApproval, require_supervisor_approval
from .tenant_context import current_tenant_id

logger = logging.getLogger(__name__)

APPROVAL_WITHDRAWAL = "Cash withdrawal"
APPROVAL_CLOSING = "Cash closing"

PAYMENT_ORDER = ("debit", "credit", "vr", "va", "cash", "pix", "store_credit")
PAYMENT_LABELS = {
    "debit": "Debit",
    "credit": "Credit",
    "vr": "Meal voucher (VR)",
    "va": "Food voucher (VA)",
    "cash": "Cash",
    "pix": "PIX",
    "store_credit": "Store credit",
}


def _require_cents(value, field: str, *, allow_zero: bool = True) -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer amount in cents")
    if value < (0 if allow_zero else 1) or value > MAX_PRICE_CENTS:
        raise ValidationError(f"{field} is out of range")
    return value


def _open_sessions_query():
    return db.session.query(CashSession).filter(CashSession.closed_at.is_(None))


def open_cash_session(
    *,
    user_id: int,
    opening_cents: int,
    register_label: str | None = None,
    notes: str | None = None,
) -> CashSession:
    """
    Open a drawer for user_id.

    The tenant row is locked while counting open sessions so two concurrent
    opens cannot both pass the cap check.
    """
    tenant_id = current_tenant_id()
    _require_cents(opening_cents, "opening_cents")
    register_label = (register_label or "").strip() or None
    notes = (notes or "").strip() or None

    def _op() -> CashSession:
        tenant = lock_for_update(db.session.query(Tenant).filter_by(id=tenant_id)).first()
        if tenant is None:
            raise NotFoundError("Tenant not found", code="TENANT_NOT_FOUND")
        if not tenant.is_active:
            raise ForbiddenError("Tenant is inactive", code="TENANT_INACTIVE")

        max_open = tenant.max_open_cash_sessions or 1
        open_count = (
            db.session.query(func.count(CashSession.id))
            .filter(CashSession.tenant_id == tenant_id, CashSession.closed_at.is_(None))
            .scalar()
        )
        if open_count >= max_open:
            raise ConflictError(
                "Maximum number of open cash sessions reached",
                code="MAX_OPEN_CASH_SESSIONS",
                details={"max_open": max_open},
            )

        if register_label:
            in_use = _open_sessions_query().filter(CashSession.register_label == register_label).first()
            if in_use is not None:
                raise ConflictError(
                    "Register label already in use by an open cash session",
                    code="REGISTER_LABEL_IN_USE",
                    details={"register_label": register_label, "cash_session_id": in_use.id},
                )

        session = CashSession(
            tenant_id=tenant_id,
            user_id=user_id,
            register_label=register_label,
            opening_cents=opening_cents,
            opening_notes=notes,
        )
        db.session.add(session)
        db.session.flush()
        audit_service.record_event(
            audit_service.ACTION_CASH_OPEN,
            entity_type="CashSession",
            entity_id=session.id,
            user_id=user_id,
            payload={"opening_cents": opening_cents, "register_label": register_label},
            commit=False,
        )
        db.session.commit()
        return session

    try:
        return run_with_retry(_op)
    except (ConflictError, ForbiddenError, NotFoundError):
        db.session.rollback()
        raise


def get_current_session(user_id: int | None = None) -> CashSession | None:
    """Open session of the tenant (of user_id when given), newest first."""
    q = _open_sessions_query()
    if user_id is not None:
        q = q.filter(CashSession.user_id == user_id)
    return q.order_by(CashSession.opened_at.desc(), CashSession.id.desc()).first()


def list_open_sessions() -> list[CashSession]:
    return _open_sessions_query().order_by(CashSession.id).all()


def get_session(session_id: int) -> CashSession:
    session = db.session.query(CashSession).filter_by(id=session_id).first()
    if session is None:
        raise NotFoundError("Cash session not found", code="CASH_SESSION_NOT_FOUND")
    return session


def _require_open_session(session_id: int, *, lock: bool = False) -> CashSession:
    q = _open_sessions_query().filter(CashSession.id == session_id)
    if lock:
        q = lock_for_update(q).populate_existing()
    session = q.first()
    if session is None:
        raise NotFoundError("Open cash session not found", code="CASH_SESSION_NOT_OPEN")
    return session


def withdraw(
    session_id: int,
    *,
    amount_cents: int,
    reason: str,
    user_id: int,
    supervisor_credential: str | None,
) -> CashWithdrawal:
    """Record a supervisor-approved withdrawal from an open drawer."""
    _require_cents(amount_cents, "amount_cents", allow_zero=False)
    reason = (reason or "").strip()
    if len(reason) < 3 or len(reason) > 280:
        raise ValidationError("reason must be between 3 and 280 characters")

    _require_open_session(session_id)
    approval = require_supervisor_approval(supervisor_credential, APPROVAL_WITHDRAWAL)

    def _op() -> CashWithdrawal:
        # Re-check under the row lock close_cash_session also takes
        _require_open_session(session_id, lock=True)
        withdrawal = CashWithdrawal(
            tenant_id=current_tenant_id(),
            cash_session_id=session_id,
            amount_cents=amount_cents,
            reason=reason,
            created_by_user_id=user_id,
            approved_by_user_id=approval.approver_id,
            approval_via=approval.via,
        )
        db.session.add(withdrawal)
        db.session.flush()
        audit_service.record_event(
            audit_service.ACTION_CASH_WITHDRAW,
            entity_type="CashWithdrawal",
            entity_id=withdrawal.id,
            user_id=user_id,
            payload={"cash_session_id": session_id, "amount_cents": amount_cents, "approved_by": approval.approver_id},
            commit=False,
        )
        db.session.commit()
        return withdrawal

    try:
        return run_with_retry(_op)
    except NotFoundError:
        db.session.rollback()
        raise


def _user_ref(user_id, names: dict) -> dict | None:
    if user_id is None:
        return None
    return {"id": user_id, "name": names.get(user_id)}


def build_closing_snapshot(
    session: CashSession,
    *,
    closed_at,
    closing_cents: int,
    closed_by_user_id: int,
    closing_notes: str | None,
    approval: SupervisorApproval | None,
) -> dict:
    """
    Compute the reconciliation snapshot for a session. Pure read: nothing is
    written here. User names come from a single batched query.
    """
    tenant_id = current_tenant_id()
    finalized = (
        Sale.tenant_id == tenant_id,
        Sale.cash_session_id == session.id,
        Sale.status == SALE_FINALIZED,
    )

    payment_totals = dict(
        db.session.query(Payment.method, func.coalesce(func.sum(Payment.amount_cents), 0))
        .join(Sale, Sale.id == Payment.sale_id)
        .filter(*finalized)
        .group_by(Payment.method)
        .all()
    )
    total_change, total_sales = (
        db.session.query(
            func.coalesce(func.sum(Sale.change_cents), 0),
            func.coalesce(func.sum(Sale.total_cents), 0),
        )
        .filter(*finalized)
        .one()
    )
    store_credit_rows = (
        db.session.query(Payment.amount_cents, Payment.provider_ref, Sale.number)
        .join(Sale, Sale.id == Payment.sale_id)
        .filter(*finalized, Payment.method == "store_credit")
        .order_by(Sale.number, Payment.id)
        .all()
    )
    withdrawals = (
        db.session.query(CashWithdrawal)
        .filter(CashWithdrawal.cash_session_id == session.id)
        .order_by(CashWithdrawal.created_at, CashWithdrawal.id)
        .all()
    )

    breakdown = [
        {"method": method, "label": PAYMENT_LABELS[method], "amount_cents": int(payment_totals.get(method, 0))}
        for method in PAYMENT_ORDER
    ]
    total_payments = sum(entry["amount_cents"] for entry in breakdown)
    cash_payments = int(payment_totals.get("cash", 0))
    total_change = int(total_change)
    total_withdrawals = sum(w.amount_cents for w in withdrawals)
    cash_sales = max(cash_payments - total_change, 0)
    expected_cash = session.opening_cents + cash_sales - total_withdrawals

    store_credit: dict[str, int] = {}
    for amount_cents, provider_ref, number in store_credit_rows:
        reference = (provider_ref or "").strip() or f"Sale #{number}"
        store_credit[reference] = store_credit.get(reference, 0) + amount_cents
    store_credit_entries = [
        {"reference": reference, "amount_cents": amount}
        for reference, amount in store_credit.items()
    ]

    user_ids = {session.user_id, closed_by_user_id}
    user_ids.update(w.created_by_user_id for w in withdrawals)
    if approval is not None:
        user_ids.add(approval.approver_id)
    names = dict(
        db.session.query(User.id, User.name).filter(User.id.in_([uid for uid in user_ids if uid is not None])).all()
    )

    approved_by = None
    if approval is not None:
        approved_by = {
            "id": approval.approver_id,
            "name": names.get(approval.approver_id),
            "role": approval.approver_role,
            "via": approval.via,
        }

    return {
        "session_id": session.id,
        "tenant_id": tenant_id,
        "register_label": session.register_label,
        "opened_at": to_utc_z(session.opened_at),
        "closed_at": to_utc_z(closed_at),
        "opening_cents": session.opening_cents,
        "closing_cents": closing_cents,
        "cash_sales_cents": cash_sales,
        "expected_cash_cents": expected_cash,
        "difference_cents": closing_cents - expected_cash,
        "total_payments_cents": total_payments,
        "total_sales_cents": int(total_sales),
        "total_change_cents": total_change,
        "total_withdrawals_cents": total_withdrawals,
        "opening_notes": session.opening_notes,
        "closing_notes": closing_notes,
        "opened_by": _user_ref(session.user_id, names),
        "closed_by": _user_ref(closed_by_user_id, names),
        "approved_by": approved_by,
        "print_job_id": None,
        "print_job_status": None,
        "payment_breakdown": breakdown,
        "withdrawals": [
            {
                "id": w.id,
                "amount_cents": w.amount_cents,
                "reason": w.reason,
                "created_at": to_utc_z(w.created_at),
                "created_by": _user_ref(w.created_by_user_id, names),
            }
            for w in withdrawals
        ],
        "store_credit": {
            "total_cents": sum(entry["amount_cents"] for entry in store_credit_entries),
            "entries": store_credit_entries,
        },
    }


def close_cash_session(
    session_id: int,
    *,
    closing_cents: int,
    user_id: int,
    supervisor_credential: str | None,
    notes: str | None = None,
) -> dict:
    """
    Close an open session and freeze its snapshot.

    The CASH_CLOSING print job is written in the same transaction so the
    frozen snapshot carries its id.
    """
    _require_cents(closing_cents, "closing_cents")
    notes = (notes or "").strip() or None

    _require_open_session(session_id)
    approval = require_supervisor_approval(supervisor_credential, APPROVAL_CLOSING)

    def _op() -> dict:
        session = _require_open_session(session_id, lock=True)
        closed_at = utcnow()
        snapshot = build_closing_snapshot(
            session,
            closed_at=closed_at,
            closing_cents=closing_cents,
            closed_by_user_id=user_id,
            closing_notes=notes,
            approval=approval,
        )
        job = printing_service.enqueue_cash_closing(snapshot, user_id=user_id, cash_session_id=session.id)
        snapshot = dict(snapshot, print_job_id=job.id, print_job_status=job.status)

        session.closing_cents = closing_cents
        session.closed_at = closed_at
        session.closed_by_user_id = user_id
        session.closing_supervisor_id = approval.approver_id
        session.closing_supervisor_role = approval.approver_role
        session.closing_approval_via = approval.via
        session.closing_notes = notes
        session.closing_snapshot = snapshot

        audit_service.record_event(
            audit_service.ACTION_CASH_CLOSE,
            entity_type="CashSession",
            entity_id=session.id,
            user_id=user_id,
            payload={"difference_cents": snapshot["difference_cents"], "approved_by": approval.approver_id},
            commit=False,
        )
        db.session.commit()
        return snapshot

    try:
        snapshot = run_with_retry(_op)
    except NotFoundError:
        db.session.rollback()
        raise

    logger.info(
        "Cash session closed",
        extra={"cash_session_id": session_id, "difference_cents": snapshot["difference_cents"]},
    )
    return snapshot


def get_cash_report(session_id: int) -> dict:
    """
    Reconciliation report for a closed session.

    Returns the frozen snapshot exactly as stored. Sessions closed before
    snapshots were persisted get one rebuilt from the stored close fields.
    """
    session = get_session(session_id)
    if session.is_open or session.closing_cents is None:
        raise ConflictError("Cash session is not closed yet", code="CASH_SESSION_OPEN")

    if session.closing_snapshot:
        return session.closing_snapshot

    approval = None
    if session.closing_supervisor_id:
        approval = SupervisorApproval(
            approver_id=session.closing_supervisor_id,
            approver_role=session.closing_supervisor_role or "ADMIN",
            via=session.closing_approval_via or "PIN",
        )
    return build_closing_snapshot(
        session,
        closed_at=session.closed_at,
        closing_cents=session.closing_cents,
        closed_by_user_id=session.closed_by_user_id or session.user_id,
        closing_notes=session.closing_notes,
        approval=approval,
    )
