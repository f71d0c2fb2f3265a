# Overview: Customer accounts and the store-credit ledger (charges, payments, statements).

"""
Customer Ledger Service

INVARIANTS:
- Entries are append-only; amounts are positive.
- balance = SUM(CHARGE) - SUM(PAYMENT) - SUM(ADJUST).
- A CHARGE needs allow_credit and must keep balance <= credit_limit_cents
  (no limit when NULL).
- idempotency_key is unique per tenant; a repeat returns the first entry.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, CustomerLedgerEntry
from ..models.customers import LEDGER_ADJUST, LEDGER_CHARGE, LEDGER_PAYMENT
from ..models.sales import PAYMENT_METHODS
from ..time_utils import days_from_now, utcnow
from ..validation import optional_int, optional_str, require_cents, require_str
from .tenant_context import current_tenant_id


def create_customer(
    *,
    name: str,
    document: str | None = None,
    email: str | None = None,
    phone: str | None = None,
    allow_credit: bool = False,
    credit_limit_cents: int | None = None,
    default_due_days: int | None = None,
) -> Customer:
    tenant_id = current_tenant_id()
    customer = Customer(
        tenant_id=tenant_id,
        name=require_str(name, "name"),
        document=optional_str(document, "document", max_length=32),
        email=optional_str(email, "email"),
        phone=optional_str(phone, "phone", max_length=32),
        allow_credit=bool(allow_credit),
        credit_limit_cents=optional_int(credit_limit_cents, "credit_limit_cents", minimum=0),
        default_due_days=optional_int(default_due_days, "default_due_days", minimum=0, maximum=3650),
    )
    db.session.add(customer)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A customer with this document already exists", code="CUSTOMER_EXISTS")
    return customer


def list_customers(*, active_only: bool = True) -> list[Customer]:
    query = db.session.query(Customer)
    if active_only:
        query = query.filter(Customer.is_active.is_(True))
    return query.order_by(Customer.name.asc(), Customer.id.asc()).all()


def require_customer(customer_id: int) -> Customer:
    customer = db.session.query(Customer).filter_by(id=customer_id).first()
    if customer is None:
        raise NotFoundError("Customer not found", code="CUSTOMER_NOT_FOUND")
    return customer


def get_balance(customer_id: int) -> int:
    tenant_id = current_tenant_id()
    rows = (
        db.session.query(CustomerLedgerEntry.type, func.coalesce(func.sum(CustomerLedgerEntry.amount_cents), 0))
        .filter(
            CustomerLedgerEntry.tenant_id == tenant_id,
            CustomerLedgerEntry.customer_id == customer_id,
        )
        .group_by(CustomerLedgerEntry.type)
        .all()
    )
    sums = {entry_type: int(total) for entry_type, total in rows}
    return sums.get(LEDGER_CHARGE, 0) - sums.get(LEDGER_PAYMENT, 0) - sums.get(LEDGER_ADJUST, 0)


def _find_by_key(idempotency_key: str | None) -> CustomerLedgerEntry | None:
    if not idempotency_key:
        return None
    return db.session.query(CustomerLedgerEntry).filter_by(idempotency_key=idempotency_key).first()


def _insert(entry: CustomerLedgerEntry) -> CustomerLedgerEntry:
    db.session.add(entry)
    try:
        db.session.commit()
    except IntegrityError:
        # Concurrent writer with the same key won.
        db.session.rollback()
        existing = _find_by_key(entry.idempotency_key)
        if existing is None:
            raise
        return existing
    return entry


def charge(
    customer_id: int,
    *,
    amount_cents: int,
    description: str | None = None,
    sale_id: int | None = None,
    due_date: datetime | None = None,
    idempotency_key: str | None = None,
    user_id: int | None = None,
) -> CustomerLedgerEntry:
    tenant_id = current_tenant_id()
    amount_cents = require_cents(amount_cents, "amount_cents")
    idempotency_key = optional_str(idempotency_key, "idempotency_key", max_length=128)

    customer = require_customer(customer_id)
    if not customer.allow_credit:
        raise ForbiddenError("Store credit is not enabled for this customer", code="CREDIT_NOT_ALLOWED")

    duplicate = _find_by_key(idempotency_key)
    if duplicate is not None:
        return duplicate

    balance = get_balance(customer.id)
    if customer.credit_limit_cents is not None and balance + amount_cents > customer.credit_limit_cents:
        raise ForbiddenError(
            "Charge exceeds the customer's credit limit",
            code="CREDIT_LIMIT_EXCEEDED",
            details={"balance_cents": balance, "limit_cents": customer.credit_limit_cents},
        )

    if due_date is None and customer.default_due_days:
        due_date = days_from_now(customer.default_due_days)

    return _insert(CustomerLedgerEntry(
        tenant_id=tenant_id,
        customer_id=customer.id,
        type=LEDGER_CHARGE,
        amount_cents=amount_cents,
        description=optional_str(description, "description"),
        sale_id=sale_id,
        due_date=due_date,
        idempotency_key=idempotency_key,
        created_by_user_id=user_id,
    ))


def record_payment(
    customer_id: int,
    *,
    amount_cents: int,
    method: str,
    description: str | None = None,
    idempotency_key: str | None = None,
    user_id: int | None = None,
) -> CustomerLedgerEntry:
    tenant_id = current_tenant_id()
    amount_cents = require_cents(amount_cents, "amount_cents")
    if method not in PAYMENT_METHODS:
        raise ValidationError(f"method must be one of {', '.join(PAYMENT_METHODS)}")
    idempotency_key = optional_str(idempotency_key, "idempotency_key", max_length=128)

    customer = require_customer(customer_id)

    duplicate = _find_by_key(idempotency_key)
    if duplicate is not None:
        return duplicate

    return _insert(CustomerLedgerEntry(
        tenant_id=tenant_id,
        customer_id=customer.id,
        type=LEDGER_PAYMENT,
        amount_cents=amount_cents,
        method=method,
        description=optional_str(description, "description"),
        paid_at=utcnow(),
        idempotency_key=idempotency_key,
        created_by_user_id=user_id,
    ))


def get_statement(customer_id: int, *, start: datetime | None = None, end: datetime | None = None) -> dict:
    customer = require_customer(customer_id)
    query = db.session.query(CustomerLedgerEntry).filter(CustomerLedgerEntry.customer_id == customer.id)
    if start is not None:
        query = query.filter(CustomerLedgerEntry.created_at >= start)
    if end is not None:
        query = query.filter(CustomerLedgerEntry.created_at <= end)
    entries = query.order_by(CustomerLedgerEntry.created_at.asc(), CustomerLedgerEntry.id.asc()).all()
    return {
        "customer": customer.to_dict(),
        "entries": [e.to_dict() for e in entries],
        "balance_cents": get_balance(customer.id),
    }
