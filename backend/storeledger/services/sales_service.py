# Overview: Sale Transaction Engine; prices, approves, persists and cancels point-of-sale transactions.

# backend/storeledger/services/sales_service.py
"""
Sale Transaction Engine

WHY: A sale touches money, stock and tax at once, but only the money part
has to be exact. The sale, its items and its payments commit together; stock
debits, the idempotency marker and the receipt job run after the commit and
report problems alongside the sale instead of undoing it.

PIPELINE (create_sale):
1. Location must belong to the tenant.
2. Price each line: base = round(qty * unit price), discount, net.
3. Subtotal, sale-level discount, total > 0.
4. Payments: paid >= total, only cash may exceed the outstanding balance.
5. ATTENDANT + any discount -> supervisor approval.
6. Idempotency key already recorded -> duplicate, nothing written.
7. One transaction: open session owned by the caller, next sale number,
   sale + items + payments, fiscal emission (failure recorded, not fatal).
8. After commit: per line, pick an inventory row and debit it.
9. After commit: idempotency marker, best-effort receipt print job.

CONCURRENCY: Step 8 debits lines one at a time in item order, each in its
own locked transaction. A crash between 7 and 8 leaves a sale without stock
movements; that is surfaced, not repaired.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, DomainError, ForbiddenError, NotFoundError, ValidationError
from ..extensions import db
from ..models import CashSession, Sale, SaleCounter, SaleItem, Payment
from ..models.auth import ROLE_ATTENDANT
from ..models.sales import (
    DISCOUNT_NONE,
    DISCOUNT_PERCENT,
    DISCOUNT_VALUE,
    SALE_CANCELED,
    SALE_FINALIZED,
)
from ..time_utils import utcnow
from ..validation import (
    DISCOUNT_TYPE_VALUE,
    DiscountInput,
    parse_discount,
    parse_payments,
    parse_sale_lines,
)
from . import audit_service, fiscal_service, inventory_service, printing_service
from .concurrency import lock_for_update, run_with_retry
from .supervisor_service import SupervisorApproval, require_supervisor_approval
from .tenant_context import current_tenant_id

logger = logging.getLogger(__name__)

APPROVAL_DISCOUNT = "Apply discount"
APPROVAL_CANCEL = "Sale cancellation"


class SaleError(DomainError):
    """Sale input that cannot be priced or paid as given."""
    status_code = 400
    code = "SALE_INVALID"


@dataclass(frozen=True)
class ResolvedDiscount:
    amount_cents: int
    mode: str


NO_DISCOUNT = ResolvedDiscount(0, DISCOUNT_NONE)


@dataclass
class PricedLine:
    product_id: int
    sku: str
    name: str
    quantity: Decimal
    unit_price_cents: int
    base_cents: int
    discount: ResolvedDiscount

    @property
    def net_cents(self) -> int:
        return self.base_cents - self.discount.amount_cents


@dataclass
class CreateSaleResult:
    sale: Sale | None = None
    duplicate: bool = False
    fiscal_status: str | None = None
    fiscal_error: str | None = None
    stock_warnings: list[dict] = field(default_factory=list)
    stock_errors: list[dict] = field(default_factory=list)
    print_job_id: int | None = None
    approval: SupervisorApproval | None = None

    def to_dict(self) -> dict:
        if self.duplicate:
            return {"duplicate": True}
        return {
            "sale": self.sale.to_dict(),
            "fiscal_status": self.fiscal_status,
            "fiscal_error": self.fiscal_error,
            "stock_warnings": self.stock_warnings,
            "stock_errors": self.stock_errors,
            "print_job_id": self.print_job_id,
            "approval": self.approval.to_dict() if self.approval else None,
        }


def compute_line_total(quantity: Decimal, unit_price_cents: int) -> int:
    """round(qty x unit price), halves away from zero."""
    return int((Decimal(quantity) * unit_price_cents).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def resolve_discount(base_cents: int, discount: DiscountInput | None, context: str) -> ResolvedDiscount:
    """
    VALUE must be strictly below the base. PERCENT must compute to a value
    strictly between 0 and the base.
    """
    if discount is None:
        return NO_DISCOUNT
    if base_cents <= 0:
        raise SaleError(f"{context}: invalid base amount", code="INVALID_AMOUNT")

    if discount.type == DISCOUNT_TYPE_VALUE:
        if discount.value_cents >= base_cents:
            raise SaleError(
                f"{context}: discount cannot be equal to or greater than the amount",
                code="DISCOUNT_TOO_LARGE",
                details={"base_cents": base_cents, "discount_cents": discount.value_cents},
            )
        return ResolvedDiscount(discount.value_cents, DISCOUNT_VALUE)

    computed = int((base_cents * discount.percent / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
    if computed <= 0:
        raise SaleError(f"{context}: percentage does not produce a valid discount", code="DISCOUNT_TOO_SMALL")
    if computed >= base_cents:
        raise SaleError(f"{context}: percentage cannot reach 100%", code="DISCOUNT_TOO_LARGE")
    return ResolvedDiscount(computed, DISCOUNT_PERCENT)


def _price_lines(lines) -> list[PricedLine]:
    priced = []
    for line in lines:
        product = inventory_service.require_product(line.product_id)
        unit_price = product.price_cents if line.unit_price_cents is None else line.unit_price_cents
        base = compute_line_total(line.quantity, unit_price)
        context = f'Item "{product.name}"'
        if base <= 0:
            raise SaleError(f"{context} has an invalid amount", code="INVALID_AMOUNT")
        discount = resolve_discount(base, line.discount, context)
        priced.append(PricedLine(
            product_id=product.id,
            sku=product.sku,
            name=product.name,
            quantity=line.quantity,
            unit_price_cents=unit_price,
            base_cents=base,
            discount=discount,
        ))
    return priced


def _check_payments(payments, total_cents: int) -> tuple[int, int]:
    """Return (paid, change). Only cash may overpay."""
    paid = 0
    for idx, payment in enumerate(payments):
        outstanding = max(total_cents - paid, 0)
        if payment.method != "cash" and payment.amount_cents > outstanding:
            raise SaleError(
                f"payments[{idx}]: {payment.method} payment exceeds the outstanding balance",
                code="PAYMENT_EXCEEDS_BALANCE",
                details={"outstanding_cents": outstanding, "amount_cents": payment.amount_cents},
            )
        paid += payment.amount_cents

    if paid < total_cents:
        raise SaleError(
            "Payments do not cover the sale total",
            code="INSUFFICIENT_PAYMENT",
            details={"total_cents": total_cents, "paid_cents": paid},
        )
    return paid, max(paid - total_cents, 0)


def _ensure_sale_counter(tenant_id: int) -> None:
    if db.session.query(SaleCounter.id).first() is not None:
        return
    db.session.add(SaleCounter(tenant_id=tenant_id, next_number=1))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()


def next_sale_number() -> int:
    """
    Allocate the next sale number under a lock on the tenant's counter row.
    Runs inside the caller's transaction.
    """
    counter = lock_for_update(db.session.query(SaleCounter)).populate_existing().first()
    if counter is None:
        raise NotFoundError("Sale counter missing", code="SALE_COUNTER_MISSING")
    number = counter.next_number
    counter.next_number = number + 1
    db.session.flush()
    return number


def _require_open_session(cash_session_id: int, user_id: int) -> CashSession:
    session = db.session.query(CashSession).filter_by(id=cash_session_id).first()
    if session is None:
        raise NotFoundError("Cash session not found", code="CASH_SESSION_NOT_FOUND")
    if not session.is_open:
        raise ConflictError("Cash session is already closed", code="CASH_SESSION_CLOSED")
    if session.user_id != user_id:
        raise ForbiddenError(
            "Cash session belongs to another operator",
            code="CASH_SESSION_NOT_OWNED",
            details={"cash_session_id": cash_session_id},
        )
    return session


def _debit_sale_lines(sale: Sale, lines: list[PricedLine], preferred_location_id: int, user_id: int):
    warnings, errors = [], []
    for line in lines:
        row = inventory_service.select_inventory_for_sale(line.product_id, preferred_location_id)
        if row is None:
            errors.append({
                "product_id": line.product_id,
                "error": "NO_INVENTORY",
                "message": "No inventory row exists for this product",
            })
            continue

        location_id = row.location_id
        try:
            result = inventory_service.debit(
                line.product_id,
                location_id,
                line.quantity,
                reason="Sale",
                reference=str(sale.id),
                user_id=user_id,
            )
        except Exception as exc:
            db.session.rollback()
            logger.exception(
                "Inventory debit failed for sale line",
                extra={"sale_id": sale.id, "product_id": line.product_id, "location_id": location_id},
            )
            errors.append({
                "product_id": line.product_id,
                "location_id": location_id,
                "error": getattr(exc, "code", "DEBIT_FAILED"),
                "message": str(exc),
            })
            continue

        if result.went_negative:
            warnings.append({
                "product_id": line.product_id,
                "location_id": location_id,
                "balance": str(result.quantity),
            })
    return warnings, errors


def create_sale(
    *,
    user_id: int,
    role: str,
    cash_session_id: int,
    location_id: int,
    items,
    payments,
    discount=None,
    fiscal_mode: str | None = "none",
    idempotency_key: str | None = None,
    supervisor_credential: str | None = None,
    client_sale_id: str | None = None,
) -> CreateSaleResult:
    """
    Create a finalized sale. See module docstring for the pipeline.

    items / payments accept SaleLineInput / PaymentInput or their dict forms.
    Returns CreateSaleResult(duplicate=True) when idempotency_key was
    already used for this tenant.
    """
    tenant_id = current_tenant_id()
    lines = parse_sale_lines(items)
    payment_inputs = parse_payments(payments)
    sale_discount_input = parse_discount(discount)
    fiscal_mode = fiscal_service.normalize_mode(fiscal_mode)

    location = inventory_service.require_location(location_id)

    priced = _price_lines(lines)
    subtotal = sum(line.net_cents for line in priced)
    sale_discount = resolve_discount(subtotal, sale_discount_input, "Sale discount")
    total = subtotal - sale_discount.amount_cents
    if total <= 0:
        raise SaleError("Discount cannot equal the sale total", code="INVALID_TOTAL")

    _paid, change = _check_payments(payment_inputs, total)

    has_discount = sale_discount.mode != DISCOUNT_NONE or any(
        line.discount.amount_cents > 0 for line in priced
    )
    approval = None
    if role == ROLE_ATTENDANT and has_discount:
        approval = require_supervisor_approval(supervisor_credential, APPROVAL_DISCOUNT)

    if idempotency_key and audit_service.find_marker(audit_service.ACTION_SALE_CREATE, idempotency_key):
        logger.info("Duplicate sale submission", extra={"idempotency_key": idempotency_key})
        return CreateSaleResult(duplicate=True)

    _ensure_sale_counter(tenant_id)

    def _op():
        _require_open_session(cash_session_id, user_id)
        number = next_sale_number()

        sale = Sale(
            tenant_id=tenant_id,
            number=number,
            cash_session_id=cash_session_id,
            user_id=user_id,
            location_id=location.id,
            client_sale_id=client_sale_id,
            subtotal_cents=subtotal,
            discount_cents=sale_discount.amount_cents,
            discount_mode=sale_discount.mode,
            total_cents=total,
            change_cents=change,
            status=SALE_FINALIZED,
            fiscal_mode=fiscal_mode,
            approved_by_user_id=approval.approver_id if approval else None,
            approval_via=approval.via if approval else None,
        )
        for line in priced:
            sale.items.append(SaleItem(
                product_id=line.product_id,
                sku=line.sku,
                name=line.name,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                total_cents=line.net_cents,
                discount_cents=line.discount.amount_cents,
                discount_mode=line.discount.mode,
            ))
        for payment in payment_inputs:
            sale.payments.append(Payment(
                method=payment.method,
                amount_cents=payment.amount_cents,
                provider_ref=payment.provider_ref,
            ))
        db.session.add(sale)
        db.session.flush()

        fiscal_status = fiscal_error = None
        if fiscal_mode != "none":
            fiscal_status, fiscal_error = fiscal_service.emit_for_sale(sale)

        db.session.commit()
        return sale, fiscal_status, fiscal_error

    try:
        sale, fiscal_status, fiscal_error = run_with_retry(_op)
    except DomainError:
        db.session.rollback()
        raise

    result = CreateSaleResult(
        sale=sale,
        fiscal_status=fiscal_status,
        fiscal_error=fiscal_error,
        approval=approval,
    )
    result.stock_warnings, result.stock_errors = _debit_sale_lines(sale, priced, location.id, user_id)

    if idempotency_key:
        recorded = audit_service.record_marker(
            audit_service.ACTION_SALE_CREATE,
            idempotency_key,
            entity_type="Sale",
            entity_id=sale.id,
            user_id=user_id,
        )
        if not recorded:
            # Lost the race: another sale with this key committed first
            logger.warning(
                "Concurrent duplicate sale committed",
                extra={"sale_id": sale.id, "idempotency_key": idempotency_key},
            )
    result.print_job_id = printing_service.try_enqueue_receipt(sale, user_id)

    logger.info(
        "Sale created",
        extra={"sale_id": sale.id, "sale_number": sale.number, "total_cents": sale.total_cents},
    )
    return result


def get_sale(sale_id: int) -> Sale:
    sale = db.session.query(Sale).filter_by(id=sale_id).first()
    if sale is None:
        raise NotFoundError("Sale not found", code="SALE_NOT_FOUND")
    return sale


def list_sales(*, cash_session_id: int | None = None, status: str | None = None, limit: int = 50) -> list[Sale]:
    q = db.session.query(Sale)
    if cash_session_id is not None:
        q = q.filter(Sale.cash_session_id == cash_session_id)
    if status:
        if status not in (SALE_FINALIZED, SALE_CANCELED):
            raise ValidationError("status must be FINALIZED or CANCELED")
        q = q.filter(Sale.status == status)
    return q.order_by(Sale.number.desc()).limit(min(max(limit, 1), 200)).all()


def cancel_sale(
    sale_id: int,
    *,
    user_id: int,
    supervisor_credential: str | None,
    reason: str | None = None,
) -> Sale:
    """
    Cancel a sale after supervisor approval.

    Idempotent: an already CANCELED sale is returned untouched. Otherwise the
    status flips, the fiscal cancel hook runs when a key exists, and stock
    movements referencing the sale are reversed after commit.
    """
    approval = require_supervisor_approval(supervisor_credential, APPROVAL_CANCEL)
    reason = (reason or "").strip() or "Sale canceled"

    sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).populate_existing().first()
    if sale is None:
        db.session.rollback()
        raise NotFoundError("Sale not found", code="SALE_NOT_FOUND")
    if sale.status == SALE_CANCELED:
        db.session.rollback()
        return sale

    sale.status = SALE_CANCELED
    sale.canceled_at = utcnow()
    sale.canceled_by_user_id = user_id
    sale.cancel_approved_by_user_id = approval.approver_id
    sale.cancel_reason = reason[:255]

    if sale.fiscal_key:
        fiscal_service.cancel_for_sale(sale, reason)

    audit_service.record_event(
        audit_service.ACTION_SALE_CANCEL,
        entity_type="Sale",
        entity_id=sale.id,
        user_id=user_id,
        payload={"approved_by": approval.approver_id, "via": approval.via, "reason": reason},
        commit=False,
    )
    db.session.commit()

    inventory_service.reverse_by_sale_reference(str(sale.id), user_id=user_id)
    return sale
