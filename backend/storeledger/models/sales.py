from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .tenancy import SaleOwnedMixin, TenantOwnedMixin

SALE_FINALIZED = "FINALIZED"
SALE_CANCELED = "CANCELED"

DISCOUNT_NONE = "NONE"
DISCOUNT_VALUE = "VALUE"
DISCOUNT_PERCENT = "PERCENT"

PAYMENT_METHODS = ("cash", "debit", "credit", "pix", "vr", "va", "store_credit")
FISCAL_MODES = ("none", "sat", "nfce")


class Sale(TenantOwnedMixin, db.Model):
    """
    Finalized point-of-sale transaction.

    WHY: A sale is written once, with its items and payments, inside a single
    transaction. Amounts are integer cents.

    LIFECYCLE: FINALIZED -> CANCELED (supervisor approval required). A
    canceled sale stays in place; its stock is returned via CANCEL movements.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "number", name="uq_sales_tenant_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    number = db.Column(db.Integer, nullable=False)
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=True)
    client_sale_id = db.Column(db.String(64), nullable=True, index=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_mode = db.Column(db.String(8), nullable=False, default=DISCOUNT_NONE)
    total_cents = db.Column(db.Integer, nullable=False)
    change_cents = db.Column(db.Integer, nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default=SALE_FINALIZED, index=True)

    fiscal_mode = db.Column(db.String(8), nullable=False, default="none")
    fiscal_key = db.Column(db.String(128), nullable=True)

    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approval_via = db.Column(db.String(16), nullable=True)

    canceled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    canceled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancel_approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    items = db.relationship(
        "SaleItem",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="SaleItem.id",
    )
    payments = db.relationship(
        "Payment",
        back_populates="sale",
        cascade="all, delete-orphan",
        order_by="Payment.id",
    )

    @property
    def paid_cents(self) -> int:
        return sum(p.amount_cents for p in self.payments)

    def to_dict(self, include_children: bool = True) -> dict:
        data = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "number": self.number,
            "cash_session_id": self.cash_session_id,
            "user_id": self.user_id,
            "location_id": self.location_id,
            "client_sale_id": self.client_sale_id,
            "subtotal_cents": self.subtotal_cents,
            "discount_cents": self.discount_cents,
            "discount_mode": self.discount_mode,
            "total_cents": self.total_cents,
            "change_cents": self.change_cents,
            "status": self.status,
            "fiscal_mode": self.fiscal_mode,
            "fiscal_key": self.fiscal_key,
            "approved_by_user_id": self.approved_by_user_id,
            "approval_via": self.approval_via,
            "canceled_at": to_utc_z(self.canceled_at),
            "canceled_by_user_id": self.canceled_by_user_id,
            "cancel_reason": self.cancel_reason,
            "created_at": to_utc_z(self.created_at),
        }
        if include_children:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
        return data


class SaleItem(SaleOwnedMixin, db.Model):
    """
    Line item. sku/name are copied from the product at sale time.

    total_cents is the net line total (base - discount_cents).
    """
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    sku = db.Column(db.String(64), nullable=True)
    name = db.Column(db.String(255), nullable=True)
    quantity = db.Column(db.Numeric(14, 3, asdecimal=True), nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_cents = db.Column(db.Integer, nullable=False)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_mode = db.Column(db.String(8), nullable=False, default=DISCOUNT_NONE)

    sale = db.relationship("Sale", back_populates="items")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "sku": self.sku,
            "name": self.name,
            "quantity": str(self.quantity),
            "unit_price_cents": self.unit_price_cents,
            "total_cents": self.total_cents,
            "discount_cents": self.discount_cents,
            "discount_mode": self.discount_mode,
        }


class Payment(SaleOwnedMixin, db.Model):
    """Tender applied to a sale. Only cash may exceed the outstanding balance."""
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    method = db.Column(db.String(16), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    provider_ref = db.Column(db.String(128), nullable=True)

    sale = db.relationship("Sale", back_populates="payments")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "method": self.method,
            "amount_cents": self.amount_cents,
            "provider_ref": self.provider_ref,
        }


class SaleCounter(TenantOwnedMixin, db.Model):
    """One row per tenant; next_number is the number the next sale receives."""
    __tablename__ = "sale_counters"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", name="uq_sale_counters_tenant"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    next_number = db.Column(db.Integer, nullable=False, default=1)


class FiscalDocument(TenantOwnedMixin, db.Model):
    """
    Outcome of fiscal emission for a sale.

    WHY: Fiscal failures never abort a sale, so the failure has to live
    somewhere retryable. attempts counts every emission try.
    """
    __tablename__ = "fiscal_documents"
    __table_args__ = (
        db.UniqueConstraint("sale_id", name="uq_fiscal_documents_sale"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False)
    mode = db.Column(db.String(8), nullable=False)
    status = db.Column(db.String(16), nullable=False, index=True)
    fiscal_key = db.Column(db.String(128), nullable=True)
    last_error = db.Column(db.Text, nullable=True)
    attempts = db.Column(db.Integer, nullable=False, default=0)
    last_attempt_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sale_id": self.sale_id,
            "mode": self.mode,
            "status": self.status,
            "fiscal_key": self.fiscal_key,
            "last_error": self.last_error,
            "attempts": self.attempts,
            "last_attempt_at": to_utc_z(self.last_attempt_at),
            "created_at": to_utc_z(self.created_at),
        }
