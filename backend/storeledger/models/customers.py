from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .tenancy import TenantOwnedMixin

LEDGER_CHARGE = "CHARGE"
LEDGER_PAYMENT = "PAYMENT"
LEDGER_ADJUST = "ADJUST"


class Customer(TenantOwnedMixin, db.Model):
    """
    Customer master data, including store-credit ("fiado") terms.

    WHY: allow_credit and credit_limit_cents gate charges to the running
    ledger. credit_limit_cents NULL means no limit.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "document", name="uq_customers_tenant_document"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    document = db.Column(db.String(32), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(32), nullable=True)

    allow_credit = db.Column(db.Boolean, nullable=False, default=False)
    credit_limit_cents = db.Column(db.Integer, nullable=True)
    default_due_days = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "document": self.document,
            "email": self.email,
            "phone": self.phone,
            "allow_credit": self.allow_credit,
            "credit_limit_cents": self.credit_limit_cents,
            "default_due_days": self.default_due_days,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class CustomerLedgerEntry(TenantOwnedMixin, db.Model):
    """
    Append-only customer account line.

    balance = SUM(CHARGE) - SUM(PAYMENT) - SUM(ADJUST); amounts are positive.
    """
    __tablename__ = "customer_ledger_entries"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "idempotency_key", name="uq_customer_ledger_idempotency"),
        db.Index("ix_customer_ledger_customer_type", "customer_id", "type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    type = db.Column(db.String(8), nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    method = db.Column(db.String(16), nullable=True)
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    idempotency_key = db.Column(db.String(128), nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "customer_id": self.customer_id,
            "type": self.type,
            "amount_cents": self.amount_cents,
            "description": self.description,
            "sale_id": self.sale_id,
            "method": self.method,
            "due_date": to_utc_z(self.due_date),
            "paid_at": to_utc_z(self.paid_at),
            "idempotency_key": self.idempotency_key,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
