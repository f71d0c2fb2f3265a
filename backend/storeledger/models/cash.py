from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .tenancy import TenantOwnedMixin


class CashSession(TenantOwnedMixin, db.Model):
    """
    One drawer shift, from open to close.

    INVARIANTS (enforced by cash_service under a tenant row lock):
    - open sessions per tenant <= tenants.max_open_cash_sessions
    - register_label unique among the tenant's open sessions

    IMMUTABLE once closed: closing_snapshot is the permanent report.
    """
    __tablename__ = "cash_sessions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    register_label = db.Column(db.String(32), nullable=True)

    opening_cents = db.Column(db.Integer, nullable=False, default=0)
    opening_notes = db.Column(db.String(255), nullable=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    closed_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    closing_cents = db.Column(db.Integer, nullable=True)
    closing_notes = db.Column(db.String(255), nullable=True)
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closing_supervisor_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closing_supervisor_role = db.Column(db.String(16), nullable=True)
    closing_approval_via = db.Column(db.String(16), nullable=True)
    closing_snapshot = db.Column(db.JSON, nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    withdrawals = db.relationship(
        "CashWithdrawal",
        back_populates="cash_session",
        order_by="CashWithdrawal.id",
    )

    @property
    def is_open(self) -> bool:
        return self.closed_at is None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "user_id": self.user_id,
            "register_label": self.register_label,
            "status": "OPEN" if self.is_open else "CLOSED",
            "opening_cents": self.opening_cents,
            "opening_notes": self.opening_notes,
            "opened_at": to_utc_z(self.opened_at),
            "closed_at": to_utc_z(self.closed_at),
            "closing_cents": self.closing_cents,
            "closing_notes": self.closing_notes,
            "closed_by_user_id": self.closed_by_user_id,
            "closing_supervisor_id": self.closing_supervisor_id,
            "closing_supervisor_role": self.closing_supervisor_role,
            "closing_approval_via": self.closing_approval_via,
        }


class CashWithdrawal(TenantOwnedMixin, db.Model):
    """Cash taken out of an open drawer (sangria). Supervisor-approved."""
    __tablename__ = "cash_withdrawals"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(280), nullable=False)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    approved_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approval_via = db.Column(db.String(16), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    cash_session = db.relationship("CashSession", back_populates="withdrawals")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "cash_session_id": self.cash_session_id,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "created_by_user_id": self.created_by_user_id,
            "approved_by_user_id": self.approved_by_user_id,
            "approval_via": self.approval_via,
            "created_at": to_utc_z(self.created_at),
        }
