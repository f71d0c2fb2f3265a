from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .tenancy import TenantOwnedMixin

PRINT_RECEIPT = "RECEIPT"
PRINT_CASH_CLOSING = "CASH_CLOSING"
PRINT_JOB_TYPES = (PRINT_RECEIPT, PRINT_CASH_CLOSING)
PRINT_JOB_STATUSES = ("PENDING", "PRINTING", "DONE", "FAILED")


class PrintJob(TenantOwnedMixin, db.Model):
    """
    Queued document for a store printer agent to pick up.

    Dispatch to hardware happens outside this service; rows stay PENDING
    until the agent reports back.
    """
    __tablename__ = "print_jobs"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(16), nullable=False, index=True)
    status = db.Column(db.String(16), nullable=False, default="PENDING", index=True)
    source = db.Column(db.String(32), nullable=True)
    last_error = db.Column(db.String(500), nullable=True)
    payload = db.Column(db.JSON, nullable=False)
    requested_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True)
    cash_session_id = db.Column(db.Integer, db.ForeignKey("cash_sessions.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "type": self.type,
            "status": self.status,
            "source": self.source,
            "last_error": self.last_error,
            "payload": self.payload,
            "requested_by_user_id": self.requested_by_user_id,
            "sale_id": self.sale_id,
            "cash_session_id": self.cash_session_id,
            "created_at": to_utc_z(self.created_at),
        }
