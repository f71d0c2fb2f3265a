from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .tenancy import TenantOwnedMixin


class AuditLog(TenantOwnedMixin, db.Model):
    """
    Append-only audit trail and idempotency marker store.

    WHY: The unique (tenant_id, action, idempotency_key) constraint is what
    resolves duplicate submissions: the first committer wins.
    Rows without an idempotency_key are plain audit entries.
    """
    __tablename__ = "audit_logs"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "action", "idempotency_key", name="uq_audit_logs_idempotency"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    action = db.Column(db.String(64), nullable=False, index=True)
    idempotency_key = db.Column(db.String(128), nullable=True)
    entity_type = db.Column(db.String(64), nullable=True)
    entity_id = db.Column(db.Integer, nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    payload = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "action": self.action,
            "idempotency_key": self.idempotency_key,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "user_id": self.user_id,
            "payload": self.payload,
            "created_at": to_utc_z(self.created_at),
        }
