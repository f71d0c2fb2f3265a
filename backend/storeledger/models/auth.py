from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .tenancy import TenantOwnedMixin

ROLE_ATTENDANT = "ATTENDANT"
ROLE_ADMIN = "ADMIN"
ROLE_OWNER = "OWNER"

ROLES = (ROLE_ATTENDANT, ROLE_ADMIN, ROLE_OWNER)
SUPERVISOR_ROLES = (ROLE_ADMIN, ROLE_OWNER)


class User(TenantOwnedMixin, db.Model):
    """
    Operator account. Belongs to exactly one tenant.

    SECURITY: password_hash and supervisor_pin are bcrypt hashes. Older rows
    may still hold a plain-text PIN; supervisor_service handles both.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "email", name="uq_users_tenant_email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    role = db.Column(db.String(16), nullable=False, default=ROLE_ATTENDANT, index=True)

    password_hash = db.Column(db.String(255), nullable=False)
    supervisor_pin = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    @property
    def is_supervisor(self) -> bool:
        return self.role in SUPERVISOR_ROLES

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "has_supervisor_pin": bool(self.supervisor_pin),
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
