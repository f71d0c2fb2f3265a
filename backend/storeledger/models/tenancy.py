from __future__ import annotations

from sqlalchemy.orm import declared_attr

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class Tenant(db.Model):
    """
    A store/business. Root of data ownership.

    WHY: Every tenant-owned row carries tenant_id. The tenant row itself is
    not tenant-scoped, since resolving a tenant is what happens before scoping.

    DESIGN: max_open_cash_sessions caps concurrently open drawers (default 1).
    """
    __tablename__ = "tenants"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=True, unique=True)
    tax_id = db.Column(db.String(32), nullable=True, unique=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    max_open_cash_sessions = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "tax_id": self.tax_id,
            "is_active": self.is_active,
            "max_open_cash_sessions": self.max_open_cash_sessions,
            "created_at": to_utc_z(self.created_at),
        }


class TenantOwnedMixin:
    """
    Marks a model as directly owned by a tenant.

    The tenant guard (services/tenant_guard.py) filters every ORM read and bulk
    write of these models by the bound tenant and fills tenant_id on insert.
    """

    @declared_attr
    def tenant_id(cls):
        return db.Column(db.Integer, db.ForeignKey("tenants.id"), nullable=False, index=True)


class SaleOwnedMixin:
    """
    Marks a model as owned through its parent sale (sale_id -> sales.tenant_id).
    """

    @declared_attr
    def sale_id(cls):
        return db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
