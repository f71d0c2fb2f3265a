from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow
from .tenancy import TenantOwnedMixin

QUANTITY = db.Numeric(14, 3, asdecimal=True)

MOVEMENT_IN = "IN"
MOVEMENT_OUT = "OUT"
MOVEMENT_ADJUST = "ADJUST"
MOVEMENT_CANCEL = "CANCEL"
MOVEMENT_TYPES = (MOVEMENT_IN, MOVEMENT_OUT, MOVEMENT_ADJUST, MOVEMENT_CANCEL)


def _qty(value):
    return None if value is None else str(value)


class Product(TenantOwnedMixin, db.Model):
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sku", name="uq_products_tenant_sku"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sku = db.Column(db.String(64), nullable=False)
    name = db.Column(db.String(255), nullable=False)
    price_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sku": self.sku,
            "name": self.name,
            "price_cents": self.price_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class StockLocation(TenantOwnedMixin, db.Model):
    """
    Shelf, back room or warehouse holding stock.

    is_sale_source marks locations sales should draw from first.
    """
    __tablename__ = "stock_locations"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "name", name="uq_stock_locations_tenant_name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(128), nullable=False)
    is_sale_source = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "is_sale_source": self.is_sale_source,
            "created_at": to_utc_z(self.created_at),
        }


class Inventory(TenantOwnedMixin, db.Model):
    """
    Current quantity for one (tenant, product, location) key.

    INVARIANT: quantity == SUM(stock_movements.quantity) for the same key.
    Only inventory_service writes this table, always under a row lock.
    Quantity may be negative (oversell is flagged, not rejected).
    """
    __tablename__ = "inventory"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "product_id", "location_id", name="uq_inventory_key"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=False, index=True)
    quantity = db.Column(QUANTITY, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    product = db.relationship("Product")
    location = db.relationship("StockLocation")

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "quantity": _qty(self.quantity),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(TenantOwnedMixin, db.Model):
    """
    Append-only ledger line. quantity is the signed delta applied to the row.

    IMMUTABLE: never updated or deleted. Cancellations are new CANCEL lines.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_key", "tenant_id", "product_id", "location_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    location_id = db.Column(db.Integer, db.ForeignKey("stock_locations.id"), nullable=False)
    type = db.Column(db.String(8), nullable=False, index=True)
    quantity = db.Column(QUANTITY, nullable=False)
    reason = db.Column(db.String(255), nullable=True)
    reference = db.Column(db.String(64), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "product_id": self.product_id,
            "location_id": self.location_id,
            "type": self.type,
            "quantity": _qty(self.quantity),
            "reason": self.reason,
            "reference": self.reference,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class ProcessedSale(TenantOwnedMixin, db.Model):
    """
    Dedup marker for the offline-sync debit path.

    LIFECYCLE: PENDING -> DONE | ERROR. Never deleted, so a retried device
    upload of the same sale_ref is detected even after a failure.
    """
    __tablename__ = "processed_sales"
    __table_args__ = (
        db.UniqueConstraint("tenant_id", "sale_ref", name="uq_processed_sales_tenant_ref"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_ref = db.Column(db.String(64), nullable=False)
    device_id = db.Column(db.String(128), nullable=True)
    status = db.Column(db.String(16), nullable=False, default="PENDING")
    error_message = db.Column(db.Text, nullable=True)
    client_created_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "sale_ref": self.sale_ref,
            "device_id": self.device_id,
            "status": self.status,
            "error_message": self.error_message,
            "client_created_at": to_utc_z(self.client_created_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
