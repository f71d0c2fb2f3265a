# Overview: Service-layer operations for the inventory ledger; locked quantity updates plus movement log.

# backend/storeledger/services/inventory_service.py
"""
Inventory Ledger Invariants (authoritative)

Inventory model:
- One Inventory row per (tenant, product, location) holds the current quantity.
- Every change appends a StockMovement whose quantity is the signed delta.
- INVARIANT: Inventory.quantity == SUM(StockMovement.quantity) for the key.

Locking:
- Mutations lock the row with SELECT ... FOR UPDATE, read, compute, write,
  append the movement, then commit. Concurrent mutators of the same key
  serialize on the row lock; different keys are independent.
- Missing rows are created at zero in their own short transaction first, so
  the locked section only ever sees existing rows.
- transfer() and reverse_by_sale_reference() lock their keys in sorted
  order. debit_many() locks in the order given (offline sync arrival order).

Oversell:
- debit() never rejects a negative result. It reports went_negative so the
  caller can surface a warning.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Inventory, Product, StockLocation, StockMovement
from ..models.inventory import (
    MOVEMENT_ADJUST,
    MOVEMENT_CANCEL,
    MOVEMENT_IN,
    MOVEMENT_OUT,
)
from .concurrency import lock_for_update, run_with_retry
from .tenant_context import current_tenant_id

QUANTITY_STEP = Decimal("0.001")
ZERO = Decimal("0")


@dataclass
class MovementResult:
    inventory: Inventory
    movement: StockMovement
    quantity: Decimal
    went_negative: bool = False

    def to_dict(self) -> dict:
        return {
            "inventory": self.inventory.to_dict(),
            "movement": self.movement.to_dict(),
            "quantity": str(self.quantity),
            "went_negative": self.went_negative,
        }


def to_quantity(value, *, field: str = "quantity", allow_negative: bool = False) -> Decimal:
    """Parse a quantity to a Decimal with 3 places. Zero is always rejected."""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        qty = Decimal(str(value)).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP)
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not qty.is_finite():
        raise ValidationError(f"{field} must be a number")
    if qty == ZERO:
        raise ValidationError(f"{field} must not be zero")
    if qty < ZERO and not allow_negative:
        raise ValidationError(f"{field} must be positive")
    return qty


def require_product(product_id: int) -> Product:
    product = db.session.query(Product).filter_by(id=product_id).first()
    if product is None:
        raise NotFoundError("Product not found", code="PRODUCT_NOT_FOUND", details={"product_id": product_id})
    return product


def require_location(location_id: int) -> StockLocation:
    location = db.session.query(StockLocation).filter_by(id=location_id).first()
    if location is None:
        raise NotFoundError("Stock location not found", code="LOCATION_NOT_FOUND", details={"location_id": location_id})
    return location


def _row_query(product_id: int, location_id: int):
    return db.session.query(Inventory).filter_by(product_id=product_id, location_id=location_id)


def _ensure_inventory_rows(keys) -> None:
    """
    Create zero-quantity rows for keys that have none.

    Commits each insert on its own. Callers run this before opening the
    locked section, with nothing else pending in the session.
    """
    tenant_id = current_tenant_id()
    for product_id, location_id in keys:
        if _row_query(product_id, location_id).first() is not None:
            continue
        require_product(product_id)
        require_location(location_id)
        db.session.add(Inventory(
            tenant_id=tenant_id,
            product_id=product_id,
            location_id=location_id,
            quantity=ZERO,
        ))
        try:
            db.session.commit()
        except IntegrityError:
            # A concurrent writer created the row first
            db.session.rollback()


def _lock_row(product_id: int, location_id: int) -> Inventory:
    row = lock_for_update(_row_query(product_id, location_id)).populate_existing().first()
    if row is None:
        raise NotFoundError(
            "Inventory row not found",
            code="INVENTORY_NOT_FOUND",
            details={"product_id": product_id, "location_id": location_id},
        )
    return row


def _apply_movement(
    row: Inventory,
    *,
    movement_type: str,
    delta: Decimal,
    reason: str | None,
    reference: str | None,
    user_id: int | None,
) -> MovementResult:
    before = Decimal(row.quantity or 0)
    after = before + delta
    row.quantity = after

    movement = StockMovement(
        tenant_id=row.tenant_id,
        product_id=row.product_id,
        location_id=row.location_id,
        type=movement_type,
        quantity=delta,
        reason=reason,
        reference=reference,
        created_by_user_id=user_id,
    )
    db.session.add(movement)
    db.session.flush()

    return MovementResult(
        inventory=row,
        movement=movement,
        quantity=after,
        went_negative=after < ZERO,
    )


def _single_key_operation(
    product_id: int,
    location_id: int,
    *,
    movement_type: str,
    delta: Decimal,
    reason: str | None,
    reference: str | None,
    user_id: int | None,
) -> MovementResult:
    _ensure_inventory_rows([(product_id, location_id)])

    def _op() -> MovementResult:
        row = _lock_row(product_id, location_id)
        result = _apply_movement(
            row,
            movement_type=movement_type,
            delta=delta,
            reason=reason,
            reference=reference,
            user_id=user_id,
        )
        db.session.commit()
        return result

    return run_with_retry(_op)


def credit(
    product_id: int,
    location_id: int,
    quantity,
    *,
    reason: str | None = None,
    reference: str | None = None,
    user_id: int | None = None,
) -> MovementResult:
    """Add stock (IN movement)."""
    qty = to_quantity(quantity)
    return _single_key_operation(
        product_id,
        location_id,
        movement_type=MOVEMENT_IN,
        delta=qty,
        reason=reason,
        reference=reference,
        user_id=user_id,
    )


def debit(
    product_id: int,
    location_id: int,
    quantity,
    *,
    reason: str | None = None,
    reference: str | None = None,
    user_id: int | None = None,
) -> MovementResult:
    """
    Remove stock (OUT movement).

    Never rejects a negative result; check MovementResult.went_negative.
    """
    qty = to_quantity(quantity)
    return _single_key_operation(
        product_id,
        location_id,
        movement_type=MOVEMENT_OUT,
        delta=-qty,
        reason=reason,
        reference=reference,
        user_id=user_id,
    )


def adjust(
    product_id: int,
    location_id: int,
    delta,
    *,
    reason: str | None = None,
    reference: str | None = None,
    user_id: int | None = None,
) -> MovementResult:
    """Apply a signed correction (ADJUST movement)."""
    qty = to_quantity(delta, field="delta", allow_negative=True)
    return _single_key_operation(
        product_id,
        location_id,
        movement_type=MOVEMENT_ADJUST,
        delta=qty,
        reason=reason,
        reference=reference,
        user_id=user_id,
    )


def transfer(
    product_id: int,
    from_location_id: int,
    to_location_id: int,
    quantity,
    *,
    reason: str | None = None,
    reference: str | None = None,
    user_id: int | None = None,
) -> tuple[MovementResult, MovementResult]:
    """
    Move stock between two locations in one transaction.

    Writes an OUT on the source and an IN on the destination sharing the same
    reference. Both rows are locked in ascending location order so two
    opposite transfers cannot deadlock each other.
    """
    qty = to_quantity(quantity)
    if from_location_id == to_location_id:
        raise ValidationError("source and destination locations must differ")

    reference = reference or f"TRANSFER-{product_id}-{from_location_id}-{to_location_id}"
    _ensure_inventory_rows([(product_id, from_location_id), (product_id, to_location_id)])

    def _op():
        rows = {
            location_id: _lock_row(product_id, location_id)
            for location_id in sorted((from_location_id, to_location_id))
        }
        outgoing = _apply_movement(
            rows[from_location_id],
            movement_type=MOVEMENT_OUT,
            delta=-qty,
            reason=reason or "Transfer out",
            reference=reference,
            user_id=user_id,
        )
        incoming = _apply_movement(
            rows[to_location_id],
            movement_type=MOVEMENT_IN,
            delta=qty,
            reason=reason or "Transfer in",
            reference=reference,
            user_id=user_id,
        )
        db.session.commit()
        return outgoing, incoming

    return run_with_retry(_op)


def debit_many(
    lines,
    *,
    reference: str | None = None,
    reason: str | None = None,
    user_id: int | None = None,
    commit: bool = True,
) -> list[MovementResult]:
    """
    Debit several (product_id, location_id, quantity) lines in one transaction.

    Rows are locked in the order given. With commit=False the caller owns the
    transaction (the offline sync path marks its dedup row in the same commit).
    """
    parsed = [(product_id, location_id, to_quantity(qty)) for product_id, location_id, qty in lines]
    _ensure_inventory_rows([(p, loc) for p, loc, _ in parsed])

    def _op() -> list[MovementResult]:
        results = []
        for product_id, location_id, qty in parsed:
            row = _lock_row(product_id, location_id)
            results.append(_apply_movement(
                row,
                movement_type=MOVEMENT_OUT,
                delta=-qty,
                reason=reason,
                reference=reference,
                user_id=user_id,
            ))
        if commit:
            db.session.commit()
        return results

    if not commit:
        return _op()
    return run_with_retry(_op)


def reverse_by_sale_reference(
    reference: str,
    *,
    reason: str | None = "Sale canceled",
    user_id: int | None = None,
) -> list[MovementResult]:
    """
    Re-credit every OUT movement tied to a sale reference as CANCEL movements.

    Idempotent: earlier CANCEL movements for the same reference are netted
    out, so a second call finds nothing outstanding and writes nothing.
    """
    if not reference:
        raise ValidationError("reference is required")
    reference = str(reference)

    def _op() -> list[MovementResult]:
        totals = (
            db.session.query(
                StockMovement.product_id,
                StockMovement.location_id,
                func.sum(StockMovement.quantity),
            )
            .filter(
                StockMovement.tenant_id == current_tenant_id(),
                StockMovement.reference == reference,
                StockMovement.type.in_((MOVEMENT_OUT, MOVEMENT_CANCEL)),
            )
            .group_by(StockMovement.product_id, StockMovement.location_id)
            .all()
        )

        results = []
        for product_id, location_id, net in sorted(totals, key=lambda t: (t[0], t[1])):
            outstanding = -Decimal(str(net or 0)).quantize(QUANTITY_STEP)
            if outstanding <= ZERO:
                continue
            row = _lock_row(product_id, location_id)
            results.append(_apply_movement(
                row,
                movement_type=MOVEMENT_CANCEL,
                delta=outstanding,
                reason=reason,
                reference=reference,
                user_id=user_id,
            ))
        db.session.commit()
        return results

    return run_with_retry(_op)


def select_inventory_for_sale(product_id: int, preferred_location_id: int | None = None) -> Inventory | None:
    """
    Pick the inventory row a sale line should draw from.

    Order of preference:
    (a) sale-source location with positive balance, highest balance first
    (b) any sale-source location, most recently updated first
    (c) the caller's preferred location
    (d) any location with positive balance, highest first
    (e) any location at all
    """
    base = db.session.query(Inventory).filter(Inventory.product_id == product_id)
    sale_sources = base.join(StockLocation, StockLocation.id == Inventory.location_id).filter(
        StockLocation.is_sale_source.is_(True)
    )

    candidates = [
        lambda: sale_sources.filter(Inventory.quantity > 0).order_by(Inventory.quantity.desc(), Inventory.id),
        lambda: sale_sources.order_by(Inventory.updated_at.desc(), Inventory.id.desc()),
        lambda: base.filter(Inventory.location_id == preferred_location_id) if preferred_location_id else None,
        lambda: base.filter(Inventory.quantity > 0).order_by(Inventory.quantity.desc(), Inventory.id),
        lambda: base.order_by(Inventory.id),
    ]
    for build in candidates:
        query = build()
        if query is None:
            continue
        row = query.first()
        if row is not None:
            return row
    return None


def get_stock_level(product_id: int, location_id: int | None = None) -> Decimal:
    """Current quantity for one location, or summed over all locations."""
    q = db.session.query(func.coalesce(func.sum(Inventory.quantity), 0)).filter(
        Inventory.tenant_id == current_tenant_id(),
        Inventory.product_id == product_id,
    )
    if location_id is not None:
        q = q.filter(Inventory.location_id == location_id)
    return Decimal(q.scalar() or 0).quantize(QUANTITY_STEP)


def get_movement_balance(product_id: int, location_id: int) -> Decimal:
    """SUM of movement deltas for a key. Equals the row quantity."""
    q = db.session.query(func.coalesce(func.sum(StockMovement.quantity), 0)).filter(
        StockMovement.tenant_id == current_tenant_id(),
        StockMovement.product_id == product_id,
        StockMovement.location_id == location_id,
    )
    return Decimal(q.scalar() or 0).quantize(QUANTITY_STEP)


def list_stock(product_id: int | None = None, location_id: int | None = None) -> list[Inventory]:
    q = db.session.query(Inventory)
    if product_id is not None:
        q = q.filter(Inventory.product_id == product_id)
    if location_id is not None:
        q = q.filter(Inventory.location_id == location_id)
    return q.order_by(Inventory.product_id, Inventory.location_id).all()


def list_movements(
    *,
    product_id: int | None = None,
    location_id: int | None = None,
    reference: str | None = None,
    limit: int = 100,
) -> list[StockMovement]:
    q = db.session.query(StockMovement)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if location_id is not None:
        q = q.filter(StockMovement.location_id == location_id)
    if reference is not None:
        q = q.filter(StockMovement.reference == str(reference))
    return q.order_by(StockMovement.id.desc()).limit(min(max(limit, 1), 500)).all()


def initialize_inventory(product_id: int) -> list[Inventory]:
    """Create zero rows for a product at every location of the tenant."""
    require_product(product_id)
    location_ids = [loc.id for loc in db.session.query(StockLocation).order_by(StockLocation.id).all()]
    _ensure_inventory_rows([(product_id, location_id) for location_id in location_ids])
    return list_stock(product_id=product_id)


def create_location(name: str, *, is_sale_source: bool = False) -> StockLocation:
    name = (name or "").strip()
    if not name:
        raise ValidationError("name is required")
    location = StockLocation(tenant_id=current_tenant_id(), name=name, is_sale_source=bool(is_sale_source))
    db.session.add(location)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("Stock location name already exists", code="LOCATION_EXISTS")
    return location


def create_product(sku: str, name: str, price_cents: int) -> Product:
    sku = (sku or "").strip()
    name = (name or "").strip()
    if not sku or not name:
        raise ValidationError("sku and name are required")
    if not isinstance(price_cents, int) or isinstance(price_cents, bool) or price_cents < 0:
        raise ValidationError("price_cents must be a non-negative integer")
    product = Product(tenant_id=current_tenant_id(), sku=sku, name=name, price_cents=price_cents)
    db.session.add(product)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("SKU already exists", code="SKU_EXISTS", details={"sku": sku})
    return product


def list_locations() -> list[StockLocation]:
    return db.session.query(StockLocation).order_by(StockLocation.id).all()


def list_products() -> list[Product]:
    return db.session.query(Product).order_by(Product.id).all()
