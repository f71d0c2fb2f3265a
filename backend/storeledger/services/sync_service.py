# Overview: Offline sync debit path; applies stock for sales rung up on a disconnected device.

"""
Offline Sale Sync

WHY: Terminals keep selling while offline and upload each sale's stock
effect later, possibly more than once. A ProcessedSale marker keyed by the
device's sale reference makes the upload idempotent.

FLOW:
1. Insert ProcessedSale(PENDING). Unique violation -> already processed.
2. Consolidate lines by (product, location).
3. One transaction: lock rows in arrival order, debit (negatives allowed),
   collect deficits, mark DONE.
4. Failure -> marker ERROR with the message (kept, not deleted). Domain
   errors propagate as-is; anything else becomes InternalError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy.exc import IntegrityError

from ..errors import DomainError, InternalError, ValidationError
from ..extensions import db
from ..models import ProcessedSale
from ..time_utils import parse_iso_datetime
from ..validation import optional_str, require_int
from . import inventory_service
from .tenant_context import current_tenant_id

logger = logging.getLogger(__name__)

STATUS_PENDING = "PENDING"
STATUS_DONE = "DONE"
STATUS_ERROR = "ERROR"


@dataclass
class OfflineSyncResult:
    sale_ref: str
    already_processed: bool = False
    status: str = STATUS_DONE
    items_applied: int = 0
    deficits: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = {
            "ok": True,
            "sale_ref": self.sale_ref,
            "already_processed": self.already_processed,
            "status": self.status,
        }
        if not self.already_processed:
            data["items_applied"] = self.items_applied
            data["deficits"] = self.deficits
        return data


def consolidate_items(items) -> list[tuple[int, int, Decimal]]:
    """Sum quantities per (product_id, location_id), keeping first-seen order."""
    if not isinstance(items, (list, tuple)) or not items:
        raise ValidationError("items must be a non-empty list")

    totals: dict[tuple[int, int], Decimal] = {}
    for idx, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{idx}] must be an object")
        product_id = require_int(raw.get("product_id"), f"items[{idx}].product_id", minimum=1)
        location_id = require_int(raw.get("location_id"), f"items[{idx}].location_id", minimum=1)
        qty = inventory_service.to_quantity(raw.get("quantity", raw.get("qty")), field=f"items[{idx}].quantity")
        key = (product_id, location_id)
        totals[key] = totals.get(key, Decimal("0")) + qty
    return [(product_id, location_id, qty) for (product_id, location_id), qty in totals.items()]


def _mark(sale_ref: str, status: str, error_message: str | None = None) -> None:
    marker = db.session.query(ProcessedSale).filter_by(sale_ref=sale_ref).first()
    if marker is None:
        return
    marker.status = status
    marker.error_message = error_message


def process_offline_sale(
    *,
    sale_ref: str,
    items,
    user_id: int | None = None,
    device_id: str | None = None,
    client_created_at: str | None = None,
) -> OfflineSyncResult:
    tenant_id = current_tenant_id()
    sale_ref = optional_str(sale_ref, "sale_ref", max_length=64)
    if not sale_ref:
        raise ValidationError("sale_ref is required")
    device_id = optional_str(device_id, "device_id", max_length=128)
    try:
        created_at = parse_iso_datetime(optional_str(client_created_at, "created_at", max_length=64))
    except ValueError:
        raise ValidationError("created_at must be an ISO-8601 datetime")
    lines = consolidate_items(items)

    db.session.add(ProcessedSale(
        tenant_id=tenant_id,
        sale_ref=sale_ref,
        device_id=device_id,
        client_created_at=created_at,
        status=STATUS_PENDING,
    ))
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        existing = db.session.query(ProcessedSale).filter_by(sale_ref=sale_ref).first()
        return OfflineSyncResult(
            sale_ref=sale_ref,
            already_processed=True,
            status=existing.status if existing else STATUS_DONE,
        )

    try:
        results = inventory_service.debit_many(
            lines,
            reference=sale_ref,
            reason="Offline sale",
            user_id=user_id,
            commit=False,
        )
        deficits = []
        for (product_id, location_id, qty), result in zip(lines, results):
            if result.went_negative:
                deficits.append({
                    "product_id": product_id,
                    "location_id": location_id,
                    "before_qty": str(result.quantity + qty),
                    "sold_qty": str(qty),
                    "after_qty": str(result.quantity),
                })
        _mark(sale_ref, STATUS_DONE)
        db.session.commit()
    except Exception as exc:
        db.session.rollback()
        message = exc.message if isinstance(exc, DomainError) else (str(exc) or exc.__class__.__name__)
        logger.exception("Offline sale sync failed", extra={"sale_ref": sale_ref})
        _mark(sale_ref, STATUS_ERROR, message[:2000])
        db.session.commit()
        if isinstance(exc, DomainError):
            raise
        raise InternalError(
            "Offline sale could not be applied",
            code="OFFLINE_SYNC_FAILED",
            details={"sale_ref": sale_ref, "error": message},
        ) from exc

    return OfflineSyncResult(
        sale_ref=sale_ref,
        status=STATUS_DONE,
        items_applied=len(lines),
        deficits=deficits,
    )


def get_processed_sale(sale_ref: str) -> ProcessedSale | None:
    return db.session.query(ProcessedSale).filter_by(sale_ref=sale_ref).first()
