# Overview: Pluggable fiscal emission adapters plus per-sale attempt tracking and retry.

"""
Fiscal documents.

WHY: Emitting the tax document (SAT / NFC-e) talks to an external authority
that can be down. A sale never fails because of it: each attempt is tracked
on a FiscalDocument row (one per sale) so failures can be listed and retried.

DESIGN: Adapters are looked up by mode. All modes map to the no-op adapter
until a real integration is registered with register_fiscal_adapter().
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import FiscalDocument, Sale
from ..models.sales import FISCAL_MODES
from ..time_utils import utcnow
from .tenant_context import current_tenant_id

logger = logging.getLogger(__name__)

FISCAL_SUCCESS = "SUCCESS"
FISCAL_FAILED = "FAILED"
FISCAL_CANCELED = "CANCELED"
FISCAL_CANCEL_FAILED = "CANCEL_FAILED"
FISCAL_STATUSES = (FISCAL_SUCCESS, FISCAL_FAILED, FISCAL_CANCELED, FISCAL_CANCEL_FAILED)


@dataclass(frozen=True)
class FiscalEmission:
    key: str


class FiscalAdapter:
    def emit(self, sale: Sale) -> FiscalEmission:
        raise NotImplementedError

    def cancel(self, key: str, reason: str) -> None:
        raise NotImplementedError


class NoneFiscalAdapter(FiscalAdapter):
    """Issues a local key and talks to nobody."""

    def emit(self, sale: Sale) -> FiscalEmission:
        return FiscalEmission(key=f"NONE-{sale.id}")

    def cancel(self, key: str, reason: str) -> None:
        return None


_none_adapter = NoneFiscalAdapter()
_adapters: dict[str, FiscalAdapter] = {}


def register_fiscal_adapter(mode: str, adapter: FiscalAdapter | None) -> None:
    """Install (or with None, remove) the adapter used for a fiscal mode."""
    mode = normalize_mode(mode)
    if adapter is None:
        _adapters.pop(mode, None)
    else:
        _adapters[mode] = adapter


def get_fiscal_adapter(mode: str) -> FiscalAdapter:
    return _adapters.get((mode or "none").lower(), _none_adapter)


def normalize_mode(mode: str | None) -> str:
    normalized = (mode or "none").strip().lower()
    if normalized not in FISCAL_MODES:
        raise ValidationError(f"fiscal_mode must be one of {', '.join(FISCAL_MODES)}")
    return normalized


def track_fiscal_attempt(
    sale: Sale,
    *,
    status: str,
    fiscal_key: str | None = None,
    error: str | None = None,
    count_attempt: bool = True,
) -> FiscalDocument:
    """
    Upsert the sale's FiscalDocument. Does not commit; runs inside the
    caller's transaction.
    """
    doc = db.session.query(FiscalDocument).filter_by(sale_id=sale.id).first()
    if doc is None:
        doc = FiscalDocument(
            tenant_id=sale.tenant_id,
            sale_id=sale.id,
            mode=sale.fiscal_mode,
            attempts=0,
        )
        db.session.add(doc)
    doc.status = status
    if fiscal_key is not None:
        doc.fiscal_key = fiscal_key
    doc.last_error = error
    doc.last_attempt_at = utcnow()
    if count_attempt:
        doc.attempts = (doc.attempts or 0) + 1
    db.session.flush()
    return doc


def emit_for_sale(sale: Sale) -> tuple[str, str | None]:
    """
    Emit the fiscal document for a sale inside the caller's transaction.

    Returns (status, error). Adapter failures are recorded, never raised.
    """
    adapter = get_fiscal_adapter(sale.fiscal_mode)
    try:
        emission = adapter.emit(sale)
    except Exception as exc:
        logger.exception(
            "Fiscal emission failed",
            extra={"sale_id": sale.id, "fiscal_mode": sale.fiscal_mode},
        )
        error = str(exc) or exc.__class__.__name__
        track_fiscal_attempt(sale, status=FISCAL_FAILED, error=error)
        return FISCAL_FAILED, error

    sale.fiscal_key = emission.key
    track_fiscal_attempt(sale, status=FISCAL_SUCCESS, fiscal_key=emission.key)
    return FISCAL_SUCCESS, None


def cancel_for_sale(sale: Sale, reason: str) -> tuple[str, str | None]:
    """Call the adapter's cancel hook for a sale that holds a fiscal key."""
    adapter = get_fiscal_adapter(sale.fiscal_mode)
    try:
        adapter.cancel(sale.fiscal_key, reason)
    except Exception as exc:
        logger.exception(
            "Fiscal cancellation failed",
            extra={"sale_id": sale.id, "fiscal_key": sale.fiscal_key},
        )
        error = str(exc) or exc.__class__.__name__
        track_fiscal_attempt(sale, status=FISCAL_CANCEL_FAILED, error=error, count_attempt=False)
        return FISCAL_CANCEL_FAILED, error

    track_fiscal_attempt(sale, status=FISCAL_CANCELED, count_attempt=False)
    return FISCAL_CANCELED, None


def list_fiscal_documents(status: str | None = None) -> list[FiscalDocument]:
    q = db.session.query(FiscalDocument)
    if status:
        if status not in FISCAL_STATUSES:
            raise ValidationError(f"status must be one of {', '.join(FISCAL_STATUSES)}")
        q = q.filter(FiscalDocument.status == status)
    return q.order_by(FiscalDocument.last_attempt_at.desc(), FiscalDocument.id.desc()).all()


def retry_fiscal_documents(sale_ids: list[int]) -> list[dict]:
    """
    Re-emit fiscal documents for the given sales, one transaction per sale.

    A sale that is missing, canceled, or in "none" mode is reported as
    FAILED with an error message; the loop continues with the next id.
    """
    if not sale_ids:
        raise ValidationError("sale_ids must not be empty")
    current_tenant_id()

    results = []
    for sale_id in sale_ids:
        try:
            sale = db.session.query(Sale).filter_by(id=sale_id).first()
            if sale is None:
                raise NotFoundError(f"Sale {sale_id} not found", code="SALE_NOT_FOUND")
            if sale.status != "FINALIZED":
                raise ValidationError(f"Sale {sale_id} is not finalized")
            if sale.fiscal_mode == "none":
                raise ValidationError(f"Sale {sale_id} has no fiscal mode")
            status, error = emit_for_sale(sale)
            db.session.commit()
        except (NotFoundError, ValidationError) as exc:
            db.session.rollback()
            status, error = FISCAL_FAILED, exc.message
        results.append({"sale_id": sale_id, "status": status, "error": error})
    return results
