# Overview: Print job queue; rows are picked up by a store printer agent.

from __future__ import annotations

import logging

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import PrintJob
from ..models.printing import (
    PRINT_CASH_CLOSING,
    PRINT_JOB_STATUSES,
    PRINT_JOB_TYPES,
    PRINT_RECEIPT,
)
from .tenant_context import current_tenant_id

logger = logging.getLogger(__name__)


def enqueue_print_job(
    job_type: str,
    payload: dict,
    *,
    source: str | None = None,
    user_id: int | None = None,
    sale_id: int | None = None,
    cash_session_id: int | None = None,
    commit: bool = True,
) -> PrintJob:
    if job_type not in PRINT_JOB_TYPES:
        raise ValidationError(f"Unknown print job type: {job_type}")
    job = PrintJob(
        tenant_id=current_tenant_id(),
        type=job_type,
        status="PENDING",
        payload=payload,
        source=source,
        requested_by_user_id=user_id,
        sale_id=sale_id,
        cash_session_id=cash_session_id,
    )
    db.session.add(job)
    if commit:
        db.session.commit()
    else:
        db.session.flush()
    return job


def try_enqueue_receipt(sale, user_id: int | None) -> int | None:
    """
    Best-effort receipt job for a committed sale.

    Failures are logged and swallowed; the sale is already final.
    """
    from .receipt_service import build_receipt

    try:
        receipt = build_receipt(sale)
        job = enqueue_print_job(
            PRINT_RECEIPT,
            receipt,
            source="sale",
            user_id=user_id,
            sale_id=sale.id,
            cash_session_id=sale.cash_session_id,
        )
        return job.id
    except Exception:
        db.session.rollback()
        logger.exception("Failed to enqueue receipt print job", extra={"sale_id": sale.id})
        return None


def enqueue_cash_closing(snapshot: dict, *, user_id: int, cash_session_id: int) -> PrintJob:
    """CASH_CLOSING job in the caller's transaction (flushed, not committed)."""
    return enqueue_print_job(
        PRINT_CASH_CLOSING,
        snapshot,
        source="cash-close",
        user_id=user_id,
        cash_session_id=cash_session_id,
        commit=False,
    )


def list_print_jobs(*, status: str | None = None, job_type: str | None = None, limit: int = 20) -> list[PrintJob]:
    q = db.session.query(PrintJob)
    if status:
        q = q.filter(PrintJob.status == status)
    if job_type:
        q = q.filter(PrintJob.type == job_type)
    return q.order_by(PrintJob.created_at, PrintJob.id).limit(min(max(limit, 1), 100)).all()


def update_print_job_status(job_id: int, status: str, error_message: str | None = None) -> PrintJob:
    if status not in PRINT_JOB_STATUSES:
        raise ValidationError(f"status must be one of {', '.join(PRINT_JOB_STATUSES)}")
    job = db.session.query(PrintJob).filter_by(id=job_id).first()
    if job is None:
        raise NotFoundError("Print job not found", code="PRINT_JOB_NOT_FOUND")
    job.status = status
    job.last_error = error_message[:500] if error_message else None
    db.session.commit()
    return job
