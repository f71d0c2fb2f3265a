# Overview: Append-only audit entries and idempotency markers.

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import AuditLog
from .tenant_context import current_tenant_id

logger = logging.getLogger(__name__)

ACTION_SALE_CREATE = "SALE_CREATE"
ACTION_SALE_CANCEL = "SALE_CANCEL"
ACTION_CASH_OPEN = "CASH_OPEN"
ACTION_CASH_WITHDRAW = "CASH_WITHDRAW"
ACTION_CASH_CLOSE = "CASH_CLOSE"


def find_marker(action: str, idempotency_key: str) -> AuditLog | None:
    """Committed marker for (bound tenant, action, key), if any."""
    return (
        db.session.query(AuditLog)
        .filter_by(action=action, idempotency_key=idempotency_key)
        .first()
    )


def record_marker(
    action: str,
    idempotency_key: str,
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    user_id: int | None = None,
    payload: dict | None = None,
) -> bool:
    """
    Persist an idempotency marker. Returns False when another writer
    committed the same (tenant, action, key) first.
    """
    marker = AuditLog(
        tenant_id=current_tenant_id(),
        action=action,
        idempotency_key=idempotency_key,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        payload=payload,
    )
    db.session.add(marker)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        logger.warning(
            "Idempotency marker already recorded",
            extra={"action": action, "idempotency_key": idempotency_key, "entity_id": entity_id},
        )
        return False
    return True


def record_event(
    action: str,
    *,
    entity_type: str | None = None,
    entity_id: int | None = None,
    user_id: int | None = None,
    payload: dict | None = None,
    commit: bool = True,
) -> AuditLog:
    """Plain audit entry (no idempotency key)."""
    entry = AuditLog(
        tenant_id=current_tenant_id(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        payload=payload,
    )
    db.session.add(entry)
    if commit:
        db.session.commit()
    return entry


def list_events(*, action: str | None = None, entity_type: str | None = None, entity_id: int | None = None) -> list[AuditLog]:
    q = db.session.query(AuditLog)
    if action:
        q = q.filter(AuditLog.action == action)
    if entity_type:
        q = q.filter(AuditLog.entity_type == entity_type)
    if entity_id is not None:
        q = q.filter(AuditLog.entity_id == entity_id)
    return q.order_by(AuditLog.id).all()
