# Overview: Step-up approval against a tenant's active ADMIN/OWNER users.

"""
Supervisor Approval

WHY: Discounts given by attendants, cash withdrawals, cash closing and sale
cancellation need a manager on the spot. The manager types a PIN (or their
account password) on the operator's terminal; this service finds who it
belongs to.

SECURITY:
- Only active ADMIN/OWNER users of the tenant are candidates.
- For each candidate the supervisor PIN is tried first, then the password.
- PINs are bcrypt hashes; rows created before hashing may still hold the
  plain PIN, detected by the missing "$2" prefix and compared in constant time.
- An empty credential fails before any query runs.
"""

from __future__ import annotations

import hmac
from dataclasses import dataclass

from ..errors import ForbiddenError
from ..extensions import db
from ..models import User
from ..models.auth import SUPERVISOR_ROLES
from .auth_service import is_bcrypt_hash, verify_password
from .tenant_context import peek_tenant_id, run_with_tenant

VIA_PIN = "PIN"
VIA_PASSWORD = "PASSWORD"


@dataclass(frozen=True)
class SupervisorApproval:
    approver_id: int
    approver_role: str
    via: str

    def to_dict(self) -> dict:
        return {
            "approver_id": self.approver_id,
            "approver_role": self.approver_role,
            "via": self.via,
        }


def _matches_pin(stored: str | None, credential: str) -> bool:
    if not stored:
        return False
    if is_bcrypt_hash(stored):
        return verify_password(credential, stored)
    return hmac.compare_digest(stored.encode("utf-8"), credential.encode("utf-8"))


def _active_supervisors() -> list[User]:
    return (
        db.session.query(User)
        .filter(User.role.in_(SUPERVISOR_ROLES), User.is_active.is_(True))
        .order_by(User.id)
        .all()
    )


def require_supervisor_approval(
    credential: str | None,
    action: str,
    *,
    tenant_id: int | None = None,
) -> SupervisorApproval:
    """
    Return who approved `action`, or raise ForbiddenError.

    tenant_id defaults to the bound tenant. Passing a different one runs the
    lookup inside that tenant's scope.
    """
    normalized = (credential or "").strip()
    if not normalized:
        raise ForbiddenError(
            f"{action}: supervisor credential required",
            code="SUPERVISOR_CREDENTIAL_REQUIRED",
        )

    if tenant_id is None or tenant_id == peek_tenant_id():
        supervisors = _active_supervisors()
    else:
        supervisors = run_with_tenant(tenant_id, _active_supervisors)

    for supervisor in supervisors:
        if _matches_pin(supervisor.supervisor_pin, normalized):
            return SupervisorApproval(supervisor.id, supervisor.role, VIA_PIN)
        if verify_password(normalized, supervisor.password_hash):
            return SupervisorApproval(supervisor.id, supervisor.role, VIA_PASSWORD)

    raise ForbiddenError(
        f"{action}: credential does not match any active ADMIN/OWNER",
        code="SUPERVISOR_APPROVAL_FAILED",
        details={"action": action},
    )
