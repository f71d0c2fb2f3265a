# Overview: Tenant onboarding and tenant-level settings (owner user, cash session cap, operators).

"""
Tenant Service

WHY: A tenant is useless without at least one OWNER who can approve
supervised actions. Onboarding creates both in one call.

SECURITY:
- Tenant rows are not tenant-scoped; every other row created here is, so user
  creation runs inside tenant_scope(tenant.id).
- Passwords and PINs are stored as bcrypt hashes only.
"""

from __future__ import annotations

import logging

from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Tenant, User
from ..models.auth import ROLE_OWNER, ROLES
from ..validation import optional_str, require_int, require_str
from .auth_service import hash_password, hash_pin
from .tenant_context import current_tenant_id, tenant_scope

logger = logging.getLogger(__name__)


def _normalize_email(email: str | None) -> str | None:
    email = optional_str(email, "email")
    return email.strip().lower() if email else None


def get_tenant(tenant_id: int) -> Tenant:
    tenant = db.session.query(Tenant).filter_by(id=tenant_id).first()
    if tenant is None:
        raise NotFoundError("Tenant not found", code="TENANT_NOT_FOUND")
    return tenant


def list_tenants() -> list[Tenant]:
    return db.session.query(Tenant).order_by(Tenant.id.asc()).all()


def create_tenant_with_owner(
    *,
    name: str,
    owner_name: str,
    owner_email: str,
    owner_password: str,
    email: str | None = None,
    tax_id: str | None = None,
    owner_pin: str | None = None,
    max_open_cash_sessions: int = 1,
) -> tuple[Tenant, User]:
    tenant = Tenant(
        name=require_str(name, "name", max_length=128),
        email=_normalize_email(email),
        tax_id=optional_str(tax_id, "tax_id", max_length=32),
        max_open_cash_sessions=require_int(max_open_cash_sessions, "max_open_cash_sessions", minimum=1),
    )
    # Validate credentials before anything is written.
    password_hash = hash_password(owner_password)
    pin_hash = hash_pin(owner_pin) if owner_pin else None

    db.session.add(tenant)
    try:
        db.session.flush()
        with tenant_scope(tenant.id):
            owner = User(
                tenant_id=tenant.id,
                name=require_str(owner_name, "owner_name", max_length=128),
                email=_normalize_email(owner_email) or "",
                role=ROLE_OWNER,
                password_hash=password_hash,
                supervisor_pin=pin_hash,
            )
            if not owner.email:
                raise ValidationError("owner_email is required")
            db.session.add(owner)
            db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A tenant with this email or tax id already exists", code="TENANT_EXISTS")
    except Exception:
        db.session.rollback()
        raise

    logger.info("Tenant created", extra={"tenant_id": tenant.id, "owner_id": owner.id})
    return tenant, owner


def set_max_open_sessions(tenant_id: int, max_open: int) -> Tenant:
    tenant = get_tenant(tenant_id)
    tenant.max_open_cash_sessions = require_int(max_open, "max_open_cash_sessions", minimum=1)
    db.session.commit()
    return tenant


def create_user(
    *,
    name: str,
    email: str,
    password: str,
    role: str,
    pin: str | None = None,
) -> User:
    """Add an operator to the bound tenant."""
    tenant_id = current_tenant_id()
    if role not in ROLES:
        raise ValidationError(f"role must be one of {', '.join(ROLES)}")
    email = _normalize_email(email)
    if not email:
        raise ValidationError("email is required")

    user = User(
        tenant_id=tenant_id,
        name=require_str(name, "name", max_length=128),
        email=email,
        role=role,
        password_hash=hash_password(password),
        supervisor_pin=hash_pin(pin) if pin else None,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise ConflictError("A user with this email already exists", code="USER_EXISTS")
    return user


def set_supervisor_pin(user_id: int, pin: str | None) -> User:
    user = db.session.query(User).filter_by(id=user_id).first()
    if user is None:
        raise NotFoundError("User not found", code="USER_NOT_FOUND")
    user.supervisor_pin = hash_pin(pin) if pin else None
    db.session.commit()
    return user


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.id.asc()).all()
