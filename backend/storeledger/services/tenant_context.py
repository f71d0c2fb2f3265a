# Overview: Per-operation tenant binding carried through the call chain.

"""
Tenant Scope Carrier.

WHY: Every persistence call must know which tenant it runs for, but threading
a tenant_id through every helper signature is how isolation bugs start.
The binding lives in a ContextVar, so each request (thread or asyncio task)
sees only its own tenant and a binding can never leak into a concurrent
operation.

DESIGN:
- run_with_tenant(tenant_id, fn) / tenant_scope(tenant_id) bind for a block
- Re-entering with the same tenant id does not push a new binding
- current_tenant_id() raises when nothing is bound; there is no default tenant
"""

from __future__ import annotations

from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator, TypeVar

from ..errors import TenantNotResolvedError, ValidationError

T = TypeVar("T")

_current_tenant: ContextVar[int | None] = ContextVar("storeledger_tenant_id", default=None)


def _normalize(tenant_id) -> int:
    if tenant_id is None or isinstance(tenant_id, bool):
        raise ValidationError("tenant_id is required")
    try:
        value = int(tenant_id)
    except (TypeError, ValueError):
        raise ValidationError("tenant_id must be an integer")
    if value <= 0:
        raise ValidationError("tenant_id must be positive")
    return value


@contextmanager
def tenant_scope(tenant_id) -> Iterator[int]:
    tenant_id = _normalize(tenant_id)
    if _current_tenant.get() == tenant_id:
        yield tenant_id
        return

    token = _current_tenant.set(tenant_id)
    try:
        yield tenant_id
    finally:
        _current_tenant.reset(token)


def run_with_tenant(tenant_id, fn: Callable[..., T], *args, **kwargs) -> T:
    """Run fn with tenant_id bound for the duration of the call."""
    with tenant_scope(tenant_id):
        return fn(*args, **kwargs)


def current_tenant_id() -> int:
    """
    Return the bound tenant id.

    Raises TenantNotResolvedError when called outside run_with_tenant /
    tenant_scope. Callers must not catch this to fall back to a default.
    """
    tenant_id = _current_tenant.get()
    if tenant_id is None:
        raise TenantNotResolvedError()
    return tenant_id


def peek_tenant_id() -> int | None:
    """Bound tenant id or None. For inspection only (guards, logging)."""
    return _current_tenant.get()
