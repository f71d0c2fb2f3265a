# Overview: Session-level tenant isolation; filters every ORM read and write by the bound tenant.

"""
Tenant Access Guard.

WHY: Isolation must not depend on every query remembering a
filter_by(tenant_id=...). The guard hooks the SQLAlchemy Session itself, so
any ORM statement that touches a tenant-owned model is rewritten before it
reaches the database.

DESIGN:
- SELECT: with_loader_criteria() on every tenant-owned model
  (tenant_id == bound) and on every sale-owned model
  (sale_id IN tenant's sales). Criteria propagate to lazy loads.
- ORM bulk UPDATE / DELETE: the same predicate is appended to WHERE.
- Flush: new tenant-owned objects get tenant_id filled; an object carrying
  another tenant's id (new, dirty or deleted) raises TenantAccessError.
- Nothing bound while a scoped model is touched raises TenantNotResolvedError.

SECURITY: Session.get() can return an object already in the identity map
without a SELECT. Services look rows up with queries, not Session.get().
Core statements against bare Table objects are not rewritten; only
migrations and test fixtures use them.
"""

from __future__ import annotations

from itertools import chain

from sqlalchemy import event, select
from sqlalchemy.orm import Session, with_loader_criteria

from ..errors import TenantAccessError
from ..extensions import db
from ..models.tenancy import SaleOwnedMixin, TenantOwnedMixin
from .tenant_context import current_tenant_id


def _is_tenant_owned(cls) -> bool:
    return isinstance(cls, type) and issubclass(cls, TenantOwnedMixin)


def _is_sale_owned(cls) -> bool:
    return isinstance(cls, type) and issubclass(cls, SaleOwnedMixin)


def is_tenant_scoped(cls) -> bool:
    return _is_tenant_owned(cls) or _is_sale_owned(cls)


def _sale_owned_models() -> list:
    return [m.class_ for m in db.Model.registry.mappers if _is_sale_owned(m.class_)]


def _tenant_sale_ids(tenant_id: int):
    from ..models.sales import Sale

    return select(Sale.id).where(Sale.tenant_id == tenant_id)


def _criteria_options(tenant_id: int) -> list:
    options = [
        with_loader_criteria(
            TenantOwnedMixin,
            lambda cls: cls.tenant_id == tenant_id,
            include_aliases=True,
        )
    ]
    for model in _sale_owned_models():
        options.append(
            with_loader_criteria(
                model,
                model.sale_id.in_(_tenant_sale_ids(tenant_id)),
                include_aliases=True,
            )
        )
    return options


def _scope_bulk_statement(statement, cls, tenant_id: int):
    if _is_tenant_owned(cls):
        return statement.where(cls.tenant_id == tenant_id)
    return statement.where(cls.sale_id.in_(_tenant_sale_ids(tenant_id)))


def _on_orm_execute(execute_state) -> None:
    if execute_state.is_column_load or execute_state.is_relationship_load:
        return

    if execute_state.is_select:
        if not any(is_tenant_scoped(m.class_) for m in execute_state.all_mappers):
            return
        tenant_id = current_tenant_id()
        execute_state.statement = execute_state.statement.options(*_criteria_options(tenant_id))
        return

    if execute_state.is_update or execute_state.is_delete:
        mapper = execute_state.bind_mapper
        if mapper is None or not is_tenant_scoped(mapper.class_):
            return
        tenant_id = current_tenant_id()
        execute_state.statement = _scope_bulk_statement(execute_state.statement, mapper.class_, tenant_id)


def _check_owner(obj, tenant_id: int) -> None:
    if _is_tenant_owned(type(obj)):
        if obj.tenant_id != tenant_id:
            raise TenantAccessError(
                f"{type(obj).__name__} belongs to another tenant",
                details={"bound_tenant_id": tenant_id},
            )
    elif _is_sale_owned(type(obj)):
        sale = getattr(obj, "sale", None)
        if sale is not None and sale.tenant_id not in (None, tenant_id):
            raise TenantAccessError(
                f"{type(obj).__name__} belongs to another tenant's sale",
                details={"bound_tenant_id": tenant_id},
            )


def _on_before_flush(session, flush_context, instances) -> None:
    for obj in session.new:
        if not is_tenant_scoped(type(obj)):
            continue
        tenant_id = current_tenant_id()
        if _is_tenant_owned(type(obj)) and obj.tenant_id is None:
            obj.tenant_id = tenant_id
        _check_owner(obj, tenant_id)

    for obj in chain(session.dirty, session.deleted):
        if not is_tenant_scoped(type(obj)):
            continue
        _check_owner(obj, current_tenant_id())


def install_tenant_guard() -> None:
    """Attach the guard to every Session. Safe to call more than once."""
    if not event.contains(Session, "do_orm_execute", _on_orm_execute):
        event.listen(Session, "do_orm_execute", _on_orm_execute)
    if not event.contains(Session, "before_flush", _on_before_flush):
        event.listen(Session, "before_flush", _on_before_flush)
