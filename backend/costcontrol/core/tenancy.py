"""Tenant scoping for every ledger read and write.

All lookups take an explicit ``TenantContext``. A record that belongs to another
tenant, hangs off a contract of another tenant, or carries a soft-delete
tombstone resolves exactly like a missing record: ``NotFound``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, TypeVar

from sqlalchemy import select
from sqlalchemy.orm import Session

from costcontrol import models
from costcontrol.core.errors import NotFound

LedgerModel = TypeVar("LedgerModel", models.BudgetLine, models.Expense, models.Payment)


@dataclass(frozen=True)
class Principal:
    id: str
    tenant_id: str
    role: Optional[str] = None
    email: Optional[str] = None


@dataclass(frozen=True)
class TenantContext:
    tenant_id: str
    principal: Principal
    request_id: Optional[str] = None

    @property
    def actor_id(self) -> str:
        return self.principal.id


def not_deleted(model):
    """The soft-delete predicate; every ledger query goes through it."""

    return model.deleted_at.is_(None)


def get_contract(
    db: Session,
    ctx: TenantContext,
    contract_id: str,
    *,
    for_update: bool = False,
) -> models.Contract:
    """Contract lookup within the tenant.

    ``for_update`` takes a row lock on the contract for the rest of the
    transaction; ledger mutations use it to serialize sum-then-write sequences
    per contract.
    """

    stmt = select(models.Contract).where(
        models.Contract.id == str(contract_id),
        models.Contract.tenant_id == ctx.tenant_id,
        not_deleted(models.Contract),
    )
    if for_update:
        stmt = stmt.with_for_update().execution_options(populate_existing=True)
    contract = db.execute(stmt).scalar_one_or_none()
    if contract is None:
        raise NotFound("Contract not found")
    return contract


def scoped_record(
    db: Session,
    ctx: TenantContext,
    model: type[LedgerModel],
    contract: models.Contract,
    record_id: str,
    *,
    for_update: bool = False,
) -> LedgerModel:
    # Both legs are checked: the row's own tenant and its contract's tenant.
    stmt = (
        select(model)
        .join(models.Contract, models.Contract.id == model.contract_id)
        .where(
            model.id == str(record_id),
            model.contract_id == contract.id,
            model.tenant_id == ctx.tenant_id,
            models.Contract.tenant_id == ctx.tenant_id,
            not_deleted(model),
        )
    )
    if for_update:
        stmt = stmt.with_for_update(of=model).execution_options(populate_existing=True)
    row = db.execute(stmt).scalar_one_or_none()
    if row is None:
        raise NotFound(f"{_label(model)} not found")
    return row


def scoped_rows(model: type[LedgerModel], ctx: TenantContext, contract_id: str):
    """Select of the non-deleted rows of one contract inside the tenant."""

    return (
        select(model)
        .join(models.Contract, models.Contract.id == model.contract_id)
        .where(
            model.contract_id == str(contract_id),
            model.tenant_id == ctx.tenant_id,
            models.Contract.tenant_id == ctx.tenant_id,
            not_deleted(model),
        )
    )


def _label(model) -> str:
    return {
        models.BudgetLine: "Budget line",
        models.Expense: "Expense",
        models.Payment: "Payment",
    }.get(model, "Record")
