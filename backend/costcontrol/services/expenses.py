from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from costcontrol import models
from costcontrol.core.errors import ValidationFailed
from costcontrol.core.tenancy import TenantContext, get_contract, scoped_record, scoped_rows
from costcontrol.schemas import ExpenseCreate, ExpenseUpdate
from costcontrol.services.audit import audit_event
from costcontrol.services.ledger_rows import (
    active_rows,
    apply_changes,
    derive_total,
    normalize_currency,
    quantize_money,
    reject_nulls,
    snapshot,
    soft_delete,
    stamp_created,
    sum_amounts,
)

logger = logging.getLogger("costcontrol.ledger.expenses")

_AUDIT_FIELDS = (
    "name",
    "quantity",
    "unit",
    "unit_cost",
    "amount",
    "currency",
    "incurred_on",
    "status",
    "deleted_at",
)
_CANCELLED = models.ExpenseStatus.cancelled.value


@dataclass(frozen=True)
class ExpenseSummary:
    contract_id: str
    actual_total: Decimal
    contract_value: Optional[Decimal]
    contract_vs_actual_diff: Optional[Decimal]
    line_count: int


def list_for_contract(db: Session, ctx: TenantContext, contract_id: str) -> list[models.Expense]:
    get_contract(db, ctx, contract_id)
    stmt = scoped_rows(models.Expense, ctx, contract_id).order_by(
        models.Expense.created_at.asc(), models.Expense.id.asc()
    )
    return list(db.execute(stmt).scalars())


def get_expense(db: Session, ctx: TenantContext, contract_id: str, expense_id: str) -> models.Expense:
    contract = get_contract(db, ctx, contract_id)
    return scoped_record(db, ctx, models.Expense, contract, expense_id)


def create_expense(
    db: Session, ctx: TenantContext, contract_id: str, payload: ExpenseCreate
) -> models.Expense:
    contract = get_contract(db, ctx, contract_id, for_update=True)

    amount = payload.amount
    if amount is None:
        amount = derive_total(payload.quantity, payload.unit_cost)
    if amount is None:
        raise ValidationFailed.for_field(
            "amount",
            "The amount field is required unless quantity and unit_cost are both given.",
        )

    expense = models.Expense(
        name=payload.name,
        quantity=payload.quantity,
        unit=payload.unit,
        unit_cost=payload.unit_cost,
        amount=quantize_money(amount),
        currency=normalize_currency(payload.currency),
        incurred_on=payload.incurred_on,
        status=payload.status.value,
        notes=payload.notes,
    )
    stamp_created(expense, ctx, contract)
    db.add(expense)
    db.flush()

    audit_event(
        db,
        ctx,
        "expense.created",
        entity_type="expense",
        entity_id=expense.id,
        contract_id=contract.id,
        after=snapshot(expense, _AUDIT_FIELDS),
    )
    logger.info(
        "expense_created",
        extra={"tenant_id": ctx.tenant_id, "contract_id": contract.id, "expense_id": expense.id},
    )
    return expense


def update_expense(
    db: Session,
    ctx: TenantContext,
    contract_id: str,
    expense_id: str,
    payload: ExpenseUpdate,
) -> models.Expense:
    contract = get_contract(db, ctx, contract_id, for_update=True)
    expense = scoped_record(db, ctx, models.Expense, contract, expense_id, for_update=True)

    changes = payload.model_dump(exclude_unset=True)
    reject_nulls(changes, ("name", "amount", "currency", "status"))
    before = snapshot(expense, _AUDIT_FIELDS)

    apply_changes(expense, changes)
    if "amount" not in changes and {"quantity", "unit_cost"} & changes.keys():
        derived = derive_total(expense.quantity, expense.unit_cost)
        if derived is not None:
            expense.amount = derived
    expense.updated_by = ctx.actor_id
    db.flush()

    audit_event(
        db,
        ctx,
        "expense.updated",
        entity_type="expense",
        entity_id=expense.id,
        contract_id=contract.id,
        before=before,
        after=snapshot(expense, _AUDIT_FIELDS),
    )
    logger.info(
        "expense_updated",
        extra={
            "tenant_id": ctx.tenant_id,
            "contract_id": contract.id,
            "expense_id": expense.id,
            "fields": sorted(changes),
        },
    )
    return expense


def delete_expense(db: Session, ctx: TenantContext, contract_id: str, expense_id: str) -> None:
    contract = get_contract(db, ctx, contract_id, for_update=True)
    expense = scoped_record(db, ctx, models.Expense, contract, expense_id, for_update=True)
    before = snapshot(expense, _AUDIT_FIELDS)

    soft_delete(expense, ctx)
    db.flush()

    audit_event(
        db,
        ctx,
        "expense.deleted",
        entity_type="expense",
        entity_id=expense.id,
        contract_id=contract.id,
        before=before,
        after=snapshot(expense, _AUDIT_FIELDS),
    )
    logger.info(
        "expense_deleted",
        extra={"tenant_id": ctx.tenant_id, "contract_id": contract.id, "expense_id": expense.id},
    )


def active_summary(
    db: Session,
    ctx: TenantContext,
    contract_id: str,
    *,
    contract: Optional[models.Contract] = None,
) -> ExpenseSummary:
    # contract - actual: positive while spend is under the contract value.
    if contract is None:
        contract = get_contract(db, ctx, contract_id)
    rows = active_rows(db, ctx, models.Expense, contract.id, cancelled_status=_CANCELLED)
    actual_total = sum_amounts(rows, "amount")
    contract_value = contract.total_value
    diff = None if contract_value is None else Decimal(contract_value) - actual_total
    return ExpenseSummary(
        contract_id=contract.id,
        actual_total=actual_total,
        contract_value=contract_value,
        contract_vs_actual_diff=diff,
        line_count=len(rows),
    )
