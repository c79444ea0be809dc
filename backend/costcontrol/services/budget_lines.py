from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from costcontrol import models
from costcontrol.core.errors import ValidationFailed
from costcontrol.core.tenancy import TenantContext, get_contract, scoped_record, scoped_rows
from costcontrol.schemas import BudgetLineCreate, BudgetLineUpdate
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

logger = logging.getLogger("costcontrol.ledger.budget_lines")

_AUDIT_FIELDS = (
    "name",
    "quantity",
    "unit",
    "unit_price",
    "total_amount",
    "currency",
    "status",
    "deleted_at",
)
_CANCELLED = models.BudgetLineStatus.cancelled.value


@dataclass(frozen=True)
class BudgetSummary:
    contract_id: str
    budget_total: Decimal
    contract_value: Optional[Decimal]
    budget_vs_contract_diff: Optional[Decimal]
    active_line_count: int


def list_for_contract(db: Session, ctx: TenantContext, contract_id: str) -> list[models.BudgetLine]:
    get_contract(db, ctx, contract_id)
    stmt = scoped_rows(models.BudgetLine, ctx, contract_id).order_by(
        models.BudgetLine.created_at.asc(), models.BudgetLine.id.asc()
    )
    return list(db.execute(stmt).scalars())


def get_line(db: Session, ctx: TenantContext, contract_id: str, line_id: str) -> models.BudgetLine:
    contract = get_contract(db, ctx, contract_id)
    return scoped_record(db, ctx, models.BudgetLine, contract, line_id)


def create_line(
    db: Session, ctx: TenantContext, contract_id: str, payload: BudgetLineCreate
) -> models.BudgetLine:
    contract = get_contract(db, ctx, contract_id, for_update=True)

    total = payload.total_amount
    if total is None:
        total = derive_total(payload.quantity, payload.unit_price)
    if total is None:
        raise ValidationFailed.for_field(
            "total_amount",
            "The total_amount field is required unless quantity and unit_price are both given.",
        )

    line = models.BudgetLine(
        name=payload.name,
        quantity=payload.quantity,
        unit=payload.unit,
        unit_price=payload.unit_price,
        total_amount=quantize_money(total),
        currency=normalize_currency(payload.currency),
        status=payload.status.value,
        notes=payload.notes,
    )
    stamp_created(line, ctx, contract)
    db.add(line)
    db.flush()

    audit_event(
        db,
        ctx,
        "budget_line.created",
        entity_type="budget_line",
        entity_id=line.id,
        contract_id=contract.id,
        after=snapshot(line, _AUDIT_FIELDS),
    )
    logger.info(
        "budget_line_created",
        extra={"tenant_id": ctx.tenant_id, "contract_id": contract.id, "line_id": line.id},
    )
    return line


def update_line(
    db: Session,
    ctx: TenantContext,
    contract_id: str,
    line_id: str,
    payload: BudgetLineUpdate,
) -> models.BudgetLine:
    contract = get_contract(db, ctx, contract_id, for_update=True)
    line = scoped_record(db, ctx, models.BudgetLine, contract, line_id, for_update=True)

    changes = payload.model_dump(exclude_unset=True)
    reject_nulls(changes, ("name", "total_amount", "currency", "status"))
    before = snapshot(line, _AUDIT_FIELDS)

    apply_changes(line, changes)
    if "total_amount" not in changes and {"quantity", "unit_price"} & changes.keys():
        derived = derive_total(line.quantity, line.unit_price)
        if derived is not None:
            line.total_amount = derived
    line.updated_by = ctx.actor_id
    db.flush()

    audit_event(
        db,
        ctx,
        "budget_line.updated",
        entity_type="budget_line",
        entity_id=line.id,
        contract_id=contract.id,
        before=before,
        after=snapshot(line, _AUDIT_FIELDS),
    )
    logger.info(
        "budget_line_updated",
        extra={
            "tenant_id": ctx.tenant_id,
            "contract_id": contract.id,
            "line_id": line.id,
            "fields": sorted(changes),
        },
    )
    return line


def delete_line(db: Session, ctx: TenantContext, contract_id: str, line_id: str) -> None:
    contract = get_contract(db, ctx, contract_id, for_update=True)
    line = scoped_record(db, ctx, models.BudgetLine, contract, line_id, for_update=True)
    before = snapshot(line, _AUDIT_FIELDS)

    soft_delete(line, ctx)
    db.flush()

    audit_event(
        db,
        ctx,
        "budget_line.deleted",
        entity_type="budget_line",
        entity_id=line.id,
        contract_id=contract.id,
        before=before,
        after=snapshot(line, _AUDIT_FIELDS),
    )
    logger.info(
        "budget_line_deleted",
        extra={"tenant_id": ctx.tenant_id, "contract_id": contract.id, "line_id": line.id},
    )


def active_summary(
    db: Session,
    ctx: TenantContext,
    contract_id: str,
    *,
    contract: Optional[models.Contract] = None,
) -> BudgetSummary:
    """Budget totals over active lines.

    Budget lines may exceed the contract value; the diff is informational and
    is budget minus contract (None while the contract value is unset).
    """

    if contract is None:
        contract = get_contract(db, ctx, contract_id)
    rows = active_rows(db, ctx, models.BudgetLine, contract.id, cancelled_status=_CANCELLED)
    budget_total = sum_amounts(rows, "total_amount")
    contract_value = contract.total_value
    diff = None if contract_value is None else budget_total - Decimal(contract_value)
    return BudgetSummary(
        contract_id=contract.id,
        budget_total=budget_total,
        contract_value=contract_value,
        budget_vs_contract_diff=diff,
        active_line_count=len(rows),
    )
