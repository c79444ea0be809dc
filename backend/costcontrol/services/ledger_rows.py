"""Mechanics shared by the budget-line, expense and payment ledgers."""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import Any, Iterable, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from costcontrol import models
from costcontrol.core.errors import ValidationFailed
from costcontrol.core.tenancy import TenantContext, scoped_rows
from costcontrol.models.domain import utcnow

ZERO = Decimal("0.00")
CENT = Decimal("0.01")


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def derive_total(quantity: Optional[Decimal], unit_price: Optional[Decimal]) -> Optional[Decimal]:
    """quantity * unit price, or None unless both are present."""

    if quantity is None or unit_price is None:
        return None
    return quantize_money(Decimal(quantity) * Decimal(unit_price))


def normalize_currency(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    s = str(value).strip().upper()
    return s or None


def sum_amounts(rows: Iterable[Any], attr: str) -> Decimal:
    return quantize_money(sum((Decimal(getattr(r, attr)) for r in rows), ZERO))


def active_rows(
    db: Session,
    ctx: TenantContext,
    model,
    contract_id: str,
    *,
    cancelled_status: str,
) -> list:
    """Non-deleted, non-cancelled rows of one contract."""

    stmt = scoped_rows(model, ctx, contract_id).where(model.status != cancelled_status)
    return list(db.execute(stmt).scalars())


def reject_nulls(changes: Mapping[str, Any], fields: Sequence[str]) -> None:
    errors = {
        f: [f"The {f} field may not be null."]
        for f in fields
        if f in changes and changes[f] is None
    }
    if errors:
        raise ValidationFailed(details={"validation": errors})


MONEY_FIELDS = frozenset({"amount", "total_amount"})


def apply_changes(row: Any, changes: Mapping[str, Any]) -> None:
    for field, value in changes.items():
        if isinstance(value, Enum):
            value = value.value
        if field in MONEY_FIELDS and value is not None:
            value = quantize_money(value)
        if field == "currency":
            value = normalize_currency(value)
        setattr(row, field, value)


def snapshot(row: Any, fields: Sequence[str]) -> dict[str, Any]:
    """JSON-safe copy of selected columns, for the audit trail."""

    out: dict[str, Any] = {}
    for field in fields:
        value = getattr(row, field, None)
        if isinstance(value, Decimal):
            value = format(value, "f")
        elif isinstance(value, (datetime, date)):
            value = value.isoformat()
        elif isinstance(value, Enum):
            value = value.value
        out[field] = value
    return out


def stamp_created(row: Any, ctx: TenantContext, contract: models.Contract) -> None:
    row.tenant_id = ctx.tenant_id
    row.contract_id = contract.id
    row.created_by = ctx.actor_id
    row.updated_by = ctx.actor_id
    if not getattr(row, "currency", None):
        # Inherited once at creation; later contract currency changes do not propagate.
        row.currency = contract.currency


def soft_delete(row: Any, ctx: TenantContext) -> None:
    row.deleted_at = utcnow()
    row.updated_by = ctx.actor_id
