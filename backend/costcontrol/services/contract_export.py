from __future__ import annotations

import csv
import io
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from costcontrol import models
from costcontrol.core.tenancy import TenantContext, get_contract, not_deleted

EXPORT_COLUMNS = [
    "kind",
    "id",
    "contract_id",
    "contract_code",
    "name",
    "status",
    "currency",
    "amount",
    "quantity",
    "unit_price",
    "due_date",
    "paid_at",
    "created_at",
    "incurred_on",
]


@dataclass(frozen=True)
class ExportRow:
    kind: str
    id: str
    contract_id: str
    contract_code: Optional[str]
    name: str
    status: str
    currency: str
    amount: Decimal
    quantity: Optional[Decimal] = None
    unit_price: Optional[Decimal] = None
    due_date: Optional[date] = None
    paid_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    incurred_on: Optional[date] = None


def _active(db: Session, ctx: TenantContext, model, cancelled: str, contract_id: Optional[str]):
    stmt = (
        select(model, models.Contract.code)
        .join(models.Contract, models.Contract.id == model.contract_id)
        .where(
            model.tenant_id == ctx.tenant_id,
            models.Contract.tenant_id == ctx.tenant_id,
            not_deleted(model),
            not_deleted(models.Contract),
            model.status != cancelled,
        )
        .order_by(model.contract_id.asc(), model.created_at.asc(), model.id.asc())
    )
    if contract_id is not None:
        stmt = stmt.where(model.contract_id == contract_id)
    return db.execute(stmt).all()


def build_export_rows(
    db: Session, ctx: TenantContext, contract_id: Optional[str] = None
) -> List[ExportRow]:
    """Active budget lines, payments and expenses of the tenant, flattened.

    With ``contract_id`` the dump is limited to that contract (404 when it is
    not visible to the tenant).
    """

    if contract_id is not None:
        contract_id = get_contract(db, ctx, contract_id).id

    rows: List[ExportRow] = []
    for line, code in _active(
        db, ctx, models.BudgetLine, models.BudgetLineStatus.cancelled.value, contract_id
    ):
        rows.append(
            ExportRow(
                kind="budget_line",
                id=line.id,
                contract_id=line.contract_id,
                contract_code=code,
                name=line.name,
                status=line.status,
                currency=line.currency,
                amount=line.total_amount,
                quantity=line.quantity,
                unit_price=line.unit_price,
                created_at=line.created_at,
            )
        )
    for payment, code in _active(
        db, ctx, models.Payment, models.PaymentStatus.cancelled.value, contract_id
    ):
        rows.append(
            ExportRow(
                kind="payment",
                id=payment.id,
                contract_id=payment.contract_id,
                contract_code=code,
                name=payment.name,
                status=payment.status,
                currency=payment.currency,
                amount=payment.amount,
                due_date=payment.due_date,
                paid_at=payment.paid_at,
                created_at=payment.created_at,
            )
        )
    for expense, code in _active(
        db, ctx, models.Expense, models.ExpenseStatus.cancelled.value, contract_id
    ):
        rows.append(
            ExportRow(
                kind="expense",
                id=expense.id,
                contract_id=expense.contract_id,
                contract_code=code,
                name=expense.name,
                status=expense.status,
                currency=expense.currency,
                amount=expense.amount,
                quantity=expense.quantity,
                unit_price=expense.unit_cost,
                created_at=expense.created_at,
                incurred_on=expense.incurred_on,
            )
        )
    return rows


def _cell(value) -> str:
    if value is None:
        return ""
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return str(value)


def export_rows_to_csv(rows: Iterable[ExportRow]) -> str:
    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow(EXPORT_COLUMNS)
    for r in rows:
        writer.writerow([_cell(getattr(r, col)) for col in EXPORT_COLUMNS])
    return output.getvalue()
