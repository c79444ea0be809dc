from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from costcontrol.core.tenancy import TenantContext, get_contract
from costcontrol.schemas import CostSummaryRead
from costcontrol.services import budget_lines, expenses, payments
from costcontrol.services.ledger_rows import sum_amounts


def build_cost_summary(
    db: Session,
    ctx: TenantContext,
    contract_id: str,
    today: Optional[date] = None,
) -> CostSummaryRead:
    """Budget, actuals and payment position of one contract.

    Recomputed from the ledgers on every call; nothing here is cached or
    stored. ``today`` is the reference date for overdue detection.
    """

    today = today or payments.today_utc()
    contract = get_contract(db, ctx, contract_id)

    budget = budget_lines.active_summary(db, ctx, contract.id, contract=contract)
    actual = expenses.active_summary(db, ctx, contract.id, contract=contract)

    active = payments.active_payments(db, ctx, contract.id)
    scheduled_total = sum_amounts(active, "amount")
    paid_total = sum_amounts((p for p in active if p.status == payments.PAID), "amount")
    overdue = [p for p in active if payments.is_overdue(p, today)]

    contract_value = contract.total_value
    remaining_to_schedule = (
        None if contract_value is None else Decimal(contract_value) - scheduled_total
    )

    return CostSummaryRead(
        contract_id=contract.id,
        tenant_id=contract.tenant_id,
        currency=contract.currency,
        as_of=today,
        contract_value=contract_value,
        budget_total=budget.budget_total,
        actual_total=actual.actual_total,
        payments_scheduled_total=scheduled_total,
        payments_paid_total=paid_total,
        remaining_to_schedule=remaining_to_schedule,
        remaining_to_pay=scheduled_total - paid_total,
        budget_vs_contract_diff=budget.budget_vs_contract_diff,
        contract_vs_actual_diff=actual.contract_vs_actual_diff,
        overdue_payments_count=len(overdue),
        overdue_payments_total=sum_amounts(overdue, "amount"),
    )
