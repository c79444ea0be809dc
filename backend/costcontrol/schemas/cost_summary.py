from datetime import date
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class CostSummaryRead(BaseModel):
    contract_id: str
    tenant_id: str
    currency: str
    as_of: date

    contract_value: Optional[Decimal] = None
    budget_total: Decimal
    actual_total: Decimal
    payments_scheduled_total: Decimal
    payments_paid_total: Decimal
    remaining_to_schedule: Optional[Decimal] = None
    remaining_to_pay: Decimal
    budget_vs_contract_diff: Optional[Decimal] = None
    contract_vs_actual_diff: Optional[Decimal] = None
    overdue_payments_count: int
    overdue_payments_total: Decimal
