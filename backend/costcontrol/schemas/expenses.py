from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from costcontrol.models.domain import ExpenseStatus
from costcontrol.schemas.common import CURRENCY_PATTERN, money_field, quantity_field


class ExpenseCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    quantity: Optional[Decimal] = quantity_field()
    unit: Optional[str] = Field(None, max_length=32)
    unit_cost: Optional[Decimal] = quantity_field()
    amount: Optional[Decimal] = money_field()
    currency: Optional[str] = Field(None, pattern=CURRENCY_PATTERN)
    status: ExpenseStatus = ExpenseStatus.recorded
    incurred_on: Optional[date] = None
    notes: Optional[str] = None


class ExpenseUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    quantity: Optional[Decimal] = quantity_field()
    unit: Optional[str] = Field(None, max_length=32)
    unit_cost: Optional[Decimal] = quantity_field()
    amount: Optional[Decimal] = money_field()
    currency: Optional[str] = Field(None, pattern=CURRENCY_PATTERN)
    status: Optional[ExpenseStatus] = None
    incurred_on: Optional[date] = None
    notes: Optional[str] = None


class ExpenseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    contract_id: str
    name: str
    quantity: Optional[Decimal] = None
    unit: Optional[str] = None
    unit_cost: Optional[Decimal] = None
    amount: Decimal
    currency: str
    status: ExpenseStatus
    incurred_on: Optional[date] = None
    notes: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ExpenseSummaryRead(BaseModel):
    contract_id: str
    actual_total: Decimal
    contract_value: Optional[Decimal] = None
    # contract - actual (note: opposite sign convention to the budget diff).
    contract_vs_actual_diff: Optional[Decimal] = None
    line_count: int
