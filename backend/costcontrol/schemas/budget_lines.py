from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from costcontrol.models.domain import BudgetLineStatus
from costcontrol.schemas.common import CURRENCY_PATTERN, money_field, quantity_field


class BudgetLineCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    quantity: Optional[Decimal] = quantity_field()
    unit: Optional[str] = Field(None, max_length=32)
    unit_price: Optional[Decimal] = quantity_field()
    # Omitted: derived from quantity * unit_price when both are given.
    total_amount: Optional[Decimal] = money_field()
    currency: Optional[str] = Field(None, pattern=CURRENCY_PATTERN)
    status: BudgetLineStatus = BudgetLineStatus.planned
    notes: Optional[str] = None


class BudgetLineUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    quantity: Optional[Decimal] = quantity_field()
    unit: Optional[str] = Field(None, max_length=32)
    unit_price: Optional[Decimal] = quantity_field()
    total_amount: Optional[Decimal] = money_field()
    currency: Optional[str] = Field(None, pattern=CURRENCY_PATTERN)
    status: Optional[BudgetLineStatus] = None
    notes: Optional[str] = None


class BudgetLineRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    contract_id: str
    name: str
    quantity: Optional[Decimal] = None
    unit: Optional[str] = None
    unit_price: Optional[Decimal] = None
    total_amount: Decimal
    currency: str
    status: BudgetLineStatus
    notes: Optional[str] = None
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class BudgetSummaryRead(BaseModel):
    contract_id: str
    budget_total: Decimal
    contract_value: Optional[Decimal] = None
    # budget - contract; None while the contract value is not set.
    budget_vs_contract_diff: Optional[Decimal] = None
    active_line_count: int
