from datetime import date, datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from costcontrol.models.domain import PaymentStatus
from costcontrol.schemas.common import CURRENCY_PATTERN, money_field


class PaymentCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    amount: Decimal = money_field(...)
    currency: Optional[str] = Field(None, pattern=CURRENCY_PATTERN)
    due_date: date
    paid_at: Optional[datetime] = None
    status: PaymentStatus = PaymentStatus.planned
    sort_order: int = 0
    notes: Optional[str] = None


class PaymentUpdate(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=255)
    amount: Optional[Decimal] = money_field()
    currency: Optional[str] = Field(None, pattern=CURRENCY_PATTERN)
    due_date: Optional[date] = None
    paid_at: Optional[datetime] = None
    status: Optional[PaymentStatus] = None
    sort_order: Optional[int] = None
    notes: Optional[str] = None


class PaymentRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    tenant_id: str
    contract_id: str
    name: str
    amount: Decimal
    currency: str
    due_date: date
    paid_at: Optional[datetime] = None
    status: PaymentStatus
    sort_order: int
    notes: Optional[str] = None
    # Derived at read time, never stored.
    is_overdue: bool = False
    created_by: Optional[str] = None
    updated_by: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class PaymentMarkPaid(BaseModel):
    # Defaults to now when omitted.
    paid_at: Optional[datetime] = None
