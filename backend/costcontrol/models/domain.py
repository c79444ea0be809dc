# ruff: noqa: E501
import uuid
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum as PyEnum

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, declared_attr, mapped_column, validates

from costcontrol.database import Base

# Money is stored at cent precision; quantities and unit prices keep four places.
MONEY = Numeric(18, 2, asdecimal=True)
QUANTITY = Numeric(18, 4, asdecimal=True)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


class BudgetLineStatus(PyEnum):
    planned = "planned"
    approved = "approved"
    cancelled = "cancelled"


class ExpenseStatus(PyEnum):
    recorded = "recorded"
    approved = "approved"
    cancelled = "cancelled"


class PaymentStatus(PyEnum):
    planned = "planned"
    due = "due"
    paid = "paid"
    cancelled = "cancelled"


class Contract(Base):
    """Contract header owned by the contracts module; the ledger only reads it."""

    __tablename__ = "contracts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    code: Mapped[str | None] = mapped_column(String(64))
    name: Mapped[str | None] = mapped_column(String(255))
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")
    # NULL means the value is not finalized yet: no payment ceiling.
    total_value: Mapped[Decimal | None] = mapped_column(MONEY, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class LedgerRowMixin:
    """Columns shared by budget lines, expenses and payments."""

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    notes: Mapped[str | None] = mapped_column(Text)

    created_by: Mapped[str | None] = mapped_column(String(64))
    updated_by: Mapped[str | None] = mapped_column(String(64))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )
    # Soft-delete tombstone.
    deleted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    @declared_attr
    def contract_id(cls) -> Mapped[str]:
        return mapped_column(ForeignKey("contracts.id"), nullable=False)

    @declared_attr.directive
    def __table_args__(cls):
        return (
            Index(f"ix_{cls.__tablename__}_tenant_contract", "tenant_id", "contract_id"),
        )


class BudgetLine(LedgerRowMixin, Base):
    __tablename__ = "contract_budget_lines"

    quantity: Mapped[Decimal | None] = mapped_column(QUANTITY)
    unit: Mapped[str | None] = mapped_column(String(32))
    unit_price: Mapped[Decimal | None] = mapped_column(QUANTITY)
    total_amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=BudgetLineStatus.planned.value
    )

    @validates("status")
    def _validate_status(self, _key, value: str | BudgetLineStatus | None):
        return _coerce_status(BudgetLineStatus, value, BudgetLineStatus.planned)


class Expense(LedgerRowMixin, Base):
    __tablename__ = "contract_expenses"

    quantity: Mapped[Decimal | None] = mapped_column(QUANTITY)
    unit: Mapped[str | None] = mapped_column(String(32))
    unit_cost: Mapped[Decimal | None] = mapped_column(QUANTITY)
    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    incurred_on: Mapped[date | None] = mapped_column(Date)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=ExpenseStatus.recorded.value
    )

    @validates("status")
    def _validate_status(self, _key, value: str | ExpenseStatus | None):
        return _coerce_status(ExpenseStatus, value, ExpenseStatus.recorded)


class Payment(LedgerRowMixin, Base):
    __tablename__ = "contract_payments"

    amount: Mapped[Decimal] = mapped_column(MONEY, nullable=False)
    due_date: Mapped[date] = mapped_column(Date, nullable=False)
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=PaymentStatus.planned.value
    )
    sort_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @validates("status")
    def _validate_status(self, _key, value: str | PaymentStatus | None):
        return _coerce_status(PaymentStatus, value, PaymentStatus.planned)


def _coerce_status(enum_cls: type[PyEnum], value, default: PyEnum) -> str:
    if value is None:
        return default.value
    if isinstance(value, enum_cls):
        return value.value
    allowed = {s.value for s in enum_cls}
    if value not in allowed:
        raise ValueError(f"Invalid {enum_cls.__name__} value: {value}")
    return value


class IdempotencyKey(Base):
    __tablename__ = "idempotency_keys"

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "endpoint",
            "key",
            name="uq_idempotency_keys_tenant_endpoint_key",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False)
    # "<METHOD> <path>" of the mutating request, e.g. "POST /contracts/<id>/payments".
    endpoint: Mapped[str] = mapped_column(String(255), nullable=False)
    key: Mapped[str] = mapped_column(String(128), nullable=False)
    request_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)
    response_body: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)


class AuditLog(Base):
    __tablename__ = "audit_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tenant_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    actor_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity_type: Mapped[str] = mapped_column(String(32), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    contract_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    before: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    request_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )
