"""Payment schedule for a contract.

The total-value invariant: the active (non-deleted, non-cancelled) payments of
a contract never sum above ``Contract.total_value``. Every sum-then-write runs
under the contract row lock taken by ``get_contract(..., for_update=True)``.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from costcontrol import models
from costcontrol.core.errors import InvalidStatusTransition, PaymentTotalExceeded
from costcontrol.core.tenancy import TenantContext, get_contract, scoped_record, scoped_rows
from costcontrol.models.domain import utcnow
from costcontrol.schemas import PaymentCreate, PaymentRead, PaymentUpdate
from costcontrol.services.audit import audit_event
from costcontrol.services.ledger_rows import (
    ZERO,
    active_rows,
    apply_changes,
    normalize_currency,
    quantize_money,
    reject_nulls,
    snapshot,
    soft_delete,
    stamp_created,
    sum_amounts,
)

logger = logging.getLogger("costcontrol.ledger.payments")

_AUDIT_FIELDS = (
    "name",
    "amount",
    "currency",
    "due_date",
    "paid_at",
    "status",
    "sort_order",
    "deleted_at",
)

PAID = models.PaymentStatus.paid.value
CANCELLED = models.PaymentStatus.cancelled.value
_SETTLED = {PAID, CANCELLED}

# status -> statuses it may move to. Keeping the current status is always allowed.
# A paid payment is final; a cancelled one may be reopened but not paid directly.
_TRANSITIONS = {
    models.PaymentStatus.planned.value: {models.PaymentStatus.due.value, PAID, CANCELLED},
    models.PaymentStatus.due.value: {models.PaymentStatus.planned.value, PAID, CANCELLED},
    PAID: set(),
    CANCELLED: {models.PaymentStatus.planned.value, models.PaymentStatus.due.value},
}


def _guard_transition(payment: models.Payment, to_status: str) -> None:
    from_status = payment.status
    if to_status == from_status or to_status in _TRANSITIONS.get(from_status, set()):
        return
    raise InvalidStatusTransition(
        f"Payment cannot move from {from_status} to {to_status}",
        details={"from_status": from_status, "to_status": to_status},
    )


def today_utc() -> date:
    return datetime.now(timezone.utc).date()


def is_overdue(payment: models.Payment, today: Optional[date] = None) -> bool:
    today = today or today_utc()
    return payment.status not in _SETTLED and payment.due_date < today


def to_read(payment: models.Payment, today: Optional[date] = None) -> PaymentRead:
    out = PaymentRead.model_validate(payment)
    out.is_overdue = is_overdue(payment, today)
    return out


def list_for_contract(db: Session, ctx: TenantContext, contract_id: str) -> list[models.Payment]:
    get_contract(db, ctx, contract_id)
    stmt = scoped_rows(models.Payment, ctx, contract_id).order_by(
        models.Payment.sort_order.asc(),
        models.Payment.due_date.asc(),
        models.Payment.created_at.asc(),
        models.Payment.id.asc(),
    )
    return list(db.execute(stmt).scalars())


def get_payment(db: Session, ctx: TenantContext, contract_id: str, payment_id: str) -> models.Payment:
    contract = get_contract(db, ctx, contract_id)
    return scoped_record(db, ctx, models.Payment, contract, payment_id)


def active_payments(
    db: Session, ctx: TenantContext, contract_id: str
) -> list[models.Payment]:
    return active_rows(db, ctx, models.Payment, contract_id, cancelled_status=CANCELLED)


def _active_payment_total(
    db: Session,
    ctx: TenantContext,
    contract_id: str,
    *,
    exclude_id: Optional[str] = None,
) -> Decimal:
    rows = [p for p in active_payments(db, ctx, contract_id) if p.id != exclude_id]
    return sum_amounts(rows, "amount")


def _check_total_value(
    ctx: TenantContext,
    contract: models.Contract,
    current_total: Decimal,
    amount: Decimal,
) -> None:
    if contract.total_value is None:
        return

    allowed = Decimal(contract.total_value)
    attempted = current_total + Decimal(amount)
    if attempted <= allowed:
        return

    remaining = max(allowed - current_total, ZERO)
    message = (
        f"Total scheduled payments ({attempted}) would exceed the contract value ({allowed})."
    )
    logger.info(
        "payment_total_exceeded",
        extra={
            "tenant_id": ctx.tenant_id,
            "contract_id": contract.id,
            "attempted_total": str(attempted),
            "allowed_total": str(allowed),
        },
    )
    raise PaymentTotalExceeded(
        message,
        details={
            "validation": {
                "amount": {
                    "message": message,
                    "attempted_total": str(attempted),
                    "allowed_total": str(allowed),
                    "scheduled_total": str(current_total),
                    "remaining": str(remaining),
                }
            }
        },
    )


def create_payment(
    db: Session, ctx: TenantContext, contract_id: str, payload: PaymentCreate
) -> models.Payment:
    contract = get_contract(db, ctx, contract_id, for_update=True)

    status = payload.status.value
    if status != CANCELLED:
        current = _active_payment_total(db, ctx, contract.id)
        _check_total_value(ctx, contract, current, payload.amount)

    paid_at = payload.paid_at
    if status == PAID and paid_at is None:
        paid_at = utcnow()

    payment = models.Payment(
        name=payload.name,
        amount=quantize_money(payload.amount),
        currency=normalize_currency(payload.currency),
        due_date=payload.due_date,
        paid_at=paid_at,
        status=status,
        sort_order=payload.sort_order,
        notes=payload.notes,
    )
    stamp_created(payment, ctx, contract)
    db.add(payment)
    db.flush()

    audit_event(
        db,
        ctx,
        "payment.created",
        entity_type="payment",
        entity_id=payment.id,
        contract_id=contract.id,
        after=snapshot(payment, _AUDIT_FIELDS),
    )
    logger.info(
        "payment_created",
        extra={
            "tenant_id": ctx.tenant_id,
            "contract_id": contract.id,
            "payment_id": payment.id,
            "amount": str(payment.amount),
        },
    )
    return payment


def update_payment(
    db: Session,
    ctx: TenantContext,
    contract_id: str,
    payment_id: str,
    payload: PaymentUpdate,
) -> models.Payment:
    contract = get_contract(db, ctx, contract_id, for_update=True)
    payment = scoped_record(db, ctx, models.Payment, contract, payment_id, for_update=True)

    changes = payload.model_dump(exclude_unset=True)
    reject_nulls(changes, ("name", "amount", "currency", "due_date", "status", "sort_order"))

    new_status = changes["status"].value if "status" in changes else payment.status
    _guard_transition(payment, new_status)
    new_amount = changes.get("amount", payment.amount)

    if new_status != CANCELLED:
        current = _active_payment_total(db, ctx, contract.id, exclude_id=payment.id)
        _check_total_value(ctx, contract, current, new_amount)

    before = snapshot(payment, _AUDIT_FIELDS)
    apply_changes(payment, changes)
    if new_status == PAID and payment.paid_at is None:
        payment.paid_at = utcnow()
    payment.updated_by = ctx.actor_id
    db.flush()

    audit_event(
        db,
        ctx,
        "payment.updated",
        entity_type="payment",
        entity_id=payment.id,
        contract_id=contract.id,
        before=before,
        after=snapshot(payment, _AUDIT_FIELDS),
    )
    logger.info(
        "payment_updated",
        extra={
            "tenant_id": ctx.tenant_id,
            "contract_id": contract.id,
            "payment_id": payment.id,
            "fields": sorted(changes),
        },
    )
    return payment


def mark_paid(
    db: Session,
    ctx: TenantContext,
    contract_id: str,
    payment_id: str,
    paid_at: Optional[datetime] = None,
) -> models.Payment:
    """planned/due -> paid. A paid or cancelled payment cannot be marked again."""

    contract = get_contract(db, ctx, contract_id, for_update=True)
    payment = scoped_record(db, ctx, models.Payment, contract, payment_id, for_update=True)

    if payment.status == PAID:
        raise InvalidStatusTransition(
            "Payment is already marked as paid", code="PAYMENT_ALREADY_PAID"
        )
    _guard_transition(payment, PAID)

    before = snapshot(payment, _AUDIT_FIELDS)
    payment.status = PAID
    payment.paid_at = paid_at or utcnow()
    payment.updated_by = ctx.actor_id
    db.flush()

    audit_event(
        db,
        ctx,
        "payment.marked_paid",
        entity_type="payment",
        entity_id=payment.id,
        contract_id=contract.id,
        before=before,
        after=snapshot(payment, _AUDIT_FIELDS),
    )
    logger.info(
        "payment_marked_paid",
        extra={"tenant_id": ctx.tenant_id, "contract_id": contract.id, "payment_id": payment.id},
    )
    return payment


def delete_payment(db: Session, ctx: TenantContext, contract_id: str, payment_id: str) -> None:
    contract = get_contract(db, ctx, contract_id, for_update=True)
    payment = scoped_record(db, ctx, models.Payment, contract, payment_id, for_update=True)
    before = snapshot(payment, _AUDIT_FIELDS)

    soft_delete(payment, ctx)
    db.flush()

    audit_event(
        db,
        ctx,
        "payment.deleted",
        entity_type="payment",
        entity_id=payment.id,
        contract_id=contract.id,
        before=before,
        after=snapshot(payment, _AUDIT_FIELDS),
    )
    logger.info(
        "payment_deleted",
        extra={"tenant_id": ctx.tenant_id, "contract_id": contract.id, "payment_id": payment.id},
    )
