from typing import Optional

from fastapi import APIRouter, Body, Depends, Request, Response, status
from sqlalchemy.orm import Session

from costcontrol import models
from costcontrol.api.deps import can_manage_contract, can_view_contract, get_tenant_context
from costcontrol.api.responses import ok, run_idempotent, run_write
from costcontrol.core.tenancy import TenantContext
from costcontrol.database import get_db
from costcontrol.schemas import PaymentCreate, PaymentMarkPaid, PaymentUpdate
from costcontrol.services import payments

router = APIRouter(prefix="/contracts/{contract_id}/payments", tags=["payments"])

_DB_DEP = Depends(get_db)
_CTX_DEP = Depends(get_tenant_context)
_VIEW_DEP = Depends(can_view_contract)
_MANAGE_DEP = Depends(can_manage_contract)


@router.get("")
def list_payments(
    contract: models.Contract = _VIEW_DEP,
    db: Session = _DB_DEP,
    ctx: TenantContext = _CTX_DEP,
):
    today = payments.today_utc()
    rows = payments.list_for_contract(db, ctx, contract.id)
    return ok([payments.to_read(r, today) for r in rows])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_payment(
    payload: PaymentCreate,
    request: Request,
    contract: models.Contract = _MANAGE_DEP,
    db: Session = _DB_DEP,
    ctx: TenantContext = _CTX_DEP,
):
    return run_idempotent(
        request,
        db,
        ctx,
        payload,
        lambda: payments.to_read(payments.create_payment(db, ctx, contract.id, payload)),
        status_code=status.HTTP_201_CREATED,
    )


@router.get("/{payment_id}")
def get_payment(
    payment_id: str,
    contract: models.Contract = _VIEW_DEP,
    db: Session = _DB_DEP,
    ctx: TenantContext = _CTX_DEP,
):
    return ok(payments.to_read(payments.get_payment(db, ctx, contract.id, payment_id)))


@router.put("/{payment_id}")
@router.patch("/{payment_id}")
def update_payment(
    payment_id: str,
    payload: PaymentUpdate,
    request: Request,
    contract: models.Contract = _MANAGE_DEP,
    db: Session = _DB_DEP,
    ctx: TenantContext = _CTX_DEP,
):
    return run_idempotent(
        request,
        db,
        ctx,
        payload,
        lambda: payments.to_read(
            payments.update_payment(db, ctx, contract.id, payment_id, payload)
        ),
    )


@router.post("/{payment_id}/mark-paid")
def mark_payment_paid(
    payment_id: str,
    request: Request,
    payload: Optional[PaymentMarkPaid] = Body(None),
    contract: models.Contract = _MANAGE_DEP,
    db: Session = _DB_DEP,
    ctx: TenantContext = _CTX_DEP,
):
    payload = payload or PaymentMarkPaid()
    return run_idempotent(
        request,
        db,
        ctx,
        payload,
        lambda: payments.to_read(
            payments.mark_paid(db, ctx, contract.id, payment_id, paid_at=payload.paid_at)
        ),
    )


@router.delete("/{payment_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_payment(
    payment_id: str,
    contract: models.Contract = _MANAGE_DEP,
    db: Session = _DB_DEP,
    ctx: TenantContext = _CTX_DEP,
):
    run_write(db, lambda: payments.delete_payment(db, ctx, contract.id, payment_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
