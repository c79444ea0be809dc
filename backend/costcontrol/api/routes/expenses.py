from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from costcontrol import models
from costcontrol.api.deps import can_manage_contract, can_view_contract, get_tenant_context
from costcontrol.api.responses import ok, run_idempotent, run_write
from costcontrol.core.tenancy import TenantContext
from costcontrol.database import get_db
from costcontrol.schemas import (
    ExpenseCreate,
    ExpenseRead,
    ExpenseSummaryRead,
    ExpenseUpdate,
)
from costcontrol.services import expenses

router = APIRouter(prefix="/contracts/{contract_id}/expenses", tags=["expenses"])

_DB_DEP = Depends(get_db)
_CTX_DEP = Depends(get_tenant_context)
_VIEW_DEP = Depends(can_view_contract)
_MANAGE_DEP = Depends(can_manage_contract)


@router.get("")
def list_expenses(
    contract: models.Contract = _VIEW_DEP,
    db: Session = _DB_DEP,
    ctx: TenantContext = _CTX_DEP,
):
    rows = expenses.list_for_contract(db, ctx, contract.id)
    return ok([ExpenseRead.model_validate(r) for r in rows])


@router.get("/summary")
def expenses_summary(
    contract: models.Contract = _VIEW_DEP,
    db: Session = _DB_DEP,
    ctx: TenantContext = _CTX_DEP,
):
    summary = expenses.active_summary(db, ctx, contract.id, contract=contract)
    return ok(ExpenseSummaryRead.model_validate(summary, from_attributes=True))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_expense(
    payload: ExpenseCreate,
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
        lambda: ExpenseRead.model_validate(expenses.create_expense(db, ctx, contract.id, payload)),
        status_code=status.HTTP_201_CREATED,
    )


@router.get("/{expense_id}")
def get_expense(
    expense_id: str,
    contract: models.Contract = _VIEW_DEP,
    db: Session = _DB_DEP,
    ctx: TenantContext = _CTX_DEP,
):
    return ok(ExpenseRead.model_validate(expenses.get_expense(db, ctx, contract.id, expense_id)))


@router.put("/{expense_id}")
@router.patch("/{expense_id}")
def update_expense(
    expense_id: str,
    payload: ExpenseUpdate,
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
        lambda: ExpenseRead.model_validate(
            expenses.update_expense(db, ctx, contract.id, expense_id, payload)
        ),
    )


@router.delete("/{expense_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_expense(
    expense_id: str,
    contract: models.Contract = _MANAGE_DEP,
    db: Session = _DB_DEP,
    ctx: TenantContext = _CTX_DEP,
):
    run_write(db, lambda: expenses.delete_expense(db, ctx, contract.id, expense_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
