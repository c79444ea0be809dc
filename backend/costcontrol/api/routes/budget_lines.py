from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from costcontrol import models
from costcontrol.api.deps import can_manage_contract, can_view_contract, get_tenant_context
from costcontrol.api.responses import ok, run_idempotent, run_write
from costcontrol.core.tenancy import TenantContext
from costcontrol.database import get_db
from costcontrol.schemas import (
    BudgetLineCreate,
    BudgetLineRead,
    BudgetLineUpdate,
    BudgetSummaryRead,
)
from costcontrol.services import budget_lines

router = APIRouter(prefix="/contracts/{contract_id}/budget-lines", tags=["budget-lines"])

_DB_DEP = Depends(get_db)
_CTX_DEP = Depends(get_tenant_context)
_VIEW_DEP = Depends(can_view_contract)
_MANAGE_DEP = Depends(can_manage_contract)


@router.get("")
def list_budget_lines(
    contract: models.Contract = _VIEW_DEP,
    db: Session = _DB_DEP,
    ctx: TenantContext = _CTX_DEP,
):
    rows = budget_lines.list_for_contract(db, ctx, contract.id)
    return ok([BudgetLineRead.model_validate(r) for r in rows])


@router.get("/summary")
def budget_lines_summary(
    contract: models.Contract = _VIEW_DEP,
    db: Session = _DB_DEP,
    ctx: TenantContext = _CTX_DEP,
):
    summary = budget_lines.active_summary(db, ctx, contract.id, contract=contract)
    return ok(BudgetSummaryRead.model_validate(summary, from_attributes=True))


@router.post("", status_code=status.HTTP_201_CREATED)
def create_budget_line(
    payload: BudgetLineCreate,
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
        lambda: BudgetLineRead.model_validate(
            budget_lines.create_line(db, ctx, contract.id, payload)
        ),
        status_code=status.HTTP_201_CREATED,
    )


@router.get("/{line_id}")
def get_budget_line(
    line_id: str,
    contract: models.Contract = _VIEW_DEP,
    db: Session = _DB_DEP,
    ctx: TenantContext = _CTX_DEP,
):
    return ok(BudgetLineRead.model_validate(budget_lines.get_line(db, ctx, contract.id, line_id)))


@router.put("/{line_id}")
@router.patch("/{line_id}")
def update_budget_line(
    line_id: str,
    payload: BudgetLineUpdate,
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
        lambda: BudgetLineRead.model_validate(
            budget_lines.update_line(db, ctx, contract.id, line_id, payload)
        ),
    )


@router.delete("/{line_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_budget_line(
    line_id: str,
    contract: models.Contract = _MANAGE_DEP,
    db: Session = _DB_DEP,
    ctx: TenantContext = _CTX_DEP,
):
    run_write(db, lambda: budget_lines.delete_line(db, ctx, contract.id, line_id))
    return Response(status_code=status.HTTP_204_NO_CONTENT)
