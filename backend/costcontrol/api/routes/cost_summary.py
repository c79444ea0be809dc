from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from costcontrol import models
from costcontrol.api.deps import can_view_contract, get_tenant_context
from costcontrol.api.responses import ok
from costcontrol.core.tenancy import TenantContext
from costcontrol.database import get_db
from costcontrol.services.cost_summary import build_cost_summary

router = APIRouter(prefix="/contracts/{contract_id}", tags=["cost-summary"])


@router.get("/cost-summary")
def get_cost_summary(
    contract: models.Contract = Depends(can_view_contract),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
    ctx: TenantContext = Depends(get_tenant_context),  # noqa: B008
):
    return ok(build_cost_summary(db, ctx, contract.id))
