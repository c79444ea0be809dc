from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from costcontrol.api.deps import can_view_tenant
from costcontrol.core.tenancy import TenantContext
from costcontrol.database import get_db
from costcontrol.services.contract_export import build_export_rows, export_rows_to_csv

router = APIRouter(prefix="/contracts", tags=["exports"])

logger = logging.getLogger("costcontrol.exports")


@router.get("/export")
def export_contract_ledgers(
    contract_id: Optional[str] = Query(None, min_length=1, max_length=36),  # noqa: B008
    db: Session = Depends(get_db),  # noqa: B008
    ctx: TenantContext = Depends(can_view_tenant),  # noqa: B008
):
    rows = build_export_rows(db, ctx, contract_id=contract_id)
    logger.info(
        "contract_ledger_export",
        extra={"tenant_id": ctx.tenant_id, "contract_id": contract_id, "rows": len(rows)},
    )
    filename = f"contract-{contract_id}-ledger.csv" if contract_id else "contracts-ledger.csv"
    return Response(
        content=export_rows_to_csv(rows),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )
