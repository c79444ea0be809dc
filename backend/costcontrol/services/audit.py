from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from costcontrol import models
from costcontrol.core.tenancy import TenantContext


def audit_event(
    db: Session,
    ctx: TenantContext,
    action: str,
    *,
    entity_type: str,
    entity_id: str,
    contract_id: Optional[str] = None,
    before: Optional[Dict[str, Any]] = None,
    after: Optional[Dict[str, Any]] = None,
) -> models.AuditLog:
    """
    Append an audit row to the caller's transaction.

    The row is flushed but not committed: it lands together with the ledger
    write it describes, or not at all.
    """
    log = models.AuditLog(
        tenant_id=ctx.tenant_id,
        actor_id=ctx.actor_id,
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        contract_id=contract_id,
        before=before,
        after=after,
        request_id=ctx.request_id,
    )
    db.add(log)
    db.flush()
    return log
