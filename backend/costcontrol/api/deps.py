from typing import Callable, Optional

from fastapi import Depends, HTTPException, Path, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from costcontrol import models
from costcontrol.core.permissions import Capability, PermissionGate
from costcontrol.core.security import principal_from_token
from costcontrol.core.tenancy import Principal, TenantContext, get_contract
from costcontrol.database import get_db

bearer_scheme = HTTPBearer(auto_error=False)

_DB_DEP = Depends(get_db)
_BEARER_DEP = Depends(bearer_scheme)


def _extract_bearer_from_headers(request: Request) -> Optional[str]:
    # Some hosting layers strip/override the standard Authorization header.
    raw = request.headers.get("authorization") or request.headers.get("x-authorization")
    if not raw:
        return None
    s = str(raw).strip()
    if not s:
        return None
    if s.lower().startswith("bearer "):
        return s.split(" ", 1)[1].strip()
    return s


def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = _BEARER_DEP,
) -> Principal:
    token = credentials.credentials if credentials else _extract_bearer_from_headers(request)
    if not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")

    principal = principal_from_token(token)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return principal


_PRINCIPAL_DEP = Depends(get_current_principal)


def get_tenant_context(request: Request, principal: Principal = _PRINCIPAL_DEP) -> TenantContext:
    """The tenant comes from the token; it is never read from the URL or body."""

    return TenantContext(
        tenant_id=principal.tenant_id,
        principal=principal,
        request_id=getattr(request.state, "request_id", None),
    )


_CTX_DEP = Depends(get_tenant_context)


def get_permission_gate(request: Request) -> PermissionGate:
    return request.app.state.permission_gate


_GATE_DEP = Depends(get_permission_gate)


def require_capability(capability: Capability) -> Callable:
    """Tenant-wide capability check for endpoints not tied to one contract."""

    def dependency(
        ctx: TenantContext = _CTX_DEP,
        gate: PermissionGate = _GATE_DEP,
    ) -> TenantContext:
        gate.require(ctx.tenant_id, ctx.principal, capability)
        return ctx

    return dependency


def require_contract_capability(capability: Capability) -> Callable:
    """Resolve the contract inside the tenant (404), then check ``capability`` (403).

    The contract lookup comes first so another tenant's contract id answers
    404 even for principals without any capability.
    """

    def dependency(
        contract_id: str = Path(...),
        db: Session = _DB_DEP,
        ctx: TenantContext = _CTX_DEP,
        gate: PermissionGate = _GATE_DEP,
    ) -> models.Contract:
        contract = get_contract(db, ctx, contract_id)
        gate.require(ctx.tenant_id, ctx.principal, capability)
        return contract

    return dependency


can_view_contract = require_contract_capability(Capability.view_contracts)
can_manage_contract = require_contract_capability(Capability.manage_contracts)
can_view_tenant = require_capability(Capability.view_contracts)
