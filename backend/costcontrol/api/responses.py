from __future__ import annotations

from typing import Any, Callable, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from costcontrol.core.tenancy import TenantContext
from costcontrol.services import idempotency

IDEMPOTENCY_HEADER = "Idempotency-Key"
REPLAYED_HEADER = "Idempotent-Replayed"


def _dump(data: Any) -> Any:
    # mode="json" renders Decimal as a string.
    if isinstance(data, BaseModel):
        return data.model_dump(mode="json")
    if isinstance(data, (list, tuple)):
        return [_dump(item) for item in data]
    return data


def success_body(data: Any) -> dict[str, Any]:
    return {"success": True, "data": _dump(data)}


def ok(data: Any, status_code: int = 200) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=success_body(data))


def run_idempotent(
    request: Request,
    db: Session,
    ctx: TenantContext,
    payload: Optional[BaseModel],
    mutate: Callable[[], Any],
    *,
    status_code: int = 200,
) -> JSONResponse:
    """Run ``mutate`` under the Idempotency-Key guard and commit.

    ``mutate`` returns the response data. The claim, the ledger write, its
    audit row and the stored response commit together; any failure rolls all
    of them back.
    """

    endpoint = f"{request.method} {request.url.path}"
    body = payload.model_dump(mode="json", exclude_unset=True) if payload is not None else None
    try:
        claimed = idempotency.claim(
            db,
            ctx,
            endpoint=endpoint,
            key=request.headers.get(IDEMPOTENCY_HEADER),
            request_hash=idempotency.request_fingerprint(endpoint, body),
        )
        if claimed.replayed:
            stored_status, stored_body = claimed.status_code, claimed.response_body
            db.rollback()
            return JSONResponse(
                status_code=stored_status,
                content=stored_body,
                headers={REPLAYED_HEADER: "true"},
            )

        content = success_body(mutate())
        idempotency.complete(db, claimed, status_code, content)
        db.commit()
    except Exception:
        db.rollback()
        raise
    return JSONResponse(status_code=status_code, content=content)


def run_write(db: Session, mutate: Callable[[], Any]) -> Any:
    try:
        result = mutate()
        db.commit()
    except Exception:
        db.rollback()
        raise
    return result
