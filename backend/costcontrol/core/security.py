"""Bearer token helpers.

Sign-in and SSO live outside the ledger; this module only needs to issue
(for dev/tests) and verify the access tokens it is handed. Claims:

- ``sub``: principal id
- ``tid``: tenant id the token was issued for
- ``role``: role of the principal inside that tenant
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt

from costcontrol.config import settings
from costcontrol.core.tenancy import Principal


def create_access_token(
    data: dict,
    expires_delta: Optional[timedelta] = None,
) -> str:
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode.update({"exp": expire})
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def create_access_token_for_principal(
    principal: Principal, expires_minutes: Optional[int] = None
) -> str:
    minutes = expires_minutes or settings.access_token_expire_minutes
    claims = {"sub": principal.id, "tid": principal.tenant_id, "role": principal.role}
    if principal.email:
        claims["email"] = principal.email
    return create_access_token(claims, expires_delta=timedelta(minutes=minutes))


def decode_access_token(token: str) -> Optional[dict]:
    """Decode JWT access token; returns payload or None if invalid."""

    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None


def principal_from_token(token: str) -> Optional[Principal]:
    payload = decode_access_token(token)
    if not payload:
        return None
    subject = payload.get("sub")
    tenant_id = payload.get("tid")
    if not subject or not tenant_id:
        return None
    role = payload.get("role")
    return Principal(
        id=str(subject),
        tenant_id=str(tenant_id),
        role=str(role) if role else None,
        email=payload.get("email"),
    )
