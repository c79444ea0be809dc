"""Idempotency-Key guard for mutating endpoints.

A claim row ``(tenant_id, endpoint, key)`` is inserted in the same transaction
as the mutation it protects and completed with the response before commit.
Either both land or neither does, so a failed mutation leaves no record and
the key can be retried.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from costcontrol import models
from costcontrol.config import settings
from costcontrol.core.errors import IdempotencyInProgress, ValidationFailed
from costcontrol.core.tenancy import TenantContext
from costcontrol.models.domain import utcnow

logger = logging.getLogger("costcontrol.idempotency")

MAX_KEY_LENGTH = 128


def _canonical_json(data: Any) -> str:
    return json.dumps(data, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)


def _sha256_hex(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def request_fingerprint(endpoint: str, body: Any) -> str:
    return _sha256_hex(_canonical_json({"endpoint": endpoint, "body": body}))


@dataclass
class IdempotencyClaim:
    record: Optional[models.IdempotencyKey]
    replayed: bool = False

    @property
    def status_code(self) -> Optional[int]:
        return self.record.status_code if self.record is not None else None

    @property
    def response_body(self) -> Optional[dict]:
        return self.record.response_body if self.record is not None else None


def _find(db: Session, tenant_id: str, endpoint: str, key: str) -> Optional[models.IdempotencyKey]:
    stmt = select(models.IdempotencyKey).where(
        models.IdempotencyKey.tenant_id == tenant_id,
        models.IdempotencyKey.endpoint == endpoint,
        models.IdempotencyKey.key == key,
    )
    return db.execute(stmt).scalar_one_or_none()


def _resolve_existing(
    existing: models.IdempotencyKey, request_hash: str
) -> IdempotencyClaim:
    if existing.request_hash != request_hash:
        raise ValidationFailed.for_field(
            "Idempotency-Key",
            "This Idempotency-Key was already used with a different request.",
            code="IDEMPOTENCY_KEY_MISMATCH",
        )
    if existing.status_code is None:
        raise IdempotencyInProgress()
    return IdempotencyClaim(record=existing, replayed=True)


def claim(
    db: Session,
    ctx: TenantContext,
    *,
    endpoint: str,
    key: Optional[str],
    request_hash: str,
    now: Optional[datetime] = None,
) -> IdempotencyClaim:
    """Claim ``key`` for this request, or return the stored response to replay.

    Without a key the request proceeds unguarded unless
    ``IDEMPOTENCY_REQUIRED`` is set.
    """

    key = (key or "").strip()
    if not key:
        if settings.idempotency_required:
            raise ValidationFailed.for_field(
                "Idempotency-Key",
                "The Idempotency-Key header is required.",
                code="IDEMPOTENCY_KEY_REQUIRED",
            )
        return IdempotencyClaim(record=None)
    if len(key) > MAX_KEY_LENGTH:
        raise ValidationFailed.for_field(
            "Idempotency-Key",
            f"The Idempotency-Key header may not be longer than {MAX_KEY_LENGTH} characters.",
        )

    now = now or utcnow()
    existing = _find(db, ctx.tenant_id, endpoint, key)
    if existing is not None:
        if _as_utc(existing.expires_at) > now:
            claimed = _resolve_existing(existing, request_hash)
            logger.info(
                "idempotency_replay",
                extra={"tenant_id": ctx.tenant_id, "endpoint": endpoint},
            )
            return claimed
        db.delete(existing)
        db.flush()

    record = models.IdempotencyKey(
        tenant_id=ctx.tenant_id,
        endpoint=endpoint,
        key=key,
        request_hash=request_hash,
        created_at=now,
        expires_at=now + timedelta(hours=settings.idempotency_ttl_hours),
    )
    db.add(record)
    try:
        db.flush()
    except IntegrityError:
        # A concurrent request with the same key committed first.
        db.rollback()
        winner = _find(db, ctx.tenant_id, endpoint, key)
        if winner is None:
            raise
        logger.info(
            "idempotency_race_lost",
            extra={"tenant_id": ctx.tenant_id, "endpoint": endpoint},
        )
        return _resolve_existing(winner, request_hash)

    return IdempotencyClaim(record=record)


def complete(db: Session, claimed: IdempotencyClaim, status_code: int, body: Optional[dict]) -> None:
    if claimed.record is None or claimed.replayed:
        return
    claimed.record.status_code = int(status_code)
    claimed.record.response_body = body
    db.flush()


def purge_expired(db: Session, now: Optional[datetime] = None) -> int:
    now = now or utcnow()
    result = db.execute(
        delete(models.IdempotencyKey).where(models.IdempotencyKey.expires_at <= now)
    )
    count = int(result.rowcount or 0)
    if count:
        logger.info("idempotency_keys_purged", extra={"count": count})
    return count
