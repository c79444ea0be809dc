from datetime import datetime, timedelta, timezone

import pytest
from conftest import TENANT_B, idem, make_ctx
from sqlalchemy import func, select

from costcontrol import models
from costcontrol.core.errors import IdempotencyInProgress, ValidationFailed
from costcontrol.services import idempotency


def _payments(contract) -> str:
    return f"/api/contracts/{contract.id}/payments"


def _count(db, model) -> int:
    return db.execute(select(func.count()).select_from(model)).scalar_one()


def test_repeated_key_replays_stored_response(client, login_as, make_contract, db_session):
    contract = make_contract(total_value="1000")
    login_as()
    headers = idem("pay-once")
    body = {"name": "Deposit", "amount": "600", "due_date": "2030-01-01"}

    first = client.post(_payments(contract), json=body, headers=headers)
    second = client.post(_payments(contract), json=body, headers=headers)

    assert first.status_code == 201
    assert second.status_code == 201
    assert second.json() == first.json()
    assert second.headers.get("Idempotent-Replayed") == "true"
    assert "Idempotent-Replayed" not in first.headers
    assert _count(db_session, models.Payment) == 1
    # A replay would have broken the payment ceiling if it had executed again.
    assert _count(db_session, models.AuditLog) == 1


def test_key_reused_with_different_body_is_rejected(client, login_as, make_contract):
    contract = make_contract(total_value=None)
    login_as()
    headers = idem("same-key")

    client.post(_payments(contract), json={"name": "a", "amount": "1", "due_date": "2030-01-01"}, headers=headers)
    r = client.post(
        _payments(contract), json={"name": "a", "amount": "2", "due_date": "2030-01-01"}, headers=headers
    )
    assert r.status_code == 422
    assert r.json()["code"] == "IDEMPOTENCY_KEY_MISMATCH"


def test_missing_key_is_rejected(client, login_as, make_contract, db_session):
    contract = make_contract()
    login_as()

    r = client.post(_payments(contract), json={"name": "a", "amount": "1", "due_date": "2030-01-01"})
    assert r.status_code == 422
    assert r.json()["code"] == "IDEMPOTENCY_KEY_REQUIRED"
    assert _count(db_session, models.Payment) == 0


def test_failed_mutation_leaves_no_key(client, login_as, make_contract, db_session):
    contract = make_contract(total_value="100")
    login_as()
    headers = idem("retry-me")

    r = client.post(
        _payments(contract), json={"name": "a", "amount": "150", "due_date": "2030-01-01"}, headers=headers
    )
    assert r.status_code == 422
    assert _count(db_session, models.IdempotencyKey) == 0

    r = client.post(
        _payments(contract), json={"name": "a", "amount": "50", "due_date": "2030-01-01"}, headers=headers
    )
    assert r.status_code == 201


def test_keys_are_scoped_per_tenant(client, login_as, make_contract):
    contract_a = make_contract()
    contract_b = make_contract(tenant_id=TENANT_B)
    body = {"name": "a", "amount": "1", "due_date": "2030-01-01"}

    login_as()
    assert client.post(_payments(contract_a), json=body, headers=idem("shared")).status_code == 201
    login_as(tenant_id=TENANT_B)
    r = client.post(_payments(contract_b), json=body, headers=idem("shared"))
    assert r.status_code == 201
    assert "Idempotent-Replayed" not in r.headers


def test_unfinished_claim_reports_in_progress(db_session):
    ctx = make_ctx()
    claimed = idempotency.claim(
        db_session, ctx, endpoint="POST /x", key="k1", request_hash="h"
    )
    assert claimed.replayed is False
    db_session.commit()

    with pytest.raises(IdempotencyInProgress) as exc:
        idempotency.claim(db_session, ctx, endpoint="POST /x", key="k1", request_hash="h")
    assert exc.value.status_code == 409


def test_expired_key_is_evicted_on_claim(db_session):
    ctx = make_ctx()
    t0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
    first = idempotency.claim(
        db_session, ctx, endpoint="POST /x", key="k1", request_hash="h1", now=t0
    )
    idempotency.complete(db_session, first, 201, {"success": True, "data": {"n": 1}})
    db_session.commit()

    replay = idempotency.claim(
        db_session, ctx, endpoint="POST /x", key="k1", request_hash="h1", now=t0 + timedelta(hours=1)
    )
    assert replay.replayed is True
    assert replay.response_body == {"success": True, "data": {"n": 1}}

    # After the TTL the key is free again, even for a different body.
    fresh = idempotency.claim(
        db_session, ctx, endpoint="POST /x", key="k1", request_hash="h2", now=t0 + timedelta(hours=25)
    )
    assert fresh.replayed is False
    db_session.commit()
    assert _count(db_session, models.IdempotencyKey) == 1


def test_purge_expired_removes_only_old_keys(db_session):
    ctx = make_ctx()
    t0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
    for i, now in enumerate((t0, t0 + timedelta(hours=30))):
        claimed = idempotency.claim(
            db_session, ctx, endpoint="POST /x", key=f"k{i}", request_hash="h", now=now
        )
        idempotency.complete(db_session, claimed, 200, {})
    db_session.commit()

    removed = idempotency.purge_expired(db_session, now=t0 + timedelta(hours=26))
    db_session.commit()
    assert removed == 1
    assert db_session.execute(select(models.IdempotencyKey.key)).scalars().all() == ["k1"]


def test_oversized_key_is_rejected(db_session):
    with pytest.raises(ValidationFailed):
        idempotency.claim(
            db_session, make_ctx(), endpoint="POST /x", key="k" * 200, request_hash="h"
        )
