from datetime import date, timedelta
from decimal import Decimal

from conftest import idem


def _base(contract) -> str:
    return f"/api/contracts/{contract.id}/payments"


def _create(client, contract, amount, **extra):
    body = {"name": extra.pop("name", "Milestone"), "amount": str(amount), "due_date": "2030-01-15"}
    body.update(extra)
    return client.post(_base(contract), json=body, headers=idem())


def test_payment_total_cannot_exceed_contract_value(client, login_as, make_contract):
    contract = make_contract(total_value="1000")
    login_as()

    assert _create(client, contract, 600).status_code == 201

    r = _create(client, contract, 500)
    assert r.status_code == 422
    body = r.json()
    assert body["ok"] is False
    assert body["code"] == "PAYMENT_TOTAL_EXCEEDED"
    detail = body["details"]["validation"]["amount"]
    assert Decimal(detail["attempted_total"]) == Decimal("1100")
    assert Decimal(detail["allowed_total"]) == Decimal("1000")
    assert Decimal(detail["remaining"]) == Decimal("400")

    assert _create(client, contract, 400).status_code == 201
    assert len(client.get(_base(contract)).json()["data"]) == 2


def test_boundary_is_inclusive(client, login_as, make_contract):
    contract = make_contract(total_value="1000")
    login_as()

    assert _create(client, contract, "999.99").status_code == 201
    assert _create(client, contract, "0.01").status_code == 201
    assert _create(client, contract, "0.01").status_code == 422


def test_no_ceiling_without_contract_value(client, login_as, make_contract):
    contract = make_contract(total_value=None)
    login_as()

    assert _create(client, contract, 1_000_000).status_code == 201
    assert _create(client, contract, 5_000_000).status_code == 201


def test_cancelled_payments_do_not_count(client, login_as, make_contract):
    contract = make_contract(total_value="1000")
    login_as()

    assert _create(client, contract, 900, status="cancelled").status_code == 201
    assert _create(client, contract, 1000).status_code == 201


def test_update_excludes_own_amount_from_sum(client, login_as, make_contract):
    contract = make_contract(total_value="1000")
    login_as()
    first = _create(client, contract, 600).json()["data"]
    _create(client, contract, 300)

    r = client.patch(f"{_base(contract)}/{first['id']}", json={"amount": "700"}, headers=idem())
    assert r.status_code == 200
    assert r.json()["data"]["amount"] == "700.00"

    r = client.patch(f"{_base(contract)}/{first['id']}", json={"amount": "701"}, headers=idem())
    assert r.status_code == 422
    assert r.json()["code"] == "PAYMENT_TOTAL_EXCEEDED"

    # Rejected update left the row untouched.
    assert client.get(f"{_base(contract)}/{first['id']}").json()["data"]["amount"] == "700.00"


def test_reactivating_a_cancelled_payment_is_checked(client, login_as, make_contract):
    contract = make_contract(total_value="1000")
    login_as()
    cancelled = _create(client, contract, 500, status="cancelled").json()["data"]
    _create(client, contract, 800)

    r = client.patch(
        f"{_base(contract)}/{cancelled['id']}", json={"status": "planned"}, headers=idem()
    )
    assert r.status_code == 422
    assert r.json()["code"] == "PAYMENT_TOTAL_EXCEEDED"


def test_deleted_payments_free_up_the_ceiling(client, login_as, make_contract):
    contract = make_contract(total_value="1000")
    login_as()
    big = _create(client, contract, 1000).json()["data"]
    assert client.delete(f"{_base(contract)}/{big['id']}").status_code == 204
    assert _create(client, contract, 1000).status_code == 201


def test_list_is_ordered_by_sort_order_then_due_date(client, login_as, make_contract):
    contract = make_contract(total_value=None)
    login_as()
    _create(client, contract, 1, name="late", sort_order=1, due_date="2030-06-01")
    _create(client, contract, 1, name="early", sort_order=1, due_date="2030-02-01")
    _create(client, contract, 1, name="first", sort_order=0, due_date="2030-12-01")

    names = [p["name"] for p in client.get(_base(contract)).json()["data"]]
    assert names == ["first", "early", "late"]


def test_currency_is_inherited_from_contract(client, login_as, make_contract):
    contract = make_contract(currency="VND", total_value=None)
    login_as()
    assert _create(client, contract, 10).json()["data"]["currency"] == "VND"
    assert _create(client, contract, 10, currency="eur").json()["data"]["currency"] == "EUR"


def test_status_paid_stamps_paid_at(client, login_as, make_contract):
    contract = make_contract()
    login_as()
    created = _create(client, contract, 100).json()["data"]
    assert created["paid_at"] is None

    r = client.patch(f"{_base(contract)}/{created['id']}", json={"status": "paid"}, headers=idem())
    assert r.status_code == 200
    assert r.json()["data"]["paid_at"] is not None

    r = client.patch(f"{_base(contract)}/{created['id']}", json={"notes": "wired"}, headers=idem())
    assert r.status_code == 200
    assert r.json()["data"]["paid_at"] is not None


def test_mark_paid_transitions(client, login_as, make_contract):
    contract = make_contract()
    login_as()
    created = _create(client, contract, 100, status="due").json()["data"]

    r = client.post(f"{_base(contract)}/{created['id']}/mark-paid", headers=idem())
    assert r.status_code == 200
    data = r.json()["data"]
    assert data["status"] == "paid"
    assert data["paid_at"] is not None

    r = client.post(f"{_base(contract)}/{created['id']}/mark-paid", headers=idem())
    assert r.status_code == 422
    assert r.json()["code"] == "PAYMENT_ALREADY_PAID"

    cancelled = _create(client, contract, 1, status="cancelled").json()["data"]
    r = client.post(f"{_base(contract)}/{cancelled['id']}/mark-paid", headers=idem())
    assert r.status_code == 422
    assert r.json()["code"] == "INVALID_STATUS_TRANSITION"


def test_mark_paid_accepts_explicit_timestamp(client, login_as, make_contract):
    contract = make_contract()
    login_as()
    created = _create(client, contract, 100).json()["data"]

    r = client.post(
        f"{_base(contract)}/{created['id']}/mark-paid",
        json={"paid_at": "2026-05-01T10:00:00Z"},
        headers=idem(),
    )
    assert r.status_code == 200
    assert r.json()["data"]["paid_at"].startswith("2026-05-01T10:00:00")


def test_overdue_flag_on_read(client, login_as, make_contract):
    contract = make_contract(total_value=None)
    login_as()
    yesterday = (date.today() - timedelta(days=2)).isoformat()
    _create(client, contract, 10, name="late", due_date=yesterday)
    _create(client, contract, 10, name="late but paid", due_date=yesterday, status="paid")
    _create(client, contract, 10, name="future")

    flags = {p["name"]: p["is_overdue"] for p in client.get(_base(contract)).json()["data"]}
    assert flags == {"late": True, "late but paid": False, "future": False}


def test_due_date_is_required(client, login_as, make_contract):
    contract = make_contract()
    login_as()
    r = client.post(_base(contract), json={"name": "x", "amount": "1"}, headers=idem())
    assert r.status_code == 422
    assert "due_date" in r.json()["details"]["validation"]


def test_updating_a_deleted_payment_is_not_found(client, login_as, make_contract):
    contract = make_contract()
    login_as()
    created = _create(client, contract, 10).json()["data"]
    assert client.delete(f"{_base(contract)}/{created['id']}").status_code == 204

    url = f"{_base(contract)}/{created['id']}"
    for send in (client.patch, client.put):
        r = send(url, json={"amount": "20"}, headers=idem())
        assert r.status_code == 404
        assert r.json()["code"] == "NOT_FOUND"
    assert client.post(f"{url}/mark-paid", headers=idem()).status_code == 404


def test_cancelled_payment_cannot_be_paid_through_update(client, login_as, make_contract):
    contract = make_contract()
    login_as()
    cancelled = _create(client, contract, 10, status="cancelled").json()["data"]
    url = f"{_base(contract)}/{cancelled['id']}"

    for send in (client.patch, client.put):
        r = send(url, json={"status": "paid"}, headers=idem())
        assert r.status_code == 422
        assert r.json()["code"] == "INVALID_STATUS_TRANSITION"

    data = client.get(url).json()["data"]
    assert data["status"] == "cancelled"
    assert data["paid_at"] is None


def test_paid_payment_is_final(client, login_as, make_contract):
    contract = make_contract()
    login_as()
    created = _create(client, contract, 10).json()["data"]
    url = f"{_base(contract)}/{created['id']}"
    assert client.post(f"{url}/mark-paid", headers=idem()).status_code == 200

    for status in ("planned", "due", "cancelled"):
        r = client.patch(url, json={"status": status}, headers=idem())
        assert r.status_code == 422
        assert r.json()["code"] == "INVALID_STATUS_TRANSITION"

    # Resending the current status with other edits is fine.
    r = client.put(url, json={"status": "paid", "notes": "receipt filed"}, headers=idem())
    assert r.status_code == 200
    assert r.json()["data"]["status"] == "paid"


def test_open_payments_move_freely(client, login_as, make_contract):
    contract = make_contract()
    login_as()
    created = _create(client, contract, 10).json()["data"]
    url = f"{_base(contract)}/{created['id']}"

    for status in ("due", "planned", "cancelled", "due", "paid"):
        r = client.patch(url, json={"status": status}, headers=idem())
        assert r.status_code == 200, status
        assert r.json()["data"]["status"] == status
