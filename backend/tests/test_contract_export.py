import csv
import io

from conftest import TENANT_B, idem

from costcontrol.services.contract_export import EXPORT_COLUMNS


def _rows(text: str) -> list[dict]:
    return list(csv.DictReader(io.StringIO(text)))


def _seed(client, contract, prefix: str):
    base = f"/api/contracts/{contract.id}"
    client.post(f"{base}/budget-lines", json={"name": f"{prefix}-line", "total_amount": "10"}, headers=idem())
    client.post(
        f"{base}/budget-lines",
        json={"name": f"{prefix}-void", "total_amount": "10", "status": "cancelled"},
        headers=idem(),
    )
    client.post(
        f"{base}/payments",
        json={"name": f"{prefix}-pay", "amount": "5", "due_date": "2030-02-01"},
        headers=idem(),
    )
    gone = client.post(
        f"{base}/expenses", json={"name": f"{prefix}-gone", "amount": "3"}, headers=idem()
    ).json()["data"]
    client.delete(f"{base}/expenses/{gone['id']}")
    client.post(
        f"{base}/expenses",
        json={"name": f"{prefix}-exp", "quantity": "2", "unit_cost": "1.5"},
        headers=idem(),
    )


def test_export_contains_active_rows_of_own_tenant(client, login_as, make_contract):
    own = make_contract(code="CT-OWN")
    foreign = make_contract(tenant_id=TENANT_B)
    login_as(tenant_id=TENANT_B)
    _seed(client, foreign, "b")
    login_as()
    _seed(client, own, "a")

    r = client.get("/api/contracts/export")
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/csv")
    assert "attachment" in r.headers["content-disposition"]

    header = r.text.splitlines()[0].split(",")
    assert header == EXPORT_COLUMNS

    rows = _rows(r.text)
    assert [(row["kind"], row["name"]) for row in rows] == [
        ("budget_line", "a-line"),
        ("payment", "a-pay"),
        ("expense", "a-exp"),
    ]
    assert {row["contract_code"] for row in rows} == {"CT-OWN"}
    payment = rows[1]
    assert payment["amount"] == "5.00"
    assert payment["due_date"] == "2030-02-01"
    assert payment["status"] == "planned"
    expense = rows[2]
    assert expense["amount"] == "3.00"
    assert expense["unit_price"].startswith("1.5")


def test_export_can_be_limited_to_one_contract(client, login_as, make_contract):
    first = make_contract()
    second = make_contract()
    login_as()
    _seed(client, first, "one")
    _seed(client, second, "two")

    r = client.get("/api/contracts/export", params={"contract_id": second.id})
    assert r.status_code == 200
    names = {row["name"] for row in _rows(r.text)}
    assert names == {"two-line", "two-pay", "two-exp"}


def test_export_of_foreign_contract_is_not_found(client, login_as, make_contract):
    foreign = make_contract(tenant_id=TENANT_B)
    login_as()
    r = client.get("/api/contracts/export", params={"contract_id": foreign.id})
    assert r.status_code == 404


def test_expense_date_goes_to_incurred_on(client, login_as, make_contract):
    contract = make_contract()
    login_as()
    client.post(
        f"/api/contracts/{contract.id}/expenses",
        json={"name": "fuel", "amount": "7", "incurred_on": "2030-03-04"},
        headers=idem(),
    )
    client.post(
        f"/api/contracts/{contract.id}/payments",
        json={"name": "deposit", "amount": "1", "due_date": "2030-05-06"},
        headers=idem(),
    )

    rows = {row["kind"]: row for row in _rows(client.get("/api/contracts/export").text)}
    assert rows["expense"]["incurred_on"] == "2030-03-04"
    assert rows["expense"]["due_date"] == ""
    assert rows["payment"]["due_date"] == "2030-05-06"
    assert rows["payment"]["incurred_on"] == ""
