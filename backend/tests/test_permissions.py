"""
RBAC enforcement tests

Reads need view_contracts; every mutation needs manage_contracts.
"""

import pytest
from conftest import TENANT_A, TENANT_B, idem, make_principal

from costcontrol.core.errors import PermissionDenied
from costcontrol.core.permissions import (
    Capability,
    PermissionGate,
    StaticRoleOracle,
    build_role_capabilities,
)


def _gate(overrides=None) -> PermissionGate:
    return PermissionGate(StaticRoleOracle(build_role_capabilities(overrides)))


@pytest.mark.parametrize("role", ["admin", "project_manager", "accountant"])
def test_managers_can_view_and_manage(role):
    gate = _gate()
    principal = make_principal(role)
    gate.require(TENANT_A, principal, Capability.view_contracts)
    gate.require(TENANT_A, principal, Capability.manage_contracts)


@pytest.mark.parametrize("role", ["member", "viewer"])
def test_read_only_roles_cannot_manage(role):
    gate = _gate()
    principal = make_principal(role)
    gate.require(TENANT_A, principal, Capability.view_contracts)
    with pytest.raises(PermissionDenied):
        gate.require(TENANT_A, principal, Capability.manage_contracts)


@pytest.mark.parametrize("role", ["guest", "unknown-role", None])
def test_unknown_and_guest_roles_get_nothing(role):
    with pytest.raises(PermissionDenied):
        _gate().require(TENANT_A, make_principal(role), Capability.view_contracts)


def test_capabilities_do_not_cross_tenants():
    with pytest.raises(PermissionDenied):
        _gate().require(TENANT_B, make_principal("admin", TENANT_A), Capability.view_contracts)


def test_overrides_replace_role_capabilities():
    gate = _gate({"viewer": ["view_contracts", "manage_contracts"], "Admin": ["view_contracts"]})
    gate.require(TENANT_A, make_principal("viewer"), Capability.manage_contracts)
    with pytest.raises(PermissionDenied):
        gate.require(TENANT_A, make_principal("admin"), Capability.manage_contracts)


def test_unknown_capability_in_overrides_is_rejected():
    with pytest.raises(ValueError):
        build_role_capabilities({"viewer": ["delete_everything"]})


def test_viewer_can_read_but_not_write(client, login_as, make_contract):
    contract = make_contract()
    login_as("viewer")
    base = f"/api/contracts/{contract.id}/budget-lines"

    assert client.get(base).status_code == 200

    r = client.post(base, json={"name": "x", "total_amount": "1"}, headers=idem())
    assert r.status_code == 403
    body = r.json()
    assert body["ok"] is False
    assert body["code"] == "TENANT_PERMISSION_DENIED"


def test_guest_cannot_read(client, login_as, make_contract):
    contract = make_contract()
    login_as("guest")
    r = client.get(f"/api/contracts/{contract.id}/cost-summary")
    assert r.status_code == 403


def test_permission_is_checked_before_validation_of_ledger_rules(client, login_as, make_contract):
    contract = make_contract(total_value="1")
    login_as("member")
    r = client.post(
        f"/api/contracts/{contract.id}/payments",
        json={"name": "x", "amount": "500", "due_date": "2030-01-01"},
        headers=idem(),
    )
    assert r.status_code == 403


def test_mark_paid_and_delete_need_manage(client, login_as, make_contract):
    contract = make_contract(total_value=None)
    login_as("admin")
    base = f"/api/contracts/{contract.id}/payments"
    payment = client.post(
        base, json={"name": "p", "amount": "1", "due_date": "2030-01-01"}, headers=idem()
    ).json()["data"]

    login_as("member")
    assert client.post(f"{base}/{payment['id']}/mark-paid", headers=idem()).status_code == 403
    assert client.delete(f"{base}/{payment['id']}").status_code == 403


def test_export_needs_view(client, login_as):
    login_as("guest")
    assert client.get("/api/contracts/export").status_code == 403
