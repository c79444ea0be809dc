from __future__ import annotations

import logging
from enum import Enum
from typing import Mapping, Optional, Protocol

from costcontrol.core.errors import PermissionDenied

logger = logging.getLogger("costcontrol.permissions")


class Capability(str, Enum):
    view_contracts = "view_contracts"
    manage_contracts = "manage_contracts"


class RoleName(str, Enum):
    admin = "admin"
    project_manager = "project_manager"
    accountant = "accountant"
    member = "member"
    viewer = "viewer"
    guest = "guest"


_READ = frozenset({Capability.view_contracts})
_READ_WRITE = frozenset({Capability.view_contracts, Capability.manage_contracts})

DEFAULT_ROLE_CAPABILITIES: dict[str, frozenset[Capability]] = {
    RoleName.admin.value: _READ_WRITE,
    RoleName.project_manager.value: _READ_WRITE,
    RoleName.accountant.value: _READ_WRITE,
    RoleName.member.value: _READ,
    RoleName.viewer.value: _READ,
    RoleName.guest.value: frozenset(),
}


class _PrincipalLike(Protocol):
    id: str
    tenant_id: str
    role: Optional[str]


class PermissionOracle(Protocol):
    def allows(self, tenant_id: str, principal: _PrincipalLike, capability: Capability) -> bool: ...


def build_role_capabilities(
    overrides: Optional[Mapping[str, list[str]]] = None,
) -> dict[str, frozenset[Capability]]:
    """Resolve the role -> capability map once at startup.

    Overrides replace the capability set of the roles they name; unknown
    capability names are rejected so a typo cannot silently grant nothing.
    """

    resolved = dict(DEFAULT_ROLE_CAPABILITIES)
    for role, names in (overrides or {}).items():
        caps: set[Capability] = set()
        for name in names:
            try:
                caps.add(Capability(str(name).strip()))
            except ValueError as exc:
                raise ValueError(f"Unknown capability {name!r} for role {role!r}") from exc
        resolved[str(role).strip().lower()] = frozenset(caps)
    return resolved


class StaticRoleOracle:
    """Answers from the principal's role in its own tenant.

    A principal never holds capabilities in a tenant other than the one its
    token was issued for.
    """

    def __init__(self, role_capabilities: Mapping[str, frozenset[Capability]]):
        self._role_capabilities = dict(role_capabilities)

    def capabilities_for(self, role: Optional[str]) -> frozenset[Capability]:
        if not role:
            return frozenset()
        return self._role_capabilities.get(str(role).strip().lower(), frozenset())

    def allows(self, tenant_id: str, principal: _PrincipalLike, capability: Capability) -> bool:
        if str(getattr(principal, "tenant_id", "")) != str(tenant_id):
            return False
        return capability in self.capabilities_for(getattr(principal, "role", None))


class PermissionGate:
    def __init__(self, oracle: PermissionOracle):
        self.oracle = oracle

    def require(self, tenant_id: str, principal: _PrincipalLike, capability: Capability) -> None:
        if self.oracle.allows(tenant_id, principal, capability):
            return
        logger.info(
            "permission_denied",
            extra={
                "tenant_id": tenant_id,
                "principal_id": getattr(principal, "id", None),
                "capability": capability.value,
            },
        )
        raise PermissionDenied()
