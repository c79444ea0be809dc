from costcontrol.services import (
    budget_lines,
    contract_export,
    cost_summary,
    expenses,
    idempotency,
    payments,
)
from costcontrol.services.audit import audit_event

__all__ = [
    "audit_event",
    "budget_lines",
    "contract_export",
    "cost_summary",
    "expenses",
    "idempotency",
    "payments",
]
