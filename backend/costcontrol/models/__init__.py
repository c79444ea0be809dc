from costcontrol.models.domain import (
    AuditLog,
    BudgetLine,
    BudgetLineStatus,
    Contract,
    Expense,
    ExpenseStatus,
    IdempotencyKey,
    Payment,
    PaymentStatus,
)

__all__ = [
    "AuditLog",
    "BudgetLine",
    "BudgetLineStatus",
    "Contract",
    "Expense",
    "ExpenseStatus",
    "IdempotencyKey",
    "Payment",
    "PaymentStatus",
]
