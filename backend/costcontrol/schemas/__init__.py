from costcontrol.schemas.budget_lines import (
    BudgetLineCreate,
    BudgetLineRead,
    BudgetLineUpdate,
    BudgetSummaryRead,
)
from costcontrol.schemas.common import Envelope, ErrorEnvelope
from costcontrol.schemas.cost_summary import CostSummaryRead
from costcontrol.schemas.expenses import (
    ExpenseCreate,
    ExpenseRead,
    ExpenseSummaryRead,
    ExpenseUpdate,
)
from costcontrol.schemas.payments import (
    PaymentCreate,
    PaymentMarkPaid,
    PaymentRead,
    PaymentUpdate,
)

__all__ = [
    "BudgetLineCreate",
    "BudgetLineRead",
    "BudgetLineUpdate",
    "BudgetSummaryRead",
    "CostSummaryRead",
    "Envelope",
    "ErrorEnvelope",
    "ExpenseCreate",
    "ExpenseRead",
    "ExpenseSummaryRead",
    "ExpenseUpdate",
    "PaymentCreate",
    "PaymentMarkPaid",
    "PaymentRead",
    "PaymentUpdate",
]
