from fastapi import APIRouter

from costcontrol.api.routes import budget_lines, cost_summary, expenses, exports, payments

api_router = APIRouter()
# Static /contracts/export before the /contracts/{contract_id}/... families.
api_router.include_router(exports.router)
api_router.include_router(budget_lines.router)
api_router.include_router(expenses.router)
api_router.include_router(payments.router)
api_router.include_router(cost_summary.router)
