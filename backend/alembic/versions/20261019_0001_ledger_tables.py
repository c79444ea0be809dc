"""ledger tables

Revision ID: 20261019_0001_ledger_tables
Revises: None
Create Date: 2026-10-19
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "20261019_0001_ledger_tables"
down_revision = None
branch_labels = None
depends_on = None

MONEY = sa.Numeric(18, 2)
QUANTITY = sa.Numeric(18, 4)


def _ledger_columns() -> list[sa.Column]:
    return [
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("contract_id", sa.String(length=36), sa.ForeignKey("contracts.id"), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("notes", sa.Text()),
        sa.Column("created_by", sa.String(length=64)),
        sa.Column("updated_by", sa.String(length=64)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
    ]


def upgrade() -> None:
    op.create_table(
        "contracts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("code", sa.String(length=64)),
        sa.Column("name", sa.String(length=255)),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("total_value", MONEY),
        sa.Column("created_at", sa.DateTime(timezone=True)),
        sa.Column("deleted_at", sa.DateTime(timezone=True)),
    )
    op.create_index("ix_contracts_tenant_id", "contracts", ["tenant_id"])

    op.create_table(
        "contract_budget_lines",
        *_ledger_columns(),
        sa.Column("quantity", QUANTITY),
        sa.Column("unit", sa.String(length=32)),
        sa.Column("unit_price", QUANTITY),
        sa.Column("total_amount", MONEY, nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
    )
    op.create_index(
        "ix_contract_budget_lines_tenant_contract",
        "contract_budget_lines",
        ["tenant_id", "contract_id"],
    )

    op.create_table(
        "contract_expenses",
        *_ledger_columns(),
        sa.Column("quantity", QUANTITY),
        sa.Column("unit", sa.String(length=32)),
        sa.Column("unit_cost", QUANTITY),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("incurred_on", sa.Date()),
        sa.Column("status", sa.String(length=16), nullable=False),
    )
    op.create_index(
        "ix_contract_expenses_tenant_contract",
        "contract_expenses",
        ["tenant_id", "contract_id"],
    )

    op.create_table(
        "contract_payments",
        *_ledger_columns(),
        sa.Column("amount", MONEY, nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("paid_at", sa.DateTime(timezone=True)),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("sort_order", sa.Integer(), nullable=False, server_default="0"),
    )
    op.create_index(
        "ix_contract_payments_tenant_contract",
        "contract_payments",
        ["tenant_id", "contract_id"],
    )

    op.create_table(
        "idempotency_keys",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("endpoint", sa.String(length=255), nullable=False),
        sa.Column("key", sa.String(length=128), nullable=False),
        sa.Column("request_hash", sa.String(length=64), nullable=False),
        sa.Column("status_code", sa.Integer()),
        sa.Column("response_body", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint(
            "tenant_id", "endpoint", "key", name="uq_idempotency_keys_tenant_endpoint_key"
        ),
    )
    op.create_index("ix_idempotency_keys_expires_at", "idempotency_keys", ["expires_at"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("tenant_id", sa.String(length=36), nullable=False),
        sa.Column("actor_id", sa.String(length=64)),
        sa.Column("action", sa.String(length=64), nullable=False),
        sa.Column("entity_type", sa.String(length=32), nullable=False),
        sa.Column("entity_id", sa.String(length=36), nullable=False),
        sa.Column("contract_id", sa.String(length=36)),
        sa.Column("before", sa.JSON()),
        sa.Column("after", sa.JSON()),
        sa.Column("request_id", sa.String(length=64)),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_tenant_id", "audit_logs", ["tenant_id"])
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_entity_id", "audit_logs", ["entity_id"])
    op.create_index("ix_audit_logs_contract_id", "audit_logs", ["contract_id"])


def downgrade() -> None:
    op.drop_table("audit_logs")
    op.drop_table("idempotency_keys")
    op.drop_table("contract_payments")
    op.drop_table("contract_expenses")
    op.drop_table("contract_budget_lines")
    op.drop_table("contracts")
