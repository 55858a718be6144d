"""Create bank feed tables.

Revision ID: 4e9a2c71b5d8
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op


# revision identifiers, used by Alembic.
revision: str = "4e9a2c71b5d8"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "properties",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("address", sa.String(length=500), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "bank_accounts",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("account_id", sa.String(length=255), nullable=False, unique=True),
        sa.Column("account_name", sa.String(length=255), nullable=False),
        sa.Column("account_type", sa.String(length=50), nullable=False),
        sa.Column("provider", sa.String(length=20), nullable=False, server_default=sa.text("'monzo'")),
        sa.Column("access_token", sa.Text(), nullable=False),
        sa.Column("refresh_token", sa.Text(), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("sync_enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("sync_from_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_sync_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "last_sync_status",
            sa.String(length=20),
            nullable=False,
            server_default=sa.text("'never_synced'"),
        ),
        sa.Column("webhook_id", sa.String(length=255), nullable=True, unique=True),
        sa.Column("webhook_url", sa.String(length=500), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "sync_logs",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "bank_account_id",
            sa.Uuid(),
            sa.ForeignKey("bank_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sync_type", sa.String(length=20), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("transactions_fetched", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("transactions_skipped", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("transactions_matched", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("transactions_pending", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("error_details", sa.JSON(), nullable=True),
        sa.Column("webhook_event_id", sa.String(length=255), nullable=True, unique=True),
        *_timestamps(),
    )
    op.create_index("ix_sync_logs_bank_account_id", "sync_logs", ["bank_account_id"])
    # One running bulk/manual sync per account; webhook syncs may overlap.
    op.create_index(
        "uq_sync_logs_account_in_progress",
        "sync_logs",
        ["bank_account_id"],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress' AND sync_type <> 'webhook'"),
    )

    op.create_table(
        "transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "property_id",
            sa.Uuid(),
            sa.ForeignKey("properties.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("lease_id", sa.Uuid(), nullable=True),
        sa.Column("type", sa.String(length=20), nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("bank_transaction_id", sa.Uuid(), nullable=True, unique=True),
        sa.Column("is_imported", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("imported_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_transactions_property_id", "transactions", ["property_id"])
    op.create_index("ix_transactions_category", "transactions", ["category"])
    op.create_index("ix_transactions_transaction_date", "transactions", ["transaction_date"])

    op.create_table(
        "bank_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "bank_account_id",
            sa.Uuid(),
            sa.ForeignKey("bank_accounts.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("external_id", sa.String(length=255), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("counterparty_name", sa.String(length=255), nullable=True),
        sa.Column("reference", sa.String(length=255), nullable=True),
        sa.Column("merchant", sa.String(length=255), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("settled_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("imported_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column(
            "transaction_id",
            sa.Uuid(),
            sa.ForeignKey("transactions.id", ondelete="SET NULL"),
            nullable=True,
            unique=True,
        ),
        sa.Column("pending_transaction_id", sa.Uuid(), nullable=True, unique=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "bank_account_id", "external_id", name="uq_bank_transactions_account_external"
        ),
    )
    op.create_index("ix_bank_transactions_bank_account_id", "bank_transactions", ["bank_account_id"])
    op.create_index("ix_bank_transactions_transaction_date", "bank_transactions", ["transaction_date"])

    op.create_table(
        "pending_transactions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "bank_transaction_id",
            sa.Uuid(),
            sa.ForeignKey("bank_transactions.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column(
            "property_id",
            sa.Uuid(),
            sa.ForeignKey("properties.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("lease_id", sa.Uuid(), nullable=True),
        sa.Column("type", sa.String(length=20), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        sa.Column("transaction_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("reviewed_by", sa.String(length=255), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_pending_transactions_property_id", "pending_transactions", ["property_id"])

    op.create_table(
        "matching_rules",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column(
            "bank_account_id",
            sa.Uuid(),
            sa.ForeignKey("bank_accounts.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("conditions", sa.JSON(), nullable=False),
        sa.Column(
            "property_id",
            sa.Uuid(),
            sa.ForeignKey("properties.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("type", sa.String(length=20), nullable=True),
        sa.Column("category", sa.String(length=100), nullable=True),
        *_timestamps(),
    )
    op.create_index(
        "ix_matching_rules_account_priority", "matching_rules", ["bank_account_id", "priority"]
    )


def downgrade() -> None:
    op.drop_index("ix_matching_rules_account_priority", table_name="matching_rules")
    op.drop_table("matching_rules")
    op.drop_index("ix_pending_transactions_property_id", table_name="pending_transactions")
    op.drop_table("pending_transactions")
    op.drop_index("ix_bank_transactions_transaction_date", table_name="bank_transactions")
    op.drop_index("ix_bank_transactions_bank_account_id", table_name="bank_transactions")
    op.drop_table("bank_transactions")
    op.drop_index("ix_transactions_transaction_date", table_name="transactions")
    op.drop_index("ix_transactions_category", table_name="transactions")
    op.drop_index("ix_transactions_property_id", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("uq_sync_logs_account_in_progress", table_name="sync_logs")
    op.drop_index("ix_sync_logs_bank_account_id", table_name="sync_logs")
    op.drop_table("sync_logs")
    op.drop_table("bank_accounts")
    op.drop_table("properties")
