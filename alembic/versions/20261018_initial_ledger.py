"""
Initial database schema for the ledger service.

This migration creates the tables used by the database ledger store:
wallet, holdings and trade_intents.  They correspond to the SQLAlchemy
metadata defined in ``server/src/papertrade/services/db_ledger_store.py``.
The wallet row itself is seeded by the service on start-up (or by
``scripts/init_db.py``), not by the migration.

Revision ID: 20261018_initial_ledger
Revises:
Create Date: 2026-10-18
"""

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision = "20261018_initial_ledger"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    """Create wallet, holdings and trade_intents tables."""
    op.create_table(
        "wallet",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("balance", sa.Numeric(precision=18, scale=8), nullable=False),
    )
    op.create_table(
        "holdings",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("symbol", sa.String(), nullable=False, unique=True),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("total_cost", sa.Numeric(precision=18, scale=8), nullable=False),
        sa.Column("average_cost_per_share", sa.Numeric(precision=18, scale=8), nullable=False),
        sa.Column("current_price", sa.Numeric(precision=18, scale=8), nullable=False),
        sa.Column("change", sa.Numeric(precision=18, scale=8), nullable=False),
        sa.Column("market_value", sa.Numeric(precision=18, scale=8), nullable=False),
    )
    op.create_table(
        "trade_intents",
        sa.Column("intent_id", sa.String(), primary_key=True),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )


def downgrade() -> None:
    """Drop trade_intents, holdings and wallet tables."""
    op.drop_table("trade_intents")
    op.drop_table("holdings")
    op.drop_table("wallet")
