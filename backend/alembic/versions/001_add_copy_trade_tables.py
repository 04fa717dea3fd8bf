"""add copy trade tables

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "copy_subscriptions",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("source_wallet", sa.String(64), nullable=False),
        sa.Column("mode", sa.Enum("recommend", "auto", name="copymode"), nullable=False, server_default=sa.text("'recommend'")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "source_wallet", name="uq_copy_subscription_user_wallet"),
    )
    op.create_index("ix_copy_subscriptions_user_id", "copy_subscriptions", ["user_id"])
    op.create_index("ix_copy_subscriptions_source_wallet", "copy_subscriptions", ["source_wallet"])

    op.create_table(
        "trading_accounts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("wallet_address", sa.String(64), nullable=False),
        sa.Column("encrypted_credentials", sa.Text(), nullable=False),
        sa.Column("copy_enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("copy_percentage", sa.Float(), nullable=False, server_default=sa.text("10.0")),
        sa.Column("max_trade_size", sa.Float(), nullable=True),
        sa.Column("daily_limit", sa.Float(), nullable=True),
        sa.Column("max_per_market", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id"),
    )
    op.create_index("ix_trading_accounts_user_id", "trading_accounts", ["user_id"])

    op.create_table(
        "copy_trades",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("source_wallet", sa.String(64), nullable=False),
        sa.Column("source_trade_hash", sa.String(128), nullable=False),
        sa.Column("market_condition_id", sa.String(128), nullable=False),
        sa.Column("market_title", sa.String(500), nullable=False, server_default=sa.text("''")),
        sa.Column("side", sa.Enum("BUY", "SELL", name="tradeside"), nullable=False),
        sa.Column("size", sa.Float(), nullable=False),
        sa.Column("price", sa.Float(), nullable=False),
        sa.Column("status", sa.Enum("pending", "executed", "failed", "skipped", name="copytradestatus"), nullable=False, server_default=sa.text("'pending'")),
        sa.Column("order_id", sa.String(128), nullable=True),
        sa.Column("tx_hash", sa.String(128), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("reason_code", sa.Enum("daily_limit_exceeded", "market_limit_reached", "execution_failed", name="reasoncode"), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("executed_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "source_trade_hash", name="uq_copy_trade_user_source_hash"),
    )
    op.create_index("ix_copy_trades_user_id", "copy_trades", ["user_id"])
    op.create_index("ix_copy_trades_market_condition_id", "copy_trades", ["market_condition_id"])
    op.create_index("ix_copy_trades_user_created_status", "copy_trades", ["user_id", "created_at", "status"])

    op.create_table(
        "ignored_markets",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("pattern", sa.String(200), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "pattern", name="uq_ignored_market_user_pattern"),
    )
    op.create_index("ix_ignored_markets_user_id", "ignored_markets", ["user_id"])


def downgrade() -> None:
    op.drop_table("ignored_markets")
    op.drop_table("copy_trades")
    op.drop_table("trading_accounts")
    op.drop_table("copy_subscriptions")
    op.execute("DROP TYPE IF EXISTS copymode")
    op.execute("DROP TYPE IF EXISTS tradeside")
    op.execute("DROP TYPE IF EXISTS copytradestatus")
    op.execute("DROP TYPE IF EXISTS reasoncode")
