"""Initial schema: backtest runs, their trades and walk-forward periods.

Revision ID: 001
Revises:
Create Date: 2026-10-16
"""

from __future__ import annotations

import sqlalchemy as sa

from alembic import op

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # --- backtest_run ---
    op.create_table(
        "backtest_run",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("strategy", sa.String(), nullable=False),
        sa.Column("symbol", sa.String(), nullable=False),
        sa.Column("timeframe", sa.String(), nullable=False),
        sa.Column("start_date", sa.String(), nullable=False),
        sa.Column("end_date", sa.String(), nullable=False),
        sa.Column("initial_capital", sa.String(), nullable=False),
        sa.Column("final_equity", sa.String(), nullable=False),
        sa.Column("params", sa.Text(), nullable=False),
        sa.Column("total_return", sa.Float(), nullable=False),
        sa.Column("win_rate", sa.Float(), nullable=True),
        sa.Column("profit_factor", sa.Float(), nullable=True),
        sa.Column("sharpe_ratio", sa.Float(), nullable=True),
        sa.Column("sortino_ratio", sa.Float(), nullable=True),
        sa.Column("calmar_ratio", sa.Float(), nullable=True),
        sa.Column("max_drawdown", sa.Float(), nullable=False),
        sa.Column("total_trades", sa.Integer(), nullable=False),
        sa.Column("equity_curve", sa.Text(), nullable=False),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    # --- backtest_trade ---
    op.create_table(
        "backtest_trade",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("run_id", sa.Integer(), nullable=False),
        sa.Column("symbol", sa.String(), nullable=False),
        sa.Column("side", sa.String(), nullable=False),
        sa.Column("qty", sa.String(), nullable=False),
        sa.Column("entry_price", sa.String(), nullable=False),
        sa.Column("exit_price", sa.String(), nullable=False),
        sa.Column("entry_at", sa.String(), nullable=False),
        sa.Column("exit_at", sa.String(), nullable=False),
        sa.Column("pnl", sa.String(), nullable=False),
        sa.Column("pnl_pct", sa.Float(), nullable=False),
        sa.Column("holding_bars", sa.Integer(), nullable=False),
        sa.Column("duration_seconds", sa.Integer(), nullable=False),
        sa.Column("exit_reason", sa.String(), nullable=False),
        sa.ForeignKeyConstraint(["run_id"], ["backtest_run.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_backtest_trade_run", "backtest_trade", ["run_id"])

    # --- walk_forward_period ---
    op.create_table(
        "walk_forward_period",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("analysis_id", sa.String(), nullable=False),
        sa.Column("period_index", sa.Integer(), nullable=False),
        sa.Column("window_start", sa.Integer(), nullable=False),
        sa.Column("in_sample_end", sa.Integer(), nullable=False),
        sa.Column("window_end", sa.Integer(), nullable=False),
        sa.Column("params", sa.Text(), nullable=False),
        sa.Column("in_sample_fitness", sa.Float(), nullable=False),
        sa.Column("degradation", sa.Float(), nullable=True),
        sa.Column("in_sample_run_id", sa.Integer(), nullable=False),
        sa.Column("out_of_sample_run_id", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.ForeignKeyConstraint(["in_sample_run_id"], ["backtest_run.id"]),
        sa.ForeignKeyConstraint(["out_of_sample_run_id"], ["backtest_run.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_walk_forward_period_analysis", "walk_forward_period", ["analysis_id"],
    )


def downgrade() -> None:
    op.drop_index("ix_walk_forward_period_analysis", table_name="walk_forward_period")
    op.drop_table("walk_forward_period")
    op.drop_index("ix_backtest_trade_run", table_name="backtest_trade")
    op.drop_table("backtest_trade")
    op.drop_table("backtest_run")
