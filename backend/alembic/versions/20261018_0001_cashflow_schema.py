"""Initial schema for cash flow analytics.

Revision ID: 20261018_0001
Revises:
Create Date: 2026-10-18 09:30:00
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261018_0001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _enums() -> dict[str, sa.Enum]:
    return {
        "transaction_type": sa.Enum("inflow", "outflow", name="transaction_type"),
        "scenario_type": sa.Enum("base", "optimistic", "pessimistic", "stress_test", name="scenario_type"),
        "forecast_model": sa.Enum("prophet", "arima", "regression", "lstm", "ensemble", name="forecast_model"),
        "alert_type": sa.Enum(
            "liquidity_risk",
            "outflow_spike",
            "receivable_aging",
            "runway_warning",
            "seasonal_anomaly",
            name="alert_type",
        ),
        "alert_severity": sa.Enum("low", "medium", "high", "critical", name="alert_severity"),
        "recommendation_category": sa.Enum(
            "credit_line",
            "collection_strategy",
            "payment_terms",
            "working_capital",
            "cost_optimization",
            "revenue_acceleration",
            "cash_management",
            name="recommendation_category",
        ),
        "recommendation_priority": sa.Enum("low", "medium", "high", "urgent", name="recommendation_priority"),
        "recommendation_status": sa.Enum(
            "pending", "in_progress", "implemented", "dismissed", name="recommendation_status"
        ),
    }


def upgrade() -> None:
    enums = _enums()
    for enum_type in enums.values():
        enum_type.create(op.get_bind(), checkfirst=True)

    op.create_table(
        "business_segments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_business_segments_id", "business_segments", ["id"])
    op.create_index("ix_business_segments_name", "business_segments", ["name"], unique=True)

    op.create_table(
        "cash_transactions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "segment_id",
            sa.Integer(),
            sa.ForeignKey("business_segments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("tx_date", sa.Date(), nullable=False),
        sa.Column("amount", sa.Numeric(24, 2), nullable=False),
        sa.Column("direction", enums["transaction_type"], nullable=False),
        sa.Column("category", sa.String(length=100), nullable=False, server_default="general"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("is_paid", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("due_date", sa.Date(), nullable=True),
        sa.Column("aging_days", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_cash_transactions_id", "cash_transactions", ["id"])
    op.create_index("ix_cash_transactions_segment_id", "cash_transactions", ["segment_id"])
    op.create_index("ix_cash_transactions_tx_date", "cash_transactions", ["tx_date"])

    op.create_table(
        "simulation_results",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("simulation_id", sa.String(length=64), nullable=False),
        sa.Column("run_number", sa.Integer(), nullable=False),
        sa.Column("scenario", enums["scenario_type"], nullable=False),
        sa.Column("time_horizon", sa.Integer(), nullable=False),
        sa.Column("num_runs", sa.Integer(), nullable=False),
        sa.Column(
            "segment_id",
            sa.Integer(),
            sa.ForeignKey("business_segments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("monthly_results", sa.JSON(), nullable=False),
        sa.Column("final_balance", sa.Numeric(24, 2), nullable=False),
        sa.Column("min_balance", sa.Numeric(24, 2), nullable=False),
        sa.Column("max_balance", sa.Numeric(24, 2), nullable=False),
        sa.Column("probability_negative", sa.Integer(), nullable=False),
        sa.Column("runway_months", sa.Integer(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("simulation_id", "run_number", name="uq_simulation_results_sim_run"),
    )
    op.create_index("ix_simulation_results_id", "simulation_results", ["id"])
    op.create_index("ix_simulation_results_simulation_id", "simulation_results", ["simulation_id"])
    op.create_index("ix_simulation_results_created_at", "simulation_results", ["created_at"])

    op.create_table(
        "cash_flow_forecasts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "segment_id",
            sa.Integer(),
            sa.ForeignKey("business_segments.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("forecast_date", sa.Date(), nullable=False),
        sa.Column("predicted_amount", sa.Numeric(24, 2), nullable=False),
        sa.Column("actual_amount", sa.Numeric(24, 2), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("lower_bound", sa.Numeric(24, 2), nullable=False),
        sa.Column("upper_bound", sa.Numeric(24, 2), nullable=False),
        sa.Column("model_type", enums["forecast_model"], nullable=False),
        sa.Column("scenario", enums["scenario_type"], nullable=False, server_default="base"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_cash_flow_forecasts_id", "cash_flow_forecasts", ["id"])
    op.create_index("ix_cash_flow_forecasts_segment_id", "cash_flow_forecasts", ["segment_id"])
    op.create_index("ix_cash_flow_forecasts_forecast_date", "cash_flow_forecasts", ["forecast_date"])

    op.create_table(
        "kpi_snapshots",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "segment_id",
            sa.Integer(),
            sa.ForeignKey("business_segments.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column("snapshot_date", sa.Date(), nullable=False),
        sa.Column("total_inflow", sa.Numeric(24, 2), nullable=False),
        sa.Column("total_outflow", sa.Numeric(24, 2), nullable=False),
        sa.Column("net_cash_flow", sa.Numeric(24, 2), nullable=False),
        sa.Column("burn_rate", sa.Numeric(24, 2), nullable=False),
        sa.Column("cash_balance", sa.Numeric(24, 2), nullable=False),
        sa.Column("runway_months", sa.Integer(), nullable=True),
        sa.Column("working_capital_ratio", sa.Float(), nullable=True),
        sa.Column("monthly_growth_rate", sa.Float(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_kpi_snapshots_id", "kpi_snapshots", ["id"])
    op.create_index("ix_kpi_snapshots_segment_id", "kpi_snapshots", ["segment_id"])
    op.create_index("ix_kpi_snapshots_snapshot_date", "kpi_snapshots", ["snapshot_date"])

    op.create_table(
        "risk_alerts",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "segment_id",
            sa.Integer(),
            sa.ForeignKey("business_segments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("alert_type", enums["alert_type"], nullable=False),
        sa.Column("severity", enums["alert_severity"], nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False, server_default=""),
        sa.Column("affected_amount", sa.Numeric(24, 2), nullable=True),
        sa.Column("recommendations", sa.JSON(), nullable=True),
        sa.Column("triggered_by", sa.JSON(), nullable=True),
        sa.Column("is_resolved", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("triggered_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_risk_alerts_id", "risk_alerts", ["id"])
    op.create_index("ix_risk_alerts_segment_id", "risk_alerts", ["segment_id"])
    op.create_index("ix_risk_alerts_severity", "risk_alerts", ["severity"])
    op.create_index("ix_risk_alerts_is_resolved", "risk_alerts", ["is_resolved"])

    op.create_table(
        "business_recommendations",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "segment_id",
            sa.Integer(),
            sa.ForeignKey("business_segments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("category", enums["recommendation_category"], nullable=False),
        sa.Column("priority", enums["recommendation_priority"], nullable=False, server_default="medium"),
        sa.Column("status", enums["recommendation_status"], nullable=False, server_default="pending"),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("estimated_impact", sa.Numeric(24, 2), nullable=True),
        sa.Column("implementation_cost", sa.Numeric(24, 2), nullable=True),
        sa.Column("time_to_implement", sa.String(length=100), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("based_on_data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("implemented_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("ix_business_recommendations_id", "business_recommendations", ["id"])
    op.create_index("ix_business_recommendations_segment_id", "business_recommendations", ["segment_id"])


def downgrade() -> None:
    op.drop_index("ix_business_recommendations_segment_id", table_name="business_recommendations")
    op.drop_index("ix_business_recommendations_id", table_name="business_recommendations")
    op.drop_table("business_recommendations")
    op.drop_index("ix_risk_alerts_is_resolved", table_name="risk_alerts")
    op.drop_index("ix_risk_alerts_severity", table_name="risk_alerts")
    op.drop_index("ix_risk_alerts_segment_id", table_name="risk_alerts")
    op.drop_index("ix_risk_alerts_id", table_name="risk_alerts")
    op.drop_table("risk_alerts")
    op.drop_index("ix_kpi_snapshots_snapshot_date", table_name="kpi_snapshots")
    op.drop_index("ix_kpi_snapshots_segment_id", table_name="kpi_snapshots")
    op.drop_index("ix_kpi_snapshots_id", table_name="kpi_snapshots")
    op.drop_table("kpi_snapshots")
    op.drop_index("ix_cash_flow_forecasts_forecast_date", table_name="cash_flow_forecasts")
    op.drop_index("ix_cash_flow_forecasts_segment_id", table_name="cash_flow_forecasts")
    op.drop_index("ix_cash_flow_forecasts_id", table_name="cash_flow_forecasts")
    op.drop_table("cash_flow_forecasts")
    op.drop_index("ix_simulation_results_created_at", table_name="simulation_results")
    op.drop_index("ix_simulation_results_simulation_id", table_name="simulation_results")
    op.drop_index("ix_simulation_results_id", table_name="simulation_results")
    op.drop_table("simulation_results")
    op.drop_index("ix_cash_transactions_tx_date", table_name="cash_transactions")
    op.drop_index("ix_cash_transactions_segment_id", table_name="cash_transactions")
    op.drop_index("ix_cash_transactions_id", table_name="cash_transactions")
    op.drop_table("cash_transactions")
    op.drop_index("ix_business_segments_name", table_name="business_segments")
    op.drop_index("ix_business_segments_id", table_name="business_segments")
    op.drop_table("business_segments")

    for enum_type in reversed(list(_enums().values())):
        enum_type.drop(op.get_bind(), checkfirst=True)
