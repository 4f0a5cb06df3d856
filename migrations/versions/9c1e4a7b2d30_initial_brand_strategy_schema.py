"""initial_brand_strategy_schema

Create strategies, pillars and their versions, market studies, score
snapshots, signals and decisions, metric thresholds, widget results,
translation documents, missions and market pricing, and the audit log.

Revision ID: 9c1e4a7b2d30
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect as sa_inspect


# revision identifiers, used by Alembic.
revision = "9c1e4a7b2d30"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade():
    bind = op.get_bind()
    existing_tables = set(sa_inspect(bind).get_table_names())

    if "strategies" not in existing_tables:
        op.create_table(
            "strategies",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("owner", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("name", sa.String(length=200), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("sector", sa.String(length=100), nullable=True),
            sa.Column("vertical", sa.String(length=50), nullable=True),
            sa.Column("phase", sa.String(length=30), nullable=False, server_default="fiche"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="draft"),
            sa.Column("interview_data", sa.JSON(), nullable=True),
            sa.Column("coherence_score", sa.Float(), nullable=True),
            sa.Column("scores_updated_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.CheckConstraint(
                "status IN ('draft','generating','complete','archived')", name="ck_strategy_status",
            ),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_strategies_owner", "strategies", ["owner"])
        op.create_index("ix_strategies_phase", "strategies", ["phase"])

    if "pillars" not in existing_tables:
        op.create_table(
            "pillars",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("strategy_id", sa.String(length=36), nullable=False),
            sa.Column("type", sa.String(length=1), nullable=False),
            sa.Column("title", sa.String(length=100), nullable=False),
            sa.Column("order", sa.Integer(), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("content", sa.JSON(), nullable=True),
            sa.Column("summary", sa.Text(), nullable=True),
            sa.Column("version", sa.Integer(), nullable=False, server_default="0"),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("stale_reason", sa.Text(), nullable=True),
            sa.Column("stale_since", sa.DateTime(timezone=True), nullable=True),
            sa.Column("generated_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("generation_started_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["strategy_id"], ["strategies.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("strategy_id", "type", name="uq_pillar_strategy_type"),
        )
        op.create_index("ix_pillars_strategy_id", "pillars", ["strategy_id"])

    if "pillar_versions" not in existing_tables:
        op.create_table(
            "pillar_versions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("pillar_id", sa.String(length=36), nullable=False),
            sa.Column("version", sa.Integer(), nullable=False),
            sa.Column("content", sa.JSON(), nullable=True),
            sa.Column("summary", sa.Text(), nullable=True),
            sa.Column("source", sa.String(length=20), nullable=False, server_default="generation"),
            sa.Column("created_by", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["pillar_id"], ["pillars.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("pillar_id", "version", name="uq_pillar_version"),
        )
        op.create_index("ix_pillar_versions_pillar_id", "pillar_versions", ["pillar_id"])

    if "market_studies" not in existing_tables:
        op.create_table(
            "market_studies",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("strategy_id", sa.String(length=36), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("source_data", sa.JSON(), nullable=True),
            sa.Column("synthesis", sa.JSON(), nullable=True),
            sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["strategy_id"], ["strategies.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("strategy_id"),
        )

    if "score_snapshots" not in existing_tables:
        op.create_table(
            "score_snapshots",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("strategy_id", sa.String(length=36), nullable=False),
            sa.Column("coherence_score", sa.Float(), nullable=False),
            sa.Column("risk_score", sa.Float(), nullable=True),
            sa.Column("bmf_score", sa.Float(), nullable=True),
            sa.Column("breakdown", sa.JSON(), nullable=True),
            sa.Column("trigger", sa.String(length=50), nullable=False, server_default="manual"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["strategy_id"], ["strategies.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_score_snapshots_strategy_id", "score_snapshots", ["strategy_id"])

    if "signals" not in existing_tables:
        op.create_table(
            "signals",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("strategy_id", sa.String(length=36), nullable=False),
            sa.Column("layer", sa.String(length=10), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False),
            sa.Column("pillar", sa.String(length=1), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("source", sa.String(length=50), nullable=True),
            sa.Column("confidence", sa.String(length=10), nullable=False, server_default="MEDIUM"),
            sa.Column("metric_key", sa.String(length=100), nullable=True),
            sa.Column("metric_value", sa.Float(), nullable=True),
            sa.Column("detected_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("last_checked_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.CheckConstraint("layer IN ('METRIC','STRONG','WEAK')", name="ck_signal_layer"),
            sa.ForeignKeyConstraint(["strategy_id"], ["strategies.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_signals_strategy_id", "signals", ["strategy_id"])
        op.create_index("ix_signals_metric_key", "signals", ["metric_key"])
        op.create_index("idx_signal_strategy_layer", "signals", ["strategy_id", "layer"])

    if "signal_mutations" not in existing_tables:
        op.create_table(
            "signal_mutations",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("signal_id", sa.String(length=36), nullable=False),
            sa.Column("from_status", sa.String(length=20), nullable=False),
            sa.Column("to_status", sa.String(length=20), nullable=False),
            sa.Column("reason", sa.Text(), nullable=True),
            sa.Column("mutated_by", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["signal_id"], ["signals.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_signal_mutations_signal_id", "signal_mutations", ["signal_id"])

    if "decisions" not in existing_tables:
        op.create_table(
            "decisions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("strategy_id", sa.String(length=36), nullable=False),
            sa.Column("signal_id", sa.String(length=36), nullable=True),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("priority", sa.String(length=2), nullable=False, server_default="P1"),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
            sa.Column("deadline_type", sa.String(length=20), nullable=True),
            sa.Column("deadline", sa.DateTime(timezone=True), nullable=True),
            sa.Column("resolution", sa.Text(), nullable=True),
            sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_by", sa.String(length=150), nullable=False, server_default="system"),
            *_timestamps(),
            sa.CheckConstraint("priority IN ('P0','P1','P2')", name="ck_decision_priority"),
            sa.CheckConstraint(
                "status IN ('PENDING','IN_PROGRESS','RESOLVED','DEFERRED')", name="ck_decision_status",
            ),
            sa.ForeignKeyConstraint(["strategy_id"], ["strategies.id"], ondelete="CASCADE"),
            sa.ForeignKeyConstraint(["signal_id"], ["signals.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("signal_id"),
        )
        op.create_index("ix_decisions_strategy_id", "decisions", ["strategy_id"])

    if "metric_thresholds" not in existing_tables:
        op.create_table(
            "metric_thresholds",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("strategy_id", sa.String(length=36), nullable=False),
            sa.Column("metric_key", sa.String(length=100), nullable=False),
            sa.Column("label", sa.String(length=200), nullable=False),
            sa.Column("pillar", sa.String(length=1), nullable=True),
            sa.Column("direction", sa.String(length=10), nullable=False, server_default="above"),
            sa.Column("warning_value", sa.Float(), nullable=False),
            sa.Column("critical_value", sa.Float(), nullable=False),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["strategy_id"], ["strategies.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("strategy_id", "metric_key", name="uq_threshold_strategy_metric"),
        )
        op.create_index("ix_metric_thresholds_strategy_id", "metric_thresholds", ["strategy_id"])

    if "widget_results" not in existing_tables:
        op.create_table(
            "widget_results",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("strategy_id", sa.String(length=36), nullable=False),
            sa.Column("widget_type", sa.String(length=50), nullable=False),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
            sa.Column("data", sa.JSON(), nullable=True),
            sa.Column("schema_warning", sa.Text(), nullable=True),
            sa.Column("error_message", sa.Text(), nullable=True),
            sa.Column("computed_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["strategy_id"], ["strategies.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("strategy_id", "widget_type", name="uq_widget_strategy_type"),
        )
        op.create_index("ix_widget_results_strategy_id", "widget_results", ["strategy_id"])

    if "translation_documents" not in existing_tables:
        op.create_table(
            "translation_documents",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("strategy_id", sa.String(length=36), nullable=False),
            sa.Column("type", sa.String(length=50), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("source_pillars", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="DRAFT"),
            sa.Column("stale_reason", sa.Text(), nullable=True),
            sa.Column("stale_since", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["strategy_id"], ["strategies.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_translation_documents_strategy_id", "translation_documents", ["strategy_id"])

    if "missions" not in existing_tables:
        op.create_table(
            "missions",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("strategy_id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="INTAKE"),
            sa.Column("client_name", sa.String(length=200), nullable=True),
            sa.Column("budget", sa.Float(), nullable=True),
            sa.Column("currency", sa.String(length=10), nullable=False, server_default="XAF"),
            sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("closed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_by", sa.String(length=150), nullable=False, server_default="system"),
            *_timestamps(),
            sa.ForeignKeyConstraint(["strategy_id"], ["strategies.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_missions_strategy_id", "missions", ["strategy_id"])
        op.create_index("ix_missions_status", "missions", ["status"])

    if "mission_assignments" not in existing_tables:
        op.create_table(
            "mission_assignments",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("mission_id", sa.String(length=36), nullable=False),
            sa.Column("talent_name", sa.String(length=200), nullable=False),
            sa.Column("role", sa.String(length=100), nullable=False),
            sa.Column("day_rate", sa.Float(), nullable=True),
            sa.Column("estimated_days", sa.Float(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="ASSIGNED"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["mission_id"], ["missions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_mission_assignments_mission_id", "mission_assignments", ["mission_id"])

    if "mission_deliverables" not in existing_tables:
        op.create_table(
            "mission_deliverables",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("mission_id", sa.String(length=36), nullable=False),
            sa.Column("title", sa.String(length=300), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("status", sa.String(length=20), nullable=False, server_default="PENDING"),
            sa.Column("file_url", sa.String(length=500), nullable=True),
            sa.Column("review_notes", sa.Text(), nullable=True),
            sa.Column("reviewed_by", sa.String(length=150), nullable=True),
            sa.Column("uploaded_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("reviewed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["mission_id"], ["missions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_mission_deliverables_mission_id", "mission_deliverables", ["mission_id"])

    if "mission_debriefs" not in existing_tables:
        op.create_table(
            "mission_debriefs",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("mission_id", sa.String(length=36), nullable=False),
            sa.Column("summary", sa.Text(), nullable=False),
            sa.Column("lessons_learned", sa.Text(), nullable=True),
            sa.Column("client_feedback", sa.Text(), nullable=True),
            sa.Column("quality_score", sa.Integer(), nullable=True),
            sa.Column("on_time", sa.Boolean(), nullable=True),
            sa.Column("on_budget", sa.Boolean(), nullable=True),
            sa.Column("signals_suggested", sa.JSON(), nullable=True),
            sa.Column("pricing_insights", sa.JSON(), nullable=True),
            sa.Column("completed_by", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("created_at", sa.DateTime(timezone=True), nullable=True),
            sa.ForeignKeyConstraint(["mission_id"], ["missions.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("mission_id"),
        )

    if "market_pricing" not in existing_tables:
        op.create_table(
            "market_pricing",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("market", sa.String(length=10), nullable=False, server_default="CM"),
            sa.Column("category", sa.String(length=50), nullable=False, server_default="TALENT"),
            sa.Column("subcategory", sa.String(length=100), nullable=False, server_default="general"),
            sa.Column("label", sa.String(length=200), nullable=False),
            sa.Column("min_price", sa.Float(), nullable=False),
            sa.Column("max_price", sa.Float(), nullable=False),
            sa.Column("avg_price", sa.Float(), nullable=False),
            sa.Column("currency", sa.String(length=10), nullable=False, server_default="XAF"),
            sa.Column("unit", sa.String(length=30), nullable=False, server_default="per_day"),
            sa.Column("source", sa.String(length=50), nullable=False, server_default="manual"),
            sa.Column("confidence", sa.String(length=10), nullable=False, server_default="MEDIUM"),
            sa.Column("strategy_id", sa.String(length=36), nullable=True),
            *_timestamps(),
            sa.ForeignKeyConstraint(["strategy_id"], ["strategies.id"], ondelete="SET NULL"),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("market", "category", "subcategory", name="uq_market_pricing_key"),
        )
        op.create_index("ix_market_pricing_strategy_id", "market_pricing", ["strategy_id"])

    if "audit_logs" not in existing_tables:
        op.create_table(
            "audit_logs",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("strategy_id", sa.String(length=36), nullable=True),
            sa.Column("entity_type", sa.String(length=30), nullable=False),
            sa.Column("entity_id", sa.String(length=36), nullable=False),
            sa.Column("action", sa.String(length=60), nullable=False),
            sa.Column("actor", sa.String(length=150), nullable=False, server_default="system"),
            sa.Column("diff_json", sa.Text(), nullable=True),
            sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
            sa.ForeignKeyConstraint(["strategy_id"], ["strategies.id"], ondelete="CASCADE"),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_audit_logs_strategy_id", "audit_logs", ["strategy_id"])
        op.create_index("idx_audit_entity", "audit_logs", ["entity_type", "entity_id"])
        op.create_index("idx_audit_action", "audit_logs", ["action"])
        op.create_index("idx_audit_ts", "audit_logs", ["timestamp"])


def downgrade():
    for table in (
        "audit_logs", "market_pricing", "mission_debriefs", "mission_deliverables",
        "mission_assignments", "missions", "translation_documents", "widget_results",
        "metric_thresholds", "decisions", "signal_mutations", "signals",
        "score_snapshots", "market_studies", "pillar_versions", "pillars", "strategies",
    ):
        op.drop_table(table)
