"""Initial orchestration schema

Revision ID: 001
Revises:
Create Date: 2026-01-12 00:00:00.000000

"""
from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

JSON = sa.JSON().with_variant(JSONB(), "postgresql")


def upgrade() -> None:
    # Check if tables already exist and skip if so
    conn = op.get_bind()
    inspector = sa.inspect(conn)
    existing_tables = inspector.get_table_names()

    if "orchestration_queue" in existing_tables:
        return

    # Supporting records
    op.create_table(
        "projects",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("status", sa.Text, nullable=False, server_default="active"),
        sa.Column("github_repo", sa.Text),
        sa.Column("date_created", sa.DateTime, server_default=sa.func.now()),
    )

    op.create_table(
        "todos",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("project_id", sa.Uuid, sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("status", sa.Text, nullable=False, server_default="open"),
        sa.Column("date_created", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_todos_project_created", "todos", ["project_id", "date_created"])

    op.create_table(
        "ai_agents",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("slug", sa.Text, nullable=False, unique=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("capabilities", JSON),
        sa.Column("autonomy_level", sa.Text, server_default="suggest"),
        sa.Column("is_active", sa.Boolean, server_default=sa.true()),
        sa.Column("date_created", sa.DateTime, server_default=sa.func.now()),
    )

    op.create_table(
        "ai_suggestions",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("project_id", sa.Uuid, sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("agent_id", sa.Uuid, sa.ForeignKey("ai_agents.id", ondelete="SET NULL")),
        sa.Column("agent_slug", sa.Text),
        sa.Column("suggestion_type", sa.Text, nullable=False),
        sa.Column("title", sa.Text, nullable=False),
        sa.Column("content", JSON),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("context", JSON),
        sa.Column("requires_approval", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("date_created", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_suggestions_project_created", "ai_suggestions", ["project_id", "date_created"])

    # Orchestration
    op.create_table(
        "agent_orchestration_schedules",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("project_id", sa.Uuid, sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("agent_slug", sa.Text, nullable=False),
        sa.Column("is_enabled", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("schedule_type", sa.Text, nullable=False, server_default="daily"),
        sa.Column("cron_expression", sa.Text),
        sa.Column("timezone", sa.Text, server_default="UTC"),
        sa.Column("run_after_time", sa.Time),
        sa.Column("run_before_time", sa.Time),
        sa.Column("run_on_days", JSON),
        sa.Column("min_interval_minutes", sa.Integer, nullable=False, server_default="60"),
        sa.Column("max_runs_per_day", sa.Integer, nullable=False, server_default="24"),
        sa.Column("cooldown_after_error_minutes", sa.Integer, nullable=False, server_default="30"),
        sa.Column("priority", sa.Integer, nullable=False, server_default="5"),
        sa.Column("allow_concurrent", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("last_run_at", sa.DateTime),
        sa.Column("last_success_at", sa.DateTime),
        sa.Column("last_failure_at", sa.DateTime),
        sa.Column("consecutive_failures", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_runs", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_successes", sa.Integer, nullable=False, server_default="0"),
        sa.Column("date_created", sa.DateTime, server_default=sa.func.now()),
        sa.Column("date_updated", sa.DateTime, server_default=sa.func.now()),
        sa.CheckConstraint("priority BETWEEN 1 AND 10", name="ck_schedule_priority"),
    )
    op.create_index("idx_orch_schedules_project", "agent_orchestration_schedules", ["project_id"])
    op.create_index("idx_orch_schedules_enabled", "agent_orchestration_schedules", ["is_enabled"])

    op.create_table(
        "orchestration_jobs",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("project_id", sa.Uuid, sa.ForeignKey("projects.id", ondelete="CASCADE")),
        sa.Column("job_type", sa.Text, nullable=False, server_default="batch"),
        sa.Column("triggered_by", sa.Text, nullable=False, server_default="system"),
        sa.Column("triggered_by_user_id", sa.Text),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("scheduled_at", sa.DateTime),
        sa.Column("started_at", sa.DateTime),
        sa.Column("completed_at", sa.DateTime),
        sa.Column("timeout_at", sa.DateTime),
        sa.Column("duration_ms", sa.Integer),
        sa.Column("agents_executed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("agents_succeeded", sa.Integer, nullable=False, server_default="0"),
        sa.Column("agents_failed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("tasks_created", sa.Integer, nullable=False, server_default="0"),
        sa.Column("error_message", sa.Text),
        sa.Column("error_code", sa.Text),
        sa.Column("attempt_number", sa.Integer, nullable=False, server_default="1"),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default="3"),
        sa.Column("input_params", JSON),
        sa.Column("output_summary", JSON),
        sa.Column("date_created", sa.DateTime, server_default=sa.func.now()),
        sa.Column("date_updated", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_orch_jobs_project", "orchestration_jobs", ["project_id"])
    op.create_index("idx_orch_jobs_status", "orchestration_jobs", ["status"])

    op.create_table(
        "orchestration_execution_logs",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("job_id", sa.Uuid, sa.ForeignKey("orchestration_jobs.id", ondelete="CASCADE"), nullable=False),
        sa.Column(
            "schedule_id",
            sa.Uuid,
            sa.ForeignKey("agent_orchestration_schedules.id", ondelete="SET NULL"),
        ),
        sa.Column("project_id", sa.Uuid),
        sa.Column("agent_id", sa.Uuid),
        sa.Column("agent_slug", sa.Text, nullable=False),
        sa.Column("agent_name", sa.Text),
        sa.Column("phase", sa.Text, nullable=False, server_default="analyze"),
        sa.Column("status", sa.Text, nullable=False, server_default="pending"),
        sa.Column("started_at", sa.DateTime),
        sa.Column("completed_at", sa.DateTime),
        sa.Column("duration_ms", sa.Integer),
        sa.Column("should_act", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("do_nothing_reason", sa.Text),
        sa.Column("confidence_score", sa.Float),
        sa.Column("context_summary", JSON),
        sa.Column("github_data_used", JSON),
        sa.Column("actions_proposed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("actions_executed", sa.Integer, nullable=False, server_default="0"),
        sa.Column("actions_approved", sa.Integer, nullable=False, server_default="0"),
        sa.Column("actions_rejected", sa.Integer, nullable=False, server_default="0"),
        sa.Column("output_data", JSON),
        sa.Column("suggestions_created", JSON),
        sa.Column("tasks_created", JSON),
        sa.Column("error_message", sa.Text),
        sa.Column("tokens_used", sa.Integer, nullable=False, server_default="0"),
        sa.Column("estimated_cost_cents", sa.Integer, nullable=False, server_default="0"),
        sa.Column("date_created", sa.DateTime, server_default=sa.func.now()),
    )
    op.create_index("idx_orch_logs_job", "orchestration_execution_logs", ["job_id"])
    op.create_index("idx_orch_logs_status", "orchestration_execution_logs", ["status"])

    op.create_table(
        "github_analysis_cache",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("project_id", sa.Uuid, sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("period_type", sa.Text, nullable=False, server_default="daily"),
        sa.Column("period_start", sa.DateTime, nullable=False),
        sa.Column("period_end", sa.DateTime, nullable=False),
        sa.Column("commits_count", sa.Integer, server_default="0"),
        sa.Column("commits_by_author", JSON),
        sa.Column("files_changed", sa.Integer, server_default="0"),
        sa.Column("lines_added", sa.Integer, server_default="0"),
        sa.Column("lines_removed", sa.Integer, server_default="0"),
        sa.Column("prs_opened", sa.Integer, server_default="0"),
        sa.Column("prs_merged", sa.Integer, server_default="0"),
        sa.Column("prs_closed", sa.Integer, server_default="0"),
        sa.Column("avg_pr_review_hours", sa.Float),
        sa.Column("avg_pr_merge_hours", sa.Float),
        sa.Column("issues_opened", sa.Integer, server_default="0"),
        sa.Column("issues_closed", sa.Integer, server_default="0"),
        sa.Column("avg_issue_resolution_hours", sa.Float),
        sa.Column("issues_by_label", JSON),
        sa.Column("velocity_score", sa.Float),
        sa.Column("velocity_trend", sa.Text),
        sa.Column("velocity_change_percent", sa.Float),
        sa.Column("active_contributors", sa.Integer, server_default="0"),
        sa.Column("hot_spots", JSON),
        sa.Column("data_hash", sa.Text),
        sa.Column("analyzed_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("expires_at", sa.DateTime),
        sa.Column("is_stale", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("project_id", "period_type", "period_start", name="uq_github_cache_window"),
    )
    op.create_index("idx_github_cache_project", "github_analysis_cache", ["project_id"])

    op.create_table(
        "autonomous_action_config",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("project_id", sa.Uuid, sa.ForeignKey("projects.id", ondelete="CASCADE"), nullable=False),
        sa.Column("action_key", sa.Text, nullable=False),
        sa.Column("action_name", sa.Text),
        sa.Column("action_category", sa.Text),
        sa.Column("agent_slug", sa.Text),
        sa.Column("is_enabled", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("requires_approval", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("risk_level", sa.Text, nullable=False, server_default="medium"),
        sa.Column("date_created", sa.DateTime, server_default=sa.func.now()),
        sa.Column("date_updated", sa.DateTime, server_default=sa.func.now()),
        sa.UniqueConstraint("project_id", "action_key", "agent_slug", name="uq_action_config_key"),
    )
    op.create_index("idx_action_config_project", "autonomous_action_config", ["project_id"])
    op.create_index("idx_action_config_agent", "autonomous_action_config", ["agent_slug"])

    # Queue substrate
    op.create_table(
        "orchestration_queue",
        sa.Column("id", sa.Uuid, primary_key=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("job_type", sa.Text, nullable=False),
        sa.Column("data", JSON, nullable=False),
        sa.Column("status", sa.Text, nullable=False),
        sa.Column("priority", sa.Integer, nullable=False, server_default="5"),
        sa.Column("run_after", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("attempts_made", sa.Integer, nullable=False, server_default="0"),
        sa.Column("max_attempts", sa.Integer, nullable=False, server_default="3"),
        sa.Column("result", JSON),
        sa.Column("last_error", sa.Text),
        sa.Column("created_at", sa.DateTime, server_default=sa.func.now()),
        sa.Column("started_at", sa.DateTime),
        sa.Column("finished_at", sa.DateTime),
    )
    op.create_index("idx_queue_status_priority", "orchestration_queue", ["status", "priority"])
    op.create_index("idx_queue_run_after", "orchestration_queue", ["run_after"])


def downgrade() -> None:
    op.drop_table("orchestration_queue")
    op.drop_table("autonomous_action_config")
    op.drop_table("github_analysis_cache")
    op.drop_table("orchestration_execution_logs")
    op.drop_table("orchestration_jobs")
    op.drop_table("agent_orchestration_schedules")
    op.drop_table("ai_suggestions")
    op.drop_table("ai_agents")
    op.drop_table("todos")
    op.drop_table("projects")
