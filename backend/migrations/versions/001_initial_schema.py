"""Initial schema — organizations, sources, scrape_jobs, camps, camp_sessions,
session_changes, scraper_alerts, development_requests.

Revision ID: 001
Revises:
Create Date: 2026-10-19
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Organizations
    op.create_table(
        "organizations",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("slug", sa.String(255), unique=True, nullable=False, index=True),
        sa.Column("domain", sa.String(255), unique=True, index=True),
        sa.Column("website_url", sa.String(500)),
        sa.Column("market", sa.String(100), index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_org_market_name", "organizations", ["market", "name"])

    # Sources
    op.create_table(
        "sources",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), index=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("url", sa.String(1000), nullable=False, index=True),
        sa.Column("additional_urls", postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column("market", sa.String(100), index=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("scrape_frequency_hours", sa.Integer, nullable=False, server_default=sa.text("24")),
        sa.Column("scrape_timeout_seconds", sa.Integer),
        sa.Column("extraction_module", sa.String(100)),
        sa.Column("extraction_code", sa.Text),
        sa.Column("parsing_notes", sa.Text),
        sa.Column("last_scraped_at", sa.DateTime(timezone=True)),
        sa.Column("next_scheduled_scrape", sa.DateTime(timezone=True), index=True),
        sa.Column("consecutive_failures", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("consecutive_zero_results", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("total_runs", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("success_rate", sa.Float, nullable=False, server_default=sa.text("0")),
        sa.Column("needs_regeneration", sa.Boolean, nullable=False, server_default=sa.text("false")),
        sa.Column("last_error", sa.Text),
        sa.Column("last_success_at", sa.DateTime(timezone=True)),
        sa.Column("last_failure_at", sa.DateTime(timezone=True)),
        sa.Column("url_history", postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column("closure_reason", sa.Text),
        sa.Column("closed_at", sa.DateTime(timezone=True)),
        sa.Column("closed_by", sa.String(50)),
        sa.Column("discovered_by", sa.String(50), server_default="manual"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_source_active_next", "sources", ["is_active", "next_scheduled_scrape"])

    # Scrape jobs
    op.create_table(
        "scrape_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("source_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sources.id"), nullable=False, index=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("triggered_by", sa.String(100)),
        sa.Column("workflow_id", sa.String(255)),
        sa.Column("started_at", sa.DateTime(timezone=True)),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("sessions_found", sa.Integer, server_default=sa.text("0")),
        sa.Column("sessions_created", sa.Integer, server_default=sa.text("0")),
        sa.Column("sessions_updated", sa.Integer, server_default=sa.text("0")),
        sa.Column("sessions_removed", sa.Integer, server_default=sa.text("0")),
        sa.Column("error_message", sa.Text),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_job_source_status", "scrape_jobs", ["source_id", "status"])
    # At most one pending/running job per source
    op.create_index(
        "uq_job_in_flight_per_source",
        "scrape_jobs",
        ["source_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'running')"),
    )

    # Camps
    op.create_table(
        "camps",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False, index=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("description", sa.Text),
        sa.Column("image_urls", postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Camp sessions
    op.create_table(
        "camp_sessions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("camp_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("camps.id"), nullable=False, index=True),
        sa.Column("organization_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("organizations.id"), nullable=False, index=True),
        sa.Column("source_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sources.id"), index=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date),
        sa.Column("price", sa.Float),
        sa.Column("min_age", sa.Integer),
        sa.Column("max_age", sa.Integer),
        sa.Column("location", sa.String(500)),
        sa.Column("registration_url", sa.Text),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("last_scraped_at", sa.DateTime(timezone=True)),
        sa.Column("last_seen_job_id", postgresql.UUID(as_uuid=True)),
        sa.Column("removal_detected_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_session_source_start", "camp_sessions", ["source_id", "start_date"])
    op.create_index("idx_session_org_start", "camp_sessions", ["organization_id", "start_date"])

    # Session changes
    op.create_table(
        "session_changes",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("job_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("scrape_jobs.id"), nullable=False, index=True),
        sa.Column("source_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sources.id"), nullable=False, index=True),
        sa.Column("session_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("camp_sessions.id"), index=True),
        sa.Column("change_type", sa.String(30), nullable=False),
        sa.Column("previous_value", sa.Text),
        sa.Column("new_value", sa.Text),
        sa.Column("detected_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # Scraper alerts
    op.create_table(
        "scraper_alerts",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("source_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sources.id"), index=True),
        sa.Column("alert_type", sa.String(50), nullable=False, index=True),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("severity", sa.String(20), nullable=False, index=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("acknowledged_at", sa.DateTime(timezone=True)),
        sa.Column("acknowledged_by", sa.String(100)),
    )
    op.create_index("idx_alert_unacknowledged", "scraper_alerts", ["acknowledged_at", "created_at"])

    # Development requests
    op.create_table(
        "development_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("source_name", sa.String(255), nullable=False),
        sa.Column("source_url", sa.String(1000), nullable=False, index=True),
        sa.Column("market", sa.String(100), index=True),
        sa.Column("source_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("sources.id"), index=True),
        sa.Column("parent_request_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("development_requests.id")),
        sa.Column("notes", sa.Text),
        sa.Column("requested_by", sa.String(100)),
        sa.Column("requested_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("claimed_by", sa.String(255)),
        sa.Column("claimed_at", sa.DateTime(timezone=True)),
        sa.Column("generated_code", sa.Text),
        sa.Column("code_version", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("final_code", sa.Text),
        sa.Column("feedback_history", postgresql.JSONB, server_default=sa.text("'[]'::jsonb")),
        sa.Column("test_retry_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        sa.Column("max_test_retries", sa.Integer, nullable=False, server_default=sa.text("3")),
        sa.Column("last_test_run_at", sa.DateTime(timezone=True)),
        sa.Column("last_test_sessions_found", sa.Integer),
        sa.Column("last_test_error", sa.Text),
        sa.Column("last_test_sample_data", postgresql.JSONB),
        sa.Column("site_exploration", postgresql.JSONB),
        sa.Column("completed_at", sa.DateTime(timezone=True)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("idx_devreq_status_requested", "development_requests", ["status", "requested_at"])


def downgrade() -> None:
    op.drop_table("development_requests")
    op.drop_table("scraper_alerts")
    op.drop_table("session_changes")
    op.drop_table("camp_sessions")
    op.drop_table("camps")
    op.drop_table("scrape_jobs")
    op.drop_table("sources")
    op.drop_table("organizations")
