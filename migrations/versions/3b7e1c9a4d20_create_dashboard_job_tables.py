"""create dashboard job tables

Revision ID: 3b7e1c9a4d20
Revises:
Create Date: 2025-10-06 09:12:41.518230

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b7e1c9a4d20"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table(
        "applications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "code", sa.String(100), nullable=False, unique=True, comment="Short application code"
        ),
        sa.Column(
            "name",
            sa.String(255),
            nullable=False,
            comment="Project name on the CI test dashboard",
        ),
        sa.Column(
            "watching",
            sa.Boolean,
            nullable=False,
            server_default=sa.false(),
            comment="Included in automatic E2E report generation",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "e2e_report_summaries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("date", sa.Date, nullable=False, unique=True, comment="Report date (UTC)"),
        sa.Column(
            "status",
            sa.String(20),
            nullable=False,
            server_default="pending",
            comment="Report status: pending|ready|failed",
        ),
        sa.Column("total_runs", sa.Integer, nullable=False, server_default="0"),
        sa.Column("passed_runs", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed_runs", sa.Integer, nullable=False, server_default="0"),
        sa.Column(
            "success_rate",
            sa.Float,
            nullable=False,
            server_default="0",
            comment="Value between 0 and 1",
        ),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "status IN ('pending', 'ready', 'failed')",
            name="e2e_report_summaries_status_check",
        ),
    )

    op.create_table(
        "e2e_report_details",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "report_summary_id",
            sa.Integer,
            sa.ForeignKey("e2e_report_summaries.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "app_id",
            sa.Integer,
            sa.ForeignKey("applications.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("total_runs", sa.Integer, nullable=False, server_default="0"),
        sa.Column("passed_runs", sa.Integer, nullable=False, server_default="0"),
        sa.Column("failed_runs", sa.Integer, nullable=False, server_default="0"),
        sa.Column("success_rate", sa.Float, nullable=False, server_default="0"),
        sa.Column(
            "last_run_status", sa.String(50), nullable=False, comment="passed|failed|noTests"
        ),
        sa.Column("last_failed_run_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("last_run_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("report_summary_id", "app_id", name="unique_report_app"),
    )
    op.create_index(
        "ix_e2e_report_details_report_summary_id", "e2e_report_details", ["report_summary_id"]
    )
    op.create_index("ix_e2e_report_details_app_id", "e2e_report_details", ["app_id"])

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("title", sa.String(255), nullable=False),
        sa.Column("message", sa.Text, nullable=False),
        sa.Column("link", sa.String(500), nullable=True),
        sa.Column(
            "type",
            sa.String(20),
            nullable=False,
            server_default="info",
            comment="success|error|info|warning",
        ),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint(
            "type IN ('success', 'error', 'info', 'warning')",
            name="notifications_type_check",
        ),
    )

    op.create_table(
        "pull_requests",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("pull_request_number", sa.Integer, nullable=False),
        sa.Column("repository", sa.String(255), nullable=False, comment="owner/repo"),
        sa.Column("title", sa.String(500), nullable=True),
        sa.Column("state", sa.String(20), nullable=True, comment="open|closed"),
        sa.Column("is_draft", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("merged", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("merged_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("synced_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column(
            "created_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "repository", "pull_request_number", name="unique_repository_pull_request"
        ),
    )


def downgrade() -> None:
    """Downgrade schema."""
    op.drop_table("pull_requests")
    op.drop_table("notifications")
    op.drop_index("ix_e2e_report_details_app_id", table_name="e2e_report_details")
    op.drop_index(
        "ix_e2e_report_details_report_summary_id", table_name="e2e_report_details"
    )
    op.drop_table("e2e_report_details")
    op.drop_table("e2e_report_summaries")
    op.drop_table("applications")
