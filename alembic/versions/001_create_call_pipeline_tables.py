"""Create call pipeline tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # calls table
    op.create_table(
        "calls",
        sa.Column("id", sa.String(191), nullable=False),
        sa.Column("external_id", sa.String(191), nullable=False),
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("direction", sa.String(20), nullable=False),
        sa.Column("caller_number", sa.String(64), nullable=False),
        sa.Column("called_number", sa.String(64), nullable=False),
        sa.Column("duration_seconds", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("start_time", sa.DateTime(), nullable=True),
        sa.Column("end_time", sa.DateTime(), nullable=True),
        sa.Column("recording_url", sa.Text(), nullable=True),
        sa.Column("campaign_id", sa.String(100), nullable=True),
        sa.Column("campaign_name", sa.String(255), nullable=True),
        sa.Column("agent_id", sa.String(100), nullable=True),
        sa.Column("agent_name", sa.String(255), nullable=True),
        sa.Column("disposition", sa.String(100), nullable=True),
        sa.Column("upstream_status", sa.String(50), nullable=False),
        sa.Column("revenue", sa.Float(), nullable=False, server_default="0"),
        sa.Column("cost", sa.Float(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("transcript", sa.Text(), nullable=True),
        sa.Column("analysis", sa.JSON(), nullable=True),
        sa.Column("error", sa.Text(), nullable=True),
        sa.Column("metadata", sa.JSON(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column("processed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("source", "external_id", name="uq_calls_source_external_id"),
    )
    op.create_index("ix_calls_external_id", "calls", ["external_id"])
    op.create_index("ix_calls_campaign_id", "calls", ["campaign_id"])
    op.create_index("ix_calls_status", "calls", ["status"])

    # sync_state table
    op.create_table(
        "sync_state",
        sa.Column("source", sa.String(50), nullable=False),
        sa.Column("last_sync_at", sa.DateTime(), nullable=True),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("source"),
    )

    # campaign_webhooks table
    op.create_table(
        "campaign_webhooks",
        sa.Column("campaign_id", sa.String(100), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("method", sa.String(10), nullable=False, server_default="POST"),
        sa.Column("enabled", sa.Boolean(), nullable=False, server_default="1"),
        sa.Column("events", sa.JSON(), nullable=False),
        sa.Column("payload_config", sa.JSON(), nullable=False),
        sa.Column("headers", sa.JSON(), nullable=False),
        sa.Column("secret", sa.String(255), nullable=True),
        sa.Column("retry_attempts", sa.Integer(), nullable=False, server_default="3"),
        sa.Column("timeout_ms", sa.Integer(), nullable=False, server_default="30000"),
        sa.Column("success_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failure_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("last_triggered_at", sa.DateTime(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.PrimaryKeyConstraint("campaign_id"),
    )

    # webhook_delivery_logs table
    op.create_table(
        "webhook_delivery_logs",
        sa.Column("id", sa.BigInteger(), nullable=False, autoincrement=True),
        sa.Column("campaign_id", sa.String(100), nullable=True),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("event", sa.String(100), nullable=False),
        sa.Column("attempt", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("success", sa.Boolean(), nullable=False),
        sa.Column("status_code", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("payload_size", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("response_time_ms", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("test", sa.Boolean(), nullable=False, server_default="0"),
        sa.Column("error", sa.Text(), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_webhook_delivery_logs_campaign_id", "webhook_delivery_logs", ["campaign_id"]
    )


def downgrade() -> None:
    op.drop_index(
        "ix_webhook_delivery_logs_campaign_id", table_name="webhook_delivery_logs"
    )
    op.drop_table("webhook_delivery_logs")
    op.drop_table("campaign_webhooks")
    op.drop_table("sync_state")
    op.drop_index("ix_calls_status", table_name="calls")
    op.drop_index("ix_calls_campaign_id", table_name="calls")
    op.drop_index("ix_calls_external_id", table_name="calls")
    op.drop_table("calls")
