"""Omnichannel core tables.

- channel_sessions: one connected account per provider, encrypted credentials
- conversations: one thread per (session, customer)
- messages: append-only ledger, provider id unique per session
- webhook_idempotency: (provider, event_id) claim records
- campaigns: broadcast lifecycle and counters
- auto_reply_rules: per-session trigger rules
"""

from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = "001_omnichannel_core"
down_revision = None
branch_labels = None
depends_on = None


def _base_columns():
    return [
        sa.Column("id", sa.Uuid(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade():
    op.create_table(
        "channel_sessions",
        *_base_columns(),
        sa.Column("tenant_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("channel_type", sa.String(16), nullable=False),
        sa.Column("external_id", sa.String(255), nullable=False),
        sa.Column("credentials_encrypted", sa.Text(), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default="connecting"),
        sa.Column("rate_limit_class", sa.String(64), nullable=True),
        sa.Column("display_name", sa.String(255), nullable=True),
        sa.Column("phone_number", sa.String(32), nullable=True),
        sa.Column("auto_reply_enabled", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("last_connected_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_disconnected_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("channel_type", "external_id", name="uq_channel_sessions_type_external"),
    )
    op.create_index("ix_channel_sessions_tenant_id", "channel_sessions", ["tenant_id"])

    op.create_table(
        "conversations",
        *_base_columns(),
        sa.Column(
            "session_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("channel_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("customer_id", sa.String(255), nullable=False),
        sa.Column("customer_name", sa.String(255), nullable=True),
        sa.Column("last_message_preview", sa.String(255), nullable=True),
        sa.Column("last_message_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("unread", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("assigned_agent_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("inbound_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("status", sa.String(16), nullable=False, server_default="open"),
        sa.UniqueConstraint("session_id", "customer_id", name="uq_conversations_session_customer"),
    )
    op.create_index("ix_conversations_session_id", "conversations", ["session_id"])
    op.create_index("ix_conversations_last_message_at", "conversations", ["last_message_at"])

    op.create_table(
        "messages",
        *_base_columns(),
        sa.Column(
            "session_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("channel_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "conversation_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("conversations.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("direction", sa.String(16), nullable=False),
        sa.Column("customer_id", sa.String(255), nullable=False),
        sa.Column("content_type", sa.String(16), nullable=False),
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("media", sa.JSON(), nullable=False),
        sa.Column("provider_message_id", sa.String(255), nullable=True),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("is_auto_reply", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("auto_reply_source", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("campaign_id", sa.Uuid(as_uuid=True), nullable=True),
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("delivered_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("error_code", sa.String(64), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        # NULLs are distinct, so pending outbound rows never collide
        sa.UniqueConstraint("session_id", "provider_message_id", name="uq_messages_session_provider_id"),
    )
    op.create_index("ix_messages_conversation_created", "messages", ["conversation_id", "created_at"])
    op.create_index(
        "ix_messages_session_customer_direction", "messages", ["session_id", "customer_id", "direction"]
    )
    op.create_index("ix_messages_campaign_id", "messages", ["campaign_id"])

    op.create_table(
        "webhook_idempotency",
        *_base_columns(),
        sa.Column("provider", sa.String(32), nullable=False),
        sa.Column("event_id", sa.String(255), nullable=False),
        sa.Column("state", sa.String(16), nullable=False, server_default="processing"),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("processed_at", sa.DateTime(timezone=True), nullable=True),
        sa.UniqueConstraint("provider", "event_id", name="uq_webhook_idempotency_provider_event"),
    )
    op.create_index("ix_webhook_idempotency_processed_at", "webhook_idempotency", ["processed_at"])

    op.create_table(
        "campaigns",
        *_base_columns(),
        sa.Column(
            "session_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("channel_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("payload", sa.JSON(), nullable=False),
        sa.Column("recipients", sa.JSON(), nullable=False),
        sa.Column("total_recipients", sa.Integer(), nullable=False),
        sa.Column("state", sa.String(16), nullable=False, server_default="draft"),
        sa.Column("sent_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("scheduled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("failure_reason", sa.Text(), nullable=True),
        sa.CheckConstraint(
            "sent_count >= 0 AND failed_count >= 0 AND sent_count + failed_count <= total_recipients",
            name="ck_campaigns_counters_bounded",
        ),
    )
    op.create_index("ix_campaigns_session_id", "campaigns", ["session_id"])
    op.create_index("ix_campaigns_state_scheduled_at", "campaigns", ["state", "scheduled_at"])

    op.create_table(
        "auto_reply_rules",
        *_base_columns(),
        sa.Column(
            "session_id",
            sa.Uuid(as_uuid=True),
            sa.ForeignKey("channel_sessions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("trigger_type", sa.String(16), nullable=False),
        sa.Column("trigger_value", sa.Text(), nullable=True),
        sa.Column("reply", sa.JSON(), nullable=False),
        sa.Column("priority", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("usage_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("only_first_message", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("business_hours", sa.JSON(), nullable=True),
    )
    op.create_index("ix_auto_reply_rules_session_active", "auto_reply_rules", ["session_id", "is_active"])


def downgrade():
    op.drop_table("auto_reply_rules")
    op.drop_table("campaigns")
    op.drop_table("webhook_idempotency")
    op.drop_table("messages")
    op.drop_table("conversations")
    op.drop_table("channel_sessions")
