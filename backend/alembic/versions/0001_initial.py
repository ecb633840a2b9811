"""initial exotel schema

Revision ID: 0001
Revises: 
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("username", sa.String(length=150), nullable=False),
        sa.Column("hashed_password", sa.String(length=255), nullable=False),
        sa.Column("role", sa.String(length=20), nullable=False, server_default="AGENT"),
        sa.Column("is_active", sa.Boolean(), server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer()),
        sa.Column("action", sa.String(length=120), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("message", sa.String(length=255)),
        sa.Column("metadata", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "voice_callbacks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("call_sid", sa.String(length=64), nullable=False, unique=True),
        sa.Column("user_id", sa.String(length=64)),
        sa.Column("sid", sa.String(length=64)),
        sa.Column("parent_call_sid", sa.String(length=64)),
        sa.Column("date_created", sa.String(length=40)),
        sa.Column("date_updated", sa.String(length=40)),
        sa.Column("account_sid", sa.String(length=64)),
        sa.Column("to_number", sa.String(length=32)),
        sa.Column("from_number", sa.String(length=32)),
        sa.Column("phone_number_sid", sa.String(length=64)),
        sa.Column("status", sa.String(length=32)),
        sa.Column("start_time", sa.String(length=40)),
        sa.Column("end_time", sa.String(length=40)),
        sa.Column("duration", sa.String(length=16)),
        sa.Column("price", sa.String(length=16)),
        sa.Column("direction", sa.String(length=32)),
        sa.Column("answered_by", sa.String(length=32)),
        sa.Column("forwarded_from", sa.String(length=32)),
        sa.Column("caller_name", sa.String(length=128)),
        sa.Column("uri", sa.String(length=255)),
        sa.Column("recording_url", sa.String(length=512)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_voice_callbacks_to_number", "voice_callbacks", ["to_number"])
    op.create_index("ix_voice_callbacks_from_number", "voice_callbacks", ["from_number"])
    op.create_index("ix_voice_callbacks_status", "voice_callbacks", ["status"])
    op.create_index("ix_voice_callbacks_created_at", "voice_callbacks", ["created_at"])

    op.create_table(
        "sms_callbacks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sms_sid", sa.String(length=64), nullable=False, unique=True),
        sa.Column("user_id", sa.String(length=64)),
        sa.Column("to_number", sa.String(length=32)),
        sa.Column("status", sa.String(length=32)),
        sa.Column("detailed_status", sa.String(length=128)),
        sa.Column("detailed_status_code", sa.String(length=16)),
        sa.Column("sms_units", sa.Integer()),
        sa.Column("date_sent", sa.String(length=40)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_sms_callbacks_to_number", "sms_callbacks", ["to_number"])
    op.create_index("ix_sms_callbacks_created_at", "sms_callbacks", ["created_at"])

    op.create_table(
        "health_checks",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status_type", sa.String(length=16), nullable=False),
        sa.Column("incoming_affected", sa.Boolean()),
        sa.Column("outgoing_affected", sa.Boolean()),
        sa.Column("raw_data", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_health_checks_timestamp", "health_checks", ["timestamp"])

    op.create_table(
        "sync_status",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("sync_type", sa.String(length=64), nullable=False),
        sa.Column("last_sync_time", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False),
        sa.Column("records_synced", sa.Integer(), server_default="0"),
        sa.Column("error_message", sa.String(length=1024)),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_sync_status_sync_type", "sync_status", ["sync_type"])
    op.create_index("ix_sync_status_last_sync_time", "sync_status", ["last_sync_time"])

    op.create_table(
        "phone_numbers",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("number", sa.String(length=32), nullable=False, unique=True),
        sa.Column("friendly_name", sa.String(length=255)),
        sa.Column("department_name", sa.String(length=255)),
        sa.Column("type", sa.String(length=32), server_default="exophone"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("is_primary", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("capabilities", sa.JSON()),
        sa.Column("metadata", sa.JSON()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )

    op.create_table(
        "user_phone_assignments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column(
            "user_id",
            sa.Integer(),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "phone_number_id",
            sa.Integer(),
            sa.ForeignKey("phone_numbers.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "phone_number_id"),
    )


def downgrade() -> None:
    op.drop_table("user_phone_assignments")
    op.drop_table("phone_numbers")
    op.drop_index("ix_sync_status_last_sync_time", table_name="sync_status")
    op.drop_index("ix_sync_status_sync_type", table_name="sync_status")
    op.drop_table("sync_status")
    op.drop_index("ix_health_checks_timestamp", table_name="health_checks")
    op.drop_table("health_checks")
    op.drop_index("ix_sms_callbacks_created_at", table_name="sms_callbacks")
    op.drop_index("ix_sms_callbacks_to_number", table_name="sms_callbacks")
    op.drop_table("sms_callbacks")
    op.drop_index("ix_voice_callbacks_created_at", table_name="voice_callbacks")
    op.drop_index("ix_voice_callbacks_status", table_name="voice_callbacks")
    op.drop_index("ix_voice_callbacks_from_number", table_name="voice_callbacks")
    op.drop_index("ix_voice_callbacks_to_number", table_name="voice_callbacks")
    op.drop_table("voice_callbacks")
    op.drop_table("audit_logs")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")
