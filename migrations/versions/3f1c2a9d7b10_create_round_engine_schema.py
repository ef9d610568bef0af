"""create round engine schema

Revision ID: 3f1c2a9d7b10
Revises:
Create Date: 2026-10-17 09:00:00
"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "3f1c2a9d7b10"
down_revision = None
branch_labels = None
depends_on = None

def _ts(name, nullable=False, default_now=True):
    return sa.Column(
        name,
        sa.DateTime(),
        nullable=nullable,
        server_default=sa.text("CURRENT_TIMESTAMP") if default_now else None,
    )

def upgrade():
    op.create_table(
        "clients",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("company_name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        _ts("created_at"),
        _ts("updated_at"),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_clients_status_valid"),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "client_admins",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("first_name", sa.String(length=120), nullable=True),
        sa.Column("last_name", sa.String(length=120), nullable=True),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index("ix_client_admins_client_id", "client_admins", ["client_id"])

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("status", sa.String(length=32), nullable=False, server_default=sa.text("'active'")),
        sa.Column("plan_name", sa.String(length=64), nullable=True),
        sa.Column("member_limit", sa.Integer(), nullable=True),
        sa.Column("survey_rounds_per_year", sa.Integer(), nullable=False, server_default=sa.text("2")),
        sa.Column("survey_cadence", sa.Integer(), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("client_id", name="uq_subscriptions_client_id"),
    )
    op.create_index("ix_subscriptions_client_id", "subscriptions", ["client_id"])
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"])

    op.create_table(
        "communities",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("community_name", sa.String(length=255), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="active"),
        sa.Column("contract_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("community_manager_name", sa.String(length=255), nullable=True),
        sa.Column("property_type", sa.String(length=32), nullable=True),
        sa.Column("number_of_units", sa.Integer(), nullable=True),
        sa.Column("contract_renewal_date", sa.Date(), nullable=True),
        _ts("created_at"),
        sa.CheckConstraint("status IN ('active','inactive')", name="ck_communities_status_valid"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("client_id", "community_name", name="uq_communities_client_name"),
    )
    op.create_index("ix_communities_client_id", "communities", ["client_id"])

    op.create_table(
        "board_members",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("first_name", sa.String(length=120), nullable=True),
        sa.Column("last_name", sa.String(length=120), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("community_name", sa.String(length=255), nullable=True),
        sa.Column("community_id", sa.Integer(), sa.ForeignKey("communities.id", ondelete="SET NULL"), nullable=True),
        sa.Column("management_company", sa.String(length=255), nullable=True),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("invitation_token", sa.String(length=255), nullable=True),
        sa.Column("invitation_token_expires", sa.DateTime(), nullable=True),
        sa.Column("last_invited_at", sa.DateTime(), nullable=True),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("client_id", "email", name="uq_board_members_client_email"),
        sa.UniqueConstraint("invitation_token"),
    )
    op.create_index("ix_board_members_client_id", "board_members", ["client_id"])
    op.create_index("ix_board_members_community_id", "board_members", ["community_id"])

    op.create_table(
        "survey_rounds",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("round_number", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="planned"),
        sa.Column("scheduled_date", sa.Date(), nullable=False),
        sa.Column("launched_at", sa.DateTime(), nullable=True),
        sa.Column("closes_at", sa.DateTime(), nullable=True),
        sa.Column("concluded_at", sa.DateTime(), nullable=True),
        sa.Column("members_invited", sa.Integer(), nullable=True),
        sa.Column("reminder_10_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("reminder_20_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("admin_reminder_14_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("admin_reminder_0_sent", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("insights_json", sa.JSON(), nullable=True),
        sa.Column("insights_generated_at", sa.DateTime(), nullable=True),
        sa.Column("word_frequencies", sa.JSON(), nullable=True),
        _ts("created_at"),
        sa.CheckConstraint("status IN ('planned','in_progress','concluded')", name="ck_survey_rounds_status_valid"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("client_id", "round_number", name="uq_survey_rounds_client_round_number"),
    )
    op.create_index("ix_survey_rounds_client_id", "survey_rounds", ["client_id"])
    # At most one in-progress round per client (closes the concurrent-launch race)
    op.create_index(
        "ux_survey_rounds_client_in_progress",
        "survey_rounds",
        ["client_id"],
        unique=True,
        postgresql_where=sa.text("status = 'in_progress'"),
        sqlite_where=sa.text("status = 'in_progress'"),
    )

    op.create_table(
        "round_community_snapshots",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("round_id", sa.Integer(), sa.ForeignKey("survey_rounds.id", ondelete="CASCADE"), nullable=False),
        sa.Column("community_id", sa.Integer(), sa.ForeignKey("communities.id", ondelete="CASCADE"), nullable=False),
        sa.Column("community_name", sa.String(length=255), nullable=False),
        sa.Column("contract_value", sa.Numeric(12, 2), nullable=True),
        sa.Column("community_manager_name", sa.String(length=255), nullable=True),
        sa.Column("property_type", sa.String(length=32), nullable=True),
        sa.Column("number_of_units", sa.Integer(), nullable=True),
        _ts("snapshotted_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("round_id", "community_id", name="uq_round_community_snapshots_round_community"),
    )
    op.create_index("ix_round_community_snapshots_round_id", "round_community_snapshots", ["round_id"])

    op.create_table(
        "sessions",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("round_id", sa.Integer(), sa.ForeignKey("survey_rounds.id", ondelete="SET NULL"), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("board_members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("nps_score", sa.Integer(), nullable=True),
        sa.Column("completed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("community_name", sa.String(length=255), nullable=True),
        sa.Column("community_id", sa.Integer(), sa.ForeignKey("communities.id", ondelete="SET NULL"), nullable=True),
        sa.Column("management_company", sa.String(length=255), nullable=True),
        _ts("created_at"),
        sa.CheckConstraint("nps_score IS NULL OR (nps_score >= 0 AND nps_score <= 10)", name="ck_sessions_nps_range"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_sessions_client_id", "sessions", ["client_id"])
    op.create_index("ix_sessions_round_id", "sessions", ["round_id"])
    op.create_index("ix_sessions_user_id", "sessions", ["user_id"])
    op.create_index("ix_sessions_email", "sessions", ["email"])

    op.create_table(
        "messages",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("role", sa.String(length=16), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        _ts("created_at"),
        sa.CheckConstraint("role IN ('user','assistant')", name="ck_messages_role_valid"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_messages_session_id", "messages", ["session_id"])

    op.create_table(
        "invitation_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("round_id", sa.Integer(), sa.ForeignKey("survey_rounds.id", ondelete="CASCADE"), nullable=True),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("board_members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("kind", sa.String(length=20), nullable=False, server_default="invitation"),
        sa.Column("email_status", sa.String(length=20), nullable=False),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("delivery_status", sa.String(length=20), nullable=True),
        sa.Column("bounce_type", sa.String(length=64), nullable=True),
        sa.Column("delivery_updated_at", sa.DateTime(), nullable=True),
        sa.Column("provider_msg_id", sa.String(length=255), nullable=True),
        sa.Column("sent_by", sa.Integer(), sa.ForeignKey("client_admins.id", ondelete="SET NULL"), nullable=True),
        _ts("sent_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_invitation_logs_client_id", "invitation_logs", ["client_id"])
    op.create_index("ix_invitation_logs_round_id", "invitation_logs", ["round_id"])
    op.create_index("ix_invitation_logs_user_id", "invitation_logs", ["user_id"])
    op.create_index("ix_invitation_logs_provider_msg_id", "invitation_logs", ["provider_msg_id"])

    op.create_table(
        "critical_alerts",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=False),
        sa.Column("round_id", sa.Integer(), sa.ForeignKey("survey_rounds.id", ondelete="SET NULL"), nullable=True),
        sa.Column("session_id", sa.Integer(), sa.ForeignKey("sessions.id", ondelete="CASCADE"), nullable=False),
        sa.Column("user_id", sa.Integer(), sa.ForeignKey("board_members.id", ondelete="SET NULL"), nullable=True),
        sa.Column("alert_type", sa.String(length=32), nullable=False),
        sa.Column("severity", sa.String(length=16), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("source_message_id", sa.Integer(), sa.ForeignKey("messages.id", ondelete="SET NULL"), nullable=True),
        sa.Column("dismissed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("dismissed_at", sa.DateTime(), nullable=True),
        sa.Column("dismiss_reason", sa.Text(), nullable=True),
        sa.Column("solved", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("solved_at", sa.DateTime(), nullable=True),
        sa.Column("solve_note", sa.Text(), nullable=True),
        _ts("created_at"),
        sa.CheckConstraint(
            "alert_type IN ('contract_termination','legal_threat','safety_concern','other_critical')",
            name="ck_critical_alerts_type_valid",
        ),
        sa.CheckConstraint("severity IN ('high','critical')", name="ck_critical_alerts_severity_valid"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_critical_alerts_client_id", "critical_alerts", ["client_id"])
    op.create_index("ix_critical_alerts_round_id", "critical_alerts", ["round_id"])

    op.create_table(
        "settings",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("key", sa.String(length=120), nullable=False),
        sa.Column("value", sa.Text(), nullable=True),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=True),
        _ts("updated_at"),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("key", "client_id", name="uq_settings_key_client"),
    )
    op.create_index("ix_settings_client_id", "settings", ["client_id"])

    op.create_table(
        "email_logs",
        sa.Column("id", sa.Integer(), nullable=False),
        sa.Column("client_id", sa.Integer(), sa.ForeignKey("clients.id", ondelete="CASCADE"), nullable=True),
        sa.Column("to_email", sa.String(length=320), nullable=False),
        sa.Column("template", sa.String(length=64), nullable=False),
        sa.Column("subject", sa.String(length=200), nullable=False),
        sa.Column("provider_msg_id", sa.String(length=255), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("meta", sa.JSON(), nullable=False),
        _ts("created_at"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_email_logs_client_id", "email_logs", ["client_id"])
    op.create_index("ix_email_logs_to_email", "email_logs", ["to_email"])
    op.create_index("ix_email_logs_provider_msg_id", "email_logs", ["provider_msg_id"])
    op.create_index("ix_email_logs_status", "email_logs", ["status"])

def downgrade():
    for table in (
        "email_logs",
        "settings",
        "critical_alerts",
        "invitation_logs",
        "messages",
        "sessions",
        "round_community_snapshots",
    ):
        op.drop_table(table)
    op.drop_index("ux_survey_rounds_client_in_progress", table_name="survey_rounds")
    for table in ("survey_rounds", "board_members", "communities", "subscriptions", "client_admins", "clients"):
        op.drop_table(table)
