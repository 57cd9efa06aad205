"""initial team health schema

Revision ID: 0001_initial
Revises: 
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa

revision = "0001_initial"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "hierarchy_levels",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("color", sa.String(length=20), nullable=True),
        sa.Column("can_view_all_teams", sa.Boolean(), nullable=False),
        sa.Column("can_edit_teams", sa.Boolean(), nullable=False),
        sa.Column("can_manage_users", sa.Boolean(), nullable=False),
        sa.Column("can_take_survey", sa.Boolean(), nullable=False),
        sa.Column("can_view_analytics", sa.Boolean(), nullable=False),
        sa.Column("can_configure_system", sa.Boolean(), nullable=False),
        sa.Column("can_view_reports", sa.Boolean(), nullable=False),
        sa.Column("can_export_data", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("position", name="uq_hierarchy_levels_position"),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("username", sa.String(length=50), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=255), nullable=False),
        sa.Column("hierarchy_level_id", sa.String(length=64), nullable=False),
        sa.Column("reports_to", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("reports_to IS NULL OR reports_to <> id", name="ck_users_not_self_reporting"),
        sa.ForeignKeyConstraint(["hierarchy_level_id"], ["hierarchy_levels.id"]),
        sa.ForeignKeyConstraint(["reports_to"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_hierarchy_level_id", "users", ["hierarchy_level_id"], unique=False)
    op.create_index("ix_users_reports_to", "users", ["reports_to"], unique=False)

    op.create_table(
        "teams",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("team_lead_id", sa.String(length=64), nullable=True),
        sa.Column("cadence", sa.String(length=20), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "cadence IS NULL OR cadence IN ('weekly', 'biweekly', 'monthly', 'quarterly')",
            name="ck_teams_cadence",
        ),
        sa.ForeignKeyConstraint(["team_lead_id"], ["users.id"], ondelete="SET NULL"),
    )
    op.create_index("ix_teams_team_lead_id", "teams", ["team_lead_id"], unique=False)

    op.create_table(
        "team_members",
        sa.Column("team_id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )

    op.create_table(
        "team_supervisors",
        sa.Column("team_id", sa.String(length=64), primary_key=True),
        sa.Column("user_id", sa.String(length=64), primary_key=True),
        sa.Column("hierarchy_level_id", sa.String(length=64), nullable=False),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["hierarchy_level_id"], ["hierarchy_levels.id"]),
        sa.UniqueConstraint("team_id", "position", name="uq_team_supervisors_position"),
    )
    op.create_index("ix_team_supervisors_user_id", "team_supervisors", ["user_id"], unique=False)

    op.create_table(
        "health_dimensions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("name", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("good_description", sa.Text(), nullable=False),
        sa.Column("bad_description", sa.Text(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("weight", sa.Float(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("weight > 0", name="ck_health_dimensions_weight"),
    )

    op.create_table(
        "health_check_sessions",
        sa.Column("id", sa.String(length=64), primary_key=True),
        sa.Column("team_id", sa.String(length=64), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("date", sa.Date(), nullable=False),
        sa.Column("assessment_period", sa.String(length=50), nullable=True),
        sa.Column("completed", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["team_id"], ["teams.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"], ondelete="CASCADE"),
    )
    op.create_index("ix_health_check_sessions_team_id", "health_check_sessions", ["team_id"], unique=False)
    op.create_index("ix_health_check_sessions_user_id", "health_check_sessions", ["user_id"], unique=False)
    op.create_index(
        "ix_health_check_sessions_assessment_period", "health_check_sessions", ["assessment_period"], unique=False
    )

    op.create_table(
        "health_check_responses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("session_id", sa.String(length=64), nullable=False),
        sa.Column("dimension_id", sa.String(length=64), nullable=False),
        sa.Column("score", sa.Integer(), nullable=False),
        sa.Column("trend", sa.String(length=20), nullable=False),
        sa.Column("comment", sa.Text(), nullable=True),
        sa.CheckConstraint("score BETWEEN 1 AND 3", name="ck_health_check_responses_score"),
        sa.CheckConstraint(
            "trend IN ('improving', 'stable', 'declining')",
            name="ck_health_check_responses_trend",
        ),
        sa.ForeignKeyConstraint(["session_id"], ["health_check_sessions.id"], ondelete="CASCADE"),
        sa.ForeignKeyConstraint(["dimension_id"], ["health_dimensions.id"]),
        sa.UniqueConstraint("session_id", "dimension_id", name="uq_health_check_responses_dimension"),
    )
    op.create_index(
        "ix_health_check_responses_session_id", "health_check_responses", ["session_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index("ix_health_check_responses_session_id", table_name="health_check_responses")
    op.drop_table("health_check_responses")

    op.drop_index("ix_health_check_sessions_assessment_period", table_name="health_check_sessions")
    op.drop_index("ix_health_check_sessions_user_id", table_name="health_check_sessions")
    op.drop_index("ix_health_check_sessions_team_id", table_name="health_check_sessions")
    op.drop_table("health_check_sessions")

    op.drop_table("health_dimensions")

    op.drop_index("ix_team_supervisors_user_id", table_name="team_supervisors")
    op.drop_table("team_supervisors")
    op.drop_table("team_members")

    op.drop_index("ix_teams_team_lead_id", table_name="teams")
    op.drop_table("teams")

    op.drop_index("ix_users_reports_to", table_name="users")
    op.drop_index("ix_users_hierarchy_level_id", table_name="users")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_index("ix_users_username", table_name="users")
    op.drop_table("users")

    op.drop_table("hierarchy_levels")
