"""seed default hierarchy levels and health dimensions

Revision ID: 0002_seed_defaults
Revises: 0001_initial
Create Date: 2026-10-19
"""

from datetime import datetime, timezone

from alembic import op
import sqlalchemy as sa

from teamhealth.seed import DEFAULT_LEVELS, default_dimension_rows

revision = "0002_seed_defaults"
down_revision = "0001_initial"
branch_labels = None
depends_on = None


def upgrade() -> None:
    now = datetime.now(timezone.utc)
    levels = sa.table(
        "hierarchy_levels",
        sa.column("id", sa.String),
        sa.column("name", sa.String),
        sa.column("position", sa.Integer),
        sa.column("color", sa.String),
        sa.column("can_view_all_teams", sa.Boolean),
        sa.column("can_edit_teams", sa.Boolean),
        sa.column("can_manage_users", sa.Boolean),
        sa.column("can_take_survey", sa.Boolean),
        sa.column("can_view_analytics", sa.Boolean),
        sa.column("can_configure_system", sa.Boolean),
        sa.column("can_view_reports", sa.Boolean),
        sa.column("can_export_data", sa.Boolean),
        sa.column("created_at", sa.DateTime(timezone=True)),
        sa.column("updated_at", sa.DateTime(timezone=True)),
    )
    dimensions = sa.table(
        "health_dimensions",
        sa.column("id", sa.String),
        sa.column("name", sa.String),
        sa.column("description", sa.Text),
        sa.column("good_description", sa.Text),
        sa.column("bad_description", sa.Text),
        sa.column("is_active", sa.Boolean),
        sa.column("weight", sa.Float),
        sa.column("created_at", sa.DateTime(timezone=True)),
        sa.column("updated_at", sa.DateTime(timezone=True)),
    )
    op.bulk_insert(levels, [{**row, "created_at": now, "updated_at": now} for row in DEFAULT_LEVELS])
    op.bulk_insert(dimensions, [{**row, "created_at": now, "updated_at": now} for row in default_dimension_rows()])


def downgrade() -> None:
    op.execute(
        sa.text("DELETE FROM health_dimensions WHERE id IN :ids").bindparams(
            sa.bindparam("ids", [row["id"] for row in default_dimension_rows()], expanding=True)
        )
    )
    op.execute(
        sa.text("DELETE FROM hierarchy_levels WHERE id IN :ids").bindparams(
            sa.bindparam("ids", [row["id"] for row in DEFAULT_LEVELS], expanding=True)
        )
    )
