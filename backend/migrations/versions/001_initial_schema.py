"""Initial schema — projects table matching db.py.

Revision ID: 001
Revises: (none)
Create Date: 2026-10-17
"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "projects",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("owner_id", sa.String(255), nullable=False),
        sa.Column("status", sa.String(20), server_default="draft", nullable=False),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("climate_zone", sa.String(50), nullable=False),
        sa.Column("sun_exposure", sa.String(20), nullable=False),
        sa.Column("square_footage", sa.Integer(), nullable=False),
        sa.Column("design_style", sa.String(20), nullable=False),
        sa.Column("budget", sa.Float(), nullable=True),
        sa.Column("notes", sa.Text(), server_default="", nullable=False),
        sa.Column("original_image", sa.Text(), nullable=True),
        sa.Column("design_thesis", sa.Text(), nullable=True),
        sa.Column("generated_images", JSONB, nullable=True),
        sa.Column("materials_list", JSONB, nullable=True),
        sa.Column("total_cost", sa.Float(), nullable=True),
        sa.Column("image_analysis", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.CheckConstraint(
            "status IN ('draft', 'completed', 'archived')", name="ck_projects_status"
        ),
    )
    op.create_index("idx_projects_owner_created", "projects", ["owner_id", "created_at"])


def downgrade() -> None:
    op.drop_index("idx_projects_owner_created", table_name="projects")
    op.drop_table("projects")
