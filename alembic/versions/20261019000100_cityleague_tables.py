"""city league schedules and results

Revision ID: 20261019000100
Revises: 
Create Date: 2026-10-19 00:01:00.000000

"""
from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "20261019000100"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "cityleague_schedules",
        sa.Column("id", sa.String(), primary_key=True, nullable=False),
        sa.Column("title", sa.String(), nullable=False, server_default=""),
        sa.Column("from_date", sa.Date(), nullable=False),
        sa.Column("to_date", sa.Date(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index(
        "ix_cityleague_schedules_from_date", "cityleague_schedules", ["from_date"], unique=False
    )
    op.create_index(
        "ix_cityleague_schedules_to_date", "cityleague_schedules", ["to_date"], unique=False
    )

    op.create_table(
        "cityleague_results",
        sa.Column("cityleague_schedule_id", sa.String(), nullable=False),
        sa.Column("official_event_id", sa.Integer(), nullable=False),
        sa.Column("player_id", sa.String(), nullable=False),
        sa.Column("league_type", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("event_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("player_name", sa.String(), nullable=False, server_default=""),
        sa.Column("rank", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("point", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("deck_code", sa.String(), nullable=False, server_default=""),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
        sa.PrimaryKeyConstraint(
            "cityleague_schedule_id",
            "official_event_id",
            "player_id",
            name="pk_cityleague_results",
        ),
    )


def downgrade() -> None:
    op.drop_table("cityleague_results")
    op.drop_index("ix_cityleague_schedules_to_date", table_name="cityleague_schedules")
    op.drop_index("ix_cityleague_schedules_from_date", table_name="cityleague_schedules")
    op.drop_table("cityleague_schedules")
