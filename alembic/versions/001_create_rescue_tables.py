"""Create rescue coordination tables.

Revision ID: 001
Revises:
Create Date: 2026-10-16

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_OPEN = sa.text("status != 'rejected'")


def upgrade() -> None:
    op.create_table(
        "rescue_requests",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=False),
        sa.Column("longitude", sa.Float(), nullable=False),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("vehicle_type", sa.String(20), nullable=True),
        sa.Column("drivetrain", sa.String(20), nullable=True),
        sa.Column("terrain_type", sa.String(20), nullable=True),
        sa.Column("problem_type", sa.String(20), nullable=True),
        sa.Column("assistance_status", sa.String(20), nullable=True),
        sa.Column("assistance_channel", sa.String(20), nullable=True),
        sa.Column("assistance_provider", sa.String(120), nullable=True),
        sa.Column("assigned_rescuer_id", sa.Integer(), nullable=True),
        sa.Column("assigned_team_id", sa.Integer(), nullable=True),
        sa.Column("rescuer_latitude", sa.Float(), nullable=True),
        sa.Column("rescuer_longitude", sa.Float(), nullable=True),
        sa.Column("rescuer_updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "assigned_rescuer_id IS NULL OR assigned_team_id IS NULL",
            name="ck_rescue_requests_single_assignment",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_rescue_requests"),
    )
    op.create_index("ix_rescue_requests_user_id", "rescue_requests", ["user_id"], unique=False)
    op.create_index("ix_rescue_requests_assigned_rescuer_id", "rescue_requests", ["assigned_rescuer_id"], unique=False)
    op.create_index("ix_rescue_requests_assigned_team_id", "rescue_requests", ["assigned_team_id"], unique=False)
    op.create_index("ix_rescue_requests_lat_lng", "rescue_requests", ["latitude", "longitude"], unique=False)
    op.create_index("ix_rescue_requests_created_at", "rescue_requests", ["created_at"], unique=False)

    op.create_table(
        "rescue_candidates",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("rescue_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=True),
        sa.Column("team_id", sa.Integer(), nullable=True),
        sa.Column("registered_by_id", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("responded_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("(user_id IS NULL) != (team_id IS NULL)", name="ck_rescue_candidates_user_xor_team"),
        sa.ForeignKeyConstraint(
            ["rescue_id"],
            ["rescue_requests.id"],
            name="fk_rescue_candidates_rescue_id_rescue_requests",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_rescue_candidates"),
    )
    op.create_index("ix_rescue_candidates_rescue_id", "rescue_candidates", ["rescue_id"], unique=False)
    op.create_index(
        "uq_rescue_candidates_open_user",
        "rescue_candidates",
        ["rescue_id", "user_id"],
        unique=True,
        sqlite_where=_OPEN,
        postgresql_where=_OPEN,
    )
    op.create_index(
        "uq_rescue_candidates_open_team",
        "rescue_candidates",
        ["rescue_id", "team_id"],
        unique=True,
        sqlite_where=_OPEN,
        postgresql_where=_OPEN,
    )

    op.create_table(
        "rescue_messages",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("rescue_id", sa.Integer(), nullable=False),
        sa.Column("author_id", sa.Integer(), nullable=False),
        sa.Column("content", sa.Text(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.ForeignKeyConstraint(
            ["rescue_id"],
            ["rescue_requests.id"],
            name="fk_rescue_messages_rescue_id_rescue_requests",
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name="pk_rescue_messages"),
    )
    op.create_index("ix_rescue_messages_rescue_id", "rescue_messages", ["rescue_id"], unique=False)

    op.create_table(
        "notifications",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("type", sa.String(40), nullable=False),
        sa.Column("title", sa.String(120), nullable=True),
        sa.Column("message", sa.Text(), nullable=True),
        sa.Column("data", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id", name="pk_notifications"),
    )
    op.create_index("ix_notifications_user_id", "notifications", ["user_id"], unique=False)

    op.create_table(
        "team_members",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("team_id", sa.Integer(), nullable=False),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.PrimaryKeyConstraint("id", name="pk_team_members"),
        sa.UniqueConstraint("team_id", "user_id", name="uq_team_member_team_user"),
    )
    op.create_index("ix_team_members_team_id", "team_members", ["team_id"], unique=False)
    op.create_index("ix_team_members_user_id", "team_members", ["user_id"], unique=False)


def downgrade() -> None:
    op.drop_index("ix_team_members_user_id", table_name="team_members")
    op.drop_index("ix_team_members_team_id", table_name="team_members")
    op.drop_table("team_members")
    op.drop_index("ix_notifications_user_id", table_name="notifications")
    op.drop_table("notifications")
    op.drop_index("ix_rescue_messages_rescue_id", table_name="rescue_messages")
    op.drop_table("rescue_messages")
    op.drop_index("uq_rescue_candidates_open_team", table_name="rescue_candidates")
    op.drop_index("uq_rescue_candidates_open_user", table_name="rescue_candidates")
    op.drop_index("ix_rescue_candidates_rescue_id", table_name="rescue_candidates")
    op.drop_table("rescue_candidates")
    op.drop_index("ix_rescue_requests_created_at", table_name="rescue_requests")
    op.drop_index("ix_rescue_requests_lat_lng", table_name="rescue_requests")
    op.drop_index("ix_rescue_requests_assigned_team_id", table_name="rescue_requests")
    op.drop_index("ix_rescue_requests_assigned_rescuer_id", table_name="rescue_requests")
    op.drop_index("ix_rescue_requests_user_id", table_name="rescue_requests")
    op.drop_table("rescue_requests")
