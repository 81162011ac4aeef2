"""init

Revision ID: 0001_init
Revises:
Create Date: 2026-10-19
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision = "0001_init"
down_revision = None
branch_labels = None
depends_on = None

ID = sa.String(length=36)


def upgrade() -> None:
  op.create_table(
    "users",
    sa.Column("id", ID, primary_key=True),
    sa.Column("email", sa.String(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("avatar_url", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_users_email", "users", ["email"], unique=True)

  op.create_table(
    "api_tokens",
    sa.Column("id", ID, primary_key=True),
    sa.Column("user_id", ID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("token_hash", sa.String(), nullable=False),
    sa.Column("token_hint", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("last_used_at", sa.DateTime(timezone=True), nullable=True),
    sa.Column("revoked_at", sa.DateTime(timezone=True), nullable=True),
  )
  op.create_index("ix_api_tokens_user_id", "api_tokens", ["user_id"], unique=False)
  op.create_index("ix_api_tokens_token_hash", "api_tokens", ["token_hash"], unique=True)

  op.create_table(
    "boards",
    sa.Column("id", ID, primary_key=True),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("prefix", sa.String(length=5), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("color", sa.String(), nullable=False),
    sa.Column("owner_id", ID, sa.ForeignKey("users.id"), nullable=False),
    sa.Column("ticket_counter", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_boards_prefix", "boards", ["prefix"], unique=True)
  op.create_index("ix_boards_owner_id", "boards", ["owner_id"], unique=False)

  op.create_table(
    "board_members",
    sa.Column("id", ID, primary_key=True),
    sa.Column("board_id", ID, sa.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False),
    sa.Column("user_id", ID, sa.ForeignKey("users.id", ondelete="CASCADE"), nullable=False),
    sa.Column("role", sa.String(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("board_id", "user_id", name="ux_board_member_board_user"),
  )
  op.create_index("ix_board_members_user_id", "board_members", ["user_id"], unique=False)

  op.create_table(
    "backlogs",
    sa.Column("id", ID, primary_key=True),
    sa.Column("board_id", ID, sa.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, unique=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )

  op.create_table(
    "sprints",
    sa.Column("id", ID, primary_key=True),
    sa.Column("board_id", ID, sa.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False),
    sa.Column("number", sa.Integer(), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("goal", sa.Text(), nullable=True),
    sa.Column("start_date", sa.DateTime(timezone=True), nullable=False),
    sa.Column("end_date", sa.DateTime(timezone=True), nullable=False),
    sa.Column("status", sa.String(), nullable=False, server_default="PLANNED"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("board_id", "number", name="ux_sprints_board_number"),
  )
  op.create_index("ix_sprints_board_id", "sprints", ["board_id"], unique=False)

  op.create_table(
    "labels",
    sa.Column("id", ID, primary_key=True),
    sa.Column("board_id", ID, sa.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False),
    sa.Column("name", sa.String(), nullable=False),
    sa.Column("color", sa.String(), nullable=True),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.UniqueConstraint("board_id", "name", name="ux_labels_board_name"),
  )
  op.create_index("ix_labels_board_id", "labels", ["board_id"], unique=False)

  op.create_table(
    "tickets",
    sa.Column("id", ID, primary_key=True),
    sa.Column("board_id", ID, sa.ForeignKey("boards.id", ondelete="CASCADE"), nullable=False),
    sa.Column("key", sa.String(), nullable=False, unique=True),
    sa.Column("title", sa.String(), nullable=False),
    sa.Column("description", sa.Text(), nullable=True),
    sa.Column("type", sa.String(), nullable=False, server_default="ISSUE"),
    sa.Column("priority", sa.String(), nullable=False, server_default="MEDIUM"),
    sa.Column("status", sa.String(), nullable=False, server_default="TODO"),
    sa.Column("story_points", sa.Integer(), nullable=True),
    sa.Column("creator_id", ID, sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
    sa.Column("assignee_id", ID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    sa.Column("parent_id", ID, sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=True),
    sa.Column("backlog_id", ID, sa.ForeignKey("backlogs.id", ondelete="SET NULL"), nullable=True),
    sa.Column("sprint_id", ID, sa.ForeignKey("sprints.id", ondelete="SET NULL"), nullable=True),
    sa.Column("order_index", sa.Integer(), nullable=False, server_default="0"),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_tickets_board_id", "tickets", ["board_id"], unique=False)
  op.create_index("ix_tickets_parent_id", "tickets", ["parent_id"], unique=False)
  op.create_index("ix_tickets_backlog_id", "tickets", ["backlog_id"], unique=False)
  op.create_index("ix_tickets_sprint_id", "tickets", ["sprint_id"], unique=False)

  op.create_table(
    "ticket_labels",
    sa.Column("ticket_id", ID, sa.ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True),
    sa.Column("label_id", ID, sa.ForeignKey("labels.id", ondelete="CASCADE"), primary_key=True),
  )
  op.create_table(
    "ticket_assignees",
    sa.Column("ticket_id", ID, sa.ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True),
    sa.Column("user_id", ID, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
  )
  op.create_table(
    "ticket_reviewers",
    sa.Column("ticket_id", ID, sa.ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True),
    sa.Column("user_id", ID, sa.ForeignKey("users.id", ondelete="CASCADE"), primary_key=True),
  )

  op.create_table(
    "comments",
    sa.Column("id", ID, primary_key=True),
    sa.Column("ticket_id", ID, sa.ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False),
    sa.Column("author_id", ID, sa.ForeignKey("users.id"), nullable=False),
    sa.Column("body", sa.Text(), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_comments_ticket_id", "comments", ["ticket_id"], unique=False)

  op.create_table(
    "audit_events",
    sa.Column("id", ID, primary_key=True),
    sa.Column("board_id", ID, sa.ForeignKey("boards.id", ondelete="CASCADE"), nullable=True),
    sa.Column("ticket_id", ID, nullable=True),
    sa.Column("actor_id", ID, sa.ForeignKey("users.id", ondelete="SET NULL"), nullable=True),
    sa.Column("event_type", sa.String(), nullable=False),
    sa.Column("entity_type", sa.String(), nullable=False),
    sa.Column("entity_id", sa.String(), nullable=True),
    sa.Column("payload", sa.JSON().with_variant(postgresql.JSONB(), "postgresql"), nullable=False),
    sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
  )
  op.create_index("ix_audit_events_board_id", "audit_events", ["board_id"], unique=False)


def downgrade() -> None:
  op.drop_table("audit_events")
  op.drop_table("comments")
  op.drop_table("ticket_reviewers")
  op.drop_table("ticket_assignees")
  op.drop_table("ticket_labels")
  op.drop_table("tickets")
  op.drop_table("labels")
  op.drop_table("sprints")
  op.drop_table("backlogs")
  op.drop_table("board_members")
  op.drop_table("boards")
  op.drop_table("api_tokens")
  op.drop_table("users")
