from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, Table, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
  return datetime.now(timezone.utc)


def new_id() -> str:
  return str(uuid.uuid4())


class Base(DeclarativeBase):
  pass


ID = String(36)
JSONType = JSON().with_variant(JSONB(), "postgresql")

TICKET_TYPES = ("ISSUE", "FIX", "HOTFIX", "PROBLEM")
TICKET_PRIORITIES = ("LOWEST", "LOW", "MEDIUM", "HIGH", "HIGHEST")
TICKET_STATUSES = ("TODO", "IN_PROGRESS", "IN_REVIEW", "DONE")
SPRINT_STATUSES = ("PLANNED", "ACTIVE", "COMPLETED")


class User(Base):
  __tablename__ = "users"

  id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
  email: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  avatar_url: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class ApiToken(Base):
  __tablename__ = "api_tokens"

  id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
  user_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  token_hash: Mapped[str] = mapped_column(String, nullable=False, unique=True, index=True)
  token_hint: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  last_used_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
  revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)


class Board(Base):
  __tablename__ = "boards"

  id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
  name: Mapped[str] = mapped_column(String, nullable=False)
  prefix: Mapped[str] = mapped_column(String(5), nullable=False, unique=True, index=True)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  color: Mapped[str] = mapped_column(String, nullable=False, default="#FFB7C5")
  owner_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id"), nullable=False, index=True)
  ticket_counter: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class BoardMember(Base):
  __tablename__ = "board_members"
  __table_args__ = (UniqueConstraint("board_id", "user_id", name="ux_board_member_board_user"),)

  id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(ID, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False)
  user_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
  role: Mapped[str] = mapped_column(String, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Backlog(Base):
  __tablename__ = "backlogs"

  id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(ID, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, unique=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Sprint(Base):
  __tablename__ = "sprints"
  __table_args__ = (UniqueConstraint("board_id", "number", name="ux_sprints_board_number"),)

  id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(ID, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
  number: Mapped[int] = mapped_column(Integer, nullable=False)
  name: Mapped[str] = mapped_column(String, nullable=False)
  goal: Mapped[str | None] = mapped_column(Text, nullable=True)
  start_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  end_date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
  status: Mapped[str] = mapped_column(String, nullable=False, default="PLANNED")  # PLANNED | ACTIVE | COMPLETED
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class Label(Base):
  __tablename__ = "labels"
  __table_args__ = (UniqueConstraint("board_id", "name", name="ux_labels_board_name"),)

  id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(ID, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
  name: Mapped[str] = mapped_column(String, nullable=False)
  color: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)


class Ticket(Base):
  __tablename__ = "tickets"

  id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
  board_id: Mapped[str] = mapped_column(ID, ForeignKey("boards.id", ondelete="CASCADE"), nullable=False, index=True)
  key: Mapped[str] = mapped_column(String, nullable=False, unique=True)
  title: Mapped[str] = mapped_column(String, nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  type: Mapped[str] = mapped_column(String, nullable=False, default="ISSUE")
  priority: Mapped[str] = mapped_column(String, nullable=False, default="MEDIUM")
  status: Mapped[str] = mapped_column(String, nullable=False, default="TODO")
  story_points: Mapped[int | None] = mapped_column(Integer, nullable=True)
  creator_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
  assignee_id: Mapped[str | None] = mapped_column(ID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
  parent_id: Mapped[str | None] = mapped_column(ID, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=True, index=True)
  backlog_id: Mapped[str | None] = mapped_column(ID, ForeignKey("backlogs.id", ondelete="SET NULL"), nullable=True, index=True)
  sprint_id: Mapped[str | None] = mapped_column(ID, ForeignKey("sprints.id", ondelete="SET NULL"), nullable=True, index=True)
  order_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


ticket_labels = Table(
  "ticket_labels",
  Base.metadata,
  Column("ticket_id", ID, ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True),
  Column("label_id", ID, ForeignKey("labels.id", ondelete="CASCADE"), primary_key=True),
)


class TicketAssignee(Base):
  __tablename__ = "ticket_assignees"

  ticket_id: Mapped[str] = mapped_column(ID, ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True)
  user_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)


class TicketReviewer(Base):
  __tablename__ = "ticket_reviewers"

  ticket_id: Mapped[str] = mapped_column(ID, ForeignKey("tickets.id", ondelete="CASCADE"), primary_key=True)
  user_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)


class Comment(Base):
  __tablename__ = "comments"

  id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
  ticket_id: Mapped[str] = mapped_column(ID, ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)
  author_id: Mapped[str] = mapped_column(ID, ForeignKey("users.id"), nullable=False)
  body: Mapped[str] = mapped_column(Text, nullable=False)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
  updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AuditEvent(Base):
  __tablename__ = "audit_events"

  id: Mapped[str] = mapped_column(ID, primary_key=True, default=new_id)
  board_id: Mapped[str | None] = mapped_column(ID, ForeignKey("boards.id", ondelete="CASCADE"), nullable=True, index=True)
  ticket_id: Mapped[str | None] = mapped_column(ID, nullable=True)
  actor_id: Mapped[str | None] = mapped_column(ID, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
  event_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_type: Mapped[str] = mapped_column(String, nullable=False)
  entity_id: Mapped[str | None] = mapped_column(String, nullable=True)
  payload: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
  created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
