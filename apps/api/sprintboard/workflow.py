from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

from sqlalchemy import delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from sprintboard.errors import bad_request, conflict
from sprintboard.models import Backlog, Board, BoardMember, Label, Sprint, Ticket, TicketAssignee, TicketReviewer, User
from sprintboard.roles import Role
from sprintboard.utils.logging import get_logger

logger = get_logger(__name__)

DONE = "DONE"


def as_utc(value: datetime) -> datetime:
  # SQLite hands back naive datetimes for timezone-aware columns.
  if value.tzinfo is None:
    return value.replace(tzinfo=timezone.utc)
  return value


async def create_board(
  db: AsyncSession,
  *,
  creator: User,
  name: str,
  prefix: str,
  description: str | None = None,
  color: str = "#FFB7C5",
) -> tuple[Board, Backlog, BoardMember]:
  """
  Board, backlog and the creator's OWNER membership are added in one unit of work.

  Nothing is committed here; the caller's transaction decides whether all three land.
  """
  b = Board(name=name, prefix=prefix, description=description, color=color, owner_id=creator.id, ticket_counter=0)
  db.add(b)
  await db.flush()
  backlog = Backlog(board_id=b.id)
  owner = BoardMember(board_id=b.id, user_id=creator.id, role=Role.OWNER.value)
  db.add_all([backlog, owner])
  await db.flush()
  logger.info("board %s created with prefix %s by %s", b.id, b.prefix, creator.id)
  return b, backlog, owner


async def board_backlog(db: AsyncSession, board_id: str) -> Backlog:
  res = await db.execute(select(Backlog).where(Backlog.board_id == board_id))
  return res.scalar_one()


async def next_ticket_key(db: AsyncSession, board_id: str) -> str:
  res = await db.execute(
    update(Board)
    .where(Board.id == board_id)
    .values(ticket_counter=Board.ticket_counter + 1)
    .returning(Board.prefix, Board.ticket_counter)
    .execution_options(synchronize_session=False)
  )
  row = res.one()
  return f"{row.prefix}-{row.ticket_counter}"


async def next_order_index(db: AsyncSession, *, sprint_id: str | None = None, backlog_id: str | None = None) -> int:
  q = select(func.max(Ticket.order_index))
  if sprint_id is not None:
    q = q.where(Ticket.sprint_id == sprint_id)
  else:
    q = q.where(Ticket.backlog_id == backlog_id, Ticket.sprint_id.is_(None))
  max_order = (await db.execute(q)).scalar_one()
  return (max_order + 1) if max_order is not None else 0


async def sprint_on_board(db: AsyncSession, sprint_id: str, board_id: str) -> Sprint:
  res = await db.execute(select(Sprint).where(Sprint.id == sprint_id))
  s = res.scalar_one_or_none()
  if not s:
    raise bad_request("Invalid sprintId")
  if s.board_id != board_id:
    raise bad_request("Sprint belongs to a different board")
  return s


def place_in_sprint(t: Ticket, sprint: Sprint) -> None:
  t.sprint_id = sprint.id
  t.backlog_id = None


def place_in_backlog(t: Ticket, backlog: Backlog) -> None:
  t.backlog_id = backlog.id
  t.sprint_id = None


async def ensure_valid_parent(db: AsyncSession, *, board_id: str, parent_id: str, ticket_id: str | None = None) -> Ticket:
  res = await db.execute(select(Ticket).where(Ticket.id == parent_id))
  parent = res.scalar_one_or_none()
  if not parent:
    raise bad_request("Invalid parentId")
  if parent.board_id != board_id:
    raise bad_request("Parent ticket belongs to a different board")
  if ticket_id is None:
    return parent

  # Walk up from the proposed parent; reaching the ticket itself means a cycle.
  seen: set[str] = set()
  cursor: str | None = parent.id
  while cursor is not None and cursor not in seen:
    if cursor == ticket_id:
      raise bad_request("A ticket cannot be its own ancestor")
    seen.add(cursor)
    cursor = (await db.execute(select(Ticket.parent_id).where(Ticket.id == cursor))).scalar_one_or_none()
  return parent


async def ensure_board_members(db: AsyncSession, board_id: str, user_ids: Iterable[str]) -> None:
  wanted = {u for u in user_ids if u}
  if not wanted:
    return
  res = await db.execute(
    select(BoardMember.user_id).where(BoardMember.board_id == board_id, BoardMember.user_id.in_(wanted))
  )
  found = set(res.scalars().all())
  if found != wanted:
    raise bad_request("Assignees and reviewers must be board members")


async def ensure_board_labels(db: AsyncSession, board_id: str, label_ids: Iterable[str]) -> None:
  wanted = set(label_ids)
  if not wanted:
    return
  res = await db.execute(select(Label.id).where(Label.board_id == board_id, Label.id.in_(wanted)))
  if set(res.scalars().all()) != wanted:
    raise bad_request("Labels must belong to the ticket's board")


async def ensure_owner_remains(db: AsyncSession, member: BoardMember, *, new_role: str | None = None) -> None:
  """Refuse a demotion or removal that would leave the board without an OWNER."""
  if member.role != Role.OWNER.value or new_role == Role.OWNER.value:
    return
  res = await db.execute(
    select(func.count()).select_from(BoardMember).where(
      BoardMember.board_id == member.board_id, BoardMember.role == Role.OWNER.value
    )
  )
  if int(res.scalar_one()) <= 1:
    raise conflict("A board must keep at least one owner")


async def release_member_tickets(db: AsyncSession, board_id: str, user_id: str) -> None:
  """Drop a leaving member from every assignee and reviewer slot on the board's tickets."""
  board_tickets = select(Ticket.id).where(Ticket.board_id == board_id)
  for model in (TicketAssignee, TicketReviewer):
    await db.execute(
      delete(model)
      .where(model.user_id == user_id, model.ticket_id.in_(board_tickets))
      .execution_options(synchronize_session=False)
    )
  await db.execute(
    update(Ticket)
    .where(Ticket.board_id == board_id, Ticket.assignee_id == user_id)
    .values(assignee_id=None)
    .execution_options(synchronize_session=False)
  )
  logger.info("released tickets on board %s from departing member %s", board_id, user_id)


async def active_sprint(db: AsyncSession, board_id: str) -> Sprint | None:
  res = await db.execute(
    select(Sprint).where(Sprint.board_id == board_id, Sprint.status == "ACTIVE").order_by(Sprint.number.desc())
  )
  return res.scalars().first()


async def next_sprint_number(db: AsyncSession, board_id: str) -> int:
  res = await db.execute(select(func.max(Sprint.number)).where(Sprint.board_id == board_id))
  current = res.scalar_one()
  return (current or 0) + 1


async def _sprint_ticket_ids(db: AsyncSession, sprint_id: str, *, unfinished_only: bool) -> list[str]:
  q = select(Ticket.id).where(Ticket.sprint_id == sprint_id)
  if unfinished_only:
    q = q.where(Ticket.status != DONE)
  return list((await db.execute(q)).scalars().all())


async def return_sprint_tickets(db: AsyncSession, sprint: Sprint, *, unfinished_only: bool = False) -> int:
  backlog = await board_backlog(db, sprint.board_id)
  ids = await _sprint_ticket_ids(db, sprint.id, unfinished_only=unfinished_only)
  if ids:
    await db.execute(
      update(Ticket)
      .where(Ticket.id.in_(ids))
      .values(sprint_id=None, backlog_id=backlog.id)
      .execution_options(synchronize_session=False)
    )
    logger.info("moved %d tickets from sprint %s to backlog %s", len(ids), sprint.id, backlog.id)
  return len(ids)


async def carry_over_unfinished(db: AsyncSession, source: Sprint, target: Sprint) -> int:
  ids = await _sprint_ticket_ids(db, source.id, unfinished_only=True)
  if ids:
    await db.execute(
      update(Ticket)
      .where(Ticket.id.in_(ids))
      .values(sprint_id=target.id, backlog_id=None)
      .execution_options(synchronize_session=False)
    )
  logger.info("carried %d unfinished tickets from sprint %s to sprint %s", len(ids), source.id, target.id)
  return len(ids)


def start_sprint(s: Sprint) -> None:
  s.status = "ACTIVE"
  logger.info("sprint %s (board %s, #%d) started", s.id, s.board_id, s.number)


def complete_sprint(s: Sprint) -> None:
  s.status = "COMPLETED"
  logger.info("sprint %s (board %s, #%d) completed", s.id, s.board_id, s.number)


def progress_of(rows: Iterable[tuple[str, int | None]]) -> dict[str, int]:
  """Status counts and story-point totals for a sprint's tickets."""
  p = {
    "total": 0,
    "todo": 0,
    "inProgress": 0,
    "inReview": 0,
    "completed": 0,
    "totalPoints": 0,
    "completedPoints": 0,
  }
  keys = {"TODO": "todo", "IN_PROGRESS": "inProgress", "IN_REVIEW": "inReview", DONE: "completed"}
  for status_, points in rows:
    p["total"] += 1
    p[keys[status_]] += 1
    p["totalPoints"] += points or 0
    if status_ == DONE:
      p["completedPoints"] += points or 0
  p["completionPercentage"] = round(p["completed"] * 100 / p["total"]) if p["total"] else 0
  p["pointsCompletionPercentage"] = round(p["completedPoints"] * 100 / p["totalPoints"]) if p["totalPoints"] else 0
  return p
