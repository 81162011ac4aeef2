from __future__ import annotations

from collections import defaultdict
from typing import Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintboard.models import Comment, Label, Sprint, Ticket, TicketAssignee, TicketReviewer, User, ticket_labels
from sprintboard.schemas import CommentOut, LabelOut, SprintOut, SprintProgressOut, TicketOut
from sprintboard.workflow import progress_of


def label_out(lb: Label) -> LabelOut:
  return LabelOut(id=lb.id, boardId=lb.board_id, name=lb.name, color=lb.color, createdAt=lb.created_at)


def comment_out(c: Comment, author_name: str) -> CommentOut:
  return CommentOut(
    id=c.id,
    ticketId=c.ticket_id,
    authorId=c.author_id,
    authorName=author_name,
    body=c.body,
    createdAt=c.created_at,
    updatedAt=c.updated_at,
  )


async def ticket_outs(db: AsyncSession, tickets: Sequence[Ticket]) -> list[TicketOut]:
  """Ticket records with their join-row ids and sub-ticket/comment counts, batched per call."""
  if not tickets:
    return []
  ids = [t.id for t in tickets]
  assignees: dict[str, list[str]] = defaultdict(list)
  reviewers: dict[str, list[str]] = defaultdict(list)
  labels: dict[str, list[str]] = defaultdict(list)

  for tid, uid in (await db.execute(select(TicketAssignee.ticket_id, TicketAssignee.user_id).where(TicketAssignee.ticket_id.in_(ids)))).all():
    assignees[tid].append(uid)
  for tid, uid in (await db.execute(select(TicketReviewer.ticket_id, TicketReviewer.user_id).where(TicketReviewer.ticket_id.in_(ids)))).all():
    reviewers[tid].append(uid)
  for tid, lid in (await db.execute(select(ticket_labels.c.ticket_id, ticket_labels.c.label_id).where(ticket_labels.c.ticket_id.in_(ids)))).all():
    labels[tid].append(lid)

  sub_counts = dict(
    (await db.execute(select(Ticket.parent_id, func.count()).where(Ticket.parent_id.in_(ids)).group_by(Ticket.parent_id))).all()
  )
  comment_counts = dict(
    (await db.execute(select(Comment.ticket_id, func.count()).where(Comment.ticket_id.in_(ids)).group_by(Comment.ticket_id))).all()
  )

  return [
    TicketOut(
      id=t.id,
      boardId=t.board_id,
      key=t.key,
      title=t.title,
      description=t.description,
      type=t.type,
      priority=t.priority,
      status=t.status,
      storyPoints=t.story_points,
      creatorId=t.creator_id,
      assigneeId=t.assignee_id,
      parentId=t.parent_id,
      backlogId=t.backlog_id,
      sprintId=t.sprint_id,
      orderIndex=t.order_index,
      assigneeIds=sorted(assignees[t.id]),
      reviewerIds=sorted(reviewers[t.id]),
      labelIds=sorted(labels[t.id]),
      subTicketCount=int(sub_counts.get(t.id, 0)),
      commentCount=int(comment_counts.get(t.id, 0)),
      createdAt=t.created_at,
      updatedAt=t.updated_at,
    )
    for t in tickets
  ]


async def ticket_out(db: AsyncSession, t: Ticket) -> TicketOut:
  return (await ticket_outs(db, [t]))[0]


async def sprint_outs(db: AsyncSession, sprints: Sequence[Sprint]) -> list[SprintOut]:
  if not sprints:
    return []
  rows: dict[str, list[tuple[str, int | None]]] = defaultdict(list)
  res = await db.execute(
    select(Ticket.sprint_id, Ticket.status, Ticket.story_points).where(Ticket.sprint_id.in_([s.id for s in sprints]))
  )
  for sid, status_, points in res.all():
    rows[sid].append((status_, points))
  return [
    SprintOut(
      id=s.id,
      boardId=s.board_id,
      number=s.number,
      name=s.name,
      goal=s.goal,
      startDate=s.start_date,
      endDate=s.end_date,
      status=s.status,
      progress=SprintProgressOut(**progress_of(rows[s.id])),
      createdAt=s.created_at,
      updatedAt=s.updated_at,
    )
    for s in sprints
  ]


async def sprint_out(db: AsyncSession, s: Sprint) -> SprintOut:
  return (await sprint_outs(db, [s]))[0]


async def author_names(db: AsyncSession, author_ids: set[str]) -> dict[str, str]:
  if not author_ids:
    return {}
  res = await db.execute(select(User.id, User.name).where(User.id.in_(author_ids)))
  return dict(res.all())
