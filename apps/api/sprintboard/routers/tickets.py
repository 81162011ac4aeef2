from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import delete, insert, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintboard.audit import write_audit
from sprintboard.db_errors import storage_boundary
from sprintboard.deps import get_current_user, get_db, require_board_role
from sprintboard.errors import not_found
from sprintboard.models import Comment, Label, Ticket, TicketAssignee, TicketReviewer, User, ticket_labels
from sprintboard.roles import Role
from sprintboard.schemas import (
  LabelRefIn,
  SubTicketCreateIn,
  TicketCreateIn,
  TicketDetailOut,
  TicketMoveIn,
  TicketOrderIn,
  TicketOut,
  TicketStatus,
  TicketType,
  TicketUpdateIn,
  UserRefIn,
)
from sprintboard.utils.logging import get_logger
from sprintboard.views import author_names, comment_out, label_out, ticket_out, ticket_outs
from sprintboard.workflow import (
  board_backlog,
  ensure_board_labels,
  ensure_board_members,
  ensure_valid_parent,
  next_order_index,
  next_ticket_key,
  place_in_backlog,
  place_in_sprint,
  sprint_on_board,
)

logger = get_logger(__name__)

router = APIRouter(tags=["tickets"])


async def _load_ticket(db: AsyncSession, ticket_id: str) -> Ticket:
  res = await db.execute(select(Ticket).where(Ticket.id == ticket_id))
  return res.scalar_one()


async def _replace_people(db: AsyncSession, model, ticket_id: str, user_ids: list[str]) -> None:
  await db.execute(delete(model).where(model.ticket_id == ticket_id).execution_options(synchronize_session=False))
  unique = list(dict.fromkeys(user_ids))
  if unique:
    await db.execute(insert(model), [{"ticket_id": ticket_id, "user_id": uid} for uid in unique])


async def _replace_labels(db: AsyncSession, ticket_id: str, label_ids: list[str]) -> None:
  await db.execute(delete(ticket_labels).where(ticket_labels.c.ticket_id == ticket_id))
  unique = list(dict.fromkeys(label_ids))
  if unique:
    await db.execute(insert(ticket_labels), [{"ticket_id": ticket_id, "label_id": lid} for lid in unique])


async def _new_ticket(
  db: AsyncSession,
  *,
  board_id: str,
  creator: User,
  title: str,
  description: str | None,
  type: str,
  priority: str,
  status: str = "TODO",
  story_points: int | None = None,
  assignee_id: str | None = None,
  sprint_id: str | None = None,
  parent: Ticket | None = None,
) -> Ticket:
  t = Ticket(
    board_id=board_id,
    key=await next_ticket_key(db, board_id),
    title=title.strip(),
    description=description,
    type=type,
    priority=priority,
    status=status,
    story_points=story_points,
    creator_id=creator.id,
    assignee_id=assignee_id,
    parent_id=parent.id if parent else None,
  )
  if sprint_id:
    place_in_sprint(t, await sprint_on_board(db, sprint_id, board_id))
  elif parent is not None and (parent.sprint_id or parent.backlog_id):
    # Sub-tickets live where their parent lives.
    t.sprint_id = parent.sprint_id
    t.backlog_id = parent.backlog_id
  else:
    place_in_backlog(t, await board_backlog(db, board_id))
  t.order_index = await next_order_index(db, sprint_id=t.sprint_id, backlog_id=t.backlog_id)
  db.add(t)
  await db.flush()
  return t


@router.get("/boards/{board_id}/tickets", response_model=list[TicketOut])
async def list_tickets(
  board_id: str,
  sprintId: str | None = None,
  inBacklog: bool | None = None,
  status: TicketStatus | None = None,
  type: TicketType | None = None,
  assigneeId: str | None = None,
  labelId: str | None = None,
  topLevelOnly: bool = False,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[TicketOut]:
  async with storage_boundary(db):
    await require_board_role(board_id, None, user, db)
    q = select(Ticket).where(Ticket.board_id == board_id)
    if sprintId:
      q = q.where(Ticket.sprint_id == sprintId)
    if inBacklog is True:
      q = q.where(Ticket.backlog_id.is_not(None))
    elif inBacklog is False:
      q = q.where(Ticket.backlog_id.is_(None))
    if status:
      q = q.where(Ticket.status == status)
    if type:
      q = q.where(Ticket.type == type)
    if assigneeId:
      q = q.where(
        or_(
          Ticket.assignee_id == assigneeId,
          Ticket.id.in_(select(TicketAssignee.ticket_id).where(TicketAssignee.user_id == assigneeId)),
        )
      )
    if labelId:
      q = q.where(Ticket.id.in_(select(ticket_labels.c.ticket_id).where(ticket_labels.c.label_id == labelId)))
    if topLevelOnly:
      q = q.where(Ticket.parent_id.is_(None))
    res = await db.execute(q.order_by(Ticket.order_index.asc(), Ticket.created_at.asc()))
    return await ticket_outs(db, list(res.scalars().all()))


@router.post("/boards/{board_id}/tickets", response_model=TicketOut)
async def create_ticket(
  board_id: str,
  payload: TicketCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TicketOut:
  async with storage_boundary(db):
    await require_board_role(board_id, Role.MEMBER, user, db)
    await ensure_board_members(db, board_id, [payload.assigneeId, *payload.assigneeIds, *payload.reviewerIds])
    await ensure_board_labels(db, board_id, payload.labelIds)
    parent = await ensure_valid_parent(db, board_id=board_id, parent_id=payload.parentId) if payload.parentId else None

    t = await _new_ticket(
      db,
      board_id=board_id,
      creator=user,
      title=payload.title,
      description=payload.description,
      type=payload.type,
      priority=payload.priority,
      status=payload.status,
      story_points=payload.storyPoints,
      assignee_id=payload.assigneeId,
      sprint_id=payload.sprintId,
      parent=parent,
    )
    await _replace_people(db, TicketAssignee, t.id, payload.assigneeIds)
    await _replace_people(db, TicketReviewer, t.id, payload.reviewerIds)
    await _replace_labels(db, t.id, payload.labelIds)
    await write_audit(
      db,
      event_type="ticket.created",
      entity_id=t.id,
      board_id=board_id,
      ticket_id=t.id,
      actor_id=user.id,
      payload={"key": t.key, "title": t.title, "sprintId": t.sprint_id, "parentId": t.parent_id},
    )
    await db.commit()
    return await ticket_out(db, t)


@router.get("/tickets/{ticket_id}", response_model=TicketDetailOut)
async def get_ticket(ticket_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> TicketDetailOut:
  async with storage_boundary(db):
    t = await _load_ticket(db, ticket_id)
    await require_board_role(t.board_id, None, user, db)
    sres = await db.execute(select(Ticket).where(Ticket.parent_id == t.id).order_by(Ticket.order_index.asc(), Ticket.created_at.asc()))
    subs = await ticket_outs(db, list(sres.scalars().all()))
    cres = await db.execute(select(Comment).where(Comment.ticket_id == t.id).order_by(Comment.created_at.asc()))
    comments = list(cres.scalars().all())
    names = await author_names(db, {c.author_id for c in comments})
    lres = await db.execute(
      select(Label).join(ticket_labels, ticket_labels.c.label_id == Label.id).where(ticket_labels.c.ticket_id == t.id).order_by(Label.name.asc())
    )
    labels = list(lres.scalars().all())
    summary = await ticket_out(db, t)
  return TicketDetailOut(
    **summary.model_dump(),
    subTickets=subs,
    comments=[comment_out(c, names.get(c.author_id, "")) for c in comments],
    labels=[label_out(lb) for lb in labels],
  )


@router.patch("/tickets/{ticket_id}", response_model=TicketOut)
async def update_ticket(
  ticket_id: str,
  payload: TicketUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TicketOut:
  async with storage_boundary(db):
    t = await _load_ticket(db, ticket_id)
    await require_board_role(t.board_id, Role.MEMBER, user, db)
    sent = payload.model_fields_set

    if payload.title is not None:
      t.title = payload.title.strip()
    if "description" in sent:
      t.description = payload.description
    if payload.type is not None:
      t.type = payload.type
    if payload.priority is not None:
      t.priority = payload.priority
    if payload.status is not None:
      t.status = payload.status
    if "storyPoints" in sent:
      t.story_points = payload.storyPoints
    if "assigneeId" in sent:
      if payload.assigneeId:
        await ensure_board_members(db, t.board_id, [payload.assigneeId])
      t.assignee_id = payload.assigneeId
    if "parentId" in sent:
      if payload.parentId:
        await ensure_valid_parent(db, board_id=t.board_id, parent_id=payload.parentId, ticket_id=t.id)
      t.parent_id = payload.parentId
    if payload.assigneeIds is not None:
      await ensure_board_members(db, t.board_id, payload.assigneeIds)
      await _replace_people(db, TicketAssignee, t.id, payload.assigneeIds)
    if payload.reviewerIds is not None:
      await ensure_board_members(db, t.board_id, payload.reviewerIds)
      await _replace_people(db, TicketReviewer, t.id, payload.reviewerIds)
    if payload.labelIds is not None:
      await ensure_board_labels(db, t.board_id, payload.labelIds)
      await _replace_labels(db, t.id, payload.labelIds)

    await write_audit(
      db,
      event_type="ticket.updated",
      entity_id=t.id,
      board_id=t.board_id,
      ticket_id=t.id,
      actor_id=user.id,
      payload=payload.model_dump(exclude_unset=True),
    )
    await db.commit()
    return await ticket_out(db, t)


@router.post("/tickets/{ticket_id}/move", response_model=TicketOut)
async def move_ticket(
  ticket_id: str,
  payload: TicketMoveIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TicketOut:
  async with storage_boundary(db):
    t = await _load_ticket(db, ticket_id)
    await require_board_role(t.board_id, Role.MEMBER, user, db)
    before = {"sprintId": t.sprint_id, "status": t.status}

    if "sprintId" in payload.model_fields_set:
      if payload.sprintId:
        sprint = await sprint_on_board(db, payload.sprintId, t.board_id)
        if t.sprint_id != sprint.id:
          t.order_index = await next_order_index(db, sprint_id=sprint.id)
        place_in_sprint(t, sprint)
      else:
        backlog = await board_backlog(db, t.board_id)
        if t.backlog_id != backlog.id:
          t.order_index = await next_order_index(db, backlog_id=backlog.id)
        place_in_backlog(t, backlog)
    if payload.status is not None:
      t.status = payload.status

    await write_audit(
      db,
      event_type="ticket.moved",
      entity_id=t.id,
      board_id=t.board_id,
      ticket_id=t.id,
      actor_id=user.id,
      payload={"from": before, "to": {"sprintId": t.sprint_id, "status": t.status}},
    )
    await db.commit()
    logger.info("ticket %s moved: sprint %s -> %s, status %s -> %s", t.key, before["sprintId"], t.sprint_id, before["status"], t.status)
    return await ticket_out(db, t)


@router.post("/tickets/{ticket_id}/order", response_model=TicketOut)
async def order_ticket(
  ticket_id: str,
  payload: TicketOrderIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TicketOut:
  async with storage_boundary(db):
    t = await _load_ticket(db, ticket_id)
    await require_board_role(t.board_id, Role.MEMBER, user, db)
    t.order_index = payload.orderIndex
    await write_audit(
      db,
      event_type="ticket.reordered",
      entity_id=t.id,
      board_id=t.board_id,
      ticket_id=t.id,
      actor_id=user.id,
      payload={"orderIndex": t.order_index},
    )
    await db.commit()
    return await ticket_out(db, t)


@router.delete("/tickets/{ticket_id}")
async def delete_ticket(ticket_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  async with storage_boundary(db):
    t = await _load_ticket(db, ticket_id)
    await require_board_role(t.board_id, Role.ADMIN, user, db)
    # Sub-tickets, comments and join rows are removed by the store's cascades.
    await db.delete(t)
    await write_audit(
      db,
      event_type="ticket.deleted",
      entity_id=t.id,
      board_id=t.board_id,
      ticket_id=t.id,
      actor_id=user.id,
      payload={"key": t.key},
    )
    await db.commit()
  return {"ok": True}


@router.post("/tickets/{ticket_id}/sub-tickets", response_model=TicketOut)
async def create_sub_ticket(
  ticket_id: str,
  payload: SubTicketCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TicketOut:
  async with storage_boundary(db):
    parent = await _load_ticket(db, ticket_id)
    await require_board_role(parent.board_id, Role.MEMBER, user, db)
    await ensure_board_members(db, parent.board_id, [payload.assigneeId])
    t = await _new_ticket(
      db,
      board_id=parent.board_id,
      creator=user,
      title=payload.title,
      description=payload.description,
      type=payload.type,
      priority=payload.priority,
      assignee_id=payload.assigneeId,
      parent=parent,
    )
    await write_audit(
      db,
      event_type="ticket.created",
      entity_id=t.id,
      board_id=t.board_id,
      ticket_id=t.id,
      actor_id=user.id,
      payload={"key": t.key, "title": t.title, "parentId": parent.id},
    )
    await db.commit()
    return await ticket_out(db, t)


async def _add_person(db: AsyncSession, model, t: Ticket, user_id: str) -> None:
  await ensure_board_members(db, t.board_id, [user_id])
  # A second add of the same pair hits the primary key and surfaces as CONFLICT.
  await db.execute(insert(model).values(ticket_id=t.id, user_id=user_id))


async def _remove_person(db: AsyncSession, model, t: Ticket, user_id: str, what: str) -> None:
  row = await db.get(model, (t.id, user_id))
  if row is None:
    raise not_found(f"{what} not found")
  await db.delete(row)


async def _people_route(
  db: AsyncSession,
  *,
  model,
  ticket_id: str,
  user_id: str,
  user: User,
  adding: bool,
  event: str,
  what: str,
) -> TicketOut:
  async with storage_boundary(db):
    t = await _load_ticket(db, ticket_id)
    await require_board_role(t.board_id, Role.MEMBER, user, db)
    if adding:
      await _add_person(db, model, t, user_id)
    else:
      await _remove_person(db, model, t, user_id, what)
    await write_audit(
      db,
      event_type=event,
      entity_id=t.id,
      board_id=t.board_id,
      ticket_id=t.id,
      actor_id=user.id,
      payload={"userId": user_id},
    )
    await db.commit()
    return await ticket_out(db, t)


@router.post("/tickets/{ticket_id}/assignees", response_model=TicketOut)
async def add_assignee(
  ticket_id: str, payload: UserRefIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
) -> TicketOut:
  return await _people_route(
    db, model=TicketAssignee, ticket_id=ticket_id, user_id=payload.userId, user=user, adding=True, event="ticket.assignee_added", what="Assignee"
  )


@router.delete("/tickets/{ticket_id}/assignees/{user_id}", response_model=TicketOut)
async def remove_assignee(
  ticket_id: str, user_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
) -> TicketOut:
  return await _people_route(
    db, model=TicketAssignee, ticket_id=ticket_id, user_id=user_id, user=user, adding=False, event="ticket.assignee_removed", what="Assignee"
  )


@router.post("/tickets/{ticket_id}/reviewers", response_model=TicketOut)
async def add_reviewer(
  ticket_id: str, payload: UserRefIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
) -> TicketOut:
  return await _people_route(
    db, model=TicketReviewer, ticket_id=ticket_id, user_id=payload.userId, user=user, adding=True, event="ticket.reviewer_added", what="Reviewer"
  )


@router.delete("/tickets/{ticket_id}/reviewers/{user_id}", response_model=TicketOut)
async def remove_reviewer(
  ticket_id: str, user_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
) -> TicketOut:
  return await _people_route(
    db, model=TicketReviewer, ticket_id=ticket_id, user_id=user_id, user=user, adding=False, event="ticket.reviewer_removed", what="Reviewer"
  )


@router.post("/tickets/{ticket_id}/labels", response_model=TicketOut)
async def add_label(
  ticket_id: str, payload: LabelRefIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
) -> TicketOut:
  async with storage_boundary(db):
    t = await _load_ticket(db, ticket_id)
    await require_board_role(t.board_id, Role.MEMBER, user, db)
    await ensure_board_labels(db, t.board_id, [payload.labelId])
    await db.execute(insert(ticket_labels).values(ticket_id=t.id, label_id=payload.labelId))
    await write_audit(
      db,
      event_type="ticket.label_added",
      entity_id=t.id,
      board_id=t.board_id,
      ticket_id=t.id,
      actor_id=user.id,
      payload={"labelId": payload.labelId},
    )
    await db.commit()
    return await ticket_out(db, t)


@router.delete("/tickets/{ticket_id}/labels/{label_id}", response_model=TicketOut)
async def remove_label(
  ticket_id: str, label_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)
) -> TicketOut:
  async with storage_boundary(db):
    t = await _load_ticket(db, ticket_id)
    await require_board_role(t.board_id, Role.MEMBER, user, db)
    attached = await db.execute(
      select(ticket_labels.c.label_id).where(ticket_labels.c.ticket_id == t.id, ticket_labels.c.label_id == label_id)
    )
    if attached.scalar_one_or_none() is None:
      raise not_found("Label not attached to this ticket")
    await db.execute(delete(ticket_labels).where(ticket_labels.c.ticket_id == t.id, ticket_labels.c.label_id == label_id))
    await write_audit(
      db,
      event_type="ticket.label_removed",
      entity_id=t.id,
      board_id=t.board_id,
      ticket_id=t.id,
      actor_id=user.id,
      payload={"labelId": label_id},
    )
    await db.commit()
    return await ticket_out(db, t)
