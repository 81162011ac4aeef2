from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintboard.audit import write_audit
from sprintboard.db_errors import storage_boundary
from sprintboard.deps import get_current_user, get_db, require_board_role
from sprintboard.errors import bad_request, conflict
from sprintboard.models import Sprint, Ticket, User
from sprintboard.roles import Role
from sprintboard.schemas import SprintCompleteIn, SprintCreateIn, SprintDetailOut, SprintOut, SprintUpdateIn
from sprintboard.views import sprint_out, sprint_outs, ticket_outs
from sprintboard.workflow import (
  active_sprint,
  as_utc,
  carry_over_unfinished,
  complete_sprint,
  next_sprint_number,
  return_sprint_tickets,
  start_sprint,
)

router = APIRouter(tags=["sprints"])


async def _load_sprint(db: AsyncSession, sprint_id: str) -> Sprint:
  res = await db.execute(select(Sprint).where(Sprint.id == sprint_id))
  return res.scalar_one()


@router.get("/boards/{board_id}/sprints", response_model=list[SprintOut])
async def list_sprints(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[SprintOut]:
  async with storage_boundary(db):
    await require_board_role(board_id, None, user, db)
    res = await db.execute(select(Sprint).where(Sprint.board_id == board_id).order_by(Sprint.number.desc()))
    return await sprint_outs(db, list(res.scalars().all()))


@router.get("/boards/{board_id}/sprints/current", response_model=SprintOut | None)
async def current_sprint(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> SprintOut | None:
  async with storage_boundary(db):
    await require_board_role(board_id, None, user, db)
    s = await active_sprint(db, board_id)
    return await sprint_out(db, s) if s else None


@router.post("/boards/{board_id}/sprints", response_model=SprintOut)
async def create_sprint(
  board_id: str,
  payload: SprintCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> SprintOut:
  async with storage_boundary(db):
    await require_board_role(board_id, Role.MEMBER, user, db)
    s = Sprint(
      board_id=board_id,
      number=await next_sprint_number(db, board_id),
      name=payload.name.strip(),
      goal=payload.goal,
      start_date=payload.startDate,
      end_date=payload.endDate,
      status="PLANNED",
    )
    db.add(s)
    await db.flush()

    previous_id: str | None = None
    carried = 0
    if payload.autoStart:
      previous = await active_sprint(db, board_id)
      if previous:
        previous_id = previous.id
        complete_sprint(previous)
        carried = await carry_over_unfinished(db, previous, s)
      start_sprint(s)

    await write_audit(
      db,
      event_type="sprint.created",
      entity_id=s.id,
      board_id=board_id,
      actor_id=user.id,
      payload={"number": s.number, "status": s.status, "previousSprintId": previous_id, "carriedOver": carried},
    )
    await db.commit()
    return await sprint_out(db, s)


@router.get("/sprints/{sprint_id}", response_model=SprintDetailOut)
async def get_sprint(
  sprint_id: str,
  topLevelOnly: bool = False,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> SprintDetailOut:
  async with storage_boundary(db):
    s = await _load_sprint(db, sprint_id)
    await require_board_role(s.board_id, None, user, db)
    q = select(Ticket).where(Ticket.sprint_id == s.id)
    if topLevelOnly:
      q = q.where(Ticket.parent_id.is_(None))
    res = await db.execute(q.order_by(Ticket.order_index.asc(), Ticket.created_at.asc()))
    tickets = await ticket_outs(db, list(res.scalars().all()))
    summary = await sprint_out(db, s)
  return SprintDetailOut(**summary.model_dump(), tickets=tickets)


@router.patch("/sprints/{sprint_id}", response_model=SprintOut)
async def update_sprint(
  sprint_id: str,
  payload: SprintUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> SprintOut:
  async with storage_boundary(db):
    s = await _load_sprint(db, sprint_id)
    await require_board_role(s.board_id, Role.MEMBER, user, db)
    start = payload.startDate or as_utc(s.start_date)
    end = payload.endDate or as_utc(s.end_date)
    if end <= start:
      raise bad_request("End date must be after start date")
    if payload.name is not None:
      s.name = payload.name.strip()
    if "goal" in payload.model_fields_set:
      s.goal = payload.goal
    s.start_date = start
    s.end_date = end
    await write_audit(
      db,
      event_type="sprint.updated",
      entity_id=s.id,
      board_id=s.board_id,
      actor_id=user.id,
      payload=payload.model_dump(exclude_unset=True),
    )
    await db.commit()
    return await sprint_out(db, s)


@router.post("/sprints/{sprint_id}/start", response_model=SprintOut)
async def start(sprint_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> SprintOut:
  async with storage_boundary(db):
    s = await _load_sprint(db, sprint_id)
    await require_board_role(s.board_id, Role.MEMBER, user, db)
    if s.status != "PLANNED":
      raise bad_request("Only planned sprints can be started")
    running = await active_sprint(db, s.board_id)
    if running:
      raise conflict("Another sprint is already active")
    start_sprint(s)
    await write_audit(
      db, event_type="sprint.started", entity_id=s.id, board_id=s.board_id, actor_id=user.id, payload={"number": s.number}
    )
    await db.commit()
    return await sprint_out(db, s)


@router.post("/sprints/{sprint_id}/complete", response_model=SprintOut)
async def complete(
  sprint_id: str,
  payload: SprintCompleteIn | None = None,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> SprintOut:
  payload = payload or SprintCompleteIn()
  async with storage_boundary(db):
    s = await _load_sprint(db, sprint_id)
    await require_board_role(s.board_id, Role.MEMBER, user, db)
    if s.status != "ACTIVE":
      raise bad_request("Only active sprints can be completed")
    moved = 0
    if payload.moveUnfinishedToBacklog:
      moved = await return_sprint_tickets(db, s, unfinished_only=True)
    complete_sprint(s)
    await write_audit(
      db,
      event_type="sprint.completed",
      entity_id=s.id,
      board_id=s.board_id,
      actor_id=user.id,
      payload={"number": s.number, "movedToBacklog": moved},
    )
    await db.commit()
    return await sprint_out(db, s)


@router.delete("/sprints/{sprint_id}")
async def delete_sprint(sprint_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  async with storage_boundary(db):
    s = await _load_sprint(db, sprint_id)
    await require_board_role(s.board_id, Role.ADMIN, user, db)
    moved = await return_sprint_tickets(db, s)
    await db.delete(s)
    await write_audit(
      db,
      event_type="sprint.deleted",
      entity_id=s.id,
      board_id=s.board_id,
      actor_id=user.id,
      payload={"number": s.number, "movedToBacklog": moved},
    )
    await db.commit()
  return {"ok": True, "movedToBacklog": moved}
