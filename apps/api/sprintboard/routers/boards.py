from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintboard.audit import write_audit
from sprintboard.db_errors import storage_boundary
from sprintboard.deps import get_current_user, get_db, require_board_role
from sprintboard.models import Backlog, Board, BoardMember, Sprint, Ticket, User
from sprintboard.roles import Role
from sprintboard.routers.members import member_outs
from sprintboard.schemas import BoardCreateIn, BoardDetailOut, BoardOut, BoardUpdateIn
from sprintboard.views import sprint_outs
from sprintboard.workflow import create_board as create_board_with_backlog

router = APIRouter(prefix="/boards", tags=["boards"])


async def _counts(db: AsyncSession, model, board_ids: list[str]) -> dict[str, int]:
  if not board_ids:
    return {}
  res = await db.execute(select(model.board_id, func.count()).where(model.board_id.in_(board_ids)).group_by(model.board_id))
  return {bid: int(n) for bid, n in res.all()}


def _board_out(b: Board, *, members: int = 0, tickets: int = 0, sprints: int = 0) -> BoardOut:
  return BoardOut(
    id=b.id,
    name=b.name,
    prefix=b.prefix,
    description=b.description,
    color=b.color,
    ownerId=b.owner_id,
    memberCount=members,
    ticketCount=tickets,
    sprintCount=sprints,
    createdAt=b.created_at,
    updatedAt=b.updated_at,
  )


async def _board_outs(db: AsyncSession, boards: list[Board]) -> list[BoardOut]:
  ids = [b.id for b in boards]
  members = await _counts(db, BoardMember, ids)
  tickets = await _counts(db, Ticket, ids)
  sprints = await _counts(db, Sprint, ids)
  return [
    _board_out(b, members=members.get(b.id, 0), tickets=tickets.get(b.id, 0), sprints=sprints.get(b.id, 0)) for b in boards
  ]


@router.get("", response_model=list[BoardOut])
async def list_boards(user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[BoardOut]:
  async with storage_boundary(db):
    res = await db.execute(
      select(Board)
      .join(BoardMember, BoardMember.board_id == Board.id)
      .where(BoardMember.user_id == user.id)
      .order_by(Board.updated_at.desc())
    )
    return await _board_outs(db, list(res.scalars().all()))


@router.post("", response_model=BoardOut)
async def create_board(payload: BoardCreateIn, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardOut:
  async with storage_boundary(db):
    b, backlog, _owner = await create_board_with_backlog(
      db,
      creator=user,
      name=payload.name.strip(),
      prefix=payload.prefix,
      description=payload.description,
      color=payload.color,
    )
    await write_audit(
      db,
      event_type="board.created",
      entity_id=b.id,
      board_id=b.id,
      actor_id=user.id,
      payload={"name": b.name, "prefix": b.prefix, "backlogId": backlog.id},
    )
    await db.commit()
  return _board_out(b, members=1)


@router.get("/{board_id}", response_model=BoardDetailOut)
async def get_board(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BoardDetailOut:
  async with storage_boundary(db):
    await require_board_role(board_id, None, user, db)
    b = (await db.execute(select(Board).where(Board.id == board_id))).scalar_one()
    summary = (await _board_outs(db, [b]))[0]
    backlog_id = (await db.execute(select(Backlog.id).where(Backlog.board_id == board_id))).scalar_one_or_none()
    sres = await db.execute(select(Sprint).where(Sprint.board_id == board_id).order_by(Sprint.number.desc()))
    sprints = await sprint_outs(db, list(sres.scalars().all()))
    members = await member_outs(db, board_id)
  return BoardDetailOut(**summary.model_dump(), backlogId=backlog_id, sprints=sprints, members=members)


@router.patch("/{board_id}", response_model=BoardOut)
async def update_board(
  board_id: str,
  payload: BoardUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> BoardOut:
  async with storage_boundary(db):
    await require_board_role(board_id, Role.ADMIN, user, db)
    b = (await db.execute(select(Board).where(Board.id == board_id))).scalar_one()
    changes: dict = {}
    if payload.name is not None:
      b.name = payload.name.strip()
      changes["name"] = b.name
    if "description" in payload.model_fields_set:
      b.description = payload.description
      changes["description"] = b.description
    if payload.color is not None:
      b.color = payload.color
      changes["color"] = b.color
    await write_audit(
      db, event_type="board.updated", entity_id=b.id, board_id=b.id, actor_id=user.id, payload=changes
    )
    await db.commit()
    return (await _board_outs(db, [b]))[0]


@router.delete("/{board_id}")
async def delete_board(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  async with storage_boundary(db):
    await require_board_role(board_id, Role.OWNER, user, db)
    b = (await db.execute(select(Board).where(Board.id == board_id))).scalar_one()
    name, prefix = b.name, b.prefix
    # Backlog, sprints, tickets, labels and memberships go with the board via ON DELETE CASCADE.
    await db.execute(delete(Board).where(Board.id == board_id).execution_options(synchronize_session=False))
    await write_audit(
      db,
      event_type="board.deleted",
      entity_id=board_id,
      board_id=None,
      actor_id=user.id,
      payload={"name": name, "prefix": prefix},
    )
    await db.commit()
  return {"ok": True}
