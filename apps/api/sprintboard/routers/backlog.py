from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintboard.audit import write_audit
from sprintboard.db_errors import storage_boundary
from sprintboard.deps import get_current_user, get_db, require_board_role
from sprintboard.errors import bad_request
from sprintboard.models import Ticket, User
from sprintboard.roles import Role
from sprintboard.schemas import BacklogOut, TicketOut, TicketRefIn
from sprintboard.utils.logging import get_logger
from sprintboard.views import ticket_out, ticket_outs
from sprintboard.workflow import board_backlog, next_order_index, place_in_backlog

logger = get_logger(__name__)

router = APIRouter(prefix="/boards/{board_id}/backlog", tags=["backlog"])


@router.get("", response_model=BacklogOut)
async def get_backlog(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> BacklogOut:
  async with storage_boundary(db):
    await require_board_role(board_id, None, user, db)
    backlog = await board_backlog(db, board_id)
    res = await db.execute(
      select(Ticket)
      .where(Ticket.backlog_id == backlog.id, Ticket.parent_id.is_(None))
      .order_by(Ticket.order_index.asc(), Ticket.created_at.asc())
    )
    tickets = await ticket_outs(db, list(res.scalars().all()))
    total = (await db.execute(select(func.count()).select_from(Ticket).where(Ticket.backlog_id == backlog.id))).scalar_one()
  return BacklogOut(id=backlog.id, boardId=board_id, ticketCount=int(total), tickets=tickets)


@router.post("/tickets", response_model=TicketOut)
async def move_to_backlog(
  board_id: str,
  payload: TicketRefIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> TicketOut:
  async with storage_boundary(db):
    await require_board_role(board_id, Role.MEMBER, user, db)
    t = (await db.execute(select(Ticket).where(Ticket.id == payload.ticketId))).scalar_one()
    if t.board_id != board_id:
      raise bad_request("Ticket belongs to a different board")
    backlog = await board_backlog(db, board_id)
    from_sprint = t.sprint_id
    if t.backlog_id != backlog.id:
      t.order_index = await next_order_index(db, backlog_id=backlog.id)
    place_in_backlog(t, backlog)
    await write_audit(
      db,
      event_type="ticket.moved",
      entity_id=t.id,
      board_id=board_id,
      ticket_id=t.id,
      actor_id=user.id,
      payload={"fromSprintId": from_sprint, "toSprintId": None},
    )
    await db.commit()
    logger.info("ticket %s moved to backlog %s", t.key, backlog.id)
    return await ticket_out(db, t)
