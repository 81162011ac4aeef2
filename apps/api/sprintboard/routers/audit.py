from __future__ import annotations

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintboard.audit import audit_out
from sprintboard.db_errors import storage_boundary
from sprintboard.deps import get_current_user, get_db, require_board_role
from sprintboard.models import AuditEvent, User
from sprintboard.roles import Role
from sprintboard.schemas import AuditOut

router = APIRouter(tags=["audit"])


@router.get("/boards/{board_id}/audit", response_model=list[AuditOut])
async def list_audit(
  board_id: str,
  ticketId: str | None = None,
  limit: int = Query(default=200, ge=1, le=500),
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> list[AuditOut]:
  async with storage_boundary(db):
    await require_board_role(board_id, Role.ADMIN, user, db)
    q = select(AuditEvent).where(AuditEvent.board_id == board_id)
    if ticketId:
      q = q.where(AuditEvent.ticket_id == ticketId)
    res = await db.execute(q.order_by(AuditEvent.created_at.desc()).limit(limit))
    events = list(res.scalars().all())
  return [audit_out(ev) for ev in events]
