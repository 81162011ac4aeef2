from __future__ import annotations

from typing import Any

from fastapi.encoders import jsonable_encoder
from sqlalchemy.ext.asyncio import AsyncSession

from sprintboard.models import AuditEvent
from sprintboard.schemas import AuditOut
from sprintboard.utils.logging import get_logger

logger = get_logger(__name__)

# Event names are "<kind>.<verb>"; the kind fixes the entity type recorded with the row.
ENTITY_TYPES = {
  "board": "Board",
  "member": "BoardMember",
  "sprint": "Sprint",
  "ticket": "Ticket",
  "label": "Label",
  "comment": "Comment",
}


def entity_type_for(event_type: str) -> str:
  kind, _, verb = event_type.partition(".")
  if not verb or kind not in ENTITY_TYPES:
    raise ValueError(f"Unknown audit event {event_type!r}")
  return ENTITY_TYPES[kind]


async def write_audit(
  db: AsyncSession,
  *,
  event_type: str,
  entity_id: str | None,
  board_id: str | None = None,
  ticket_id: str | None = None,
  actor_id: str | None = None,
  payload: dict[str, Any] | None = None,
) -> AuditEvent:
  """
  Stage an audit row in the caller's transaction.

  The row commits or rolls back together with the change it describes. `board_id` is None only
  for `board.deleted`, where the board row (and its other audit rows) are gone.
  """
  ev = AuditEvent(
    board_id=board_id,
    ticket_id=ticket_id,
    actor_id=actor_id,
    event_type=event_type,
    entity_type=entity_type_for(event_type),
    entity_id=entity_id,
    payload=jsonable_encoder(payload or {}),
  )
  db.add(ev)
  logger.debug("audit %s on %s %s (board %s) by %s", event_type, ev.entity_type, entity_id, board_id, actor_id)
  return ev


def audit_out(ev: AuditEvent) -> AuditOut:
  return AuditOut(
    id=ev.id,
    boardId=ev.board_id,
    ticketId=ev.ticket_id,
    actorId=ev.actor_id,
    eventType=ev.event_type,
    entityType=ev.entity_type,
    entityId=ev.entity_id,
    payload=ev.payload,
    createdAt=ev.created_at,
  )
