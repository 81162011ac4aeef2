from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintboard.audit import write_audit
from sprintboard.db_errors import storage_boundary
from sprintboard.deps import get_current_user, get_db, require_board_role
from sprintboard.models import Label, User
from sprintboard.roles import Role
from sprintboard.schemas import LabelCreateIn, LabelOut, LabelUpdateIn
from sprintboard.views import label_out

router = APIRouter(tags=["labels"])


async def _load_label(db: AsyncSession, label_id: str) -> Label:
  return (await db.execute(select(Label).where(Label.id == label_id))).scalar_one()


@router.get("/boards/{board_id}/labels", response_model=list[LabelOut])
async def list_labels(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[LabelOut]:
  async with storage_boundary(db):
    await require_board_role(board_id, None, user, db)
    res = await db.execute(select(Label).where(Label.board_id == board_id).order_by(Label.name.asc()))
    return [label_out(lb) for lb in res.scalars().all()]


@router.post("/boards/{board_id}/labels", response_model=LabelOut)
async def create_label(
  board_id: str,
  payload: LabelCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> LabelOut:
  async with storage_boundary(db):
    await require_board_role(board_id, Role.MEMBER, user, db)
    lb = Label(board_id=board_id, name=payload.name.strip(), color=payload.color)
    db.add(lb)
    await db.flush()
    await write_audit(
      db, event_type="label.created", entity_id=lb.id, board_id=board_id, actor_id=user.id, payload={"name": lb.name}
    )
    await db.commit()
  return label_out(lb)


@router.patch("/labels/{label_id}", response_model=LabelOut)
async def update_label(
  label_id: str,
  payload: LabelUpdateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> LabelOut:
  async with storage_boundary(db):
    lb = await _load_label(db, label_id)
    await require_board_role(lb.board_id, Role.MEMBER, user, db)
    if payload.name is not None:
      lb.name = payload.name.strip()
    if "color" in payload.model_fields_set:
      lb.color = payload.color
    await write_audit(
      db,
      event_type="label.updated",
      entity_id=lb.id,
      board_id=lb.board_id,
      actor_id=user.id,
      payload=payload.model_dump(exclude_unset=True),
    )
    await db.commit()
  return label_out(lb)


@router.delete("/labels/{label_id}")
async def delete_label(label_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  async with storage_boundary(db):
    lb = await _load_label(db, label_id)
    await require_board_role(lb.board_id, Role.ADMIN, user, db)
    # Only ticket_labels rows go with it; tickets stay.
    await db.delete(lb)
    await write_audit(
      db, event_type="label.deleted", entity_id=lb.id, board_id=lb.board_id, actor_id=user.id, payload={"name": lb.name}
    )
    await db.commit()
  return {"ok": True}
