from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintboard.access import authorize
from sprintboard.audit import write_audit
from sprintboard.db_errors import storage_boundary
from sprintboard.deps import get_current_user, get_db, require_board_role
from sprintboard.errors import forbidden
from sprintboard.models import Comment, Ticket, User
from sprintboard.roles import Role
from sprintboard.schemas import CommentCreateIn, CommentOut
from sprintboard.views import author_names, comment_out

router = APIRouter(tags=["comments"])


async def _comment_and_board(db: AsyncSession, comment_id: str) -> tuple[Comment, str]:
  res = await db.execute(
    select(Comment, Ticket.board_id).join(Ticket, Ticket.id == Comment.ticket_id).where(Comment.id == comment_id)
  )
  c, board_id = res.one()
  return c, board_id


@router.get("/tickets/{ticket_id}/comments", response_model=list[CommentOut])
async def list_comments(ticket_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[CommentOut]:
  async with storage_boundary(db):
    board_id = (await db.execute(select(Ticket.board_id).where(Ticket.id == ticket_id))).scalar_one()
    await require_board_role(board_id, None, user, db)
    res = await db.execute(select(Comment).where(Comment.ticket_id == ticket_id).order_by(Comment.created_at.asc()))
    comments = list(res.scalars().all())
    names = await author_names(db, {c.author_id for c in comments})
  return [comment_out(c, names.get(c.author_id, "")) for c in comments]


@router.post("/tickets/{ticket_id}/comments", response_model=CommentOut)
async def add_comment(
  ticket_id: str,
  payload: CommentCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> CommentOut:
  async with storage_boundary(db):
    board_id = (await db.execute(select(Ticket.board_id).where(Ticket.id == ticket_id))).scalar_one()
    await require_board_role(board_id, Role.MEMBER, user, db)
    c = Comment(ticket_id=ticket_id, author_id=user.id, body=payload.body)
    db.add(c)
    await db.flush()
    await write_audit(
      db,
      event_type="comment.added",
      entity_id=c.id,
      board_id=board_id,
      ticket_id=ticket_id,
      actor_id=user.id,
      payload={"length": len(c.body)},
    )
    await db.commit()
  return comment_out(c, user.name)


@router.patch("/comments/{comment_id}", response_model=CommentOut)
async def edit_comment(
  comment_id: str,
  payload: CommentCreateIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> CommentOut:
  async with storage_boundary(db):
    c, board_id = await _comment_and_board(db, comment_id)
    await require_board_role(board_id, None, user, db)
    if c.author_id != user.id:
      raise forbidden("Only the author can edit this comment")
    c.body = payload.body
    await write_audit(
      db,
      event_type="comment.edited",
      entity_id=c.id,
      board_id=board_id,
      ticket_id=c.ticket_id,
      actor_id=user.id,
      payload={"length": len(c.body)},
    )
    await db.commit()
  return comment_out(c, user.name)


@router.delete("/comments/{comment_id}")
async def delete_comment(comment_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> dict:
  async with storage_boundary(db):
    c, board_id = await _comment_and_board(db, comment_id)
    m = await require_board_role(board_id, None, user, db)
    if c.author_id != user.id:
      authorize(m, Role.ADMIN)
    await db.delete(c)
    await write_audit(
      db,
      event_type="comment.deleted",
      entity_id=c.id,
      board_id=board_id,
      ticket_id=c.ticket_id,
      actor_id=user.id,
      payload={"authorId": c.author_id},
    )
    await db.commit()
  return {"ok": True}
