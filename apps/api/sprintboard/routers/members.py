from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintboard.audit import write_audit
from sprintboard.db_errors import storage_boundary
from sprintboard.deps import get_current_user, get_db, require_board_role
from sprintboard.errors import not_found
from sprintboard.models import BoardMember, User
from sprintboard.roles import Role
from sprintboard.schemas import MemberAddIn, MemberOut, MemberRoleIn
from sprintboard.workflow import ensure_owner_remains, release_member_tickets

router = APIRouter(prefix="/boards/{board_id}/members", tags=["members"])


def _member_out(m: BoardMember, u: User) -> MemberOut:
  return MemberOut(userId=u.id, email=u.email, name=u.name, avatarUrl=u.avatar_url, role=m.role, createdAt=m.created_at)


async def member_outs(db: AsyncSession, board_id: str) -> list[MemberOut]:
  res = await db.execute(
    select(BoardMember, User)
    .join(User, User.id == BoardMember.user_id)
    .where(BoardMember.board_id == board_id)
    .order_by(BoardMember.created_at.asc())
  )
  return [_member_out(m, u) for m, u in res.all()]


def _role_needed(*roles: str) -> Role:
  # Granting or removing OWNER needs an OWNER to do it.
  return Role.OWNER if Role.OWNER.value in roles else Role.ADMIN


async def _target(db: AsyncSession, board_id: str, user_id: str) -> BoardMember:
  res = await db.execute(select(BoardMember).where(BoardMember.board_id == board_id, BoardMember.user_id == user_id))
  m = res.scalar_one_or_none()
  if not m:
    raise not_found("Member not found")
  return m


@router.get("", response_model=list[MemberOut])
async def list_members(board_id: str, user: User = Depends(get_current_user), db: AsyncSession = Depends(get_db)) -> list[MemberOut]:
  async with storage_boundary(db):
    await require_board_role(board_id, None, user, db)
    return await member_outs(db, board_id)


@router.post("", response_model=MemberOut)
async def add_member(
  board_id: str,
  payload: MemberAddIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> MemberOut:
  async with storage_boundary(db):
    await require_board_role(board_id, _role_needed(payload.role), user, db)
    if payload.userId:
      q = select(User).where(User.id == payload.userId)
    else:
      q = select(User).where(func.lower(User.email) == payload.email.strip().lower())
    target = (await db.execute(q)).scalar_one_or_none()
    if not target:
      raise not_found("User not found")
    m = BoardMember(board_id=board_id, user_id=target.id, role=payload.role)
    db.add(m)
    await db.flush()
    await write_audit(
      db,
      event_type="member.added",
      entity_id=m.id,
      board_id=board_id,
      actor_id=user.id,
      payload={"userId": target.id, "role": m.role},
    )
    await db.commit()
  return _member_out(m, target)


@router.patch("/{user_id}", response_model=MemberOut)
async def update_member_role(
  board_id: str,
  user_id: str,
  payload: MemberRoleIn,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> MemberOut:
  async with storage_boundary(db):
    await require_board_role(board_id, Role.OWNER, user, db)
    m = await _target(db, board_id, user_id)
    await ensure_owner_remains(db, m, new_role=payload.role)
    before = m.role
    m.role = payload.role
    await write_audit(
      db,
      event_type="member.role_changed",
      entity_id=m.id,
      board_id=board_id,
      actor_id=user.id,
      payload={"userId": user_id, "from": before, "to": m.role},
    )
    await db.commit()
    u = (await db.execute(select(User).where(User.id == user_id))).scalar_one()
  return _member_out(m, u)


@router.delete("/{user_id}")
async def remove_member(
  board_id: str,
  user_id: str,
  user: User = Depends(get_current_user),
  db: AsyncSession = Depends(get_db),
) -> dict:
  async with storage_boundary(db):
    await require_board_role(board_id, Role.ADMIN, user, db)
    m = await _target(db, board_id, user_id)
    await require_board_role(board_id, _role_needed(m.role), user, db)
    await ensure_owner_remains(db, m)
    await release_member_tickets(db, board_id, user_id)
    await db.delete(m)
    await write_audit(
      db,
      event_type="member.removed",
      entity_id=m.id,
      board_id=board_id,
      actor_id=user.id,
      payload={"userId": user_id, "role": m.role},
    )
    await db.commit()
  return {"ok": True}
