from __future__ import annotations

from datetime import datetime, timezone
from typing import AsyncIterator

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from sprintboard.access import authorize
from sprintboard.db import SessionLocal
from sprintboard.models import ApiToken, BoardMember, User
from sprintboard.roles import Role
from sprintboard.security import api_token_hash


async def get_db() -> AsyncIterator[AsyncSession]:
  async with SessionLocal() as session:
    yield session


async def get_current_user(request: Request, db: AsyncSession = Depends(get_db)) -> User:
  auth = request.headers.get("authorization")
  if not auth or not auth.lower().startswith("bearer "):
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not authenticated")
  token = auth.split(" ", 1)[1].strip()
  if not token:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")

  tres = await db.execute(
    select(ApiToken).where(ApiToken.token_hash == api_token_hash(token), ApiToken.revoked_at.is_(None))
  )
  t = tres.scalar_one_or_none()
  if not t:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
  ures = await db.execute(select(User).where(User.id == t.user_id))
  u = ures.scalar_one_or_none()
  if not u:
    raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User not found")
  t.last_used_at = datetime.now(timezone.utc)
  await db.commit()
  return u


async def get_membership(board_id: str, user_id: str, db: AsyncSession) -> BoardMember | None:
  res = await db.execute(
    select(BoardMember).where(BoardMember.board_id == board_id, BoardMember.user_id == user_id)
  )
  return res.scalar_one_or_none()


async def require_board_role(
  board_id: str,
  min_role: Role | None,
  user: User,
  db: AsyncSession,
) -> BoardMember:
  """Resolve the caller's membership on `board_id` and run it through the access gate."""
  m = await get_membership(board_id, user.id, db)
  authorize(m, min_role)
  return m
