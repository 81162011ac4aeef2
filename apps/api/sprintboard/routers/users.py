from __future__ import annotations

from fastapi import APIRouter, Depends

from sprintboard.deps import get_current_user
from sprintboard.models import User
from sprintboard.schemas import UserOut

router = APIRouter(prefix="/users", tags=["users"])


def _user_out(u: User) -> UserOut:
  return UserOut(id=u.id, email=u.email, name=u.name, avatarUrl=u.avatar_url)


@router.get("/me", response_model=UserOut)
async def me(user: User = Depends(get_current_user)) -> UserOut:
  return _user_out(user)
