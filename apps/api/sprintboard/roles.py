from __future__ import annotations

from enum import Enum


class Role(str, Enum):
  VIEWER = "VIEWER"
  MEMBER = "MEMBER"
  ADMIN = "ADMIN"
  OWNER = "OWNER"


# New roles go here and nowhere else.
_RANKS: dict[Role, int] = {
  Role.VIEWER: 0,
  Role.MEMBER: 1,
  Role.ADMIN: 2,
  Role.OWNER: 3,
}


def rank(role: Role | str) -> int:
  return _RANKS[Role(role)]


def satisfies(actual: Role | str, required: Role | str) -> bool:
  """True when `actual` is at least as privileged as `required`."""
  return rank(actual) >= rank(required)
