from __future__ import annotations

from typing import Protocol

from sprintboard.errors import forbidden
from sprintboard.roles import Role, satisfies


class HasRole(Protocol):
  role: str


def authorize(membership: HasRole | None, required_role: Role | str | None = None) -> None:
  """
  Gate a board operation on an already-resolved membership row.

  No membership means no access at all. Without `required_role` any membership is enough.
  """
  if membership is None:
    raise forbidden("You do not have access to this board")
  if required_role is None:
    return
  required = Role(required_role)
  if not satisfies(membership.role, required):
    raise forbidden(f"This action requires {required.value} role or higher")
