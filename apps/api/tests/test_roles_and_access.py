from __future__ import annotations

from dataclasses import dataclass
from itertools import product

import pytest

from sprintboard.access import authorize
from sprintboard.errors import DomainError, ErrorKind
from sprintboard.roles import Role, rank, satisfies

ORDER = [Role.VIEWER, Role.MEMBER, Role.ADMIN, Role.OWNER]


@dataclass
class Membership:
  role: str


def test_rank_is_strictly_increasing() -> None:
  ranks = [rank(r) for r in ORDER]
  assert ranks == sorted(ranks)
  assert len(set(ranks)) == len(ranks)


def test_satisfies_matches_rank_for_every_pair() -> None:
  for actual, required in product(ORDER, ORDER):
    assert satisfies(actual, required) == (rank(actual) >= rank(required))


def test_roles_accept_plain_strings() -> None:
  assert rank("OWNER") == rank(Role.OWNER)
  assert satisfies("ADMIN", "MEMBER")
  assert not satisfies("VIEWER", Role.MEMBER)


def test_unknown_role_is_rejected() -> None:
  with pytest.raises(ValueError):
    rank("SUPERUSER")


@pytest.mark.parametrize("required", [None, *ORDER])
def test_missing_membership_is_always_forbidden(required) -> None:
  with pytest.raises(DomainError) as ei:
    authorize(None, required)
  assert ei.value.kind is ErrorKind.FORBIDDEN
  assert ei.value.message == "You do not have access to this board"


def test_member_cannot_do_admin_work() -> None:
  with pytest.raises(DomainError) as ei:
    authorize(Membership("MEMBER"), Role.ADMIN)
  assert ei.value.kind is ErrorKind.FORBIDDEN
  assert ei.value.message == "This action requires ADMIN role or higher"
  assert ei.value.status_code == 403


def test_higher_and_equal_roles_pass() -> None:
  authorize(Membership("ADMIN"), Role.MEMBER)
  authorize(Membership("OWNER"), Role.OWNER)
  authorize(Membership("OWNER"), "VIEWER")


def test_any_membership_passes_without_required_role() -> None:
  authorize(Membership("VIEWER"))
  authorize(Membership("VIEWER"), None)
