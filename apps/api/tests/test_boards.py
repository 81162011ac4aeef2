from __future__ import annotations

import pytest
from httpx import AsyncClient
from sqlalchemy import func, select

from conftest import SPRINT_DATES, add_member, make_board, make_ticket, make_user
from sprintboard.audit import entity_type_for
from sprintboard.db import SessionLocal
from sprintboard.models import AuditEvent, Backlog, BoardMember, Ticket


@pytest.mark.anyio
async def test_create_board_yields_one_backlog_and_one_owner(client: AsyncClient) -> None:
  uid, h = await make_user("owner@example.com")
  b = await make_board(client, h, name="Alpha", prefix="ALP")
  assert b["prefix"] == "ALP"
  assert b["color"] == "#FFB7C5"
  assert b["memberCount"] == 1

  async with SessionLocal() as db:
    backlogs = (await db.execute(select(Backlog).where(Backlog.board_id == b["id"]))).scalars().all()
    members = (await db.execute(select(BoardMember).where(BoardMember.board_id == b["id"]))).scalars().all()
  assert len(backlogs) == 1
  assert [(m.user_id, m.role) for m in members] == [(uid, "OWNER")]

  detail = (await client.get(f"/boards/{b['id']}", headers=h)).json()
  assert detail["backlogId"] == backlogs[0].id
  assert [m["role"] for m in detail["members"]] == ["OWNER"]


@pytest.mark.anyio
async def test_duplicate_prefix_conflicts_and_leaves_nothing_behind(client: AsyncClient) -> None:
  _, h = await make_user("owner@example.com")
  await make_board(client, h, prefix="DUP")

  res = await client.post("/boards", json={"name": "Again", "prefix": "DUP"}, headers=h)
  assert res.status_code == 409
  assert res.json() == {"detail": "A record with this value already exists", "code": "CONFLICT"}

  async with SessionLocal() as db:
    assert (await db.execute(select(func.count()).select_from(Backlog))).scalar_one() == 1
    assert (await db.execute(select(func.count()).select_from(BoardMember))).scalar_one() == 1


@pytest.mark.anyio
async def test_prefix_must_be_uppercase_letters(client: AsyncClient) -> None:
  _, h = await make_user("owner@example.com")
  res = await client.post("/boards", json={"name": "Bad", "prefix": "ab1"}, headers=h)
  assert res.status_code == 422


@pytest.mark.anyio
async def test_outsider_has_no_access_to_board(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  _, outsider = await make_user("outsider@example.com")
  b = await make_board(client, owner)

  for method, path in [
    ("GET", f"/boards/{b['id']}"),
    ("GET", f"/boards/{b['id']}/backlog"),
    ("GET", f"/boards/{b['id']}/tickets"),
    ("POST", f"/boards/{b['id']}/sprints"),
  ]:
    res = await client.request(method, path, headers=outsider, json={"name": "S", **SPRINT_DATES} if method == "POST" else None)
    assert res.status_code == 403, path
    assert res.json() == {"detail": "You do not have access to this board", "code": "FORBIDDEN"}


@pytest.mark.anyio
async def test_list_boards_only_shows_memberships_with_counts(client: AsyncClient) -> None:
  uid, owner = await make_user("owner@example.com")
  other_id, other = await make_user("other@example.com")
  mine = await make_board(client, owner, name="Mine", prefix="MINE")
  await make_board(client, other, name="Theirs", prefix="THR")
  await add_member(client, owner, mine["id"], other_id, "MEMBER")
  await make_ticket(client, owner, mine["id"])

  boards = (await client.get("/boards", headers=owner)).json()
  assert [x["prefix"] for x in boards] == ["MINE"]
  assert boards[0]["memberCount"] == 2
  assert boards[0]["ticketCount"] == 1
  assert boards[0]["sprintCount"] == 0

  assert {x["prefix"] for x in (await client.get("/boards", headers=other)).json()} == {"MINE", "THR"}


@pytest.mark.anyio
async def test_update_board_requires_admin(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  member_id, member = await make_user("member@example.com")
  b = await make_board(client, owner)
  await add_member(client, owner, b["id"], member_id, "MEMBER")

  res = await client.patch(f"/boards/{b['id']}", json={"name": "Renamed"}, headers=member)
  assert res.status_code == 403
  assert res.json()["detail"] == "This action requires ADMIN role or higher"

  res = await client.patch(f"/boards/{b['id']}", json={"name": "Renamed", "color": "#112233"}, headers=owner)
  assert res.status_code == 200, res.text
  assert res.json()["name"] == "Renamed"
  assert res.json()["color"] == "#112233"


@pytest.mark.anyio
async def test_delete_board_needs_owner_and_cascades(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  admin_id, admin = await make_user("admin@example.com")
  b = await make_board(client, owner)
  await add_member(client, owner, b["id"], admin_id, "ADMIN")
  parent = await make_ticket(client, owner, b["id"], title="Parent")
  await make_ticket(client, owner, b["id"], title="Child", parentId=parent["id"])

  res = await client.delete(f"/boards/{b['id']}", headers=admin)
  assert res.status_code == 403
  assert "OWNER" in res.json()["detail"]

  res = await client.delete(f"/boards/{b['id']}", headers=owner)
  assert res.status_code == 200, res.text

  async with SessionLocal() as db:
    assert (await db.execute(select(func.count()).select_from(Ticket))).scalar_one() == 0
    assert (await db.execute(select(func.count()).select_from(BoardMember))).scalar_one() == 0
    assert (await db.execute(select(func.count()).select_from(Backlog))).scalar_one() == 0
    ev = (await db.execute(select(AuditEvent).where(AuditEvent.event_type == "board.deleted"))).scalar_one()
  assert ev.entity_id == b["id"]

  assert (await client.get(f"/boards/{b['id']}", headers=owner)).status_code == 403


@pytest.mark.anyio
async def test_requests_without_token_are_unauthenticated(client: AsyncClient) -> None:
  assert (await client.get("/boards")).status_code == 401
  assert (await client.get("/boards", headers={"Authorization": "Bearer sb_nope"})).status_code == 401


@pytest.mark.anyio
async def test_me_and_service_endpoints(client: AsyncClient) -> None:
  uid, h = await make_user("me@example.com", "Me Myself")
  me = (await client.get("/users/me", headers=h)).json()
  assert me == {"id": uid, "email": "me@example.com", "name": "Me Myself", "avatarUrl": None}
  assert (await client.get("/health")).json() == {"ok": True}
  assert "version" in (await client.get("/version")).json()


@pytest.mark.anyio
async def test_audit_trail_is_admin_only(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  viewer_id, viewer = await make_user("viewer@example.com")
  b = await make_board(client, owner)
  await add_member(client, owner, b["id"], viewer_id, "VIEWER")

  assert (await client.get(f"/boards/{b['id']}/audit", headers=viewer)).status_code == 403
  events = (await client.get(f"/boards/{b['id']}/audit", headers=owner)).json()
  assert {e["eventType"] for e in events} >= {"board.created", "member.added"}
  kinds = {e["eventType"]: e["entityType"] for e in events}
  assert kinds["board.created"] == "Board"
  assert kinds["member.added"] == "BoardMember"
  assert all(e["createdAt"].endswith("Z") for e in events)


def test_audit_events_name_a_known_entity() -> None:
  assert entity_type_for("ticket.reviewer_added") == "Ticket"
  assert entity_type_for("comment.deleted") == "Comment"
  with pytest.raises(ValueError):
    entity_type_for("webhook.fired")
  with pytest.raises(ValueError):
    entity_type_for("board")
