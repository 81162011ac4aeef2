from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import SPRINT_DATES, add_member, make_board, make_ticket, make_user


async def _sprint(client: AsyncClient, headers: dict, board_id: str, name: str = "Sprint", **extra) -> dict:
  res = await client.post(f"/boards/{board_id}/sprints", json={"name": name, **SPRINT_DATES, **extra}, headers=headers)
  assert res.status_code == 200, res.text
  return res.json()


@pytest.mark.anyio
async def test_owner_creates_sprint(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  b = await make_board(client, owner)
  s = await _sprint(client, owner, b["id"], goal="Ship")
  assert s["number"] == 1
  assert s["status"] == "ACTIVE"
  assert s["goal"] == "Ship"
  assert s["progress"]["total"] == 0


@pytest.mark.anyio
async def test_viewer_cannot_create_sprint(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  viewer_id, viewer = await make_user("viewer@example.com")
  b = await make_board(client, owner)
  await add_member(client, owner, b["id"], viewer_id, "VIEWER")
  res = await client.post(f"/boards/{b['id']}/sprints", json={"name": "S", **SPRINT_DATES}, headers=viewer)
  assert res.status_code == 403
  assert res.json()["detail"] == "This action requires MEMBER role or higher"


@pytest.mark.anyio
async def test_end_date_must_follow_start_date(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  b = await make_board(client, owner)
  res = await client.post(
    f"/boards/{b['id']}/sprints",
    json={"name": "S", "startDate": SPRINT_DATES["endDate"], "endDate": SPRINT_DATES["startDate"]},
    headers=owner,
  )
  assert res.status_code == 422

  s = await _sprint(client, owner, b["id"])
  res = await client.patch(f"/sprints/{s['id']}", json={"endDate": "2026-10-01T00:00:00Z"}, headers=owner)
  assert res.status_code == 400
  assert res.json()["detail"] == "End date must be after start date"


@pytest.mark.anyio
async def test_auto_start_completes_previous_and_carries_unfinished(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  b = await make_board(client, owner)
  first = await _sprint(client, owner, b["id"], "One")
  open_t = await make_ticket(client, owner, b["id"], title="Open", sprintId=first["id"], storyPoints=3)
  done_t = await make_ticket(client, owner, b["id"], title="Done", sprintId=first["id"], status="DONE", storyPoints=5)

  second = await _sprint(client, owner, b["id"], "Two")
  assert second["number"] == 2
  assert second["status"] == "ACTIVE"
  assert second["progress"]["total"] == 1

  sprints = {s["number"]: s for s in (await client.get(f"/boards/{b['id']}/sprints", headers=owner)).json()}
  assert sprints[1]["status"] == "COMPLETED"
  assert sprints[1]["progress"]["completed"] == 1
  assert sprints[1]["progress"]["completedPoints"] == 5

  moved = (await client.get(f"/tickets/{open_t['id']}", headers=owner)).json()
  stayed = (await client.get(f"/tickets/{done_t['id']}", headers=owner)).json()
  assert moved["sprintId"] == second["id"]
  assert moved["backlogId"] is None
  assert stayed["sprintId"] == first["id"]

  current = (await client.get(f"/boards/{b['id']}/sprints/current", headers=owner)).json()
  assert current["id"] == second["id"]


@pytest.mark.anyio
async def test_start_and_complete_lifecycle(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  b = await make_board(client, owner)
  active = await _sprint(client, owner, b["id"], "Active")
  planned = await _sprint(client, owner, b["id"], "Planned", autoStart=False)
  assert planned["status"] == "PLANNED"

  res = await client.post(f"/sprints/{planned['id']}/start", headers=owner)
  assert res.status_code == 409
  assert res.json() == {"detail": "Another sprint is already active", "code": "CONFLICT"}

  res = await client.post(f"/sprints/{active['id']}/start", headers=owner)
  assert res.status_code == 400

  t = await make_ticket(client, owner, b["id"], sprintId=active["id"])
  res = await client.post(f"/sprints/{active['id']}/complete", json={"moveUnfinishedToBacklog": True}, headers=owner)
  assert res.status_code == 200, res.text
  assert res.json()["status"] == "COMPLETED"
  backlog = (await client.get(f"/boards/{b['id']}/backlog", headers=owner)).json()
  assert [x["id"] for x in backlog["tickets"]] == [t["id"]]

  res = await client.post(f"/sprints/{active['id']}/complete", headers=owner)
  assert res.status_code == 400

  res = await client.post(f"/sprints/{planned['id']}/start", headers=owner)
  assert res.status_code == 200, res.text
  assert res.json()["status"] == "ACTIVE"


@pytest.mark.anyio
async def test_deleting_sprint_returns_tickets_to_backlog(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  member_id, member = await make_user("member@example.com")
  b = await make_board(client, owner)
  await add_member(client, owner, b["id"], member_id, "MEMBER")
  s = await _sprint(client, owner, b["id"])
  t1 = await make_ticket(client, owner, b["id"], sprintId=s["id"])
  t2 = await make_ticket(client, owner, b["id"], sprintId=s["id"], status="DONE")

  res = await client.delete(f"/sprints/{s['id']}", headers=member)
  assert res.status_code == 403
  assert "ADMIN" in res.json()["detail"]

  res = await client.delete(f"/sprints/{s['id']}", headers=owner)
  assert res.status_code == 200, res.text
  assert res.json()["movedToBacklog"] == 2

  backlog = (await client.get(f"/boards/{b['id']}/backlog", headers=owner)).json()
  assert {x["id"] for x in backlog["tickets"]} == {t1["id"], t2["id"]}
  assert all(x["sprintId"] is None for x in backlog["tickets"])
  assert (await client.get(f"/sprints/{s['id']}", headers=owner)).status_code == 404


@pytest.mark.anyio
async def test_sprint_detail_lists_tickets(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  b = await make_board(client, owner)
  s = await _sprint(client, owner, b["id"])
  parent = await make_ticket(client, owner, b["id"], title="Parent", sprintId=s["id"])
  await make_ticket(client, owner, b["id"], title="Child", parentId=parent["id"])

  detail = (await client.get(f"/sprints/{s['id']}", headers=owner)).json()
  assert [t["title"] for t in detail["tickets"]] == ["Parent", "Child"]
  top = (await client.get(f"/sprints/{s['id']}?topLevelOnly=true", headers=owner)).json()
  assert [t["title"] for t in top["tickets"]] == ["Parent"]
  assert top["tickets"][0]["subTicketCount"] == 1
