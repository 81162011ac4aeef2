from __future__ import annotations

import pytest
from httpx import AsyncClient

from conftest import add_member, make_board, make_ticket, make_user


@pytest.mark.anyio
async def test_add_member_by_email_and_duplicate_conflicts(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  member_id, _ = await make_user("member@example.com", "Mem")
  b = await make_board(client, owner)

  res = await client.post(f"/boards/{b['id']}/members", json={"email": "MEMBER@example.com"}, headers=owner)
  assert res.status_code == 200, res.text
  assert res.json()["userId"] == member_id
  assert res.json()["role"] == "MEMBER"

  res = await client.post(f"/boards/{b['id']}/members", json={"userId": member_id, "role": "VIEWER"}, headers=owner)
  assert res.status_code == 409
  assert res.json()["code"] == "CONFLICT"


@pytest.mark.anyio
async def test_add_unknown_user_is_not_found(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  b = await make_board(client, owner)
  res = await client.post(f"/boards/{b['id']}/members", json={"email": "ghost@example.com"}, headers=owner)
  assert res.status_code == 404
  assert res.json()["code"] == "NOT_FOUND"


@pytest.mark.anyio
async def test_member_cannot_manage_members(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  member_id, member = await make_user("member@example.com")
  third_id, _ = await make_user("third@example.com")
  b = await make_board(client, owner)
  await add_member(client, owner, b["id"], member_id, "MEMBER")

  res = await client.post(f"/boards/{b['id']}/members", json={"userId": third_id}, headers=member)
  assert res.status_code == 403
  assert res.json()["detail"] == "This action requires ADMIN role or higher"


@pytest.mark.anyio
async def test_only_owner_can_grant_or_revoke_owner(client: AsyncClient) -> None:
  owner_id, owner = await make_user("owner@example.com")
  admin_id, admin = await make_user("admin@example.com")
  third_id, _ = await make_user("third@example.com")
  b = await make_board(client, owner)
  await add_member(client, owner, b["id"], admin_id, "ADMIN")

  res = await client.post(f"/boards/{b['id']}/members", json={"userId": third_id, "role": "OWNER"}, headers=admin)
  assert res.status_code == 403
  assert "OWNER" in res.json()["detail"]

  res = await client.patch(f"/boards/{b['id']}/members/{admin_id}", json={"role": "OWNER"}, headers=admin)
  assert res.status_code == 403

  res = await client.delete(f"/boards/{b['id']}/members/{owner_id}", headers=admin)
  assert res.status_code == 403

  # An admin may still add non-owner members, but role changes belong to owners.
  res = await client.post(f"/boards/{b['id']}/members", json={"userId": third_id, "role": "VIEWER"}, headers=admin)
  assert res.status_code == 200, res.text
  res = await client.patch(f"/boards/{b['id']}/members/{third_id}", json={"role": "ADMIN"}, headers=admin)
  assert res.status_code == 403
  assert res.json()["detail"] == "This action requires OWNER role or higher"
  res = await client.patch(f"/boards/{b['id']}/members/{third_id}", json={"role": "MEMBER"}, headers=owner)
  assert res.status_code == 200, res.text
  assert res.json()["role"] == "MEMBER"


@pytest.mark.anyio
async def test_last_owner_cannot_be_demoted_or_removed(client: AsyncClient) -> None:
  owner_id, owner = await make_user("owner@example.com")
  second_id, second = await make_user("second@example.com")
  b = await make_board(client, owner)

  res = await client.patch(f"/boards/{b['id']}/members/{owner_id}", json={"role": "ADMIN"}, headers=owner)
  assert res.status_code == 409
  assert res.json() == {"detail": "A board must keep at least one owner", "code": "CONFLICT"}

  res = await client.delete(f"/boards/{b['id']}/members/{owner_id}", headers=owner)
  assert res.status_code == 409

  await add_member(client, owner, b["id"], second_id, "OWNER")
  res = await client.patch(f"/boards/{b['id']}/members/{owner_id}", json={"role": "ADMIN"}, headers=second)
  assert res.status_code == 200, res.text

  members = (await client.get(f"/boards/{b['id']}/members", headers=second)).json()
  assert {m["userId"]: m["role"] for m in members} == {owner_id: "ADMIN", second_id: "OWNER"}


@pytest.mark.anyio
async def test_role_changes_apply_on_the_next_request(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  member_id, member = await make_user("member@example.com")
  b = await make_board(client, owner)
  await add_member(client, owner, b["id"], member_id, "ADMIN")

  assert (await client.patch(f"/boards/{b['id']}", json={"name": "X"}, headers=member)).status_code == 200
  await client.patch(f"/boards/{b['id']}/members/{member_id}", json={"role": "VIEWER"}, headers=owner)
  assert (await client.patch(f"/boards/{b['id']}", json={"name": "Y"}, headers=member)).status_code == 403

  await client.delete(f"/boards/{b['id']}/members/{member_id}", headers=owner)
  res = await client.get(f"/boards/{b['id']}", headers=member)
  assert res.status_code == 403
  assert res.json()["detail"] == "You do not have access to this board"


@pytest.mark.anyio
async def test_missing_member_is_not_found(client: AsyncClient) -> None:
  _, owner = await make_user("owner@example.com")
  b = await make_board(client, owner)
  res = await client.delete(f"/boards/{b['id']}/members/nobody", headers=owner)
  assert res.status_code == 404


@pytest.mark.anyio
async def test_removed_member_leaves_ticket_assignments(client: AsyncClient) -> None:
  owner_id, owner = await make_user("owner@example.com")
  member_id, _ = await make_user("member@example.com")
  b = await make_board(client, owner, prefix="ONE")
  other = await make_board(client, owner, prefix="TWO")
  await add_member(client, owner, b["id"], member_id, "MEMBER")
  await add_member(client, owner, other["id"], member_id, "MEMBER")
  t = await make_ticket(
    client, owner, b["id"], assigneeId=member_id, assigneeIds=[member_id, owner_id], reviewerIds=[member_id]
  )
  kept = await make_ticket(client, owner, other["id"], assigneeId=member_id, assigneeIds=[member_id])

  res = await client.delete(f"/boards/{b['id']}/members/{member_id}", headers=owner)
  assert res.status_code == 200, res.text

  after = (await client.get(f"/tickets/{t['id']}", headers=owner)).json()
  assert after["assigneeId"] is None
  assert after["assigneeIds"] == [owner_id]
  assert after["reviewerIds"] == []

  res = await client.patch(f"/tickets/{t['id']}", json={"assigneeIds": after["assigneeIds"]}, headers=owner)
  assert res.status_code == 200, res.text

  untouched = (await client.get(f"/tickets/{kept['id']}", headers=owner)).json()
  assert untouched["assigneeId"] == member_id
  assert untouched["assigneeIds"] == [member_id]
