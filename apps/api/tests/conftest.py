from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
  sys.path.insert(0, str(ROOT))

os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{ROOT / 'sprintboard_test.db'}")

from sprintboard.config import settings
from sprintboard.db import SessionLocal, engine
from sprintboard.main import app
from sprintboard.models import ApiToken, Base, User
from sprintboard.security import api_token_hash, api_token_hint, api_token_new


@pytest.fixture(scope="session")
def anyio_backend() -> str:
  return "asyncio"


async def _reset_db() -> None:
  async with engine.begin() as conn:
    await conn.run_sync(Base.metadata.drop_all)
    await conn.run_sync(Base.metadata.create_all)
  await engine.dispose()


@pytest.fixture
async def clean_db() -> None:
  if not settings.is_test_db():
    raise RuntimeError(
      "Refusing to run destructive tests against non-test DB. "
      "Set DATABASE_URL to a *_test database (e.g. sprintboard_test)."
    )
  await _reset_db()
  yield
  await engine.dispose()


@pytest.fixture
async def client(clean_db) -> AsyncClient:
  transport = ASGITransport(app=app)
  async with AsyncClient(transport=transport, base_url="http://localhost") as c:
    yield c


async def make_user(email: str, name: str | None = None) -> tuple[str, dict[str, str]]:
  """Create a user with a fresh API token; returns (user id, auth headers)."""
  token = api_token_new()
  async with SessionLocal() as db:
    u = User(email=email, name=name or email.split("@", 1)[0].title())
    db.add(u)
    await db.flush()
    db.add(ApiToken(user_id=u.id, name="test", token_hash=api_token_hash(token), token_hint=api_token_hint(token)))
    await db.commit()
    return u.id, {"Authorization": f"Bearer {token}"}


async def make_board(client: AsyncClient, headers: dict[str, str], *, name: str = "Board", prefix: str = "BRD") -> dict:
  res = await client.post("/boards", json={"name": name, "prefix": prefix}, headers=headers)
  assert res.status_code == 200, res.text
  return res.json()


async def add_member(client: AsyncClient, headers: dict[str, str], board_id: str, user_id: str, role: str) -> dict:
  res = await client.post(f"/boards/{board_id}/members", json={"userId": user_id, "role": role}, headers=headers)
  assert res.status_code == 200, res.text
  return res.json()


async def make_ticket(client: AsyncClient, headers: dict[str, str], board_id: str, **fields) -> dict:
  body = {"title": "Ticket", **fields}
  res = await client.post(f"/boards/{board_id}/tickets", json=body, headers=headers)
  assert res.status_code == 200, res.text
  return res.json()


SPRINT_DATES = {"startDate": "2026-10-19T09:00:00Z", "endDate": "2026-11-02T17:00:00Z"}
