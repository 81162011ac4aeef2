from __future__ import annotations

import asyncio
import os
from datetime import datetime, timedelta, timezone
from pathlib import Path

from sqlalchemy import select

from sprintboard.db import SessionLocal
from sprintboard.models import ApiToken, Board, BoardMember, Comment, Sprint, Ticket, User
from sprintboard.roles import Role
from sprintboard.security import api_token_hash, api_token_hint, api_token_new
from sprintboard.workflow import create_board, next_ticket_key, start_sprint


async def _ensure_user(db, email: str, name: str, boot_lines: list[str]) -> User:
  res = await db.execute(select(User).where(User.email == email))
  u = res.scalar_one_or_none()
  if not u:
    u = User(email=email, name=name, avatar_url=None)
    db.add(u)
    await db.flush()
    token = api_token_new()
    db.add(ApiToken(user_id=u.id, name="seed", token_hash=api_token_hash(token), token_hint=api_token_hint(token)))
    boot_lines.append(f"{email} token={token}")
  return u


async def seed() -> None:
  async with SessionLocal() as db:
    boot_lines: list[str] = []
    owner = await _ensure_user(db, "owner@sprintboard.local", "Owner", boot_lines)
    member = await _ensure_user(db, "member@sprintboard.local", "Member", boot_lines)

    if os.getenv("SEED_DEMO_BOARD", "").strip().lower() in ("1", "true", "yes", "y"):
      bres = await db.execute(select(Board).where(Board.prefix == "DEMO"))
      if not bres.scalar_one_or_none():
        board, backlog, _ = await create_board(db, creator=owner, name="Sprintboard Demo", prefix="DEMO")
        db.add(BoardMember(board_id=board.id, user_id=member.id, role=Role.MEMBER.value))
        now = datetime.now(timezone.utc)
        sprint = Sprint(board_id=board.id, number=1, name="Sprint 1", goal="Try the workflow", start_date=now, end_date=now + timedelta(days=14))
        db.add(sprint)
        await db.flush()
        start_sprint(sprint)
        samples = [
          ("Welcome to Sprintboard", "TODO", None, backlog.id),
          ("Plan the first sprint", "IN_PROGRESS", sprint.id, None),
          ("Review a ticket", "IN_REVIEW", sprint.id, None),
          ("Ship it", "DONE", sprint.id, None),
        ]
        for idx, (title, status_, sprint_id, backlog_id) in enumerate(samples):
          t = Ticket(
            board_id=board.id,
            key=await next_ticket_key(db, board.id),
            title=title,
            status=status_,
            story_points=idx + 1,
            creator_id=owner.id,
            assignee_id=member.id,
            sprint_id=sprint_id,
            backlog_id=backlog_id,
            order_index=idx,
          )
          db.add(t)
          await db.flush()
          if idx == 0:
            db.add(Comment(ticket_id=t.id, author_id=owner.id, body="Move me into the active sprint when you are ready."))

    await db.commit()
    if boot_lines:
      out_dir = Path(os.getenv("BOOTSTRAP_CREDENTIALS_DIR", "data"))
      out_dir.mkdir(parents=True, exist_ok=True)
      out_file = out_dir / "bootstrap_tokens.txt"
      stamp = datetime.now(timezone.utc).isoformat()
      out_file.write_text(f"[{stamp}]\n" + "\n".join(boot_lines) + "\n", encoding="utf-8")
      print("Sprintboard seed tokens created:")
      for ln in boot_lines:
        print(f"  {ln}")
      print(f"Saved to {out_file}")


def main() -> None:
  asyncio.run(seed())


if __name__ == "__main__":
  main()
