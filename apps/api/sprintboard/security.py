from __future__ import annotations

import hashlib
import hmac
import secrets

from sprintboard.config import settings

API_TOKEN_PREFIX = "sb_"


def api_token_new() -> str:
  return API_TOKEN_PREFIX + secrets.token_urlsafe(32)


def api_token_hash(token: str) -> str:
  # Keyed hash so DB leaks don't allow offline token matching.
  key = (settings.app_secret or "").encode("utf-8")
  msg = (token or "").strip().encode("utf-8")
  return hmac.new(key, msg, hashlib.sha256).hexdigest()


def api_token_hint(token: str) -> str:
  return token[-4:]
