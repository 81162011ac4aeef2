from __future__ import annotations

from contextlib import asynccontextmanager
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, NoReturn

from sqlalchemy.exc import DataError, DBAPIError, NoResultFound, StatementError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.exc import ObjectDeletedError, StaleDataError

from sprintboard.errors import DomainError, ErrorKind
from sprintboard.utils.logging import get_logger

logger = get_logger(__name__)


class StorageSignal(str, Enum):
  UNIQUE_VIOLATION = "unique_violation"
  MISSING_ROW = "missing_row"
  FOREIGN_KEY_VIOLATION = "foreign_key_violation"
  RELATION_VIOLATION = "relation_violation"
  VALIDATION_ERROR = "validation_error"
  UNCATEGORIZED = "uncategorized"
  UNKNOWN = "unknown"


@dataclass(frozen=True)
class StorageFailure:
  signal: StorageSignal
  code: str | None = None


# Postgres SQLSTATE codes (asyncpg exposes `sqlstate`, psycopg2 `pgcode`).
_SQLSTATE_SIGNALS: dict[str, StorageSignal] = {
  "23505": StorageSignal.UNIQUE_VIOLATION,
  "23503": StorageSignal.FOREIGN_KEY_VIOLATION,
  "23001": StorageSignal.RELATION_VIOLATION,
  "23502": StorageSignal.VALIDATION_ERROR,
  "23514": StorageSignal.VALIDATION_ERROR,
}

# SQLite extended result names (sqlite3 errors carry `sqlite_errorname` on 3.11+).
_SQLITE_SIGNALS: dict[str, StorageSignal] = {
  "SQLITE_CONSTRAINT_UNIQUE": StorageSignal.UNIQUE_VIOLATION,
  "SQLITE_CONSTRAINT_PRIMARYKEY": StorageSignal.UNIQUE_VIOLATION,
  "SQLITE_CONSTRAINT_FOREIGNKEY": StorageSignal.FOREIGN_KEY_VIOLATION,
  "SQLITE_CONSTRAINT_TRIGGER": StorageSignal.RELATION_VIOLATION,
  "SQLITE_CONSTRAINT_NOTNULL": StorageSignal.VALIDATION_ERROR,
  "SQLITE_CONSTRAINT_CHECK": StorageSignal.VALIDATION_ERROR,
}

# Last resort for drivers that expose neither code.
_MESSAGE_SIGNALS: tuple[tuple[str, StorageSignal], ...] = (
  ("unique constraint failed", StorageSignal.UNIQUE_VIOLATION),
  ("foreign key constraint failed", StorageSignal.FOREIGN_KEY_VIOLATION),
  ("not null constraint failed", StorageSignal.VALIDATION_ERROR),
  ("check constraint failed", StorageSignal.VALIDATION_ERROR),
)

_TRANSLATIONS: dict[StorageSignal, tuple[ErrorKind, str]] = {
  StorageSignal.UNIQUE_VIOLATION: (ErrorKind.CONFLICT, "A record with this value already exists"),
  StorageSignal.MISSING_ROW: (ErrorKind.NOT_FOUND, "Record not found"),
  StorageSignal.FOREIGN_KEY_VIOLATION: (ErrorKind.BAD_REQUEST, "Foreign key constraint failed"),
  StorageSignal.RELATION_VIOLATION: (ErrorKind.BAD_REQUEST, "Relation violation"),
  StorageSignal.VALIDATION_ERROR: (ErrorKind.BAD_REQUEST, "Invalid data provided"),
  StorageSignal.UNKNOWN: (ErrorKind.INTERNAL, "An unexpected error occurred"),
}


def _driver_code(orig: object) -> str | None:
  for attr in ("sqlstate", "pgcode", "sqlite_errorname"):
    value = getattr(orig, attr, None)
    if value:
      return str(value)
  return None


def _classify_dbapi(exc: DBAPIError) -> StorageFailure:
  orig = exc.orig
  code = _driver_code(orig)
  if code in _SQLSTATE_SIGNALS:
    return StorageFailure(_SQLSTATE_SIGNALS[code], code)
  if code in _SQLITE_SIGNALS:
    return StorageFailure(_SQLITE_SIGNALS[code], code)
  if isinstance(exc, DataError) or (code and code.startswith("22")):
    return StorageFailure(StorageSignal.VALIDATION_ERROR, code)
  text = str(orig).lower()
  for needle, signal in _MESSAGE_SIGNALS:
    if needle in text:
      return StorageFailure(signal, code)
  return StorageFailure(StorageSignal.UNCATEGORIZED, code or type(orig).__name__)


def classify_storage_error(exc: BaseException) -> StorageFailure:
  if isinstance(exc, (NoResultFound, StaleDataError, ObjectDeletedError)):
    return StorageFailure(StorageSignal.MISSING_ROW)
  if isinstance(exc, DBAPIError):
    return _classify_dbapi(exc)
  if isinstance(exc, StatementError):
    # Raised before the statement reaches the database, e.g. a bad bind value.
    return StorageFailure(StorageSignal.VALIDATION_ERROR)
  return StorageFailure(StorageSignal.UNKNOWN)


def translate_db_error(exc: BaseException) -> NoReturn:
  """
  Re-raise any storage failure as a DomainError.

  DomainErrors pass through untouched. The storage exception is kept as `__cause__`
  and its text never reaches the message.
  """
  if isinstance(exc, DomainError):
    raise exc
  failure = classify_storage_error(exc)
  logger.debug("storage failure classified as %s (code=%s)", failure.signal.value, failure.code)
  if failure.signal is StorageSignal.UNCATEGORIZED:
    raise DomainError(ErrorKind.INTERNAL, f"Database error: {failure.code}") from exc
  kind, message = _TRANSLATIONS[failure.signal]
  raise DomainError(kind, message) from exc


@asynccontextmanager
async def storage_boundary(db: AsyncSession) -> AsyncIterator[None]:
  try:
    yield
  except Exception as exc:
    await db.rollback()
    translate_db_error(exc)
