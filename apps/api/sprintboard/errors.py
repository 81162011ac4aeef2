from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
  FORBIDDEN = "FORBIDDEN"
  NOT_FOUND = "NOT_FOUND"
  CONFLICT = "CONFLICT"
  BAD_REQUEST = "BAD_REQUEST"
  INTERNAL = "INTERNAL"


HTTP_STATUS: dict[ErrorKind, int] = {
  ErrorKind.FORBIDDEN: 403,
  ErrorKind.NOT_FOUND: 404,
  ErrorKind.CONFLICT: 409,
  ErrorKind.BAD_REQUEST: 400,
  ErrorKind.INTERNAL: 500,
}


class DomainError(Exception):
  """
  Transport-agnostic failure raised by the core.

  `message` is safe to show to the caller. Diagnostics live on `__cause__`.
  """

  def __init__(self, kind: ErrorKind, message: str) -> None:
    super().__init__(message)
    self.kind = kind
    self.message = message

  @property
  def status_code(self) -> int:
    return HTTP_STATUS[self.kind]

  def __repr__(self) -> str:
    return f"DomainError({self.kind.value}, {self.message!r})"


def forbidden(message: str) -> DomainError:
  return DomainError(ErrorKind.FORBIDDEN, message)


def not_found(message: str) -> DomainError:
  return DomainError(ErrorKind.NOT_FOUND, message)


def conflict(message: str) -> DomainError:
  return DomainError(ErrorKind.CONFLICT, message)


def bad_request(message: str) -> DomainError:
  return DomainError(ErrorKind.BAD_REQUEST, message)
