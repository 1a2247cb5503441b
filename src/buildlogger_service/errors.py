from __future__ import annotations

from dataclasses import dataclass
from typing import List


@dataclass(frozen=True)
class ParamError:
  param: str
  message: str


class BuildloggerError(Exception):
  """
  Base class for errors surfaced by the buildlogger query layer.
  """

  status_code = 500
  code = "INTERNAL_ERROR"

  def detail(self) -> dict:
    return {"code": self.code, "message": str(self)}


class QueryParseError(BuildloggerError):
  """
  One or more request parameters were malformed. Carries every error found.
  """

  status_code = 400
  code = "INVALID_PARAMS"

  def __init__(self, errors: List[ParamError]) -> None:
    self.errors = list(errors)
    super().__init__("; ".join(f"{e.param}: {e.message}" for e in self.errors))

  def detail(self) -> dict:
    payload = super().detail()
    payload["errors"] = [{"param": e.param, "message": e.message} for e in self.errors]
    return payload


class StoreError(BuildloggerError):
  """
  Failure reported by (or while reaching) the log store.
  """

  code = "STORE_ERROR"

  def __init__(self, message: str, status_code: int = 500) -> None:
    super().__init__(message)
    self.status_code = status_code

  def wrap(self, context: str) -> "StoreError":
    """
    Return a copy of this error whose message is prefixed with context.
    """
    return type(self)(f"{context}: {self}", status_code=self.status_code)


class LogNotFoundError(StoreError):
  """
  The requested id/task/test/group has no matching record.
  """

  code = "NOT_FOUND"

  def __init__(self, message: str, status_code: int = 404) -> None:
    super().__init__(message, status_code=status_code)


class PaginationError(BuildloggerError):
  """
  Pagination links could not be built; the response must not be sent unmarked.
  """

  code = "PAGINATION_ERROR"


class ClientDisconnected(Exception):
  """
  The client went away before the store answered; no response is composed.
  """
