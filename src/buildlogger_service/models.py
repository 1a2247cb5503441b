from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator

from .timerange import ZERO_TIME


class LogInfo(BaseModel):
  """
  Descriptive fields attached to a buildlogger log by the store.
  """

  project: str = ""
  version: str = ""
  variant: str = ""
  task_name: str = ""
  task_id: str = ""
  execution: int = 0
  test_name: str = ""
  trial: int = 0
  proc_name: str = ""
  format: str = ""
  tags: List[str] = Field(default_factory=list)
  args: dict = Field(default_factory=dict)
  exit_code: Optional[int] = None
  mainline: bool = False


class LogMetadataEntry(BaseModel):
  """
  Metadata for a single log as returned by the store.

  created_at/completed_at use the zero instant when the store has no value;
  a log that is still running has a zero completed_at.
  """

  id: str
  info: LogInfo = Field(default_factory=LogInfo)
  created_at: datetime = ZERO_TIME
  completed_at: datetime = ZERO_TIME
  duration_secs: float = 0.0

  @field_validator("created_at", "completed_at")
  @classmethod
  def _ensure_utc(cls, value: datetime) -> datetime:
    # Naive timestamps from the store are UTC.
    if value.tzinfo is None:
      return value.replace(tzinfo=timezone.utc)
    try:
      return value.astimezone(timezone.utc)
    except OverflowError:
      raise ValueError(f"{value.isoformat()} is outside the representable UTC range")


@dataclass(frozen=True)
class LogResult:
  """
  Payload returned by a store log query.

  next is the instant immediately following the last line returned and
  paginated tells whether the store truncated the result.
  """

  payload: bytes
  next: datetime = ZERO_TIME
  paginated: bool = False
