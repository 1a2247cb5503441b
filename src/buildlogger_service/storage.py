from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .config import StoreConfig, load_store_config
from .errors import LogNotFoundError, StoreError
from .models import LogMetadataEntry, LogResult
from .query_parser import QueryDescriptor, RetrievalModeKind
from .timerange import ZERO_TIME, TimeRange, format_rfc3339, is_zero_time, parse_rfc3339

logger = logging.getLogger(__name__)

NEXT_HEADER = "X-Buildlogger-Next"
PAGINATED_HEADER = "X-Buildlogger-Paginated"


@dataclass(frozen=True)
class BuildloggerOptions:
  """
  Options handed to the log store for a single query.

  At most one of limit, tail and soft_size_limit is non-zero.
  """

  id: str = ""
  task_id: str = ""
  test_name: str = ""
  execution: Optional[int] = None
  process_name: str = ""
  tags: Tuple[str, ...] = ()
  time_range: TimeRange = field(default_factory=TimeRange)
  print_time: bool = False
  print_priority: bool = False
  limit: int = 0
  tail: int = 0
  soft_size_limit: int = 0

  def to_payload(self) -> Dict[str, Any]:
    tr = self.time_range
    return {
      "id": self.id,
      "task_id": self.task_id,
      "test_name": self.test_name,
      "execution": self.execution,
      "proc_name": self.process_name,
      "tags": list(self.tags),
      "start": None if is_zero_time(tr.start_at) else format_rfc3339(tr.start_at),
      "end": None if is_zero_time(tr.end_at) else format_rfc3339(tr.end_at),
      "print_time": self.print_time,
      "print_priority": self.print_priority,
      "limit": self.limit,
      "tail": self.tail,
      "soft_size_limit": self.soft_size_limit,
    }


def options_from_query(query: QueryDescriptor) -> BuildloggerOptions:
  """
  Translate a resolved query into store options, carrying exactly one bound.
  """
  mode = query.retrieval_mode
  return BuildloggerOptions(
    id=query.id or "",
    task_id=query.task_id or "",
    test_name=query.test_name or "",
    execution=query.execution,
    process_name=query.process_name or "",
    tags=query.tags,
    time_range=query.time_range,
    print_time=query.print_time,
    print_priority=query.print_priority,
    limit=mode.value if mode.kind is RetrievalModeKind.EXPLICIT_LIMIT else 0,
    tail=mode.value if mode.kind is RetrievalModeKind.TAIL else 0,
    soft_size_limit=mode.value if mode.kind is RetrievalModeKind.SOFT_SIZE_LIMIT else 0,
  )


class LogStore:
  """
  Interface to the external buildlogger store.

  Concrete stores raise LogNotFoundError when nothing matches and StoreError
  for any other failure. Tests are expected to monkeypatch get_storage() with
  an in-memory implementation.
  """

  async def find_log_by_id(self, opts: BuildloggerOptions) -> LogResult:  # pragma: no cover - interface
    raise NotImplementedError

  async def find_log_metadata_by_id(self, log_id: str) -> LogMetadataEntry:  # pragma: no cover - interface
    raise NotImplementedError

  async def find_logs_by_task_id(self, opts: BuildloggerOptions) -> LogResult:  # pragma: no cover - interface
    raise NotImplementedError

  async def find_log_metadata_by_task_id(self, opts: BuildloggerOptions) -> List[LogMetadataEntry]:  # pragma: no cover - interface
    raise NotImplementedError

  async def find_logs_by_test_name(self, opts: BuildloggerOptions) -> LogResult:  # pragma: no cover - interface
    raise NotImplementedError

  async def find_log_metadata_by_test_name(self, opts: BuildloggerOptions) -> List[LogMetadataEntry]:  # pragma: no cover - interface
    raise NotImplementedError

  async def find_grouped_logs(self, opts: BuildloggerOptions) -> LogResult:  # pragma: no cover - interface
    raise NotImplementedError


class HttpLogStore(LogStore):
  """
  LogStore backed by a remote store service.

  Each operation is a POST to {url}/v1/buildlogger/{operation} with the
  JSON-encoded options.
  """

  def __init__(self, config: StoreConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
    self._config = config
    self._transport = transport

  async def find_log_by_id(self, opts: BuildloggerOptions) -> LogResult:
    return await self._fetch_log("log_by_id", opts)

  async def find_log_metadata_by_id(self, log_id: str) -> LogMetadataEntry:
    resp = await self._post("log_metadata_by_id", {"id": log_id})
    try:
      return LogMetadataEntry.model_validate(resp.json())
    except ValueError as e:
      raise StoreError(f"store returned malformed metadata for log '{log_id}': {e}")

  async def find_logs_by_task_id(self, opts: BuildloggerOptions) -> LogResult:
    return await self._fetch_log("logs_by_task_id", opts)

  async def find_log_metadata_by_task_id(self, opts: BuildloggerOptions) -> List[LogMetadataEntry]:
    return await self._fetch_metadata("log_metadata_by_task_id", opts)

  async def find_logs_by_test_name(self, opts: BuildloggerOptions) -> LogResult:
    return await self._fetch_log("logs_by_test_name", opts)

  async def find_log_metadata_by_test_name(self, opts: BuildloggerOptions) -> List[LogMetadataEntry]:
    return await self._fetch_metadata("log_metadata_by_test_name", opts)

  async def find_grouped_logs(self, opts: BuildloggerOptions) -> LogResult:
    return await self._fetch_log("grouped_logs", opts)

  async def _fetch_log(self, operation: str, opts: BuildloggerOptions) -> LogResult:
    resp = await self._post(operation, opts.to_payload())

    raw_next = resp.headers.get(NEXT_HEADER)
    try:
      next_at = parse_rfc3339(raw_next) if raw_next else ZERO_TIME
    except ValueError as e:
      raise StoreError(f"store returned an invalid continuation instant: {e}")

    return LogResult(
      payload=resp.content,
      next=next_at,
      paginated=resp.headers.get(PAGINATED_HEADER, "").lower() == "true",
    )

  async def _fetch_metadata(self, operation: str, opts: BuildloggerOptions) -> List[LogMetadataEntry]:
    resp = await self._post(operation, opts.to_payload())
    try:
      body = resp.json()
      if not isinstance(body, list):
        raise ValueError(f"expected a list, got {type(body).__name__}")
      return [LogMetadataEntry.model_validate(item) for item in body]
    except ValueError as e:
      raise StoreError(f"store returned malformed metadata for {operation}: {e}")

  async def _post(self, operation: str, payload: Dict[str, Any]) -> httpx.Response:
    url = f"{self._config.url.rstrip('/')}/v1/buildlogger/{operation}"
    logger.debug(f"Calling log store: POST {url}")

    try:
      async with httpx.AsyncClient(transport=self._transport, timeout=self._config.timeout_seconds) as client:
        resp = await client.post(url, json=payload)
    except httpx.TimeoutException as e:
      raise StoreError(f"log store timed out on {operation}: {e}", status_code=504)
    except httpx.RequestError as e:
      raise StoreError(f"log store unreachable on {operation}: {type(e).__name__}: {e}", status_code=502)

    if resp.status_code == 404:
      raise LogNotFoundError(_error_message(resp, f"no logs found for {operation}"))
    if resp.status_code >= 400:
      raise StoreError(_error_message(resp, f"log store failed on {operation}"), status_code=resp.status_code)
    return resp


def _error_message(resp: httpx.Response, fallback: str) -> str:
  try:
    body = resp.json()
  except ValueError:
    return f"{fallback} (status {resp.status_code})"
  if isinstance(body, dict) and body.get("message"):
    return str(body["message"])
  return f"{fallback} (status {resp.status_code})"


_storage: LogStore | None = None


def get_storage() -> LogStore:
  """
  Return the global store instance.

  In tests this can be monkeypatched to avoid a real store service.
  """
  global _storage
  if _storage is None:
    _storage = HttpLogStore(load_store_config())
  return _storage


def set_storage(store: Optional[LogStore]) -> None:
  """Replace the global store instance (None resets to the configured default)."""
  global _storage
  _storage = store
