"""Per-shape request pipelines between resolved queries and the log store.

Each pipeline takes a QueryDescriptor, derives store options from it, runs the
optional group range inference or metadata fan-out, and returns the store's
result. Store errors are re-raised with the operation and locator prepended.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, TypeVar, Union

from .errors import ClientDisconnected, StoreError
from .metadata_merge import merge_test_and_global_metadata
from .models import LogMetadataEntry, LogResult
from .query_parser import QueryDescriptor, QueryShape
from .range_inference import resolve_group_time_range
from .storage import BuildloggerOptions, LogStore, options_from_query

logger = logging.getLogger(__name__)

T = TypeVar("T")

QueryOutcome = Union[LogResult, LogMetadataEntry, List[LogMetadataEntry]]


async def call_store(call: Awaitable[T], timeout_seconds: float) -> T:
    """Await a store call under a deadline.

    Cancellation is not intercepted; an expired deadline becomes a 504
    StoreError.
    """
    try:
        return await asyncio.wait_for(call, timeout=timeout_seconds)
    except asyncio.TimeoutError:
        raise StoreError(
            f"log store call exceeded the {timeout_seconds:g}s deadline", status_code=504
        )


async def run_until_disconnected(
    call: Awaitable[T],
    is_disconnected: Callable[[], Awaitable[bool]],
    poll_interval: float,
) -> T:
    """Await call, cancelling it if the client disconnects first.

    Raises:
        ClientDisconnected: The call was cancelled because the client left.
    """
    task = asyncio.ensure_future(call)
    try:
        while True:
            done, _ = await asyncio.wait({task}, timeout=poll_interval)
            if done:
                return task.result()
            if await is_disconnected():
                task.cancel()
                await asyncio.wait({task})
                if task.cancelled():
                    raise ClientDisconnected()
                return task.result()
    finally:
        if not task.done():
            task.cancel()


class BuildloggerService:
    """Runs resolved buildlogger queries against a LogStore."""

    def __init__(self, store: LogStore, timeout_seconds: float):
        self.store = store
        self.timeout_seconds = timeout_seconds
        self._pipelines: Dict[QueryShape, Callable[[QueryDescriptor], Awaitable[QueryOutcome]]] = {
            QueryShape.LOG_BY_ID: self.get_log_by_id,
            QueryShape.META_BY_ID: self.get_log_metadata_by_id,
            QueryShape.LOG_BY_TASK_ID: self.get_logs_by_task_id,
            QueryShape.META_BY_TASK_ID: self.get_log_metadata_by_task_id,
            QueryShape.LOG_BY_TEST_NAME: self.get_logs_by_test_name,
            QueryShape.META_BY_TEST_NAME: self.get_log_metadata_by_test_name,
            QueryShape.LOG_GROUP: self.get_grouped_logs,
        }

    async def run(self, query: QueryDescriptor) -> QueryOutcome:
        return await self._pipelines[query.shape](query)

    async def get_log_by_id(self, query: QueryDescriptor) -> LogResult:
        return await self._guard(
            self.store.find_log_by_id(options_from_query(query)),
            f"Error getting log by id '{query.id}'",
        )

    async def get_log_metadata_by_id(self, query: QueryDescriptor) -> LogMetadataEntry:
        return await self._guard(
            self.store.find_log_metadata_by_id(query.id or ""),
            f"Error getting log metadata by id '{query.id}'",
        )

    async def get_logs_by_task_id(self, query: QueryDescriptor) -> LogResult:
        return await self._guard(
            self.store.find_logs_by_task_id(options_from_query(query)),
            f"Error getting logs by task id '{query.task_id}'",
        )

    async def get_log_metadata_by_task_id(self, query: QueryDescriptor) -> List[LogMetadataEntry]:
        opts = BuildloggerOptions(task_id=query.task_id or "", tags=query.tags)
        return await self._guard(
            self.store.find_log_metadata_by_task_id(opts),
            f"Error getting log metadata by task id '{query.task_id}'",
        )

    async def get_logs_by_test_name(self, query: QueryDescriptor) -> LogResult:
        return await self._guard(
            self.store.find_logs_by_test_name(options_from_query(query)),
            f"Error getting logs by test name '{query.test_name}'",
        )

    async def get_log_metadata_by_test_name(self, query: QueryDescriptor) -> List[LogMetadataEntry]:
        opts = BuildloggerOptions(
            task_id=query.task_id or "",
            test_name=query.test_name or "",
            tags=query.tags,
        )
        return await self._guard(
            merge_test_and_global_metadata(opts, self._fetch_test_metadata),
            f"Error getting log metadata by test name '{query.test_name}'",
            deadline=False,
        )

    async def get_grouped_logs(self, query: QueryDescriptor) -> LogResult:
        opts = options_from_query(query)
        if query.capabilities.supports_inference:
            opts = await self._guard(
                resolve_group_time_range(opts, self._fetch_test_metadata),
                f"Error getting log metadata by test name '{query.test_name}'",
                deadline=False,
            )
        return await self._guard(
            self.store.find_grouped_logs(opts),
            "Error getting grouped logs with task_id/test_name/group_id "
            f"'{query.task_id}/{query.test_name}/{query.group_id}'",
        )

    async def _fetch_test_metadata(self, opts: BuildloggerOptions) -> List[LogMetadataEntry]:
        return await call_store(
            self.store.find_log_metadata_by_test_name(opts), self.timeout_seconds
        )

    async def _guard(self, call: Awaitable[T], context: str, deadline: bool = True) -> T:
        # Composite calls already put each of their store calls under the deadline.
        try:
            if not deadline:
                return await call
            return await call_store(call, self.timeout_seconds)
        except StoreError as e:
            logger.warning(f"{context}: {e}")
            raise e.wrap(context) from e
