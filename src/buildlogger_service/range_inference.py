"""Implicit time window for grouped log queries."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Awaitable, Callable, Iterable, List

from .models import LogMetadataEntry
from .storage import BuildloggerOptions
from .timerange import ZERO_TIME, TimeRange, format_rfc3339, is_zero_time

logger = logging.getLogger(__name__)

MetadataFetcher = Callable[[BuildloggerOptions], Awaitable[List[LogMetadataEntry]]]


def infer_group_time_range(entries: Iterable[LogMetadataEntry]) -> TimeRange:
    """Compute the interval covering the lifetimes of the given logs.

    start_at is the earliest created_at and end_at the latest completed_at.
    While the running start is still zero, the next entry's created_at replaces
    it unconditionally. With no entries the zero range is returned.
    """
    start_at = ZERO_TIME
    end_at = ZERO_TIME
    for entry in entries:
        if start_at > entry.created_at or is_zero_time(start_at):
            start_at = entry.created_at
        if end_at < entry.completed_at:
            end_at = entry.completed_at
    return TimeRange(start_at=start_at, end_at=end_at)


async def resolve_group_time_range(
    opts: BuildloggerOptions, fetch_metadata: MetadataFetcher
) -> BuildloggerOptions:
    """Fill in a grouped query's time range from the metadata of its logs.

    Options that already carry a non-zero range are returned unchanged and no
    metadata is fetched. Fetch errors propagate to the caller.

    Args:
        opts: Group query options (task id, test name, tags incl. the group id)
        fetch_metadata: Store metadata-by-test-name call

    Returns:
        Options with the inferred range (still zero when nothing matched)
    """
    if not opts.time_range.is_zero():
        return opts

    entries = await fetch_metadata(opts)
    inferred = infer_group_time_range(entries)
    if inferred.is_zero():
        logger.debug(f"No logs matched group tags {list(opts.tags)}; leaving time range unset")
    else:
        logger.info(
            f"Inferred group time range [{format_rfc3339(inferred.start_at)}, "
            f"{format_rfc3339(inferred.end_at)}] from {len(entries)} log(s)"
        )
    return replace(opts, time_range=inferred)
