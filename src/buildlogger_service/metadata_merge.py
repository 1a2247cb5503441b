"""Merging of test-scoped and global log metadata."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Awaitable, List, TypeVar

from .errors import LogNotFoundError
from .models import LogMetadataEntry
from .range_inference import MetadataFetcher
from .storage import BuildloggerOptions

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def tolerate_not_found(call: Awaitable[List[T]]) -> List[T]:
    """Await a list-returning store call, treating not-found as an empty list.

    Every other error is re-raised unchanged.
    """
    try:
        return await call
    except LogNotFoundError as e:
        logger.warning(f"Treating not-found as empty result: {e}")
        return []


async def merge_test_and_global_metadata(
    opts: BuildloggerOptions, fetch_metadata: MetadataFetcher
) -> List[LogMetadataEntry]:
    """Return test-scoped metadata followed by global (test-less) metadata.

    The test-scoped fetch runs first and any failure there propagates before
    the global fetch is issued. A not-found from the global fetch contributes
    no entries; any other global error fails the whole call.

    Args:
        opts: Options scoped to the test name
        fetch_metadata: Store metadata-by-test-name call

    Returns:
        Test entries then global entries, each in store order
    """
    test_logs = await fetch_metadata(opts)
    global_logs = await tolerate_not_found(fetch_metadata(replace(opts, test_name="")))
    return list(test_logs) + list(global_logs)
