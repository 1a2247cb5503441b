"""
Request parameter resolution for buildlogger queries.

This module turns the raw path variables and query-string pairs of a request
into a validated QueryDescriptor, and decides which retrieval mode bounds the
response.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from .errors import ParamError, QueryParseError
from .timerange import ZERO_TIME, TimeRange, parse_rfc3339

logger = logging.getLogger(__name__)

LOG_START_AT = "start"
LOG_END_AT = "end"
EXECUTION = "execution"
PROC_NAME = "proc_name"
TAGS = "tags"
PRINT_TIME = "print_time"
PRINT_PRIORITY = "print_priority"
LIMIT = "limit"
TAIL = "n"
PAGINATE = "paginate"
TRUE_STRING = "true"

SOFT_SIZE_LIMIT = 10 * 1024 * 1024

_INT_RE = re.compile(r"^[+-]?[0-9]+$")

_PAYLOAD_PARAMS = frozenset(
    {LOG_START_AT, LOG_END_AT, PRINT_TIME, PRINT_PRIORITY, PAGINATE, LIMIT}
)


class QueryShape(str, Enum):
    LOG_BY_ID = "log_by_id"
    META_BY_ID = "meta_by_id"
    LOG_BY_TASK_ID = "log_by_task_id"
    META_BY_TASK_ID = "meta_by_task_id"
    LOG_BY_TEST_NAME = "log_by_test_name"
    META_BY_TEST_NAME = "meta_by_test_name"
    LOG_GROUP = "log_group"


@dataclass(frozen=True)
class ShapeCapabilities:
    """Which parameters a request shape reads and which behaviors apply to it."""

    params: FrozenSet[str]
    supports_tail: bool = False
    supports_fanout: bool = False
    supports_inference: bool = False
    metadata_only: bool = False


SHAPES: Dict[QueryShape, ShapeCapabilities] = {
    QueryShape.LOG_BY_ID: ShapeCapabilities(params=_PAYLOAD_PARAMS),
    QueryShape.META_BY_ID: ShapeCapabilities(params=frozenset(), metadata_only=True),
    QueryShape.LOG_BY_TASK_ID: ShapeCapabilities(
        params=_PAYLOAD_PARAMS | {PROC_NAME, TAGS, TAIL, EXECUTION},
        supports_tail=True,
    ),
    QueryShape.META_BY_TASK_ID: ShapeCapabilities(
        params=frozenset({TAGS}), metadata_only=True
    ),
    QueryShape.LOG_BY_TEST_NAME: ShapeCapabilities(params=_PAYLOAD_PARAMS | {TAGS}),
    QueryShape.META_BY_TEST_NAME: ShapeCapabilities(
        params=frozenset({TAGS}), supports_fanout=True, metadata_only=True
    ),
    QueryShape.LOG_GROUP: ShapeCapabilities(
        params=_PAYLOAD_PARAMS | {TAGS}, supports_inference=True
    ),
}


class RetrievalModeKind(str, Enum):
    NONE = "none"
    EXPLICIT_LIMIT = "explicit_limit"
    TAIL = "tail"
    SOFT_SIZE_LIMIT = "soft_size_limit"


@dataclass(frozen=True)
class RetrievalMode:
    """The single policy bounding a response's size.

    value is the line count for EXPLICIT_LIMIT and TAIL, the byte cap for
    SOFT_SIZE_LIMIT and 0 for NONE.
    """

    kind: RetrievalModeKind = RetrievalModeKind.NONE
    value: int = 0

    @classmethod
    def none(cls) -> "RetrievalMode":
        return cls()

    @classmethod
    def explicit_limit(cls, n: int) -> "RetrievalMode":
        return cls(RetrievalModeKind.EXPLICIT_LIMIT, n)

    @classmethod
    def tail(cls, n: int) -> "RetrievalMode":
        return cls(RetrievalModeKind.TAIL, n)

    @classmethod
    def soft_size_limit(cls, size: int = SOFT_SIZE_LIMIT) -> "RetrievalMode":
        return cls(RetrievalModeKind.SOFT_SIZE_LIMIT, size)

    @property
    def paginates(self) -> bool:
        return self.kind is RetrievalModeKind.SOFT_SIZE_LIMIT


@dataclass(frozen=True)
class QueryDescriptor:
    """Canonical, validated form of one inbound request."""

    shape: QueryShape
    id: Optional[str] = None
    task_id: Optional[str] = None
    test_name: Optional[str] = None
    group_id: Optional[str] = None
    tags: Tuple[str, ...] = ()
    process_name: Optional[str] = None
    execution: Optional[int] = None
    time_range: TimeRange = field(default_factory=TimeRange)
    print_time: bool = False
    print_priority: bool = False
    retrieval_mode: RetrievalMode = field(default_factory=RetrievalMode)

    @property
    def capabilities(self) -> ShapeCapabilities:
        return SHAPES[self.shape]


@dataclass(frozen=True)
class ParseResult:
    """Either a descriptor or the full list of parameter errors, never both."""

    descriptor: Optional[QueryDescriptor] = None
    errors: Tuple[ParamError, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.errors

    def unwrap(self) -> QueryDescriptor:
        """Return the descriptor or raise QueryParseError with every error."""
        if self.errors:
            raise QueryParseError(list(self.errors))
        assert self.descriptor is not None
        return self.descriptor


def select_retrieval_mode(
    limit: int, tail: int, paginate: bool, supports_tail: bool
) -> RetrievalMode:
    """Pick the retrieval mode for a request.

    An explicit limit always wins, then a tail count (for shapes that support
    tailing), then soft-size pagination. Pagination is never combined with
    either of the other two.

    Args:
        limit: Parsed `limit` parameter (0 when absent)
        tail: Parsed `n` parameter (0 when absent)
        paginate: Whether `paginate=true` was given
        supports_tail: Whether the request shape honors `n`

    Returns:
        The selected RetrievalMode
    """
    if limit > 0:
        return RetrievalMode.explicit_limit(limit)
    if supports_tail and tail > 0:
        return RetrievalMode.tail(tail)
    if paginate:
        return RetrievalMode.soft_size_limit()
    return RetrievalMode.none()


def group_params(pairs: Iterable[Tuple[str, str]]) -> Dict[str, List[str]]:
    """Collect query-string pairs into a multi-valued mapping, order preserved."""
    grouped: Dict[str, List[str]] = {}
    for key, value in pairs:
        grouped.setdefault(key, []).append(value)
    return grouped


class _Collector:
    """Reads typed parameters while recording every failure."""

    def __init__(self, values: Mapping[str, List[str]], allowed: FrozenSet[str]):
        self._values = values
        self._allowed = allowed
        self.errors: List[ParamError] = []

    def get(self, name: str) -> str:
        if name not in self._allowed:
            return ""
        found = self._values.get(name) or []
        return found[0] if found else ""

    def get_all(self, name: str) -> List[str]:
        if name not in self._allowed:
            return []
        return list(self._values.get(name) or [])

    def present(self, name: str) -> bool:
        return bool(self.get_all(name))

    def flag(self, name: str) -> bool:
        return self.get(name) == TRUE_STRING

    def integer(self, name: str) -> Optional[int]:
        if not self.present(name):
            return None
        raw = self.get(name)
        if not _INT_RE.fullmatch(raw):
            self.errors.append(ParamError(name, f"invalid integer '{raw}'"))
            return None
        return int(raw)

    def instant(self, name: str, default: datetime) -> datetime:
        raw = self.get(name)
        if not raw:
            return default
        try:
            return parse_rfc3339(raw)
        except ValueError as e:
            self.errors.append(ParamError(name, f"problem parsing time: {e}"))
            return default

    def time_range(self, now: datetime) -> TimeRange:
        # An absent end bound means "up to now".
        return TimeRange(
            start_at=self.instant(LOG_START_AT, ZERO_TIME),
            end_at=self.instant(LOG_END_AT, now),
        )


def resolve_query(
    shape: QueryShape,
    path_vars: Mapping[str, str],
    params: Iterable[Tuple[str, str]],
    now: Optional[datetime] = None,
) -> ParseResult:
    """Resolve raw request values into a QueryDescriptor.

    Every parameter is examined before failing, so the result carries one
    error per malformed parameter.

    Args:
        shape: Which endpoint the request targets
        path_vars: Path variables (`id`, `task_id`, `test_name`, `group_id`)
        params: Query-string (key, value) pairs, repeated keys allowed
        now: Instant used as the default range end (defaults to current UTC)

    Returns:
        ParseResult with either the descriptor or the collected errors
    """
    caps = SHAPES[shape]
    if now is None:
        now = datetime.now(timezone.utc)
    c = _Collector(group_params(params), caps.params)

    tags = c.get_all(TAGS)
    group_id = path_vars.get("group_id") if shape is QueryShape.LOG_GROUP else None

    time_range = TimeRange()
    if LOG_START_AT in caps.params:
        if not caps.supports_inference or c.get(LOG_START_AT) or c.get(LOG_END_AT):
            time_range = c.time_range(now)

    execution = c.integer(EXECUTION)
    limit = c.integer(LIMIT)
    tail = c.integer(TAIL)

    if c.errors:
        return ParseResult(errors=tuple(c.errors))

    if group_id is not None:
        tags.append(group_id)

    mode = select_retrieval_mode(
        limit=limit or 0,
        tail=tail or 0,
        paginate=c.flag(PAGINATE),
        supports_tail=caps.supports_tail,
    )
    logger.debug(f"Resolved {shape.value} query with retrieval mode {mode.kind.value}")

    return ParseResult(
        descriptor=QueryDescriptor(
            shape=shape,
            id=path_vars.get("id"),
            task_id=path_vars.get("task_id"),
            test_name=path_vars.get("test_name"),
            group_id=group_id,
            tags=tuple(tags),
            process_name=c.get(PROC_NAME) or None,
            execution=execution,
            time_range=time_range,
            print_time=c.flag(PRINT_TIME),
            print_priority=c.flag(PRINT_PRIORITY),
            retrieval_mode=mode,
        )
    )
