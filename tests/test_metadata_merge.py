"""Tests for the test-scoped + global metadata merge."""

from typing import Dict, List, Optional

import pytest

from buildlogger_service.errors import LogNotFoundError, StoreError
from buildlogger_service.metadata_merge import merge_test_and_global_metadata, tolerate_not_found
from buildlogger_service.models import LogMetadataEntry
from buildlogger_service.storage import BuildloggerOptions


class FakeMetadataSource:
    """Returns canned metadata per test name, or raises the configured error."""

    def __init__(
        self,
        results: Dict[str, List[LogMetadataEntry]],
        errors: Optional[Dict[str, Exception]] = None,
    ):
        self.results = results
        self.errors = errors or {}
        self.calls: List[str] = []

    async def __call__(self, opts: BuildloggerOptions) -> List[LogMetadataEntry]:
        self.calls.append(opts.test_name)
        if opts.test_name in self.errors:
            raise self.errors[opts.test_name]
        return self.results.get(opts.test_name, [])


def _entries(*ids: str) -> List[LogMetadataEntry]:
    return [LogMetadataEntry(id=i) for i in ids]


OPTS = BuildloggerOptions(task_id="T1", test_name="jstests", tags=("a",))


@pytest.mark.asyncio
async def test_test_entries_come_before_global_entries():
    source = FakeMetadataSource({"jstests": _entries("t1", "t2"), "": _entries("g1")})

    merged = await merge_test_and_global_metadata(OPTS, source)

    assert [m.id for m in merged] == ["t1", "t2", "g1"]
    assert source.calls == ["jstests", ""]


@pytest.mark.asyncio
async def test_global_not_found_returns_test_entries_exactly():
    test_logs = _entries("t1", "t2")
    source = FakeMetadataSource(
        {"jstests": test_logs},
        errors={"": LogNotFoundError("no global logs")},
    )

    merged = await merge_test_and_global_metadata(OPTS, source)

    assert merged == test_logs


@pytest.mark.asyncio
async def test_global_failure_fails_whole_call():
    source = FakeMetadataSource(
        {"jstests": _entries("t1")},
        errors={"": StoreError("internal", status_code=500)},
    )

    with pytest.raises(StoreError) as exc_info:
        await merge_test_and_global_metadata(OPTS, source)
    assert not isinstance(exc_info.value, LogNotFoundError)


@pytest.mark.asyncio
async def test_test_scoped_failure_skips_global_fetch():
    source = FakeMetadataSource({}, errors={"jstests": LogNotFoundError("no test logs")})

    with pytest.raises(LogNotFoundError):
        await merge_test_and_global_metadata(OPTS, source)
    assert source.calls == ["jstests"]


@pytest.mark.asyncio
async def test_tolerate_not_found_only_absorbs_not_found():
    async def not_found():
        raise LogNotFoundError("gone")

    async def broken():
        raise StoreError("broken")

    async def found():
        return [1, 2]

    assert await tolerate_not_found(not_found()) == []
    assert await tolerate_not_found(found()) == [1, 2]
    with pytest.raises(StoreError, match="broken"):
        await tolerate_not_found(broken())
