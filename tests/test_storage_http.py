"""Tests for HttpLogStore using an httpx mock transport."""

import json
from datetime import datetime, timezone

import httpx
import pytest

from buildlogger_service import storage as storage_mod
from buildlogger_service.config import StoreConfig
from buildlogger_service.errors import LogNotFoundError, StoreError
from buildlogger_service.query_parser import QueryShape, resolve_query
from buildlogger_service.storage import (
    NEXT_HEADER,
    PAGINATED_HEADER,
    BuildloggerOptions,
    HttpLogStore,
    options_from_query,
)
from buildlogger_service.timerange import TimeRange

CONFIG = StoreConfig(url="http://store.local/", timeout_seconds=5.0)


def _store(handler) -> HttpLogStore:
    return HttpLogStore(CONFIG, transport=httpx.MockTransport(handler))


@pytest.mark.asyncio
async def test_log_fetch_reads_payload_and_pagination_headers():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            content=b"line\n",
            headers={NEXT_HEADER: "2021-01-02T00:00:00Z", PAGINATED_HEADER: "true"},
        )

    opts = BuildloggerOptions(
        task_id="T1",
        tags=("a", "b"),
        time_range=TimeRange(
            start_at=datetime(2021, 1, 1, tzinfo=timezone.utc),
            end_at=datetime(2021, 1, 1, 3, tzinfo=timezone.utc),
        ),
        soft_size_limit=1024,
    )
    result = await _store(handler).find_logs_by_task_id(opts)

    assert seen["url"] == "http://store.local/v1/buildlogger/logs_by_task_id"
    assert seen["body"]["tags"] == ["a", "b"]
    assert seen["body"]["start"] == "2021-01-01T00:00:00Z"
    assert seen["body"]["end"] == "2021-01-01T03:00:00Z"
    assert seen["body"]["soft_size_limit"] == 1024
    assert result.payload == b"line\n"
    assert result.paginated is True
    assert result.next == datetime(2021, 1, 2, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_zero_range_bounds_are_sent_as_null():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b"")

    result = await _store(handler).find_grouped_logs(BuildloggerOptions(task_id="T1"))

    assert seen["body"]["start"] is None
    assert seen["body"]["end"] is None
    assert result.paginated is False


@pytest.mark.asyncio
async def test_metadata_list_is_validated():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json=[
                {"id": "a", "created_at": "2021-01-01T00:00:00Z", "completed_at": "2021-01-01T01:00:00"},
                {"id": "b", "info": {"test_name": "jstests", "tags": ["x"]}},
            ],
        )

    entries = await _store(handler).find_log_metadata_by_test_name(BuildloggerOptions(task_id="T1"))

    assert [e.id for e in entries] == ["a", "b"]
    assert entries[0].completed_at == datetime(2021, 1, 1, 1, tzinfo=timezone.utc)
    assert entries[1].info.tags == ["x"]


@pytest.mark.asyncio
async def test_malformed_metadata_is_a_store_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "not-a-list"})

    with pytest.raises(StoreError, match="malformed metadata"):
        await _store(handler).find_log_metadata_by_task_id(BuildloggerOptions(task_id="T1"))


@pytest.mark.asyncio
async def test_metadata_timestamp_outside_utc_range_is_a_store_error():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=[{"id": "a", "created_at": "0001-01-01T00:30:00+01:00"}])

    with pytest.raises(StoreError, match="malformed metadata"):
        await _store(handler).find_log_metadata_by_task_id(BuildloggerOptions(task_id="T1"))


@pytest.mark.asyncio
async def test_upstream_404_is_not_found():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(404, json={"message": "log 'abc' not found"})

    with pytest.raises(LogNotFoundError, match="log 'abc' not found"):
        await _store(handler).find_log_metadata_by_id("abc")


@pytest.mark.asyncio
async def test_upstream_error_keeps_status():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(503, text="unavailable")

    with pytest.raises(StoreError) as exc_info:
        await _store(handler).find_log_by_id(BuildloggerOptions(id="abc"))
    assert exc_info.value.status_code == 503
    assert not isinstance(exc_info.value, LogNotFoundError)


@pytest.mark.asyncio
async def test_transport_failures_map_to_gateway_errors():
    def refuse(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    def stall(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("timed out", request=request)

    with pytest.raises(StoreError) as exc_info:
        await _store(refuse).find_log_by_id(BuildloggerOptions(id="abc"))
    assert exc_info.value.status_code == 502

    with pytest.raises(StoreError) as exc_info:
        await _store(stall).find_log_by_id(BuildloggerOptions(id="abc"))
    assert exc_info.value.status_code == 504


def test_options_carry_exactly_one_bound():
    query = resolve_query(
        QueryShape.LOG_BY_TASK_ID,
        {"task_id": "T1"},
        [("n", "5"), ("paginate", "true")],
    ).unwrap()

    opts = options_from_query(query)

    assert (opts.limit, opts.tail, opts.soft_size_limit) == (0, 5, 0)


def test_get_storage_defaults_to_http_store(monkeypatch):
    monkeypatch.setenv("BUILDLOGGER_STORE_URL", "http://upstream:1234")
    storage_mod.set_storage(None)
    try:
        store = storage_mod.get_storage()
        assert isinstance(store, HttpLogStore)
        assert storage_mod.get_storage() is store
    finally:
        storage_mod.set_storage(None)
