from __future__ import annotations

import logging
from typing import Dict, Mapping

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from . import __version__, status as status_mod, storage
from .config import load_service_config, load_store_config
from .errors import BuildloggerError, ClientDisconnected
from .query_parser import QueryShape, resolve_query
from .responses import compose_log_response, compose_metadata_response
from .service import BuildloggerService, run_until_disconnected

logger = logging.getLogger(__name__)

# How often a pending store call checks whether its client is still connected.
DISCONNECT_POLL_SECONDS = 0.1

app = FastAPI(title="Buildlogger", version=__version__)

# CORS configuration for browser clients, from BUILDLOGGER_CORS_ORIGINS
app.add_middleware(
  CORSMiddleware,
  allow_origins=load_service_config().cors_origins,
  allow_credentials=True,
  allow_methods=["*"],
  allow_headers=["*"],
)


def get_service() -> BuildloggerService:
  """
  Build the per-request service around the current global store.
  """
  return BuildloggerService(storage.get_storage(), load_store_config().timeout_seconds)


async def _handle(request: Request, shape: QueryShape, path_vars: Mapping[str, str]) -> Response:
  query_pairs = request.query_params.multi_items()
  try:
    query = resolve_query(shape, path_vars, query_pairs).unwrap()
    outcome = await run_until_disconnected(
      get_service().run(query), request.is_disconnected, DISCONNECT_POLL_SECONDS
    )

    if query.capabilities.metadata_only:
      return compose_metadata_response(outcome)

    return compose_log_response(
      outcome,
      requested_start=query.time_range.start_at,
      paginates=query.retrieval_mode.paginates,
      base_url=load_service_config().base_url,
      route=request.url.path,
      query=query_pairs,
    )
  except ClientDisconnected:
    logger.info(f"{request.method} {request.url.path} canceled by client")
    return Response(status_code=499)
  except BuildloggerError as e:
    if e.status_code >= 500:
      logger.error(f"{request.method} {request.url.path} failed: {e}")
    raise HTTPException(status_code=e.status_code, detail=e.detail())


@app.get("/status")
async def status_endpoint() -> Dict[str, object]:
  """
  Lightweight status endpoint for the query service.
  """
  return status_mod.get_status()


# Routes with literal segments are registered before /buildlogger/{id}.

@app.get("/buildlogger/task_id/{task_id}/meta")
async def get_log_meta_by_task_id(task_id: str, request: Request) -> Response:
  """
  Metadata for every log of a task, optionally filtered by tags.
  """
  return await _handle(request, QueryShape.META_BY_TASK_ID, {"task_id": task_id})


@app.get("/buildlogger/task_id/{task_id}")
async def get_log_by_task_id(task_id: str, request: Request) -> Response:
  """
  Merged logs of a task.

  Supports proc_name, tags, start, end, print_time, print_priority, execution,
  and one of limit, n (tail) or paginate=true.
  """
  return await _handle(request, QueryShape.LOG_BY_TASK_ID, {"task_id": task_id})


@app.get("/buildlogger/test_name/{task_id}/{test_name}/group/{group_id}")
async def get_log_group(task_id: str, test_name: str, group_id: str, request: Request) -> Response:
  """
  Merged logs of a test group. Without start/end the window spans the group's logs.
  """
  return await _handle(
    request,
    QueryShape.LOG_GROUP,
    {"task_id": task_id, "test_name": test_name, "group_id": group_id},
  )


@app.get("/buildlogger/test_name/{task_id}/{test_name}/meta")
async def get_log_meta_by_test_name(task_id: str, test_name: str, request: Request) -> Response:
  """
  Metadata for a test's logs followed by the task's global logs.
  """
  return await _handle(
    request,
    QueryShape.META_BY_TEST_NAME,
    {"task_id": task_id, "test_name": test_name},
  )


@app.get("/buildlogger/test_name/{task_id}/{test_name}")
async def get_log_by_test_name(task_id: str, test_name: str, request: Request) -> Response:
  return await _handle(
    request,
    QueryShape.LOG_BY_TEST_NAME,
    {"task_id": task_id, "test_name": test_name},
  )


@app.get("/buildlogger/{id}/meta")
async def get_log_meta_by_id(id: str, request: Request) -> Response:
  return await _handle(request, QueryShape.META_BY_ID, {"id": id})


@app.get("/buildlogger/{id}")
async def get_log_by_id(id: str, request: Request) -> Response:
  """
  A single log by id. Supports start, end, print_time, print_priority, limit
  and paginate=true.
  """
  return await _handle(request, QueryShape.LOG_BY_ID, {"id": id})
