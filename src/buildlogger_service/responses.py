from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterable, List, Optional, Tuple, Union

from fastapi import Response
from fastapi.responses import JSONResponse

from .models import LogMetadataEntry, LogResult
from .pagination import ResponsePages, build_response_pages

logger = logging.getLogger(__name__)

TEXT_MEDIA_TYPE = "text/plain; charset=utf-8"


def compose_log_response(
  result: LogResult,
  requested_start: datetime,
  paginates: bool,
  base_url: str,
  route: str,
  query: Iterable[Tuple[str, str]] = (),
) -> Response:
  """
  Wrap a store payload into the outward response.

  When the request used soft-size pagination and the store truncated the
  result, prev/next links are attached as a Link header. Link construction
  failures propagate as PaginationError so a truncated body is never sent
  unmarked.
  """
  pages: Optional[ResponsePages] = None
  if paginates and result.paginated:
    pages = build_response_pages(base_url, requested_start, result.next)

  resp = Response(content=result.payload, media_type=TEXT_MEDIA_TYPE)
  if pages is not None:
    resp.headers["Link"] = pages.link_header(route, query)
    logger.debug(f"Paginated response for {route}, next page at {pages.next.key}")
  return resp


def compose_metadata_response(
  metadata: Union[LogMetadataEntry, List[LogMetadataEntry]],
) -> JSONResponse:
  if isinstance(metadata, list):
    return JSONResponse([m.model_dump(mode="json") for m in metadata])
  return JSONResponse(metadata.model_dump(mode="json"))
