from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Tuple
from urllib.parse import urlencode, urlsplit

from .errors import PaginationError
from .query_parser import LIMIT, LOG_START_AT
from .timerange import format_rfc3339


@dataclass(frozen=True)
class Page:
  """
  One navigation descriptor: replaying the request with key as the start
  parameter (and limit, when non-zero) yields the page.
  """

  base_url: str
  key: str
  relation: str
  key_query_param: str = LOG_START_AT
  limit_query_param: str = LIMIT
  limit: int = 0

  def validate(self) -> List[str]:
    problems: List[str] = []
    parts = urlsplit(self.base_url)
    if not self.base_url:
      problems.append(f"{self.relation} page must have a base url")
    elif parts.scheme not in ("http", "https") or not parts.netloc:
      problems.append(f"{self.relation} page base url '{self.base_url}' is not an absolute http(s) url")
    if not self.key:
      problems.append(f"{self.relation} page must have a key")
    if not self.key_query_param:
      problems.append(f"{self.relation} page must have a key query parameter")
    if not self.limit_query_param:
      problems.append(f"{self.relation} page must have a limit query parameter")
    return problems

  def get_link(self, route: str, query: Iterable[Tuple[str, str]] = ()) -> str:
    """
    Render the page as an RFC 8288 link value against route.

    Any key/limit values in query are replaced by the page's own.
    """
    if not route.startswith("/"):
      route = "/" + route
    params = [(k, v) for k, v in query if k not in (self.key_query_param, self.limit_query_param)]
    params.append((self.key_query_param, self.key))
    if self.limit:
      params.append((self.limit_query_param, str(self.limit)))
    return f'<{self.base_url.rstrip("/")}{route}?{urlencode(params)}>; rel="{self.relation}"'


@dataclass(frozen=True)
class ResponsePages:
  prev: Optional[Page] = None
  next: Optional[Page] = None

  def validate(self) -> None:
    """
    Raise PaginationError describing every problem with the pages.
    """
    problems: List[str] = []
    if self.prev is None and self.next is None:
      problems.append("no pages specified")
    if self.prev is not None:
      if self.prev.relation != "prev":
        problems.append(f"prev page has relation '{self.prev.relation}'")
      problems.extend(self.prev.validate())
    if self.next is not None:
      if self.next.relation != "next":
        problems.append(f"next page has relation '{self.next.relation}'")
      problems.extend(self.next.validate())
    if problems:
      raise PaginationError("problem setting response pages: " + "; ".join(problems))

  def link_header(self, route: str, query: Iterable[Tuple[str, str]] = ()) -> str:
    query = list(query)
    pages = [p for p in (self.next, self.prev) if p is not None]
    return ", ".join(p.get_link(route, query) for p in pages)


def build_response_pages(
  base_url: str,
  requested_start: datetime,
  next_at: datetime,
  limit: int = 0,
) -> ResponsePages:
  """
  Build prev/next pages for a truncated result and validate them.

  prev points at the start of the originally requested range, next at the
  store's continuation instant. Raises PaginationError if either page is
  unusable.
  """
  try:
    prev_key = format_rfc3339(requested_start)
    next_key = format_rfc3339(next_at)
  except (ValueError, OverflowError) as e:
    raise PaginationError(f"problem formatting page keys: {e}")

  pages = ResponsePages(
    prev=Page(base_url=base_url, key=prev_key, relation="prev", limit=limit),
    next=Page(base_url=base_url, key=next_key, relation="next", limit=limit),
  )
  pages.validate()
  return pages
