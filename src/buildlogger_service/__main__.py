from __future__ import annotations

import argparse
import json
import sys
from typing import List, NoReturn, Optional, Tuple
from urllib.parse import quote, urlsplit

import httpx

from .config import load_service_config


def main(argv: list[str] | None = None) -> NoReturn:
    argv = list(sys.argv[1:] if argv is None else argv)

    if not argv or argv[0] not in {"status", "fetch"}:
        print("Usage: python -m buildlogger_service {status|fetch}", file=sys.stderr)
        print("  status        - Check service status", file=sys.stderr)
        print("  fetch         - Fetch a log by id, task, test name or group", file=sys.stderr)
        sys.exit(1)

    if argv[0] == "status":
        sys.exit(_run_status(argv[1:]))
    sys.exit(_run_fetch(argv[1:]))


def _default_url() -> str:
    cfg = load_service_config()
    return f"http://{cfg.host}:{cfg.port}"


def _rebase(link: str, base: str) -> str:
    """Point a service link at base, keeping its path and query."""
    parts = urlsplit(link)
    return f"{base}{parts.path}?{parts.query}" if parts.query else f"{base}{parts.path}"


def _run_status(args: list[str]) -> int:
    parser = argparse.ArgumentParser(prog="buildlogger status", description="Check service status")
    parser.add_argument("--url", default=None, help="Service URL (default from BUILDLOGGER_HOST/PORT)")
    ns = parser.parse_args(args)
    url = f"{(ns.url or _default_url()).rstrip('/')}/status"

    try:
        resp = httpx.get(url, timeout=1.0)
        resp.raise_for_status()
        data = resp.json()
    except (httpx.HTTPError, ValueError):
        print(f"Buildlogger status: UNREACHABLE at {url}", file=sys.stderr)
        return 2

    print("Buildlogger status: HEALTHY")
    print(f"Service: {data.get('service_name')} v{data.get('version')}")
    print(f"Log store: {data.get('store_url')}")
    return 0


def build_fetch_request(ns: argparse.Namespace) -> Tuple[str, List[Tuple[str, str]]]:
    """Map parsed fetch arguments to a request path and query parameters.

    Raises:
        ValueError: If the locator arguments do not name exactly one log target
    """
    if ns.id:
        path = f"/buildlogger/{quote(ns.id, safe='')}"
    elif ns.task_id and ns.group:
        if not ns.test_name:
            raise ValueError("--group requires --test-name")
        path = (
            f"/buildlogger/test_name/{quote(ns.task_id, safe='')}/"
            f"{quote(ns.test_name, safe='')}/group/{quote(ns.group, safe='')}"
        )
    elif ns.task_id and ns.test_name:
        path = f"/buildlogger/test_name/{quote(ns.task_id, safe='')}/{quote(ns.test_name, safe='')}"
    elif ns.task_id:
        path = f"/buildlogger/task_id/{quote(ns.task_id, safe='')}"
    else:
        raise ValueError("one of --id or --task-id is required")

    if ns.meta:
        if ns.group:
            raise ValueError("--meta is not available for groups")
        path += "/meta"

    params: List[Tuple[str, str]] = [("tags", tag) for tag in ns.tags or []]
    if ns.start:
        params.append(("start", ns.start))
    if ns.end:
        params.append(("end", ns.end))
    if ns.limit is not None:
        params.append(("limit", str(ns.limit)))
    if ns.tail is not None:
        params.append(("n", str(ns.tail)))
    if ns.paginate:
        params.append(("paginate", "true"))
    if ns.print_time:
        params.append(("print_time", "true"))
    if ns.print_priority:
        params.append(("print_priority", "true"))
    return path, params


def _run_fetch(args: list[str]) -> int:
    parser = argparse.ArgumentParser(
        prog="buildlogger fetch",
        description="Fetch buildlogger logs and write them to stdout",
    )
    parser.add_argument("--url", default=None, help="Service URL (default from BUILDLOGGER_HOST/PORT)")
    parser.add_argument("--id", help="Log id")
    parser.add_argument("--task-id", dest="task_id", help="Task id")
    parser.add_argument("--test-name", dest="test_name", help="Test name (requires --task-id)")
    parser.add_argument("--group", help="Group id (requires --task-id and --test-name)")
    parser.add_argument("--tags", action="append", help="Tag filter, may be repeated")
    parser.add_argument("--start", help="RFC3339 start of the time window")
    parser.add_argument("--end", help="RFC3339 end of the time window")
    parser.add_argument("--limit", type=int, help="Maximum number of lines")
    parser.add_argument("-n", dest="tail", type=int, help="Last N lines (task logs only)")
    parser.add_argument("--paginate", action="store_true", help="Request size-bounded pages")
    parser.add_argument("--follow", action="store_true", help="Follow next page links until exhausted")
    parser.add_argument("--print-time", dest="print_time", action="store_true", help="Prefix lines with timestamps")
    parser.add_argument("--print-priority", dest="print_priority", action="store_true", help="Prefix lines with priorities")
    parser.add_argument("--meta", action="store_true", help="Fetch metadata instead of log content")
    ns = parser.parse_args(args)

    try:
        path, params = build_fetch_request(ns)
    except ValueError as e:
        parser.error(str(e))

    base = (ns.url or _default_url()).rstrip("/")
    url: Optional[str] = f"{base}{path}"
    seen = set()
    with httpx.Client(timeout=60.0) as client:
        while url and url not in seen:
            seen.add(url)
            try:
                resp = client.get(url, params=params or None)
            except httpx.HTTPError as e:
                print(f"Request to {url} failed: {e}", file=sys.stderr)
                return 2

            if resp.status_code >= 400:
                try:
                    detail = resp.json().get("detail")
                except ValueError:
                    detail = resp.text
                print(f"Error {resp.status_code}: {json.dumps(detail)}", file=sys.stderr)
                return 1

            sys.stdout.buffer.write(resp.content)
            sys.stdout.flush()

            # Next links already carry the full query.
            params = []
            next_link = resp.links.get("next", {}).get("url") if ns.follow else None
            url = _rebase(next_link, base) if next_link else None
    return 0


if __name__ == "__main__":
    main()
