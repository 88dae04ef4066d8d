"""
Thin helpers for PostgREST table access through a supabase client.

Why:
    Every repository in the portal issues the same shape of call:
    `client.table(name)...execute()`. Centralizing execution keeps error
    wrapping and response normalization identical across repositories.

Behavior:
    - `run_query` awaits `.execute()` (async client) or calls it (sync client)
      and wraps any client exception into `UpstreamError(code)`.
    - `rows`/`first_row`/`row_count` tolerate the response shapes of recent
      postgrest-py versions, including `maybe_single()` returning None when no
      row matches.
"""
from __future__ import annotations

import inspect
from typing import Any, List, Optional

from portal.errors import UpstreamError


async def run_query(builder: Any, code: str) -> Any:
    """Execute a PostgREST request builder and wrap failures."""
    try:
        res = builder.execute()
        if inspect.isawaitable(res):
            res = await res
        return res
    except Exception as exc:
        raise UpstreamError.wrap(code, exc) from exc


def rows(res: Any) -> List[dict]:
    if res is None:
        return []
    data = res.get("data") if isinstance(res, dict) else getattr(res, "data", None)
    if data is None:
        return []
    if isinstance(data, dict):
        return [data]
    return [dict(r) for r in data]


def first_row(res: Any) -> Optional[dict]:
    items = rows(res)
    return items[0] if items else None


def row_count(res: Any) -> int:
    if res is None:
        return 0
    count = res.get("count") if isinstance(res, dict) else getattr(res, "count", None)
    if count is None:
        return len(rows(res))
    return int(count)


__all__ = ["run_query", "rows", "first_row", "row_count"]
