"""
Response and guard helpers shared by the portal routers.

Why:
    Every API response must be non-cacheable, and every role-gated route must
    apply the same access rules. Routers import these helpers instead of
    re-implementing them.
"""
from __future__ import annotations

from typing import Any, Optional

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse

from portal.errors import UpstreamError
from portal.identity_access.access import AccessOutcome, evaluate_route_access
from portal.identity_access.domain import ENTRY_ROUTE
from portal.web.wiring import PortalContext

PRIVATE_NO_STORE = {"Cache-Control": "private, no-store"}


def private_json(body: Any, *, status_code: int = 200) -> JSONResponse:
    return JSONResponse(body, status_code=status_code, headers=dict(PRIVATE_NO_STORE))


def error_json(error: str, *, status_code: int, detail: Optional[str] = None, **extra: Any) -> JSONResponse:
    body: dict = {"error": error}
    if detail is not None:
        body["detail"] = detail
    body.update({k: v for k, v in extra.items() if v is not None})
    return private_json(body, status_code=status_code)


def bad_request(exc: ValueError) -> JSONResponse:
    code = getattr(exc, "code", None) or str(exc)
    return error_json("bad_request", status_code=400, detail=code, message=getattr(exc, "message", None))


def upstream_error(exc: UpstreamError, *, status_code: int = 502) -> JSONResponse:
    return error_json("upstream_error", status_code=status_code, detail=exc.code, message=exc.detail)


def csrf_violation() -> JSONResponse:
    return error_json("forbidden", status_code=403, detail="csrf_violation")


def current_context(request: Request) -> Optional[PortalContext]:
    ctx = getattr(request.state, "portal", None)
    return ctx if isinstance(ctx, PortalContext) else None


async def guard_page(request: Request, role: str):
    """Page-style guard: a RedirectResponse when access is denied, else None."""
    ctx = current_context(request)
    if ctx is None:
        return RedirectResponse(url=ENTRY_ROUTE, status_code=302)
    state = await ctx.resolver.settled()
    decision = evaluate_route_access(state.identity, state.role, state.loading, role)
    if decision.outcome is AccessOutcome.REDIRECT and decision.redirect_to:
        return RedirectResponse(url=decision.redirect_to, status_code=302)
    if decision.outcome is AccessOutcome.WAIT:
        return error_json("session_loading", status_code=503)
    return None


async def require_role(request: Request, role: str):
    """Return `(ctx, None)` when the caller holds `role`, else `(None, response)`.

    Behavior:
        Waits for outstanding role resolution before deciding, so a caller who
        just signed in is judged on the resolved role. No session maps to 401,
        a missing or different role to 403 with the redirect target.
    """
    ctx = current_context(request)
    if ctx is None:
        return None, error_json("unauthenticated", status_code=401, redirect=ENTRY_ROUTE)
    state = await ctx.resolver.settled()
    decision = evaluate_route_access(state.identity, state.role, state.loading, role)
    if decision.outcome is AccessOutcome.WAIT:
        return None, error_json("session_loading", status_code=503)
    if decision.outcome is AccessOutcome.REDIRECT:
        if state.identity is None:
            return None, error_json("unauthenticated", status_code=401, redirect=ENTRY_ROUTE)
        detail = "no_role_assigned" if state.role is None else None
        return None, error_json("forbidden", status_code=403, detail=detail, redirect=decision.redirect_to)
    return ctx, None


__all__ = [
    "PRIVATE_NO_STORE",
    "private_json",
    "error_json",
    "bad_request",
    "upstream_error",
    "csrf_violation",
    "current_context",
    "require_role",
    "guard_page",
]
