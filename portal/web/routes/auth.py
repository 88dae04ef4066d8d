"""
Authentication routes: sign-up, sign-in, sign-out and the session probe.

Why:
    The browser never talks to the identity provider directly. Each successful
    sign-in creates a server-side context (client + resolver) and hands the
    browser only an opaque session cookie.

Notes:
    - The device cookie scopes the pending-role cache. It outlives sessions so
      a role chosen at signup is applied when the same browser signs in after
      confirming the email address.
    - All responses are JSON with `Cache-Control: private, no-store`.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field

from portal.errors import UpstreamError
from portal.identity_access.access import AccessOutcome, evaluate_public_route
from portal.identity_access.domain import (
    ENTRY_ROUTE,
    AuthError,
    SignUpStatus,
    SignUpValidationError,
    home_route,
)
from portal.identity_access.stores import PendingRoleStore
from portal.web import wiring
from portal.web.auth_utils import (
    DEVICE_COOKIE_NAME,
    DEVICE_TTL_SECONDS,
    SESSION_COOKIE_NAME,
    SESSION_TTL_SECONDS,
    clear_cookie,
    session_id,
    set_cookie,
)
from portal.web.config import current_environment
from .common import bad_request, csrf_violation, current_context, error_json, private_json, upstream_error
from .security import is_same_origin

auth_router = APIRouter(tags=["Auth"])  # explicit paths, no prefix
logger = logging.getLogger("portal.web.auth")


class SignUpPayload(BaseModel):
    # Accept raw strings and validate in the resolver to return stable 400 codes
    email: Optional[str] = Field(default=None)
    password: Optional[str] = Field(default=None)
    full_name: Optional[str] = Field(default=None)
    role: Optional[str] = Field(default=None)


class SignInPayload(BaseModel):
    email: Optional[str] = Field(default=None)
    password: Optional[str] = Field(default=None)


def _device_id(request: Request) -> tuple[str, bool]:
    existing = (request.cookies.get(DEVICE_COOKIE_NAME) or "").strip()
    if existing:
        return existing, False
    return PendingRoleStore.new_device_id(), True


def _with_device_cookie(response, device_id: str, is_new: bool):
    if is_new:
        set_cookie(response, DEVICE_COOKIE_NAME, device_id, environment=current_environment(), max_age=DEVICE_TTL_SECONDS)
    return response


async def _replace_session(request: Request, ctx: wiring.PortalContext) -> str:
    """Store `ctx` under a fresh session id, releasing any previous session."""
    old_sid = session_id(request)
    if old_sid:
        old = wiring.SESSION_STORE.pop(old_sid)
        if old is not None:
            await old.context.close()
    rec = wiring.SESSION_STORE.create(context=ctx, ttl_seconds=SESSION_TTL_SECONDS)
    return rec.session_id


def _auth_error(exc: AuthError):
    return error_json("auth_failed", status_code=400, detail=exc.code, message=exc.message)


@auth_router.post("/auth/sign-up")
async def sign_up(request: Request, payload: SignUpPayload):
    """Create an account with a role.

    Responses:
        201 `{result: "ok", ...session}` when the provider issued a session.
        202 `{result: "pending_confirmation", message}` when email confirmation
        is required; the role is applied on the first confirmed sign-in from
        this browser.
    """
    if not is_same_origin(request):
        return csrf_violation()
    device_id, new_device = _device_id(request)
    try:
        ctx = await wiring.open_context(device_id)
    except UpstreamError as exc:
        return upstream_error(exc, status_code=503)
    try:
        result = await ctx.resolver.sign_up(
            payload.email or "", payload.password or "", payload.full_name or "", payload.role or ""
        )
    except SignUpValidationError as exc:
        await ctx.close()
        return _with_device_cookie(bad_request(exc), device_id, new_device)
    except AuthError as exc:
        await ctx.close()
        logger.warning("sign-up failed: %s", exc.code)
        return _with_device_cookie(_auth_error(exc), device_id, new_device)

    if result.status is SignUpStatus.PENDING_CONFIRMATION:
        await ctx.close()
        resp = private_json({"result": result.status.value, "message": result.message}, status_code=202)
        return _with_device_cookie(resp, device_id, new_device)

    state = await ctx.resolver.settled()
    sid = await _replace_session(request, ctx)
    body = {"result": result.status.value, **state.as_dict(), "redirect": home_route(state.role)}
    resp = private_json(body, status_code=201)
    set_cookie(resp, SESSION_COOKIE_NAME, sid, environment=current_environment(), max_age=SESSION_TTL_SECONDS)
    return _with_device_cookie(resp, device_id, new_device)


@auth_router.post("/auth/sign-in")
async def sign_in(request: Request, payload: SignInPayload):
    """Password sign-in; pending signup roles for this browser are applied here."""
    if not is_same_origin(request):
        return csrf_violation()
    device_id, new_device = _device_id(request)
    try:
        ctx = await wiring.open_context(device_id)
    except UpstreamError as exc:
        return upstream_error(exc, status_code=503)
    try:
        await ctx.resolver.sign_in(payload.email or "", payload.password or "")
    except SignUpValidationError as exc:
        await ctx.close()
        return _with_device_cookie(bad_request(exc), device_id, new_device)
    except AuthError as exc:
        await ctx.close()
        logger.info("sign-in rejected: %s", exc.code)
        return _with_device_cookie(_auth_error(exc), device_id, new_device)

    state = await ctx.resolver.settled()
    sid = await _replace_session(request, ctx)
    resp = private_json({**state.as_dict(), "redirect": home_route(state.role)})
    set_cookie(resp, SESSION_COOKIE_NAME, sid, environment=current_environment(), max_age=SESSION_TTL_SECONDS)
    return _with_device_cookie(resp, device_id, new_device)


@auth_router.post("/auth/sign-out")
async def sign_out(request: Request):
    if not is_same_origin(request):
        return csrf_violation()
    sid = session_id(request)
    rec = wiring.SESSION_STORE.pop(sid) if sid else None
    if rec is not None:
        try:
            await rec.context.resolver.sign_out()
        except AuthError as exc:
            # Local session is gone either way; the provider token expires on its own.
            logger.warning("provider sign-out failed: %s", exc.code)
        finally:
            await rec.context.close()
    resp = private_json({"status": "signed_out", "redirect": ENTRY_ROUTE})
    clear_cookie(resp, SESSION_COOKIE_NAME, environment=current_environment())
    return resp


@auth_router.get("/api/session")
async def get_session(request: Request):
    """Current session state: status, user, role (null means no role assigned)."""
    ctx = current_context(request)
    if ctx is None:
        return private_json({"status": "anonymous", "loading": False, "user": None, "role": None})
    state = await ctx.resolver.settled()
    body = state.as_dict()
    if state.identity is not None:
        body["home"] = home_route(state.role)
    return private_json(body)


@auth_router.get("/auth")
async def auth_entry(request: Request):
    """Entry route: signed-in callers with a role are sent to their home."""
    ctx = current_context(request)
    if ctx is not None:
        state = await ctx.resolver.settled()
        decision = evaluate_public_route(state.identity, state.role, state.loading)
        if decision.outcome is AccessOutcome.REDIRECT and decision.redirect_to:
            return RedirectResponse(url=decision.redirect_to, status_code=302)
        return private_json(state.as_dict())
    return private_json({"status": "anonymous", "loading": False, "user": None, "role": None})


@auth_router.get("/")
async def index(request: Request):
    ctx = current_context(request)
    if ctx is not None:
        state = await ctx.resolver.settled()
        if state.identity is not None and state.role is not None:
            return RedirectResponse(url=home_route(state.role), status_code=302)
    return RedirectResponse(url=ENTRY_ROUTE, status_code=302)


__all__ = ["auth_router"]
