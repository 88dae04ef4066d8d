"Assignment portal API"
from __future__ import annotations

import logging
import os
import sys
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, RedirectResponse


def _should_load_dotenv() -> bool:
    """Decide if we should load a local .env file.

    - Never load under pytest to avoid contaminating test env.
    - Allow explicit opt-out via PORTAL_ENABLE_DOTENV (default true outside pytest).
    """
    if "pytest" in sys.modules or os.getenv("PYTEST_CURRENT_TEST"):
        return False
    flag = (os.getenv("PORTAL_ENABLE_DOTENV", "true") or "").strip().lower()
    return flag in ("1", "true", "yes")


if _should_load_dotenv():
    from dotenv import load_dotenv

    load_dotenv()

from portal.identity_access.domain import ENTRY_ROUTE  # noqa: E402
from portal.storage.bootstrap import ensure_buckets_from_env  # noqa: E402
from portal.web import wiring  # noqa: E402
from portal.web.auth_utils import session_id  # noqa: E402
from portal.web.config import ensure_secure_config_on_startup  # noqa: E402
from portal.web.routes.admin import admin_router  # noqa: E402
from portal.web.routes.auth import auth_router  # noqa: E402
from portal.web.routes.student import student_router  # noqa: E402

# Minimal production safety checks (fail-fast on insecure config)
ensure_secure_config_on_startup()

logger = logging.getLogger("portal.web")


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Dev convenience: provision the submissions bucket when requested by env.
    try:
        ensure_buckets_from_env()
    except Exception as exc:
        logger.warning("Storage bootstrap skipped: %s", exc.__class__.__name__)
    yield
    for sid in list(wiring.SESSION_STORE.session_ids()):
        rec = wiring.SESSION_STORE.pop(sid)
        if rec is not None:
            await rec.context.close()


app = FastAPI(title="Assignment Portal", description="Students submit, admins track.", version="0.1.0", lifespan=lifespan)
app.include_router(auth_router)
app.include_router(student_router)
app.include_router(admin_router)

# --- Auth Middleware -----------------------------------------------------------

_PUBLIC_PATHS = {"/", "/auth", "/api/session", "/health", "/docs", "/openapi.json"}


def _is_public_path(path: str) -> bool:
    return path in _PUBLIC_PATHS or path.startswith("/auth/")


@app.middleware("http")
async def auth_enforcement(request: Request, call_next):
    await wiring.release_expired_sessions()
    sid = session_id(request)
    rec = wiring.SESSION_STORE.get(sid) if sid else None
    # Expose the live per-user context for downstream handlers (server-side only).
    request.state.portal = rec.context if rec else None

    path = request.url.path
    if _is_public_path(path):
        return await call_next(request)
    if rec is None:
        if path.startswith("/api/"):
            headers = {"Cache-Control": "private, no-store", "Vary": "Origin"}
            return JSONResponse({"error": "unauthenticated", "redirect": ENTRY_ROUTE}, status_code=401, headers=headers)
        return RedirectResponse(url=ENTRY_ROUTE, status_code=302)
    return await call_next(request)


# --- Security Headers Middleware ----------------------------------------------

@app.middleware("http")
async def security_headers(request: Request, call_next):
    response = await call_next(request)
    response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
    response.headers.setdefault("X-Content-Type-Options", "nosniff")
    response.headers.setdefault("Referrer-Policy", "strict-origin-when-cross-origin")
    response.headers.setdefault("Strict-Transport-Security", "max-age=31536000; includeSubDomains")
    return response


@app.get("/health")
async def health():
    return JSONResponse({"status": "healthy"}, headers={"Cache-Control": "no-store"})
