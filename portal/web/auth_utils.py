"""
Shared cookie helpers for the session and device cookies.

Why:
    The auth router and the middleware both set and clear cookies. Keeping the
    flags in one place avoids drift between them.
"""

from __future__ import annotations

from fastapi import Request, Response

SESSION_COOKIE_NAME = "portal_session"
DEVICE_COOKIE_NAME = "portal_device"
SESSION_TTL_SECONDS = 60 * 60
DEVICE_TTL_SECONDS = 60 * 60 * 24 * 365


def cookie_opts(environment: str) -> dict:
    """Return hardened cookie flags (dev = prod).

    Returns a mapping with keys:
      - secure: True
      - samesite: "lax"  # cookies survive top-level navigations (e.g., email confirmation links)
    """
    return {"secure": True, "samesite": "lax"}


def set_cookie(response: Response, key: str, value: str, *, environment: str, max_age: int) -> None:
    opts = cookie_opts(environment)
    response.set_cookie(
        key=key,
        value=value,
        httponly=True,
        secure=opts["secure"],
        samesite=opts["samesite"],
        path="/",
        max_age=max_age,
    )


def clear_cookie(response: Response, key: str, *, environment: str) -> None:
    opts = cookie_opts(environment)
    response.delete_cookie(key=key, path="/", secure=opts["secure"], samesite=opts["samesite"], httponly=True)


def session_id(request: Request) -> str | None:
    return request.cookies.get(SESSION_COOKIE_NAME) or None


__all__ = [
    "SESSION_COOKIE_NAME",
    "DEVICE_COOKIE_NAME",
    "SESSION_TTL_SECONDS",
    "DEVICE_TTL_SECONDS",
    "cookie_opts",
    "set_cookie",
    "clear_cookie",
    "session_id",
]
