"""
Supabase Storage bootstrap helpers.

Intent:
    Ensure the submissions bucket exists on startup (dev/stage friendly).

Security & Safety:
    - Controlled by `AUTO_CREATE_STORAGE_BUCKETS=true` env flag.
    - Requires server-side `SUPABASE_SERVICE_ROLE_KEY`.
    - Idempotent: lists buckets first, creates only missing ones.

Usage:
    Call `ensure_buckets_from_env()` once at application startup.
"""
from __future__ import annotations

import inspect
import logging
import os
from typing import Iterable

import requests

from .config import auto_create_buckets_enabled, get_submissions_bucket

_log = logging.getLogger("portal.storage")

# (connect, read) seconds; storage admin calls must never hang startup.
_HTTP_TIMEOUT = (3, 10)


def _supports_timeout(func) -> bool:
    """Return True if callable signature supports a 'timeout' kw or **kwargs.

    Tests may monkeypatch `requests.get/post` with simple callables that do not
    accept `timeout`; real HTTP clients always get one.
    """
    try:
        sig = inspect.signature(func)
        if any(p.kind is inspect.Parameter.VAR_KEYWORD for p in sig.parameters.values()):
            return True
        return "timeout" in sig.parameters
    except (TypeError, ValueError):
        return False


def _headers(key: str) -> dict[str, str]:
    return {"apikey": key, "Authorization": f"Bearer {key}"}


def _list_buckets(base_url: str, key: str) -> list[dict]:
    url = f"{base_url.rstrip('/')}/storage/v1/bucket"
    get = requests.get
    kwargs: dict = {"headers": _headers(key)}
    if _supports_timeout(get):
        kwargs["timeout"] = _HTTP_TIMEOUT
    try:
        resp = get(url, **kwargs)
    except requests.exceptions.RequestException as exc:
        _log.warning("list buckets failed: error=%s", type(exc).__name__)
        return []
    _log.debug("GET /storage/v1/bucket status=%s", getattr(resp, "status_code", "?"))
    try:
        data = resp.json()
    except ValueError:
        data = []
    return data if isinstance(data, list) else []


def _create_bucket(base_url: str, key: str, name: str, *, public: bool) -> bool:
    url = f"{base_url.rstrip('/')}/storage/v1/bucket"
    headers = {**_headers(key), "Content-Type": "application/json"}
    payload = {"id": name, "name": name, "public": public}
    post = requests.post
    kwargs: dict = {"headers": headers, "json": payload}
    if _supports_timeout(post):
        kwargs["timeout"] = _HTTP_TIMEOUT
    try:
        resp = post(url, **kwargs)
    except requests.exceptions.RequestException as exc:
        _log.warning("create bucket '%s' failed: error=%s", name, type(exc).__name__)
        return False
    status = getattr(resp, "status_code", 500)
    if status >= 300:
        _log.warning("create bucket '%s' failed: status=%s body=%s", name, status, getattr(resp, "text", ""))
    else:
        _log.info("storage bucket created: %s (public=%s)", name, public)
    return status < 300


def ensure_buckets(base_url: str, key: str, buckets: Iterable[str], *, public: bool = True) -> bool:
    """Ensure each bucket in `buckets` exists; create if missing.

    Parameters:
        base_url: Supabase API base (e.g., http://127.0.0.1:54321)
        key: Service role JWT for server-side administration
        buckets: Bucket names to ensure
        public: Create missing buckets as public-read. Submission artifacts are
            referenced by their public URL, so the default is True.

    Behavior:
        - Lists existing buckets, creates only missing ones (idempotent).
        - Logs non-2xx responses for visibility (e.g., 409/403/503).

    Returns:
        True when every requested bucket exists afterwards.
    """
    wanted = {name for name in buckets if name}
    existing = _list_buckets(base_url, key)
    names = {str(it.get("name") or it.get("id") or "") for it in existing}
    for name in sorted(wanted - names):
        _create_bucket(base_url, key, name, public=public)
    if wanted <= names:
        return True
    final = _list_buckets(base_url, key)
    final_names = {str(it.get("name") or it.get("id") or "") for it in final}
    missing = wanted - final_names
    for name in sorted(missing):
        _log.warning("bucket '%s' still missing after create attempt", name)
    return not missing


def ensure_buckets_from_env() -> bool:
    """Read env and ensure the submissions bucket when AUTO_CREATE_STORAGE_BUCKETS=true.

    Env:
        - AUTO_CREATE_STORAGE_BUCKETS=true (opt-in safety)
        - SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY (server-side credentials)
        - SUBMISSIONS_BUCKET (default: submissions)

    Behavior:
        - No-ops (False) when the flag is not exactly 'true' or credentials are missing.
        - Never raises; failures are logged.
    """
    if not auto_create_buckets_enabled():
        return False
    _log.warning(
        "AUTO_CREATE_STORAGE_BUCKETS=true detected (dev/test convenience only). Disable this flag in prod/stage environments."
    )
    base = (os.getenv("SUPABASE_URL") or "").strip()
    key = (os.getenv("SUPABASE_SERVICE_ROLE_KEY") or "").strip()
    if not base or not key:
        return False
    return ensure_buckets(base, key, [get_submissions_bucket()])


__all__ = ["ensure_buckets_from_env", "ensure_buckets"]
