"""
Configuration and startup security checks for the portal.

Why: A portal holding student work must not start with obviously insecure
settings. This module provides a single guard that enforces minimal production
safety constraints without burdening local development.

Permissions: The caller needs no special privileges. The function simply reads
environment variables and raises `SystemExit` on fatal misconfiguration.
"""
from __future__ import annotations

import os

_DUMMY_VALUES = {"DUMMY_DO_NOT_USE", "CHANGE_ME", "CHANGEME"}


def current_environment() -> str:
    return (os.getenv("PORTAL_ENV", "dev") or "dev").strip().lower()


def is_prod_like(env: str) -> bool:
    env_l = (env or "").lower()
    return env_l in {"prod", "production", "stage", "staging"}


def _is_dummy(value: str) -> bool:
    upper = value.strip().upper()
    return not upper or upper in _DUMMY_VALUES or upper.startswith("CHANGE_ME")


def supabase_url() -> str:
    return (os.getenv("SUPABASE_URL") or "").strip().rstrip("/")


def supabase_anon_key() -> str:
    return (os.getenv("SUPABASE_ANON_KEY") or "").strip()


def ensure_secure_config_on_startup() -> None:
    """Fail fast on insecure production configuration.

    Intent: Abort process startup when obviously insecure settings are detected
    in production/staging. Development remains permissive for convenience.

    Checks:
    - SUPABASE_URL must be set and use https.
    - SUPABASE_ANON_KEY must be set and not a placeholder.
    - SUPABASE_SERVICE_ROLE_KEY must be real when bucket bootstrap is enabled.
    - DATABASE_URL must not explicitly disable TLS.
    """

    if not is_prod_like(current_environment()):
        return  # dev/test remain permissive

    # 1) Supabase endpoint
    url = supabase_url()
    if not url:
        raise SystemExit("Refusing to start: SUPABASE_URL is unset in production.")
    if not url.lower().startswith("https://"):
        raise SystemExit("Refusing to start: SUPABASE_URL must use https in production.")

    # 2) Public key for per-user clients
    if _is_dummy(supabase_anon_key()):
        raise SystemExit(
            "Refusing to start: SUPABASE_ANON_KEY is unset or a dummy placeholder in production."
        )

    # 3) Service role key is only needed for the bucket bootstrap
    auto_buckets = (os.getenv("AUTO_CREATE_STORAGE_BUCKETS", "false") or "").strip().lower() == "true"
    if auto_buckets and _is_dummy(os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")):
        raise SystemExit(
            "Refusing to start: SUPABASE_SERVICE_ROLE_KEY is unset or a dummy placeholder while "
            "AUTO_CREATE_STORAGE_BUCKETS=true in production."
        )

    # 4) Postgres TLS: basic guard to avoid explicit disable
    dsn = os.getenv("DATABASE_URL", "")
    if "sslmode=disable" in dsn:
        raise SystemExit(
            "Refusing to start: DATABASE_URL contains sslmode=disable in production. Use sslmode=require or verify TLS."
        )


__all__ = [
    "current_environment",
    "is_prod_like",
    "supabase_url",
    "supabase_anon_key",
    "ensure_secure_config_on_startup",
]
